"""
Recommendation API Routes
Cache-first career/course recommendations plus cache invalidation hooks
"""
from fastapi import APIRouter, Depends, HTTPException, Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from app.dependencies import get_ai_cache_service, get_recommendation_service
from app.middleware.auth import get_user_id
from app.models.ai_cache import CACHE_TYPES
from app.schemas.recommendations import (
    CareerDetailsResponse,
    CareerRecommendationsResponse,
    CourseRecommendationsResponse,
    InvalidateRequest,
    RecommendationRequest,
)
from app.services.ai_cache_service import AICacheService
from app.services.openrouter_client import GenerationError
from app.services.recommendation_service import RecommendationService
from app.utils.logger import logger


router = APIRouter()
limiter = Limiter(key_func=get_remote_address)


@router.post("/careers", response_model=CareerRecommendationsResponse)
@limiter.limit("30/hour")
async def career_recommendations(
    request: Request,
    data: RecommendationRequest,
    user_id: str = Depends(get_user_id),
    service: RecommendationService = Depends(get_recommendation_service),
):
    try:
        recommendations, cached = await service.get_career_recommendations(
            user_id, data.profile, force_refresh=data.force_refresh
        )
    except GenerationError as e:
        logger.error(f"Career recommendation generation failed: {e}", extra={"user_id": user_id})
        raise HTTPException(status_code=502, detail="Could not generate career recommendations")

    return CareerRecommendationsResponse(recommendations=recommendations, cached=cached)


@router.post("/careers/{career_name}/details", response_model=CareerDetailsResponse)
@limiter.limit("60/hour")
async def career_details(
    request: Request,
    career_name: str,
    data: RecommendationRequest,
    user_id: str = Depends(get_user_id),
    service: RecommendationService = Depends(get_recommendation_service),
):
    try:
        details, cached = await service.get_career_details(
            user_id, career_name, data.profile, force_refresh=data.force_refresh
        )
    except GenerationError as e:
        logger.error(f"Career details generation failed for {career_name}: {e}", extra={"user_id": user_id})
        raise HTTPException(status_code=502, detail="Could not generate career details")

    return CareerDetailsResponse(career_name=career_name, details=details, cached=cached)


@router.post("/courses", response_model=CourseRecommendationsResponse)
@limiter.limit("30/hour")
async def course_recommendations(
    request: Request,
    data: RecommendationRequest,
    user_id: str = Depends(get_user_id),
    service: RecommendationService = Depends(get_recommendation_service),
):
    try:
        courses, cached = await service.get_course_recommendations(
            user_id, data.profile, force_refresh=data.force_refresh
        )
    except GenerationError as e:
        logger.error(f"Course recommendation generation failed: {e}", extra={"user_id": user_id})
        raise HTTPException(status_code=502, detail="Could not generate course recommendations")

    return CourseRecommendationsResponse(courses=courses, cached=cached)


@router.post("/invalidate")
async def invalidate(
    data: InvalidateRequest,
    user_id: str = Depends(get_user_id),
    cache: AICacheService = Depends(get_ai_cache_service),
):
    """
    Called after profile or grade edits (reason: profile_updated / grades_updated)
    or by a manual refresh. Best-effort: always succeeds from the caller's view.
    """
    if data.cache_type:
        await cache.invalidate_cache(user_id, data.cache_type, data.reason)
        invalidated = [data.cache_type]
    else:
        await cache.invalidate_all_caches(user_id, data.reason)
        invalidated = list(CACHE_TYPES)

    return {"success": True, "invalidated": invalidated, "reason": data.reason}


@router.delete("/cache")
async def clear_cache(
    user_id: str = Depends(get_user_id),
    cache: AICacheService = Depends(get_ai_cache_service),
):
    await cache.clear_all_caches(user_id)
    return {"success": True, "message": "All cached recommendations cleared"}
