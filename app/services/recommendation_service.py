"""
Cache-first recommendation flows used by the dashboard.

Read the AI cache; on None (invalidated, empty or store error) call the
generator, hand the fresh payload to the cache and return it. Persistence is
best-effort, so the caller always gets the generated payload back even when
the save failed. GenerationError propagates.

force_refresh skips the cached read and overwrites the stored payload; it
writes no invalidation marker (those come from profile and grade edits).
"""

from datetime import datetime
from typing import Any, Dict, List, Tuple

from app.schemas.recommendations import CareerRecommendation, StudentProfile
from app.services.ai_cache_service import AICacheService, to_cache_row, to_match_percentage
from app.services.openrouter_client import GenerationError, OpenRouterClient
from app.utils.logger import get_logger

logger = get_logger("recommendations")


def _match_score(row: Dict[str, Any]) -> float:
    return to_match_percentage(row.get("match_percentage"))


class RecommendationService:

    def __init__(self, cache: AICacheService, generator: OpenRouterClient):
        self.cache = cache
        self.generator = generator

    def _to_dashboard(self, row: Dict[str, Any], now: datetime) -> CareerRecommendation:
        return CareerRecommendation(
            id=row.get("id") or "",
            user_id=row["user_id"],
            career_name=row.get("career_name") or "",
            match_percentage=_match_score(row),
            description=row.get("description") or "",
            salary_range=row.get("salary_range") or "",
            growth_prospect=row.get("growth") or "",
            education_required=row.get("education") or "",
            why_recommended=row.get("why_recommended") or "",
            created_at=row.get("created_at") or now.isoformat(),
            expires_at=(now + self.cache.ttl).isoformat(),
        )

    async def get_career_recommendations(
        self, user_id: str, profile: StudentProfile, force_refresh: bool = False
    ) -> Tuple[List[CareerRecommendation], bool]:
        """Return (recommendations, served_from_cache)."""
        now = self.cache.now()
        if not force_refresh:
            cached = await self.cache.get_cached_career_recommendations(user_id)
            if cached:
                logger.info(f"Using cached career recommendations for user {user_id}")
                return [self._to_dashboard(row, now) for row in cached], True

        generated = await self.generator.generate_career_recommendations(profile)
        rows = [to_cache_row(user_id, rec) for rec in generated or [] if isinstance(rec, dict)]
        rows = [row for row in rows if row["career_name"]]
        if not rows:
            raise GenerationError("career_recommendations returned no usable items")
        await self.cache.save_career_recommendations(user_id, generated)

        rows.sort(key=_match_score, reverse=True)
        return [self._to_dashboard(row, now) for row in rows], False

    async def get_career_details(
        self, user_id: str, career_name: str, profile: StudentProfile, force_refresh: bool = False
    ) -> Tuple[Dict[str, Any], bool]:
        if not force_refresh:
            cached = await self.cache.get_cached_career_details(user_id, career_name)
            if cached:
                return cached, True

        details = await self.generator.generate_career_details(profile, career_name)
        await self.cache.save_career_details(user_id, career_name, details)
        return details, False

    async def get_course_recommendations(
        self, user_id: str, profile: StudentProfile, force_refresh: bool = False
    ) -> Tuple[List[Dict[str, Any]], bool]:
        if not force_refresh:
            cached = await self.cache.get_cached_course_recommendations(user_id)
            if cached:
                return cached, True

        courses = await self.generator.generate_course_recommendations(profile)
        await self.cache.save_course_recommendations(user_id, courses)
        return courses, False
