"""
Wiring for the AI cache and generator.

The store, cache and generator live on app.state (built at startup) and are
handed to routes through FastAPI dependencies, so tests can swap any of them
with app.dependency_overrides.
"""
from fastapi import Depends, HTTPException, Request

from app.config import Settings
from app.services.ai_cache_service import AICacheService
from app.services.cache_store import CacheStore, SqlCacheStore
from app.services.openrouter_client import OpenRouterClient
from app.services.recommendation_service import RecommendationService
from app.services.supabase_store import SupabaseCacheStore
from app.utils.logger import logger


def build_cache_store(settings: Settings) -> CacheStore:
    backend = settings.cache_backend.lower()
    if backend == "supabase":
        logger.info("[ai_cache] Using Supabase PostgREST store")
        return SupabaseCacheStore(
            settings.supabase_url,
            settings.supabase_service_role_key,
            timeout=settings.supabase_timeout_seconds,
        )
    if backend == "sql":
        logger.info("[ai_cache] Using SQL store")
        return SqlCacheStore()
    raise ValueError(f"Unknown CACHE_BACKEND {settings.cache_backend!r} (expected 'sql' or 'supabase')")


def get_ai_cache_service(request: Request) -> AICacheService:
    return request.app.state.ai_cache


def get_generator(request: Request) -> OpenRouterClient:
    generator = getattr(request.app.state, "generator", None)
    if generator is None:
        try:
            generator = OpenRouterClient()
        except ValueError as e:
            logger.error(f"Generator unavailable: {e}")
            raise HTTPException(status_code=503, detail="AI generation is not configured")
        request.app.state.generator = generator
    return generator


def get_recommendation_service(
    cache: AICacheService = Depends(get_ai_cache_service),
    generator: OpenRouterClient = Depends(get_generator),
) -> RecommendationService:
    return RecommendationService(cache, generator)
