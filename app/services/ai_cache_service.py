"""
AI recommendation cache.

Sits in front of the LLM generator for three payload kinds (career
recommendations, career details, course recommendations). Reads are gated by
the cache_invalidation ledger: a marker younger than the TTL makes every read
for that (user, cache_type) return None, even when rows are still stored.

Error contract: nothing here raises to the caller. Store failures are logged
and turned into safe defaults - None for reads, a silent no-op for writes and
invalidations - so None always means "regenerate", whether the cause was an
invalidation, an empty cache or an unreachable store. The validity check
fails closed.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

from pydantic import TypeAdapter

from app.middleware.correlation import get_correlation_id
from app.models.ai_cache import (
    CACHE_TYPE_CAREER_DETAILS,
    CACHE_TYPE_CAREER_RECOMMENDATIONS,
    CACHE_TYPE_COURSE_RECOMMENDATIONS,
    CACHE_TYPES,
)
from app.services.cache_store import CacheStore
from app.utils.logger import get_logger
from app.utils.metrics import inc

logger = get_logger("ai_cache")

CAREER_RECOMMENDATIONS_TABLE = "cached_career_recommendations"
CAREER_DETAILS_TABLE = "cached_career_details"
COURSE_RECOMMENDATIONS_TABLE = "cached_course_recommendations"
INVALIDATION_TABLE = "cache_invalidation"

DEFAULT_TTL_HOURS = 24


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# PostgREST trims trailing zeros from fractional seconds ("08:00:00.12345+00:00")
_TIMESTAMP = TypeAdapter(datetime)


def _parse_timestamp(value: Any) -> datetime:
    """Accept datetimes or ISO strings; naive values are taken as UTC."""
    if isinstance(value, str):
        value = _TIMESTAMP.validate_python(value)
    if not isinstance(value, datetime):
        raise ValueError(f"invalid timestamp: {value!r}")
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


def to_match_percentage(value: Any) -> float:
    """Coerce a generator match score ("85", "85%", 85) to a float; anything else is 0."""
    if isinstance(value, str):
        value = value.strip().rstrip("%")
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


def to_cache_row(user_id: str, rec: Dict[str, Any]) -> Dict[str, Any]:
    """Map a loosely-typed generator item onto a cached_career_recommendations row."""
    return {
        "user_id": user_id,
        "career_name": rec.get("title") or rec.get("name"),
        "match_percentage": to_match_percentage(rec.get("matchPercentage") or rec.get("value")),
        "description": rec.get("description"),
        "salary_range": rec.get("salaryRange"),
        "education": rec.get("education"),
        "growth": rec.get("growth"),
        "why_recommended": rec.get("whyRecommended"),
    }


class AICacheService:
    """Per-user AI output cache with time-boxed invalidation markers."""

    def __init__(
        self,
        store: CacheStore,
        ttl_hours: float = DEFAULT_TTL_HOURS,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.ttl = timedelta(hours=ttl_hours)
        self._clock = clock

    def now(self) -> datetime:
        return self._clock()

    def _log_failure(self, operation: str, user_id: str, cache_type: str, exc: Exception) -> None:
        inc(f"ai_cache.{cache_type}.error")
        logger.warning(
            f"[ai_cache] {operation} failed for {cache_type}: {exc}",
            extra={
                "operation": operation,
                "user_id": user_id,
                "cache_type": cache_type,
                "error": str(exc)[:200],
                "error_type": type(exc).__name__,
                "correlation_id": get_correlation_id(),
            },
        )

    # ------------------------------------------------------------------
    # Invalidation ledger
    # ------------------------------------------------------------------

    async def is_cache_valid(self, user_id: str, cache_type: str) -> bool:
        """
        True unless a marker for (user_id, cache_type) is younger than the TTL.

        Markers older than the TTL no longer count, so an invalidated cache
        becomes readable again after the TTL even if nothing regenerated it.
        Any store failure returns False.
        """
        try:
            markers = await self.store.select(
                INVALIDATION_TABLE,
                {"user_id": user_id, "cache_type": cache_type},
                order_by="invalidated_at",
                descending=True,
                limit=1,
            )
            if not markers:
                return True

            invalidated_at = _parse_timestamp(markers[0]["invalidated_at"])
            return self._clock() - invalidated_at >= self.ttl
        except Exception as exc:
            self._log_failure("is_cache_valid", user_id, cache_type, exc)
            return False

    async def invalidate_cache(self, user_id: str, cache_type: str, reason: str = "manual_refresh") -> None:
        """Upsert the invalidation marker for (user_id, cache_type) stamped now."""
        try:
            await self.store.upsert(
                INVALIDATION_TABLE,
                {
                    "user_id": user_id,
                    "cache_type": cache_type,
                    "invalidated_at": self._clock(),
                    "reason": reason,
                },
                on_conflict=("user_id", "cache_type"),
            )
        except Exception as exc:
            self._log_failure("invalidate_cache", user_id, cache_type, exc)
            return

        logger.info(
            f"Cache invalidated for user {user_id}, type: {cache_type}, reason: {reason}",
            extra={"operation": "invalidate_cache", "user_id": user_id, "cache_type": cache_type, "reason": reason},
        )

    # ------------------------------------------------------------------
    # Career recommendations
    # ------------------------------------------------------------------

    async def get_cached_career_recommendations(self, user_id: str) -> Optional[List[Dict[str, Any]]]:
        """Cached recommendations, best match first, or None when they must be regenerated."""
        cache_type = CACHE_TYPE_CAREER_RECOMMENDATIONS
        if not await self.is_cache_valid(user_id, cache_type):
            inc(f"ai_cache.{cache_type}.miss")
            logger.debug("Career recommendations cache is invalid, returning None")
            return None

        try:
            rows = await self.store.select(
                CAREER_RECOMMENDATIONS_TABLE,
                {"user_id": user_id},
                order_by="match_percentage",
                descending=True,
            )
        except Exception as exc:
            self._log_failure("get_cached_career_recommendations", user_id, cache_type, exc)
            return None

        if not rows:
            inc(f"ai_cache.{cache_type}.miss")
            return None

        inc(f"ai_cache.{cache_type}.hit")
        return rows

    async def save_career_recommendations(self, user_id: str, recommendations: List[Dict[str, Any]]) -> None:
        """Replace the user's cached recommendations (delete, then bulk insert)."""
        cache_type = CACHE_TYPE_CAREER_RECOMMENDATIONS
        items = list(recommendations) if isinstance(recommendations, (list, tuple)) else []
        rows = [to_cache_row(user_id, rec) for rec in items if isinstance(rec, dict)]
        rows = [row for row in rows if row["career_name"]]
        if len(rows) < len(items):
            logger.warning(
                f"Skipped {len(items) - len(rows)} career recommendations without a title",
                extra={"operation": "save_career_recommendations", "user_id": user_id, "count": len(items) - len(rows)},
            )

        try:
            await self.store.delete(CAREER_RECOMMENDATIONS_TABLE, {"user_id": user_id})
        except Exception as exc:
            self._log_failure("save_career_recommendations.delete", user_id, cache_type, exc)

        try:
            await self.store.insert(CAREER_RECOMMENDATIONS_TABLE, rows)
        except Exception as exc:
            self._log_failure("save_career_recommendations", user_id, cache_type, exc)
            return

        logger.info(
            f"Saved {len(rows)} career recommendations to cache",
            extra={"operation": "save_career_recommendations", "user_id": user_id, "count": len(rows)},
        )

    # ------------------------------------------------------------------
    # Career details
    # ------------------------------------------------------------------

    async def get_cached_career_details(self, user_id: str, career_name: str) -> Optional[Dict[str, Any]]:
        cache_type = CACHE_TYPE_CAREER_DETAILS
        if not await self.is_cache_valid(user_id, cache_type):
            inc(f"ai_cache.{cache_type}.miss")
            return None

        try:
            rows = await self.store.select(
                CAREER_DETAILS_TABLE,
                {"user_id": user_id, "career_name": career_name},
                limit=1,
            )
        except Exception as exc:
            self._log_failure("get_cached_career_details", user_id, cache_type, exc)
            return None

        details = rows[0].get("details") if rows else None
        inc(f"ai_cache.{cache_type}.{'miss' if details is None else 'hit'}")
        return details

    async def save_career_details(self, user_id: str, career_name: str, details: Dict[str, Any]) -> None:
        try:
            await self.store.upsert(
                CAREER_DETAILS_TABLE,
                {"user_id": user_id, "career_name": career_name, "details": details},
                on_conflict=("user_id", "career_name"),
            )
        except Exception as exc:
            self._log_failure("save_career_details", user_id, CACHE_TYPE_CAREER_DETAILS, exc)
            return

        logger.info(
            f"Saved career details for {career_name} to cache",
            extra={"operation": "save_career_details", "user_id": user_id, "career_name": career_name},
        )

    # ------------------------------------------------------------------
    # Course recommendations
    # ------------------------------------------------------------------

    async def get_cached_course_recommendations(self, user_id: str) -> Optional[List[Dict[str, Any]]]:
        cache_type = CACHE_TYPE_COURSE_RECOMMENDATIONS
        if not await self.is_cache_valid(user_id, cache_type):
            inc(f"ai_cache.{cache_type}.miss")
            return None

        try:
            rows = await self.store.select(COURSE_RECOMMENDATIONS_TABLE, {"user_id": user_id}, limit=1)
        except Exception as exc:
            self._log_failure("get_cached_course_recommendations", user_id, cache_type, exc)
            return None

        courses = rows[0].get("courses") if rows else None
        inc(f"ai_cache.{cache_type}.{'miss' if courses is None else 'hit'}")
        return courses

    async def save_course_recommendations(self, user_id: str, courses: List[Dict[str, Any]]) -> None:
        try:
            await self.store.upsert(
                COURSE_RECOMMENDATIONS_TABLE,
                {"user_id": user_id, "courses": courses},
                on_conflict=("user_id",),
            )
        except Exception as exc:
            self._log_failure("save_course_recommendations", user_id, CACHE_TYPE_COURSE_RECOMMENDATIONS, exc)
            return

        logger.info(
            f"Saved {len(courses)} course recommendations to cache",
            extra={"operation": "save_course_recommendations", "user_id": user_id, "count": len(courses)},
        )

    # ------------------------------------------------------------------
    # Bulk operations
    # ------------------------------------------------------------------

    async def invalidate_all_caches(self, user_id: str, reason: str = "profile_updated") -> None:
        """Invalidate every cache type for the user, one after another."""
        for cache_type in CACHE_TYPES:
            await self.invalidate_cache(user_id, cache_type, reason)

        logger.info(
            f"Invalidated all caches for user {user_id}, reason: {reason}",
            extra={"operation": "invalidate_all_caches", "user_id": user_id, "reason": reason},
        )

    async def clear_all_caches(self, user_id: str) -> None:
        """Delete every cached row and invalidation marker for the user. No rollback on partial failure."""
        tables = (
            (CAREER_RECOMMENDATIONS_TABLE, CACHE_TYPE_CAREER_RECOMMENDATIONS),
            (CAREER_DETAILS_TABLE, CACHE_TYPE_CAREER_DETAILS),
            (COURSE_RECOMMENDATIONS_TABLE, CACHE_TYPE_COURSE_RECOMMENDATIONS),
            (INVALIDATION_TABLE, "all"),
        )
        results = await asyncio.gather(
            *(self.store.delete(table, {"user_id": user_id}) for table, _ in tables),
            return_exceptions=True,
        )

        for (table, cache_type), result in zip(tables, results):
            if isinstance(result, Exception):
                self._log_failure(f"clear_all_caches.{table}", user_id, cache_type, result)

        logger.info(
            f"Cleared all caches for user {user_id}",
            extra={"operation": "clear_all_caches", "user_id": user_id},
        )
