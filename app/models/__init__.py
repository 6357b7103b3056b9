# Database models package
from app.models.ai_cache import (
    CachedCareerRecommendation,
    CachedCareerDetails,
    CachedCourseRecommendations,
    CacheInvalidation,
)

__all__ = [
    "CachedCareerRecommendation",
    "CachedCareerDetails",
    "CachedCourseRecommendations",
    "CacheInvalidation",
]
