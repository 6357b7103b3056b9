"""
AI cache models - persisted LLM output guarded by per-type invalidation markers.

Three payload tables (career recommendations, career details, course
recommendations) plus the cache_invalidation ledger. Payload rows carry no
expiry of their own; whether they may be served is decided entirely by the
most recent invalidation marker for (user_id, cache_type).
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Float, Index, JSON, String, Text, UniqueConstraint

from app.database import Base


CACHE_TYPE_CAREER_RECOMMENDATIONS = "career_recommendations"
CACHE_TYPE_CAREER_DETAILS = "career_details"
CACHE_TYPE_COURSE_RECOMMENDATIONS = "course_recommendations"

CACHE_TYPES = (
    CACHE_TYPE_CAREER_RECOMMENDATIONS,
    CACHE_TYPE_CAREER_DETAILS,
    CACHE_TYPE_COURSE_RECOMMENDATIONS,
)


def _new_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value):
    return value.isoformat() if value else None


class CachedCareerRecommendation(Base):
    __tablename__ = "cached_career_recommendations"

    id = Column(String(36), primary_key=True, default=_new_id)
    user_id = Column(String(255), nullable=False, index=True)
    career_name = Column(String(255), nullable=False)
    match_percentage = Column(Float, nullable=False, default=0)
    description = Column(Text, nullable=True)
    salary_range = Column(String(255), nullable=True)
    education = Column(Text, nullable=True)
    growth = Column(Text, nullable=True)
    why_recommended = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)

    __table_args__ = (
        Index("ix_cached_career_recommendations_ranking", "user_id", "match_percentage"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "career_name": self.career_name,
            "match_percentage": self.match_percentage,
            "description": self.description,
            "salary_range": self.salary_range,
            "education": self.education,
            "growth": self.growth,
            "why_recommended": self.why_recommended,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class CachedCareerDetails(Base):
    __tablename__ = "cached_career_details"

    id = Column(String(36), primary_key=True, default=_new_id)
    user_id = Column(String(255), nullable=False, index=True)
    career_name = Column(String(255), nullable=False)
    details = Column(JSON, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)

    # One row per (user, career) - saves upsert on this pair
    __table_args__ = (
        UniqueConstraint("user_id", "career_name", name="uq_cached_career_details_key"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "career_name": self.career_name,
            "details": self.details,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class CachedCourseRecommendations(Base):
    __tablename__ = "cached_course_recommendations"

    id = Column(String(36), primary_key=True, default=_new_id)
    user_id = Column(String(255), nullable=False, unique=True, index=True)
    courses = Column(JSON, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "courses": self.courses,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class CacheInvalidation(Base):
    """
    Invalidation ledger. At most one live marker per (user_id, cache_type);
    re-invalidating refreshes invalidated_at and reason in place.
    """

    __tablename__ = "cache_invalidation"

    id = Column(String(36), primary_key=True, default=_new_id)
    user_id = Column(String(255), nullable=False, index=True)
    cache_type = Column(String(50), nullable=False)
    invalidated_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    reason = Column(String(255), nullable=True)

    __table_args__ = (
        UniqueConstraint("user_id", "cache_type", name="uq_cache_invalidation_key"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "cache_type": self.cache_type,
            "invalidated_at": _iso(self.invalidated_at),
            "reason": self.reason,
        }


# Logical table name -> model, used by the SQL cache store
TABLE_MODELS = {
    model.__tablename__: model
    for model in (
        CachedCareerRecommendation,
        CachedCareerDetails,
        CachedCourseRecommendations,
        CacheInvalidation,
    )
}
