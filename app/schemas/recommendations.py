"""
Pydantic schemas for the recommendation endpoints
"""
from typing import List, Optional, Dict, Any, Literal
from pydantic import BaseModel, Field


CacheType = Literal["career_recommendations", "career_details", "course_recommendations"]


# ========== Student profile (generator input) ==========
class AcademicPerformance(BaseModel):
    overall_average: Optional[float] = Field(None, ge=0, le=100)
    strong_subjects: List[str] = Field(default_factory=list)
    weak_subjects: List[str] = Field(default_factory=list)
    performance_trend: Optional[Literal["improving", "declining", "stable"]] = None


class StudentProfile(BaseModel):
    """Profile context the dashboard sends so a cache miss can be regenerated"""
    name: Optional[str] = None
    school_level: Optional[str] = Field(None, description="e.g. junior_secondary / senior_secondary")
    current_grade: Optional[str] = None
    subjects: List[str] = Field(default_factory=list, description="CBE learning areas")
    interests: List[str] = Field(default_factory=list)
    career_goals: Optional[str] = None
    academic_performance: Optional[AcademicPerformance] = None


# ========== Requests ==========
class RecommendationRequest(BaseModel):
    profile: StudentProfile = Field(default_factory=StudentProfile)
    force_refresh: bool = False


class InvalidateRequest(BaseModel):
    cache_type: Optional[CacheType] = Field(None, description="Omit to invalidate every cache type")
    reason: str = Field("manual_refresh", min_length=1, max_length=100)


# ========== Responses ==========
class CareerRecommendation(BaseModel):
    """Dashboard-facing career recommendation"""
    id: str = ""
    user_id: str
    career_name: str
    match_percentage: float = 0
    description: str = ""
    salary_range: str = ""
    growth_prospect: str = ""
    education_required: str = ""
    why_recommended: str = ""
    created_at: str
    expires_at: str


class CareerRecommendationsResponse(BaseModel):
    recommendations: List[CareerRecommendation]
    cached: bool


class CareerDetailsResponse(BaseModel):
    career_name: str
    details: Dict[str, Any]
    cached: bool


class CourseRecommendationsResponse(BaseModel):
    courses: List[Dict[str, Any]]
    cached: bool
