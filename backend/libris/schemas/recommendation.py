from pydantic import BaseModel, Field
from typing import Optional, List


class ScoredRecommendation(BaseModel):
    book_id: str
    title: str
    author: Optional[str] = None
    isbn: Optional[str] = None
    publisher: Optional[str] = None
    format: Optional[str] = None
    year: Optional[int] = None
    categories: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    popularity_score: float = 0.0
    cover_image_url: Optional[str] = None
    relevance_score: int = Field(ge=0, le=100)
    match_reasons: List[str] = Field(default_factory=list, max_length=3)


class ProfileSummary(BaseModel):
    """
    Which fields are set depends on the path that produced the recommendations:
    personalized (totals, top lists, diversity, engagement), similar-items
    (based_on, is_fallback) or popularity fallback (total_interactions=0).
    """
    total_interactions: Optional[int] = None
    top_categories: Optional[List[str]] = None
    top_tags: Optional[List[str]] = None
    top_authors: Optional[List[str]] = None
    diversity_score: Optional[int] = None  # 0-100
    engagement_level: Optional[str] = None
    based_on: Optional[str] = None
    is_fallback: Optional[bool] = None


class RecommendationsResponse(BaseModel):
    """Response wrapper for recommendations that includes request_id for event tracking."""
    request_id: str
    source: str
    recommendations: List[ScoredRecommendation]
    profile: ProfileSummary
