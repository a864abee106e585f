"""Pydantic data models for the profile analysis service."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field, field_validator

from profile_analysis.errors import FailureReason

AnalysisType = Literal["light"]
SUPPORTED_ANALYSIS_TYPES: tuple[str, ...] = ("light",)

SUMMARY_MAX_CHARS = 300


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Profile data (normalized scraper output)
# ---------------------------------------------------------------------------

class PostData(BaseModel):
    id: str = ""
    short_code: str = ""
    caption: str = ""
    likes_count: int = 0
    comments_count: int = 0
    timestamp: str = ""
    url: str = ""
    type: str = ""
    hashtags: list[str] = Field(default_factory=list)
    mentions: list[str] = Field(default_factory=list)
    view_count: int | None = None
    is_video: bool = False

    @field_validator("caption", "id", "short_code", "timestamp", "url", "type", mode="before")
    @classmethod
    def coerce_str(cls, v):
        if v is None:
            return ""
        return str(v)

    @field_validator("likes_count", "comments_count", mode="before")
    @classmethod
    def coerce_count(cls, v):
        # Instagram hides like counts as -1
        if v is None or (isinstance(v, (int, float)) and v < 0):
            return 0
        return v


class EngagementData(BaseModel):
    avg_likes: float = 0.0
    avg_comments: float = 0.0
    engagement_rate: float = 0.0  # percent of followers
    total_engagement: int = 0
    posts_analyzed: int = 0


class ProfileData(BaseModel):
    """A social profile as returned by the profile data provider."""
    username: str
    display_name: str = ""
    bio: str = ""
    followers_count: int = 0
    following_count: int = 0
    posts_count: int = 0
    is_verified: bool = False
    is_private: bool = False
    is_business_account: bool = False
    profile_pic_url: str = ""
    external_url: str = ""
    latest_posts: list[PostData] = Field(default_factory=list)
    engagement: EngagementData | None = None
    scraper_used: str = "unknown"
    data_quality: Literal["high", "medium", "low"] = "medium"

    @field_validator("display_name", "bio", "profile_pic_url", "external_url", mode="before")
    @classmethod
    def coerce_str(cls, v):
        if v is None:
            return ""
        return str(v)

    @field_validator("followers_count", "following_count", "posts_count", mode="before")
    @classmethod
    def coerce_count(cls, v):
        if v is None:
            return 0
        return v

    @field_validator("is_verified", "is_private", "is_business_account", mode="before")
    @classmethod
    def coerce_bool(cls, v):
        return bool(v)


# ---------------------------------------------------------------------------
# Users and businesses
# ---------------------------------------------------------------------------

class BusinessProfile(BaseModel):
    id: str
    user_id: str = ""
    business_name: str = ""
    business_niche: str = ""
    target_audience: str = ""
    business_one_liner: str = ""
    website: str = ""

    @field_validator(
        "business_name", "business_niche", "target_audience", "business_one_liner", "website",
        mode="before",
    )
    @classmethod
    def coerce_str(cls, v):
        if v is None:
            return ""
        return str(v)


class UserCredits(BaseModel):
    """A user and the balance of their active subscription."""
    user_id: str
    credits: int = 0
    plan_type: str = "free"
    subscription_id: str | None = None


# ---------------------------------------------------------------------------
# Analysis
# ---------------------------------------------------------------------------

class PreScreenResult(BaseModel):
    should_process: bool
    early_score: int | None = None
    reason: str | None = None


class AnalysisResult(BaseModel):
    overall_score: int = Field(ge=0, le=100)
    summary_text: str = Field(max_length=SUMMARY_MAX_CHARS)


class CostDetails(BaseModel):
    actual_cost: float = 0.0
    tokens_in: int = 0
    tokens_out: int = 0
    model_used: str = "none"
    block_type: str = "direct_light"
    processing_duration_ms: int = 0


class ScoredAnalysis(BaseModel):
    """A profile's score and where it came from (AI or pre-screen)."""
    result: AnalysisResult
    cost: CostDetails = Field(default_factory=CostDetails)
    pre_screened: bool = False
    decode_notes: list[str] = Field(default_factory=list)


class SavedAnalysis(BaseModel):
    run_id: str
    lead_id: str


# ---------------------------------------------------------------------------
# Per-profile outcomes
# ---------------------------------------------------------------------------

class ProfileSummary(BaseModel):
    username: str
    display_name: str = ""
    followers_count: int = 0
    is_verified: bool = False
    profile_pic_url: str = ""
    data_quality: str = "medium"
    scraper_used: str = "unknown"

    @classmethod
    def from_profile(cls, profile: ProfileData) -> ProfileSummary:
        return cls(
            username=profile.username,
            display_name=profile.display_name,
            followers_count=profile.followers_count,
            is_verified=profile.is_verified,
            profile_pic_url=profile.profile_pic_url,
            data_quality=profile.data_quality,
            scraper_used=profile.scraper_used,
        )


class AnalysisSection(BaseModel):
    overall_score: int
    summary_text: str
    type: AnalysisType = "light"


class OutcomeCredits(BaseModel):
    used: int = 1
    actual_cost: float = 0.0


class ProfileSuccess(BaseModel):
    status: Literal["success"] = "success"
    identifier: str
    run_id: str
    lead_id: str
    profile: ProfileSummary
    analysis: AnalysisSection
    credits: OutcomeCredits = Field(default_factory=OutcomeCredits)
    pre_screened: bool = False
    completed_at: str = Field(default_factory=utc_now_iso)

    @property
    def score(self) -> int:
        return self.analysis.overall_score

    @property
    def summary(self) -> str:
        return self.analysis.summary_text

    @property
    def cost(self) -> float:
        return self.credits.actual_cost


class ProfileFailure(BaseModel):
    status: Literal["failed"] = "failed"
    identifier: str
    reason: FailureReason
    error: str


ProfileOutcome = Annotated[Union[ProfileSuccess, ProfileFailure], Field(discriminator="status")]


# ---------------------------------------------------------------------------
# Bulk request / response
# ---------------------------------------------------------------------------

class BulkAnalysisRequest(BaseModel):
    """Inbound bulk request. Shape rules are enforced by the orchestrator."""
    profiles: list[str] = Field(default_factory=list)
    analysis_type: str = ""
    business_id: str = ""
    user_id: str = ""


class BulkErrorEntry(BaseModel):
    profile: str
    error: str
    reason: FailureReason = FailureReason.UNEXPECTED


class CostSummary(BaseModel):
    total_credits: int = 0
    total_actual_cost: float = 0.0
    avg_cost_per_analysis: float = 0.0
    credit_efficiency: float = 0.0


class BulkAnalysisResult(BaseModel):
    total_requested: int
    successful: int
    failed: int
    results: list[ProfileSuccess] = Field(default_factory=list)
    errors: list[BulkErrorEntry] = Field(default_factory=list)
    credits_used: int = 0
    credits_remaining: int = 0
    cost_summary: CostSummary = Field(default_factory=CostSummary)


# ---------------------------------------------------------------------------
# Single-profile request / response
# ---------------------------------------------------------------------------

class SingleAnalysisRequest(BaseModel):
    profile_url: str = ""
    username: str = ""
    analysis_type: str = "light"
    business_id: str = ""
    user_id: str = ""


class SingleAnalysisCredits(BaseModel):
    used: int
    remaining: int
    actual_cost: float = 0.0
    margin: float | None = None


class SingleAnalysisResponse(BaseModel):
    run_id: str
    profile: ProfileSummary
    analysis: AnalysisSection
    credits: SingleAnalysisCredits
    request_id: str
    system_used: str = "direct_analysis"
    completed_at: str = Field(default_factory=utc_now_iso)
