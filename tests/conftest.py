"""Shared fixtures: in-memory fakes for the store, scraper and scorer."""

from __future__ import annotations

import itertools
from unittest.mock import AsyncMock, MagicMock

import pytest

from profile_analysis.config import Config
from profile_analysis.errors import ProfileNotFoundError
from profile_analysis.models import (
    AnalysisResult,
    BusinessProfile,
    CostDetails,
    PostData,
    ProfileData,
    SavedAnalysis,
    ScoredAnalysis,
    UserCredits,
)


def make_profile(username: str = "creator", **overrides) -> ProfileData:
    fields = dict(
        username=username,
        display_name=username.title(),
        bio="Fitness coach and healthy recipes",
        followers_count=12000,
        following_count=400,
        posts_count=250,
        latest_posts=[PostData(caption="Morning workout", likes_count=500, comments_count=20)],
        scraper_used="apify_instagram_profile",
        data_quality="high",
    )
    fields.update(overrides)
    return ProfileData(**fields)


def make_scored(score: int = 72, summary: str = "Strong niche fit", cost: float = 0.0012) -> ScoredAnalysis:
    return ScoredAnalysis(
        result=AnalysisResult(overall_score=score, summary_text=summary),
        cost=CostDetails(
            actual_cost=cost, tokens_in=900, tokens_out=80, model_used="claude-3-5-haiku-latest",
        ),
    )


@pytest.fixture
def config():
    return Config(
        supabase_url="https://db.example.test",
        supabase_service_role="service-role",
        apify_api_token="apify-token",
        anthropic_api_key="sk-ant-test",
        batch_delay=1.0,
    )


@pytest.fixture
def business():
    return BusinessProfile(
        id="biz-1",
        user_id="user-1",
        business_name="Acme Nutrition",
        business_niche="fitness",
        target_audience="young adults",
        business_one_liner="Plant-based protein",
    )


@pytest.fixture
def store(business):
    """Fake repository: every user has 100 credits and saves always succeed."""
    counter = itertools.count(1)

    async def save(**kwargs):
        n = next(counter)
        return SavedAnalysis(run_id=f"run-{n}", lead_id=f"lead-{n}")

    fake = MagicMock()
    fake.fetch_user_and_credits = AsyncMock(return_value=UserCredits(user_id="user-1", credits=100))
    fake.fetch_business_profile = AsyncMock(return_value=business)
    fake.save_complete_analysis = AsyncMock(side_effect=save)
    fake.debit_credits = AsyncMock(return_value=97)
    fake.increment_usage = AsyncMock(return_value=None)
    return fake


@pytest.fixture
def scraper():
    """Fake scraper returning a healthy profile; usernames in ``missing`` raise NotFound."""
    fake = MagicMock()
    fake.missing = set()
    fake.overrides = {}

    async def fetch(username, analysis_type="light"):
        if username in fake.missing:
            raise ProfileNotFoundError(f"Profile @{username} not found")
        return fake.overrides.get(username) or make_profile(username)

    fake.fetch = AsyncMock(side_effect=fetch)
    return fake


@pytest.fixture
def scorer():
    fake = MagicMock()
    fake.score = AsyncMock(return_value=make_scored())
    return fake


@pytest.fixture
def no_sleep():
    return AsyncMock(return_value=None)
