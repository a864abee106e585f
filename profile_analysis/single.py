"""Single-profile analysis: the synchronous counterpart of the bulk path."""

from __future__ import annotations

import asyncio
import logging

from profile_analysis.analysis.prescreen import pre_screen_profile
from profile_analysis.analysis.scorer import LightAnalysisScorer
from profile_analysis.cache.store import ProfileCache
from profile_analysis.config import Config
from profile_analysis.db.supabase import SupabaseRepository
from profile_analysis.errors import (
    BulkRequestError,
    InsufficientCreditsError,
    ProfileNotFoundError,
)
from profile_analysis.identifiers import extract_username, generate_request_id
from profile_analysis.models import (
    SUPPORTED_ANALYSIS_TYPES,
    AnalysisSection,
    CostDetails,
    ProfileData,
    ProfileSummary,
    SingleAnalysisCredits,
    SingleAnalysisRequest,
    SingleAnalysisResponse,
)
from profile_analysis.scrape.instagram import InstagramScraper

logger = logging.getLogger(__name__)


class SingleProfileAnalyzer:
    """Analyze one profile, charging per call.

    Unlike the bulk path, a missing profile is charged a lookup fee and a
    pre-screened profile is free and not persisted.
    """

    def __init__(
        self,
        config: Config,
        store: SupabaseRepository,
        scraper: InstagramScraper,
        scorer: LightAnalysisScorer,
        cache: ProfileCache | None = None,
    ):
        self.config = config
        self.store = store
        self.scraper = scraper
        self.scorer = scorer
        self.cache = cache

    async def analyze(
        self, request: SingleAnalysisRequest, request_id: str | None = None,
    ) -> SingleAnalysisResponse:
        request_id = request_id or generate_request_id()
        if request.analysis_type not in SUPPORTED_ANALYSIS_TYPES:
            raise BulkRequestError(
                'Only "light" analysis is supported. Deep and XRay analysis have been removed.'
            )
        if not request.business_id or not request.user_id:
            raise BulkRequestError("business_id and user_id are required")
        username = extract_username(request.username or request.profile_url)

        user, business = await asyncio.gather(
            self.store.fetch_user_and_credits(request.user_id),
            self.store.fetch_business_profile(request.business_id, request.user_id),
        )
        cost_per_analysis = self.config.unit_credit_cost
        if user.credits < cost_per_analysis:
            raise InsufficientCreditsError(cost_per_analysis, user.credits)

        profile = await self._fetch(username, request, request_id)

        screen = pre_screen_profile(profile)
        if not screen.should_process:
            logger.info(
                "[%s] @%s pre-screened - early exit (score %s): %s",
                request_id, profile.username, screen.early_score, screen.reason,
            )
            summary = ProfileSummary.from_profile(profile)
            summary.data_quality = "low"
            return SingleAnalysisResponse(
                run_id=f"pre-screen-{request_id}",
                profile=summary,
                analysis=AnalysisSection(
                    overall_score=screen.early_score or 0,
                    summary_text=screen.reason or "Pre-screened as low quality",
                    type=request.analysis_type,
                ),
                credits=SingleAnalysisCredits(used=0, remaining=user.credits),
                request_id=request_id,
                system_used="pre_screen",
            )

        scored = await self.scorer.score(profile, business)
        saved = await self.store.save_complete_analysis(
            user_id=request.user_id,
            business_id=request.business_id,
            profile=profile,
            scored=scored,
            analysis_type=request.analysis_type,
            profile_url=request.profile_url,
        )
        remaining = await self.store.debit_credits(
            user_id=request.user_id,
            amount=cost_per_analysis,
            description=f"{request.analysis_type} analysis - @{profile.username}",
            run_id=saved.run_id,
            cost=scored.cost,
        )

        logger.info(
            "[%s] Analysis completed: @%s scored %d, run %s, actual $%.5f",
            request_id, profile.username, scored.result.overall_score,
            saved.run_id, scored.cost.actual_cost,
        )
        return SingleAnalysisResponse(
            run_id=saved.run_id,
            profile=ProfileSummary.from_profile(profile),
            analysis=AnalysisSection(
                overall_score=scored.result.overall_score,
                summary_text=scored.result.summary_text,
                type=request.analysis_type,
            ),
            credits=SingleAnalysisCredits(
                used=cost_per_analysis,
                remaining=remaining,
                actual_cost=scored.cost.actual_cost,
                margin=cost_per_analysis - scored.cost.actual_cost,
            ),
            request_id=request_id,
        )

    async def _fetch(
        self, username: str, request: SingleAnalysisRequest, request_id: str,
    ) -> ProfileData:
        if self.cache is not None:
            cached = self.cache.get(username)
            if cached is not None:
                return cached

        try:
            profile = await self.scraper.fetch(username, request.analysis_type)
        except ProfileNotFoundError:
            raise ProfileNotFoundError(
                await self._charge_not_found(username, request, request_id)
            ) from None

        if self.cache is not None:
            self.cache.set(profile)
        return profile

    async def _charge_not_found(
        self, username: str, request: SingleAnalysisRequest, request_id: str,
    ) -> str:
        """Charge the lookup fee and return the message for the caller."""
        fee = self.config.not_found_fee
        try:
            await self.store.debit_credits(
                user_id=request.user_id,
                amount=fee,
                description=f"{request.analysis_type} analysis - @{username} not found",
                run_id=f"failed-{request_id}",
                cost=CostDetails(block_type="profile_not_found"),
            )
        except Exception as e:
            logger.error("[%s] Failed to charge not-found fee for @%s: %s", request_id, username, e)
            return f"User @{username} does not exist."

        logger.info("[%s] Charged %d token(s) for @%s not found", request_id, fee, username)
        return f"User does not exist. {fee} token has been charged."
