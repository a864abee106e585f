"""Per-profile analysis pipeline: fetch -> pre-screen -> score -> persist."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from profile_analysis.analysis.prescreen import pre_screen_profile
from profile_analysis.analysis.scorer import LightAnalysisScorer
from profile_analysis.cache.store import ProfileCache
from profile_analysis.db.supabase import SupabaseRepository
from profile_analysis.errors import FailureReason, ProfileError
from profile_analysis.identifiers import extract_username
from profile_analysis.models import (
    AnalysisResult,
    AnalysisSection,
    BusinessProfile,
    CostDetails,
    OutcomeCredits,
    ProfileData,
    ProfileFailure,
    ProfileOutcome,
    ProfileSuccess,
    ProfileSummary,
    SavedAnalysis,
    ScoredAnalysis,
)
from profile_analysis.scrape.instagram import InstagramScraper

logger = logging.getLogger(__name__)


class PipelineStage(str, Enum):
    PENDING = "pending"
    FETCHING = "fetching"
    PRE_SCREENED = "pre_screened"
    SCORING = "scoring"
    SCORED = "scored"
    PERSISTED = "persisted"
    ACCOUNTED = "accounted"
    FAILED = "failed"


TERMINAL_STAGES = frozenset({PipelineStage.PERSISTED, PipelineStage.ACCOUNTED, PipelineStage.FAILED})

_TRANSITIONS: dict[PipelineStage, frozenset[PipelineStage]] = {
    PipelineStage.PENDING: frozenset({PipelineStage.FETCHING}),
    PipelineStage.FETCHING: frozenset({PipelineStage.PRE_SCREENED, PipelineStage.SCORING}),
    PipelineStage.PRE_SCREENED: frozenset({PipelineStage.SCORED}),
    PipelineStage.SCORING: frozenset({PipelineStage.SCORED}),
    PipelineStage.SCORED: frozenset({PipelineStage.PERSISTED}),
    PipelineStage.PERSISTED: frozenset({PipelineStage.ACCOUNTED}),
    PipelineStage.ACCOUNTED: frozenset(),
    PipelineStage.FAILED: frozenset(),
}


@dataclass(frozen=True)
class AnalysisContext:
    """Request-scoped configuration and capabilities, shared read-only by every pipeline."""
    request_id: str
    user_id: str
    business_id: str
    business: BusinessProfile
    analysis_type: str
    scraper: InstagramScraper
    scorer: LightAnalysisScorer
    store: SupabaseRepository
    cache: ProfileCache | None = None
    unit_credit_cost: int = 1


class ProfilePipeline:
    """State machine for one submitted identifier.

    ``run()`` never raises for per-profile problems: every failure becomes a
    ProfileFailure so the surrounding batch keeps going.
    """

    def __init__(self, identifier: str, context: AnalysisContext):
        self.identifier = identifier
        self.context = context
        self.stage = PipelineStage.PENDING
        self.history: list[PipelineStage] = [PipelineStage.PENDING]

    def _advance(self, stage: PipelineStage) -> None:
        if stage is not PipelineStage.FAILED and stage not in _TRANSITIONS[self.stage]:
            raise RuntimeError(f"Illegal pipeline transition {self.stage.value} -> {stage.value}")
        if self.stage in (PipelineStage.ACCOUNTED, PipelineStage.FAILED):
            raise RuntimeError(f"Pipeline already terminal ({self.stage.value})")
        self.stage = stage
        self.history.append(stage)

    def mark_accounted(self) -> None:
        """Called by the ledger reconciler once the aggregate debit is recorded."""
        self._advance(PipelineStage.ACCOUNTED)

    async def run(self) -> ProfileOutcome:
        ctx = self.context
        try:
            self._advance(PipelineStage.FETCHING)
            profile = await self.fetch()

            screen = pre_screen_profile(profile)
            if not screen.should_process:
                self._advance(PipelineStage.PRE_SCREENED)
                logger.info(
                    "[%s] @%s pre-screened (score %s): %s",
                    ctx.request_id, profile.username, screen.early_score, screen.reason,
                )
                scored = ScoredAnalysis(
                    result=AnalysisResult(
                        overall_score=screen.early_score or 0,
                        summary_text=screen.reason or "Pre-screened as low quality",
                    ),
                    cost=CostDetails(block_type="pre_screen"),
                    pre_screened=True,
                )
            else:
                self._advance(PipelineStage.SCORING)
                scored = await ctx.scorer.score(profile, ctx.business)
            self._advance(PipelineStage.SCORED)

            saved = await self.persist(profile, scored)
            self._advance(PipelineStage.PERSISTED)

        except ProfileError as e:
            return self._fail(e.reason, str(e))
        except Exception as e:
            logger.exception("[%s] Unexpected error analyzing %s", ctx.request_id, self.identifier)
            return self._fail(FailureReason.UNEXPECTED, str(e) or e.__class__.__name__)

        logger.info(
            "[%s] @%s scored %d%s (cost $%.5f)",
            ctx.request_id, profile.username, scored.result.overall_score,
            " [pre-screen]" if scored.pre_screened else "", scored.cost.actual_cost,
        )
        return ProfileSuccess(
            identifier=self.identifier,
            run_id=saved.run_id,
            lead_id=saved.lead_id,
            profile=ProfileSummary.from_profile(profile),
            analysis=AnalysisSection(
                overall_score=scored.result.overall_score,
                summary_text=scored.result.summary_text,
                type=ctx.analysis_type,
            ),
            credits=OutcomeCredits(used=ctx.unit_credit_cost, actual_cost=scored.cost.actual_cost),
            pre_screened=scored.pre_screened,
        )

    async def fetch(self) -> ProfileData:
        """Resolve the identifier and return profile data, from cache when fresh."""
        ctx = self.context
        username = extract_username(self.identifier)

        if ctx.cache is not None:
            cached = ctx.cache.get(username)
            if cached is not None:
                logger.debug("[%s] @%s loaded from cache", ctx.request_id, username)
                return cached

        profile = await ctx.scraper.fetch(username, ctx.analysis_type)
        if ctx.cache is not None:
            ctx.cache.set(profile)
        return profile

    async def persist(self, profile: ProfileData, scored: ScoredAnalysis) -> SavedAnalysis:
        ctx = self.context
        return await ctx.store.save_complete_analysis(
            user_id=ctx.user_id,
            business_id=ctx.business_id,
            profile=profile,
            scored=scored,
            analysis_type=ctx.analysis_type,
            profile_url=f"https://instagram.com/{profile.username}",
        )

    def _fail(self, reason: FailureReason, message: str) -> ProfileFailure:
        logger.error(
            "[%s] Profile analysis failed for %s at %s: %s (%s)",
            self.context.request_id, self.identifier, self.stage.value, message, reason.value,
        )
        self._advance(PipelineStage.FAILED)
        return ProfileFailure(identifier=self.identifier, reason=reason, error=message)
