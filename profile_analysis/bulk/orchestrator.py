"""Bulk analysis orchestration: validate, window, fan out, aggregate, reconcile."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

from profile_analysis.analysis.scorer import LightAnalysisScorer
from profile_analysis.bulk.aggregator import ResultAggregator
from profile_analysis.bulk.batching import Batcher, ConcurrencyController, run_in_windows
from profile_analysis.bulk.ledger import LedgerReconciler
from profile_analysis.cache.store import ProfileCache
from profile_analysis.config import Config
from profile_analysis.db.supabase import SupabaseRepository
from profile_analysis.errors import BulkRequestError, InsufficientCreditsError
from profile_analysis.identifiers import generate_request_id
from profile_analysis.models import (
    SUPPORTED_ANALYSIS_TYPES,
    BulkAnalysisRequest,
    BulkAnalysisResult,
    ProfileOutcome,
)
from profile_analysis.pipeline import AnalysisContext, PipelineStage, ProfilePipeline
from profile_analysis.scrape.instagram import InstagramScraper

logger = logging.getLogger(__name__)


def validate_bulk_request(request: BulkAnalysisRequest, max_profiles: int = 50) -> None:
    """Raise BulkRequestError for any caller contract violation."""
    if not request.profiles:
        raise BulkRequestError("profiles array is required and cannot be empty")
    if request.analysis_type not in SUPPORTED_ANALYSIS_TYPES:
        raise BulkRequestError('analysis_type must be "light". Deep and XRay have been removed.')
    if not request.business_id or not request.user_id:
        raise BulkRequestError("business_id and user_id are required")
    if len(request.profiles) > max_profiles:
        raise BulkRequestError(f"Maximum {max_profiles} profiles per bulk request")


class BulkAnalysisOrchestrator:
    """Runs a bulk request end to end and never fails because of a single profile."""

    def __init__(
        self,
        config: Config,
        store: SupabaseRepository,
        scraper: InstagramScraper,
        scorer: LightAnalysisScorer,
        cache: ProfileCache | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.config = config
        self.store = store
        self.scraper = scraper
        self.scorer = scorer
        self.cache = cache
        self._sleep = sleep
        self.reconciler = LedgerReconciler(store, unit_credit_cost=config.unit_credit_cost)

    async def run(
        self, request: BulkAnalysisRequest, request_id: str | None = None,
    ) -> BulkAnalysisResult:
        request_id = request_id or generate_request_id()
        validate_bulk_request(request, self.config.max_bulk_profiles)
        profile_count = len(request.profiles)
        logger.info(
            "[%s] Bulk analysis request: %d profiles, type=%s, user=%s",
            request_id, profile_count, request.analysis_type, request.user_id,
        )

        user, business = await asyncio.gather(
            self.store.fetch_user_and_credits(request.user_id),
            self.store.fetch_business_profile(request.business_id, request.user_id),
        )

        # Advisory only: concurrent requests may both pass; the final debit is authoritative.
        required = profile_count * self.config.unit_credit_cost
        if user.credits < required:
            raise InsufficientCreditsError(required, user.credits)
        logger.info(
            "[%s] User validation passed: %d credits, %d required",
            request_id, user.credits, required,
        )

        context = AnalysisContext(
            request_id=request_id,
            user_id=request.user_id,
            business_id=request.business_id,
            business=business,
            analysis_type=request.analysis_type,
            scraper=self.scraper,
            scorer=self.scorer,
            store=self.store,
            cache=self.cache,
            unit_credit_cost=self.config.unit_credit_cost,
        )
        aggregator = ResultAggregator(expected=profile_count)
        pipelines: list[ProfilePipeline] = []

        async def analyze(identifier: str) -> ProfileOutcome:
            pipeline = ProfilePipeline(identifier, context)
            pipelines.append(pipeline)
            return await pipeline.run()

        def window_done(index: int, total: int, outcomes: list[ProfileOutcome]) -> None:
            aggregator.extend(outcomes)
            logger.info(
                "[%s] Window %d/%d completed: %d successful, %d failed, %d remaining",
                request_id, index + 1, total,
                len(aggregator.successes), len(aggregator.failures), aggregator.remaining,
            )

        batch_size = self.config.batch_size_for(request.analysis_type)
        await run_in_windows(
            request.profiles,
            Batcher(batch_size),
            ConcurrencyController(batch_size, delay=self.config.batch_delay, sleep=self._sleep),
            analyze,
            on_window_complete=window_done,
        )
        aggregator.ensure_complete()

        reconciliation = await self.reconciler.reconcile(
            request_id=request_id,
            user_id=request.user_id,
            business_id=request.business_id,
            analysis_type=request.analysis_type,
            successes=aggregator.successes,
            starting_credits=user.credits,
        )
        if reconciliation.debited:
            for pipeline in pipelines:
                if pipeline.stage is PipelineStage.PERSISTED:
                    pipeline.mark_accounted()

        result = BulkAnalysisResult(
            total_requested=profile_count,
            successful=len(aggregator.successes),
            failed=len(aggregator.failures),
            results=aggregator.successes,
            errors=aggregator.error_entries(),
            credits_used=reconciliation.credits_used,
            credits_remaining=reconciliation.credits_remaining,
            cost_summary=reconciliation.cost_summary,
        )
        logger.info(
            "[%s] Bulk analysis completed: %d requested, %d successful, %d failed, %d credits used",
            request_id, result.total_requested, result.successful, result.failed, result.credits_used,
        )
        return result
