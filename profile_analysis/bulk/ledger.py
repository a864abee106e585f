"""End-of-request credit debit, cost metrics and usage tracking for bulk runs."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

from profile_analysis.db.supabase import SupabaseRepository
from profile_analysis.models import CostDetails, CostSummary, ProfileSuccess

logger = logging.getLogger(__name__)


@dataclass
class Reconciliation:
    credits_used: int
    credits_remaining: int
    cost_summary: CostSummary
    debited: bool = False
    usage_recorded: int = 0
    usage_failed: list[str] = field(default_factory=list)


def calculate_bulk_costs(successes: list[ProfileSuccess], unit_cost: int = 1) -> CostSummary:
    if not successes:
        return CostSummary()

    total_credits = len(successes) * unit_cost
    total_actual_cost = sum(s.cost for s in successes)
    avg_cost = total_actual_cost / len(successes)
    efficiency = total_credits / total_actual_cost if total_actual_cost > 0 else 0

    return CostSummary(
        total_credits=total_credits,
        total_actual_cost=total_actual_cost,
        avg_cost_per_analysis=round(avg_cost, 2),
        credit_efficiency=round(efficiency, 2),
    )


def usage_month(now: datetime | None = None) -> str:
    """First day of the current month, the key usage counters are bucketed by."""
    now = now or datetime.now(timezone.utc)
    return now.strftime("%Y-%m-01")


class LedgerReconciler:
    """Issue one aggregate debit and per-success usage increments.

    Ledger and analytics failures are logged and never discard completed
    results: finished paid work is returned even if accounting fails.
    """

    def __init__(self, store: SupabaseRepository, unit_credit_cost: int = 1):
        self.store = store
        self.unit_credit_cost = unit_credit_cost

    async def reconcile(
        self,
        *,
        request_id: str,
        user_id: str,
        business_id: str,
        analysis_type: str,
        successes: list[ProfileSuccess],
        starting_credits: int,
    ) -> Reconciliation:
        cost_summary = calculate_bulk_costs(successes, self.unit_credit_cost)
        credits_used = cost_summary.total_credits
        outcome = Reconciliation(
            credits_used=credits_used,
            credits_remaining=starting_credits - credits_used,
            cost_summary=cost_summary,
        )

        if credits_used > 0:
            await self._debit(request_id, user_id, analysis_type, successes, outcome)

        month = usage_month()
        for success in successes:
            try:
                await self.store.increment_usage(
                    user_id=user_id,
                    business_id=business_id,
                    month=month,
                    analysis_type=analysis_type,
                    credit_cost=self.unit_credit_cost,
                    lead_score=success.score,
                    analysis_method="bulk",
                )
                outcome.usage_recorded += 1
            except Exception as e:
                outcome.usage_failed.append(success.identifier)
                logger.error(
                    "[%s] Bulk usage tracking failed for %s: %s",
                    request_id, success.identifier, e,
                )

        logger.info(
            "[%s] Bulk usage tracking completed: %d recorded, %d failed (month %s)",
            request_id, outcome.usage_recorded, len(outcome.usage_failed), month,
        )
        return outcome

    async def _debit(
        self,
        request_id: str,
        user_id: str,
        analysis_type: str,
        successes: list[ProfileSuccess],
        outcome: Reconciliation,
    ) -> None:
        summary = outcome.cost_summary
        try:
            new_balance = await self.store.debit_credits(
                user_id=user_id,
                amount=outcome.credits_used,
                description=f"Bulk {analysis_type} analysis - {len(successes)} profiles",
                run_id=f"bulk-{request_id}",
                cost=CostDetails(
                    actual_cost=summary.total_actual_cost,
                    model_used="bulk_pipeline",
                    block_type="bulk_analysis",
                ),
                run_ids=[s.run_id for s in successes],
            )
        except Exception as e:
            logger.error(
                "[%s] Bulk credit update failed for %s (%d credits): %s",
                request_id, user_id, outcome.credits_used, e,
            )
            return

        outcome.debited = True
        outcome.credits_remaining = new_balance
        logger.info(
            "[%s] Bulk credits debited: %d used, %d remaining, actual $%.4f "
            "(avg $%.2f/analysis, efficiency %.2f)",
            request_id, outcome.credits_used, new_balance, summary.total_actual_cost,
            summary.avg_cost_per_analysis, summary.credit_efficiency,
        )
