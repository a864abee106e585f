import asyncio
from datetime import datetime, timezone

from profile_analysis.bulk.ledger import LedgerReconciler, calculate_bulk_costs, usage_month
from profile_analysis.errors import AnalyticsError, LedgerError
from profile_analysis.models import (
    AnalysisSection,
    OutcomeCredits,
    ProfileSuccess,
    ProfileSummary,
)


def _success(identifier, score=60, cost=0.002):
    return ProfileSuccess(
        identifier=identifier,
        run_id=f"run-{identifier}",
        lead_id=f"lead-{identifier}",
        profile=ProfileSummary(username=identifier),
        analysis=AnalysisSection(overall_score=score, summary_text="ok"),
        credits=OutcomeCredits(used=1, actual_cost=cost),
    )


def _reconcile(store, successes, starting_credits=10):
    return asyncio.run(LedgerReconciler(store).reconcile(
        request_id="req_test",
        user_id="user-1",
        business_id="biz-1",
        analysis_type="light",
        successes=successes,
        starting_credits=starting_credits,
    ))


def test_cost_summary():
    summary = calculate_bulk_costs([_success("a", cost=0.5), _success("b", cost=1.5)])
    assert summary.total_credits == 2
    assert summary.total_actual_cost == 2.0
    assert summary.avg_cost_per_analysis == 1.0
    assert summary.credit_efficiency == 1.0


def test_cost_summary_zero_cost_has_zero_efficiency():
    summary = calculate_bulk_costs([_success("a", cost=0.0)])
    assert summary.total_credits == 1
    assert summary.credit_efficiency == 0


def test_cost_summary_empty():
    summary = calculate_bulk_costs([])
    assert summary.total_credits == 0
    assert summary.avg_cost_per_analysis == 0.0


def test_usage_month():
    assert usage_month(datetime(2024, 3, 17, tzinfo=timezone.utc)) == "2024-03-01"


def test_single_aggregate_debit(store):
    successes = [_success("a"), _success("b"), _success("c")]
    outcome = _reconcile(store, successes)

    store.debit_credits.assert_awaited_once()
    kwargs = store.debit_credits.await_args.kwargs
    assert kwargs["amount"] == 3
    assert kwargs["run_id"] == "bulk-req_test"
    assert kwargs["run_ids"] == ["run-a", "run-b", "run-c"]
    assert kwargs["cost"].block_type == "bulk_analysis"
    assert outcome.debited
    assert outcome.credits_used == 3
    assert outcome.credits_remaining == 97
    assert store.increment_usage.await_count == 3


def test_no_successes_means_no_debit(store):
    outcome = _reconcile(store, [])
    store.debit_credits.assert_not_awaited()
    store.increment_usage.assert_not_awaited()
    assert outcome.credits_used == 0
    assert outcome.credits_remaining == 10


def test_debit_failure_is_swallowed(store):
    store.debit_credits.side_effect = LedgerError("database down")
    outcome = _reconcile(store, [_success("a"), _success("b")], starting_credits=10)

    assert not outcome.debited
    assert outcome.credits_used == 2
    assert outcome.credits_remaining == 8
    assert store.increment_usage.await_count == 2


def test_usage_failures_are_independent(store):
    store.increment_usage.side_effect = [None, AnalyticsError("rpc failed"), None]
    outcome = _reconcile(store, [_success("a"), _success("b"), _success("c")])

    assert outcome.usage_recorded == 2
    assert outcome.usage_failed == ["b"]
    usage_kwargs = store.increment_usage.await_args.kwargs
    assert usage_kwargs["analysis_method"] == "bulk"
    assert usage_kwargs["lead_score"] == 60
