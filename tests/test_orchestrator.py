import asyncio
from collections import Counter

import pytest
from conftest import make_profile

from profile_analysis.bulk.orchestrator import BulkAnalysisOrchestrator, validate_bulk_request
from profile_analysis.errors import (
    BulkRequestError,
    FailureReason,
    InsufficientCreditsError,
    LedgerError,
    UserValidationError,
)
from profile_analysis.models import BulkAnalysisRequest, UserCredits


def _request(profiles, **overrides):
    fields = dict(profiles=profiles, analysis_type="light", business_id="biz-1", user_id="user-1")
    fields.update(overrides)
    return BulkAnalysisRequest(**fields)


@pytest.fixture
def orchestrator(config, store, scraper, scorer, no_sleep):
    return BulkAnalysisOrchestrator(config, store, scraper, scorer, sleep=no_sleep)


def _run(orchestrator, request):
    return asyncio.run(orchestrator.run(request, request_id="req_test"))


def test_three_healthy_profiles(orchestrator, store, no_sleep):
    result = _run(orchestrator, _request(["alpha", "bravo", "charlie"]))

    assert result.total_requested == 3
    assert result.successful == 3
    assert result.failed == 0
    assert result.credits_used == 3
    assert result.credits_remaining == 97
    assert result.cost_summary.total_credits == 3
    store.debit_credits.assert_awaited_once()
    assert store.debit_credits.await_args.kwargs["amount"] == 3
    assert store.increment_usage.await_count == 3
    no_sleep.assert_not_awaited()


def test_private_low_follower_profile_is_short_circuited(orchestrator, scraper, scorer):
    scraper.overrides["private_one"] = make_profile(
        "private_one", is_private=True, followers_count=500,
    )
    result = _run(orchestrator, _request(["private_one"]))

    assert result.successful == 1
    assert result.results[0].score == 15
    assert result.results[0].pre_screened
    scorer.score.assert_not_awaited()


def test_oversized_request_rejected_before_any_work(orchestrator, store, scraper):
    with pytest.raises(BulkRequestError):
        _run(orchestrator, _request([f"user{i}" for i in range(51)]))

    store.fetch_user_and_credits.assert_not_awaited()
    store.debit_credits.assert_not_awaited()
    store.increment_usage.assert_not_awaited()
    scraper.fetch.assert_not_awaited()


def test_not_found_in_window_of_eight(orchestrator, scraper, no_sleep, config):
    profiles = [f"user{i}" for i in range(16)]
    scraper.missing.add("user3")
    result = _run(orchestrator, _request(profiles))

    assert result.successful == 15
    assert result.failed == 1
    assert result.errors[0].profile == "user3"
    assert result.errors[0].reason is FailureReason.NOT_FOUND
    assert result.credits_used == 15
    # second window ran after exactly one inter-window pause
    no_sleep.assert_awaited_once_with(config.batch_delay)
    fetched = {c.args[0] for c in scraper.fetch.await_args_list}
    assert {"user8", "user15"} <= fetched


def test_single_window_of_eight_with_one_missing(orchestrator, scraper):
    scraper.missing.add("user5")
    result = _run(orchestrator, _request([f"user{i}" for i in range(8)]))
    assert (result.successful, result.failed) == (7, 1)
    assert result.errors[0].reason is FailureReason.NOT_FOUND


def test_every_identifier_accounted_for_exactly_once(orchestrator, scraper):
    profiles = ["a1", "@a1", "bad url!", "b2", "ghost", "c3", "a1", "d4", "e5", "f6"]
    scraper.missing.add("ghost")
    result = _run(orchestrator, _request(profiles))

    assert result.successful + result.failed == result.total_requested == len(profiles)
    seen = Counter(r.identifier for r in result.results) + Counter(e.profile for e in result.errors)
    assert seen == Counter(profiles)
    assert result.credits_used == result.successful


def test_ledger_failure_keeps_results(orchestrator, store):
    store.debit_credits.side_effect = LedgerError("supabase down")
    result = _run(orchestrator, _request(["alpha", "bravo"]))

    assert result.successful == 2
    assert [r.score for r in result.results] == [72, 72]
    assert result.credits_used == 2
    assert result.credits_remaining == 98


def test_insufficient_credits_rejected(orchestrator, store, scraper):
    store.fetch_user_and_credits.return_value = UserCredits(user_id="user-1", credits=2)
    with pytest.raises(InsufficientCreditsError) as exc:
        _run(orchestrator, _request(["a", "b", "c"]))
    assert exc.value.status_code == 402
    scraper.fetch.assert_not_awaited()


def test_unknown_user_rejected(orchestrator, store):
    store.fetch_user_and_credits.side_effect = UserValidationError("User not found")
    with pytest.raises(UserValidationError):
        _run(orchestrator, _request(["a"]))


def test_all_failures_charge_nothing(orchestrator, scraper, store):
    scraper.missing.update({"x", "y"})
    result = _run(orchestrator, _request(["x", "y"]))
    assert result.successful == 0
    assert result.credits_used == 0
    store.debit_credits.assert_not_awaited()


@pytest.mark.parametrize("request_kwargs", [
    {"profiles": []},
    {"profiles": ["a"], "analysis_type": "deep"},
    {"profiles": ["a"], "business_id": ""},
    {"profiles": ["a"], "user_id": ""},
])
def test_validate_bulk_request(request_kwargs):
    profiles = request_kwargs.pop("profiles")
    with pytest.raises(BulkRequestError):
        validate_bulk_request(_request(profiles, **request_kwargs))


def test_fifty_profiles_is_allowed():
    validate_bulk_request(_request([f"u{i}" for i in range(50)]), max_profiles=50)
