import asyncio
from unittest.mock import AsyncMock, patch

import anthropic
import pytest

from profile_analysis.analysis.llm_client import (
    LLMClient,
    LLMResponse,
    _AnthropicBillingError,
    estimate_cost,
)
from profile_analysis.errors import ModelError

ANTHROPIC_REPLY = LLMResponse('{"overall_score": 70, "summary_text": "a"}', "anthropic",
                              "claude-3-5-haiku-latest", 1000, 100)
OPENAI_REPLY = LLMResponse('{"overall_score": 65, "summary_text": "b"}', "openai",
                           "gpt-4o-mini", 1000, 100)


def _client(**kwargs):
    kwargs.setdefault("anthropic_api_key", "sk-ant")
    kwargs.setdefault("openai_api_key", "sk-oa")
    return LLMClient(**kwargs)


def test_estimate_cost():
    assert estimate_cost("gpt-4o-mini", 1_000_000, 1_000_000) == pytest.approx(0.75)
    assert estimate_cost("unknown-model", 1_000_000, 0) == pytest.approx(3.00)
    assert ANTHROPIC_REPLY.total_cost == pytest.approx((1000 * 0.80 + 100 * 4.00) / 1_000_000)


def test_anthropic_is_primary():
    client = _client()
    with patch.object(client, "_call_anthropic", AsyncMock(return_value=ANTHROPIC_REPLY)), \
         patch.object(client, "_call_openai", AsyncMock(return_value=OPENAI_REPLY)) as openai:
        response = asyncio.run(client.complete("prompt"))
    assert response.provider == "anthropic"
    openai.assert_not_awaited()


def test_billing_error_switches_provider_for_later_calls():
    client = _client()
    primary = AsyncMock(side_effect=_AnthropicBillingError("credit balance too low"))
    with patch.object(client, "_call_anthropic", primary), \
         patch.object(client, "_call_openai", AsyncMock(return_value=OPENAI_REPLY)):
        first = asyncio.run(client.complete("one"))
        second = asyncio.run(client.complete("two"))

    assert first.provider == second.provider == "openai"
    assert primary.await_count == 1

    client.reset_provider_state()
    assert not client._anthropic_failed


def test_transient_anthropic_error_falls_back_for_one_call():
    client = _client()
    primary = AsyncMock(side_effect=[anthropic.AnthropicError("overloaded"), ANTHROPIC_REPLY])
    with patch.object(client, "_call_anthropic", primary), \
         patch.object(client, "_call_openai", AsyncMock(return_value=OPENAI_REPLY)):
        first = asyncio.run(client.complete("one"))
        second = asyncio.run(client.complete("two"))

    assert first.provider == "openai"
    assert second.provider == "anthropic"


def test_anthropic_error_without_fallback_raises_model_error():
    client = _client(openai_api_key="")
    with patch.object(client, "_call_anthropic",
                      AsyncMock(side_effect=anthropic.AnthropicError("overloaded"))):
        with pytest.raises(ModelError):
            asyncio.run(client.complete("prompt"))


def test_openai_failure_raises_model_error():
    client = _client(anthropic_api_key="")
    with patch.object(client, "_call_openai", AsyncMock(side_effect=RuntimeError("500"))):
        with pytest.raises(ModelError):
            asyncio.run(client.complete("prompt"))


def test_no_keys_raises_model_error():
    with pytest.raises(ModelError):
        asyncio.run(LLMClient().complete("prompt"))


def test_timeout_falls_back():
    client = _client(timeout=0.01)

    async def slow(*args, **kwargs):
        await asyncio.sleep(1)

    with patch.object(client, "_call_anthropic", slow), \
         patch.object(client, "_call_openai", AsyncMock(return_value=OPENAI_REPLY)):
        response = asyncio.run(client.complete("prompt"))
    assert response.provider == "openai"
