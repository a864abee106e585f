"""Unified LLM client — routes to Anthropic (primary) or OpenAI (fallback)."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

import anthropic
from openai import AsyncOpenAI

from profile_analysis.errors import ModelError

logger = logging.getLogger(__name__)

# USD per 1M tokens (input, output)
MODEL_PRICING: dict[str, tuple[float, float]] = {
    "claude-3-5-haiku-latest": (0.80, 4.00),
    "claude-3-5-haiku-20241022": (0.80, 4.00),
    "claude-haiku-4-5": (1.00, 5.00),
    "claude-sonnet-4-20250514": (3.00, 15.00),
    "claude-sonnet-4-5-20250929": (3.00, 15.00),
    "gpt-4o-mini": (0.15, 0.60),
    "gpt-4o": (2.50, 10.00),
    "gpt-4.1-mini": (0.40, 1.60),
    "gpt-4.1-nano": (0.10, 0.40),
}
_DEFAULT_PRICING = (3.00, 15.00)


@dataclass(frozen=True)
class LLMResponse:
    text: str
    provider: str
    model: str
    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total_cost(self) -> float:
        return estimate_cost(self.model, self.input_tokens, self.output_tokens)


def estimate_cost(model: str, input_tokens: int, output_tokens: int) -> float:
    price_in, price_out = MODEL_PRICING.get(model, _DEFAULT_PRICING)
    return (input_tokens * price_in + output_tokens * price_out) / 1_000_000


class _AnthropicBillingError(Exception):
    """Raised when Anthropic returns a billing/credit error."""


class LLMClient:
    """Send prompts to Anthropic, falling back to OpenAI.

    If Anthropic returns a billing/auth error (400/401/402) the client switches
    to OpenAI for this call AND every later call made through this instance.
    """

    def __init__(
        self,
        anthropic_api_key: str = "",
        openai_api_key: str = "",
        anthropic_model: str = "claude-3-5-haiku-latest",
        openai_model: str = "gpt-4o-mini",
        timeout: int = 120,
    ):
        self.anthropic_api_key = anthropic_api_key
        self.openai_api_key = openai_api_key
        self.anthropic_model = anthropic_model
        self.openai_model = openai_model
        self.timeout = timeout
        self.active_provider: str | None = None
        self._anthropic_failed = False
        self._anthropic: anthropic.AsyncAnthropic | None = None
        self._openai: AsyncOpenAI | None = None

    async def complete(
        self,
        prompt: str,
        system: str = "",
        max_tokens: int = 400,
        temperature: float = 0,
        json_schema: dict | None = None,
    ) -> LLMResponse:
        """Return the model's response text plus token usage.

        Raises ModelError when no provider produced a response.
        """
        if not self._anthropic_failed and self.anthropic_api_key:
            try:
                return await asyncio.wait_for(
                    self._call_anthropic(prompt, system, max_tokens, temperature),
                    timeout=self.timeout,
                )
            except asyncio.TimeoutError:
                logger.warning("Anthropic call timed out after %ds", self.timeout)
                if not self.openai_api_key:
                    raise ModelError(f"Anthropic LLM call timed out after {self.timeout}s")
                logger.info("Falling back to OpenAI for this call")
            except _AnthropicBillingError:
                logger.warning("Anthropic billing error — switching to OpenAI for all future calls")
                self._anthropic_failed = True
            except anthropic.AnthropicError as e:
                logger.error("Anthropic error: %s", e)
                if not self.openai_api_key:
                    raise ModelError(f"Anthropic error: {e}") from e
                logger.info("Falling back to OpenAI for this call")

        if self.openai_api_key:
            try:
                return await asyncio.wait_for(
                    self._call_openai(prompt, system, max_tokens, temperature, json_schema),
                    timeout=self.timeout,
                )
            except asyncio.TimeoutError as e:
                raise ModelError(f"OpenAI LLM call timed out after {self.timeout}s") from e
            except Exception as e:
                raise ModelError(f"OpenAI error: {e}") from e

        raise ModelError(
            "No LLM provider available. Both Anthropic and OpenAI "
            "(no OPENAI_API_KEY set) are unavailable."
        )

    async def _call_anthropic(
        self, prompt: str, system: str, max_tokens: int, temperature: float,
    ) -> LLMResponse:
        if self._anthropic is None:
            self._anthropic = anthropic.AsyncAnthropic(api_key=self.anthropic_api_key)
        kwargs = {}
        if system:
            kwargs["system"] = system
        try:
            response = await self._anthropic.messages.create(
                model=self.anthropic_model,
                max_tokens=max_tokens,
                temperature=temperature,
                messages=[{"role": "user", "content": prompt}],
                **kwargs,
            )
        except anthropic.APIStatusError as e:
            if e.status_code in (400, 401, 402):
                msg = str(e).lower()
                if "credit" in msg or "balance" in msg or "billing" in msg:
                    raise _AnthropicBillingError(str(e)) from e
            raise

        if self.active_provider != "anthropic":
            self.active_provider = "anthropic"
        text = "".join(
            block.text for block in response.content if getattr(block, "type", "") == "text"
        )
        return LLMResponse(
            text=text,
            provider="anthropic",
            model=self.anthropic_model,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
        )

    async def _call_openai(
        self,
        prompt: str,
        system: str,
        max_tokens: int,
        temperature: float,
        json_schema: dict | None,
    ) -> LLMResponse:
        if self._openai is None:
            self._openai = AsyncOpenAI(api_key=self.openai_api_key)
        if self.active_provider != "openai":
            self.active_provider = "openai"
            logger.info("Using OpenAI (%s) for scoring", self.openai_model)

        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})
        kwargs = {}
        if json_schema:
            kwargs["response_format"] = {"type": "json_schema", "json_schema": json_schema}

        response = await self._openai.chat.completions.create(
            model=self.openai_model,
            max_tokens=max_tokens,
            temperature=temperature,
            messages=messages,
            **kwargs,
        )
        usage = response.usage
        return LLMResponse(
            text=response.choices[0].message.content or "",
            provider="openai",
            model=self.openai_model,
            input_tokens=usage.prompt_tokens if usage else 0,
            output_tokens=usage.completion_tokens if usage else 0,
        )

    def reset_provider_state(self) -> None:
        self.active_provider = None
        self._anthropic_failed = False
