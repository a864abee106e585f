"""AI scoring of a profile against a business, the paid step of the pipeline."""

from __future__ import annotations

import logging
import time

from profile_analysis.analysis.decoding import Degraded, Err, decode_light_analysis
from profile_analysis.analysis.llm_client import LLMClient
from profile_analysis.analysis.prompts import (
    LIGHT_ANALYSIS_SCHEMA,
    LIGHT_SYSTEM_PROMPT,
    build_light_analysis_prompt,
)
from profile_analysis.config import Config
from profile_analysis.errors import ParseError
from profile_analysis.models import BusinessProfile, CostDetails, ProfileData, ScoredAnalysis

logger = logging.getLogger(__name__)


class LightAnalysisScorer:
    """Score a profile 0-100 with a short summary via the LLM client."""

    block_type = "direct_light"

    def __init__(self, llm: LLMClient, max_tokens: int = 400, temperature: float = 0.0):
        self.llm = llm
        self.max_tokens = max_tokens
        self.temperature = temperature

    @classmethod
    def from_config(cls, config: Config) -> LightAnalysisScorer:
        llm = LLMClient(
            anthropic_api_key=config.anthropic_api_key,
            openai_api_key=config.openai_api_key,
            anthropic_model=config.analysis_model,
            openai_model=config.openai_analysis_model,
            timeout=config.llm_timeout,
        )
        return cls(llm, max_tokens=config.analysis_max_tokens, temperature=config.analysis_temperature)

    async def score(self, profile: ProfileData, business: BusinessProfile) -> ScoredAnalysis:
        """Raises ModelError if the call fails, ParseError if the output is unusable."""
        start = time.monotonic()
        response = await self.llm.complete(
            prompt=build_light_analysis_prompt(profile, business),
            system=LIGHT_SYSTEM_PROMPT,
            max_tokens=self.max_tokens,
            temperature=self.temperature,
            json_schema=LIGHT_ANALYSIS_SCHEMA,
        )
        elapsed_ms = int((time.monotonic() - start) * 1000)

        decoded = decode_light_analysis(response.text)
        if isinstance(decoded, Err):
            logger.error(
                "Unusable scoring output for @%s: %s — preview: %s",
                profile.username, decoded.reason, response.text[:300],
            )
            raise ParseError(f"Could not decode scoring output: {decoded.reason}")

        notes: list[str] = []
        if isinstance(decoded, Degraded):
            notes = list(decoded.notes)
            logger.warning("Degraded scoring output for @%s: %s", profile.username, "; ".join(notes))

        return ScoredAnalysis(
            result=decoded.value,
            cost=CostDetails(
                actual_cost=response.total_cost,
                tokens_in=response.input_tokens,
                tokens_out=response.output_tokens,
                model_used=response.model,
                block_type=self.block_type,
                processing_duration_ms=elapsed_ms,
            ),
            decode_notes=notes,
        )
