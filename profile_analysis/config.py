"""Configuration management via environment variables and .env file."""

from __future__ import annotations

import os
import sys

from dotenv import load_dotenv
from pydantic import BaseModel, Field


class Config(BaseModel):
    """Application configuration loaded from environment."""

    # Supabase (PostgREST): leads, runs, credit ledger, usage tracking
    supabase_url: str = ""
    supabase_service_role: str = ""

    # Profile scraping
    apify_api_token: str = ""
    apify_actor_id: str = "apify~instagram-profile-scraper"

    # LLM keys (Anthropic primary, OpenAI fallback)
    anthropic_api_key: str = ""
    openai_api_key: str = ""

    # Scoring models
    analysis_model: str = "claude-3-5-haiku-latest"
    openai_analysis_model: str = "gpt-4o-mini"
    analysis_max_tokens: int = 400
    analysis_temperature: float = 0.0

    # Bulk analysis
    max_bulk_profiles: int = 50
    batch_sizes: dict[str, int] = Field(default_factory=lambda: {"light": 8})
    default_batch_size: int = 5
    batch_delay: float = 1.0  # seconds between windows, not after the last

    # Billing
    unit_credit_cost: int = 1
    not_found_fee: int = 1
    ledger_max_retries: int = 3

    # Profile cache
    profile_cache_ttl_hours: int = 24
    profile_cache_db_path: str = ".profile_cache.db"

    # Timeouts (seconds)
    scraper_timeout: int = 60
    llm_timeout: int = 120
    db_timeout: int = 20

    # Web server
    web_host: str = "0.0.0.0"
    web_port: int = 8000

    def batch_size_for(self, analysis_type: str) -> int:
        return self.batch_sizes.get(analysis_type, self.default_batch_size)


def load_config() -> Config:
    """Load configuration from .env file and environment variables.

    Environment variables override .env values.
    Exits with an error message if required keys are missing.
    """
    load_dotenv()

    supabase_url = os.getenv("SUPABASE_URL", "")
    service_role = os.getenv("SUPABASE_SERVICE_ROLE", "")
    apify_token = os.getenv("APIFY_API_TOKEN", "")
    anthropic_key = os.getenv("ANTHROPIC_API_KEY", "")
    openai_key = os.getenv("OPENAI_API_KEY", "")

    errors = []
    if not supabase_url or not service_role:
        errors.append("SUPABASE_URL and SUPABASE_SERVICE_ROLE are required")
    if not apify_token:
        errors.append("APIFY_API_TOKEN is required for profile scraping")
    if not anthropic_key and not openai_key:
        errors.append("At least one LLM key required: ANTHROPIC_API_KEY or OPENAI_API_KEY")

    if errors:
        print("Configuration error:", file=sys.stderr)
        for err in errors:
            print(f"  - {err}", file=sys.stderr)
        print("\nSet these in a .env file or as environment variables.", file=sys.stderr)
        sys.exit(1)

    if not openai_key:
        print("  Note: OPENAI_API_KEY not set — no fallback if Anthropic fails", file=sys.stderr)

    return Config(
        supabase_url=supabase_url.rstrip("/"),
        supabase_service_role=service_role,
        apify_api_token=apify_token,
        apify_actor_id=os.getenv("APIFY_ACTOR_ID", "apify~instagram-profile-scraper"),
        anthropic_api_key=anthropic_key,
        openai_api_key=openai_key,
        analysis_model=os.getenv("ANALYSIS_MODEL", "claude-3-5-haiku-latest"),
        openai_analysis_model=os.getenv("OPENAI_ANALYSIS_MODEL", "gpt-4o-mini"),
        analysis_max_tokens=int(os.getenv("ANALYSIS_MAX_TOKENS", "400")),
        max_bulk_profiles=int(os.getenv("MAX_BULK_PROFILES", "50")),
        batch_sizes={"light": int(os.getenv("LIGHT_BATCH_SIZE", "8"))},
        batch_delay=float(os.getenv("BATCH_DELAY", "1.0")),
        unit_credit_cost=int(os.getenv("UNIT_CREDIT_COST", "1")),
        not_found_fee=int(os.getenv("NOT_FOUND_FEE", "1")),
        profile_cache_ttl_hours=int(os.getenv("PROFILE_CACHE_TTL_HOURS", "24")),
        profile_cache_db_path=os.getenv("PROFILE_CACHE_DB_PATH", ".profile_cache.db"),
        scraper_timeout=int(os.getenv("SCRAPER_TIMEOUT", "60")),
        llm_timeout=int(os.getenv("LLM_TIMEOUT", "120")),
        db_timeout=int(os.getenv("DB_TIMEOUT", "20")),
        web_host=os.getenv("WEB_HOST", "0.0.0.0"),
        web_port=int(os.getenv("WEB_PORT", "8000")),
    )
