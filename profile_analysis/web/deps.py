"""Dependency injection for FastAPI — shared config, clients and services."""

from __future__ import annotations

from functools import lru_cache

from profile_analysis.analysis.scorer import LightAnalysisScorer
from profile_analysis.bulk.orchestrator import BulkAnalysisOrchestrator
from profile_analysis.cache.store import ProfileCache
from profile_analysis.config import Config, load_config
from profile_analysis.db.supabase import SupabaseRepository
from profile_analysis.scrape.instagram import InstagramScraper
from profile_analysis.single import SingleProfileAnalyzer


@lru_cache
def get_config() -> Config:
    return load_config()


_store: SupabaseRepository | None = None
_scraper: InstagramScraper | None = None
_scorer: LightAnalysisScorer | None = None
_cache: ProfileCache | None = None


def get_store() -> SupabaseRepository:
    global _store
    if _store is None:
        cfg = get_config()
        _store = SupabaseRepository(
            cfg.supabase_url,
            cfg.supabase_service_role,
            timeout=cfg.db_timeout,
            ledger_max_retries=cfg.ledger_max_retries,
        )
    return _store


def get_scraper() -> InstagramScraper:
    global _scraper
    if _scraper is None:
        cfg = get_config()
        _scraper = InstagramScraper(
            cfg.apify_api_token, actor_id=cfg.apify_actor_id, timeout=cfg.scraper_timeout,
        )
    return _scraper


def get_scorer() -> LightAnalysisScorer:
    global _scorer
    if _scorer is None:
        _scorer = LightAnalysisScorer.from_config(get_config())
    return _scorer


def get_cache() -> ProfileCache:
    global _cache
    if _cache is None:
        cfg = get_config()
        _cache = ProfileCache(cfg.profile_cache_db_path, ttl_hours=cfg.profile_cache_ttl_hours)
    return _cache


def get_orchestrator() -> BulkAnalysisOrchestrator:
    return BulkAnalysisOrchestrator(
        get_config(), get_store(), get_scraper(), get_scorer(), cache=get_cache(),
    )


def get_single_analyzer() -> SingleProfileAnalyzer:
    return SingleProfileAnalyzer(
        get_config(), get_store(), get_scraper(), get_scorer(), cache=get_cache(),
    )


async def close_clients() -> None:
    global _store, _scraper, _scorer, _cache
    if _store:
        await _store.close()
    if _scraper:
        await _scraper.close()
    if _cache:
        _cache.close()
    _store = _scraper = _scorer = _cache = None
