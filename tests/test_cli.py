from click.testing import CliRunner
from conftest import make_profile

from profile_analysis.cache.store import ProfileCache
from profile_analysis.cli import main


def test_cache_stats_and_clear(tmp_path, monkeypatch):
    db_path = str(tmp_path / "cache.db")
    monkeypatch.setenv("PROFILE_CACHE_DB_PATH", db_path)
    cache = ProfileCache(db_path)
    cache.set(make_profile("alpha"))
    cache.close()

    runner = CliRunner()
    stats = runner.invoke(main, ["cache-stats"])
    assert stats.exit_code == 0
    assert "Profiles cached" in stats.output

    cleared = runner.invoke(main, ["clear-cache", "--all"])
    assert cleared.exit_code == 0
    assert "cleared" in cleared.output

    cache = ProfileCache(db_path)
    assert cache.stats()["count"] == 0
    cache.close()


def test_bulk_requires_profiles():
    result = CliRunner().invoke(main, ["bulk", "--user", "u", "--business", "b"])
    assert result.exit_code != 0
    assert "at least one profile" in result.output
