"""
tests/test_config_and_scheduler.py

Pytest unit tests for environment-driven settings and cron job registration.

Coverage
--------
- Scraper, retry queue and cron settings from the environment
- Extra provider class paths
- Boolean and float parsing shared with the database engine
- Cron job registration
"""

from __future__ import annotations

from collections.abc import Iterator

import pytest
from apscheduler.schedulers.background import BackgroundScheduler

from app.config import (
    get_cron_settings,
    get_global_scraper_settings,
    get_provider_class_paths,
    get_retry_queue_settings,
)
from app.scheduler.jobs import build_scheduler
from db.config import get_bool_env, get_float_env
from db.session import create_db_engine

GETTERS = (get_global_scraper_settings, get_retry_queue_settings, get_cron_settings, get_provider_class_paths)


@pytest.fixture(autouse=True)
def _fresh_settings() -> Iterator[None]:
    for getter in GETTERS:
        getter.cache_clear()
    yield
    for getter in GETTERS:
        getter.cache_clear()


class TestScraperSettingsFromEnv:
    def test_defaults_to_no_scraper(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("SCRAPER_TYPE", "")
        assert get_global_scraper_settings().scraper_type == "none"

    def test_reads_and_clamps_values(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("SCRAPER_TYPE", "serpapi")
        monkeypatch.setenv("SCRAPING_API_KEY", " abc ")
        monkeypatch.setenv("SCRAPE_RETRY", "true")
        monkeypatch.setenv("SCRAPE_DELAY_MS", "90000")
        monkeypatch.setenv("SCRAPER_TIMEOUT_SECONDS", "not-a-number")

        settings = get_global_scraper_settings()

        assert settings.scraper_type == "serpapi"
        assert settings.scraping_api == "abc"
        assert settings.scrape_retry is True
        assert settings.scrape_delay_ms == 30_000
        assert settings.timeout_seconds == 15.0

    def test_absolute_queue_path_is_kept(self, monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
        monkeypatch.setenv("RETRY_QUEUE_PATH", str(tmp_path / "queue.json"))
        assert get_retry_queue_settings().path == tmp_path / "queue.json"

    def test_provider_class_paths(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("SCRAPER_PROVIDER_CLASSES", "pkg.a:First, ,pkg.b:Second ")
        assert get_provider_class_paths() == ("pkg.a:First", "pkg.b:Second")

    def test_no_provider_class_paths_by_default(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("SCRAPER_PROVIDER_CLASSES", raising=False)
        assert get_provider_class_paths() == ()


class TestSharedEnvParsing:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [("Yes", True), (" on ", True), ("1", True), ("off", False), ("", False)],
    )
    def test_bool_values(self, monkeypatch: pytest.MonkeyPatch, raw: str, expected: bool) -> None:
        monkeypatch.setenv("SQL_ECHO", raw)
        assert get_bool_env("SQL_ECHO") is expected

    def test_float_falls_back_on_garbage(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("SQLITE_BUSY_TIMEOUT_SECONDS", "soon")
        assert get_float_env("SQLITE_BUSY_TIMEOUT_SECONDS", 15.0) == 15.0

    def test_app_and_engine_parse_alike(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("SQL_ECHO", "TRUE")
        monkeypatch.setenv("SCRAPE_RETRY", "TRUE")

        engine = create_db_engine("sqlite+aiosqlite:///:memory:")

        assert engine.sync_engine.echo is True
        assert get_global_scraper_settings().scrape_retry is True


class TestBuildScheduler:
    def test_registers_all_jobs(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CRON_MAIN_SCHEDULE", "30 2 * * *")

        scheduler = build_scheduler(BackgroundScheduler)

        assert isinstance(scheduler, BackgroundScheduler)
        assert sorted(job.id for job in scheduler.get_jobs()) == [
            "clear_stale_updating",
            "refresh_all_domains",
            "retry_failed_scrapes",
        ]
