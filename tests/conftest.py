"""Shared fixtures: a temporary database and an in-memory DevDocs site."""

from __future__ import annotations

from typing import Optional

import httpx
import pytest

from devdocs_scraper.config import AppConfig, ScraperConfig
from devdocs_scraper.db import Database
from devdocs_scraper.fetcher import Fetcher
from devdocs_scraper.pipeline import CrawlPipeline

from .fakes import BASE_URL, FakeDevDocs, page_html


@pytest.fixture
def config(tmp_path) -> AppConfig:
    return AppConfig(
        db_path=str(tmp_path / "devdocs.db"),
        log_dir=str(tmp_path / "logs"),
        base_url=BASE_URL,
        scraper=ScraperConfig(
            concurrency=2,
            inter_batch_delay=0,
            timeout=5,
            max_retries=2,
            retry_delay=0,
        ),
    )


@pytest.fixture
def db(config) -> Database:
    database = Database(config.db_path)
    yield database
    database.close()


@pytest.fixture
def site() -> FakeDevDocs:
    return FakeDevDocs(
        "react",
        {
            f"page-{i}": page_html(f"Page {i}", f"Distinct body number {i} about hooks and state.")
            for i in range(1, 6)
        },
    )


@pytest.fixture
def make_pipeline(config, db, site):
    def factory(database: Optional[Database] = None, app_config: Optional[AppConfig] = None):
        cfg = app_config or config
        fetcher = Fetcher(cfg.scraper, transport=httpx.MockTransport(site.handler))
        return CrawlPipeline(cfg, database or db, fetcher=fetcher)

    return factory
