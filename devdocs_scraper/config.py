"""YAML config loader."""

import os
from dataclasses import dataclass, field
from typing import List

import yaml

DEFAULT_DOCS = [
    "react",
    "typescript",
    "javascript",
    "node",
    "nextjs~14",
    "tailwindcss",
    "postgresql",
    "git",
    "html",
    "css",
    "dom",
    "http",
]


@dataclass
class ScraperConfig:
    concurrency: int = 3
    inter_batch_delay: float = 1.0
    timeout: float = 30.0
    max_retries: int = 3
    retry_delay: float = 1.0
    backoff_factor: float = 2.0
    max_retry_delay: float = 60.0
    user_agent: str = "DevDocs-Scraper/1.0"

    def validate(self):
        """Reject settings the scheduler and fetcher cannot run with."""
        if self.concurrency < 1:
            raise ValueError(f"concurrency must be at least 1, got {self.concurrency}")
        if self.inter_batch_delay < 0:
            raise ValueError(f"inter_batch_delay must not be negative, got {self.inter_batch_delay}")
        if self.timeout <= 0:
            raise ValueError(f"timeout must be positive, got {self.timeout}")
        if self.retry_delay < 0 or self.max_retry_delay < 0:
            raise ValueError("retry delays must not be negative")


@dataclass
class ExtractionConfig:
    keyword_limit: int = 10
    min_keyword_length: int = 4


@dataclass
class AppConfig:
    db_path: str = "devdocs.db"
    log_dir: str = "logs"
    log_file: str = "scraper.log"
    log_level: str = "INFO"
    base_url: str = "https://devdocs.io"
    docs: List[str] = field(default_factory=lambda: list(DEFAULT_DOCS))
    scraper: ScraperConfig = field(default_factory=ScraperConfig)
    extraction: ExtractionConfig = field(default_factory=ExtractionConfig)


def load_config(config_path: str = "config.yaml") -> AppConfig:
    if not os.path.exists(config_path):
        return AppConfig()

    with open(config_path) as f:
        raw = yaml.safe_load(f) or {}

    sc_raw = raw.get("scraper", {})
    scraper = ScraperConfig(**{k: v for k, v in sc_raw.items() if k in ScraperConfig.__dataclass_fields__})
    scraper.validate()

    ext_raw = raw.get("extraction", {})
    extraction = ExtractionConfig(**{k: v for k, v in ext_raw.items() if k in ExtractionConfig.__dataclass_fields__})

    return AppConfig(
        db_path=raw.get("db_path", "devdocs.db"),
        log_dir=raw.get("log_dir", "logs"),
        log_file=raw.get("log_file", "scraper.log"),
        log_level=str(raw.get("log_level", "INFO")).upper(),
        base_url=raw.get("base_url", "https://devdocs.io").rstrip("/"),
        docs=list(raw.get("docs") or DEFAULT_DOCS),
        scraper=scraper,
        extraction=extraction,
    )
