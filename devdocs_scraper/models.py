"""Data models for the scraper."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional, Tuple


def utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


class JobStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    PAUSED = "paused"

    @property
    def terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED)


class Outcome(str, Enum):
    """Accounting category of one finished work item."""

    STORED_NEW = "stored_new"
    STORED_CHANGED = "stored_changed"
    UNCHANGED = "unchanged"
    FAILED = "failed"


class DedupDecision(str, Enum):
    NEW = "new"
    CHANGED = "changed"
    UNCHANGED = "unchanged"


@dataclass(frozen=True)
class CrawlTarget:
    slug: str
    name: str = ""

    def __post_init__(self):
        if not self.slug or "/" in self.slug:
            raise ValueError(f"Invalid documentation slug: {self.slug!r}")

    @property
    def source_name(self) -> str:
        return f"devdocs:{self.slug}"


@dataclass(frozen=True)
class WorkItem:
    name: str
    path: str
    type: str = ""


@dataclass(frozen=True)
class CodeSnippet:
    language: str
    code: str


@dataclass(frozen=True)
class ContentRecord:
    url: str
    title: str
    content: str = ""
    markdown: str = ""
    code_snippets: Tuple[CodeSnippet, ...] = ()
    keywords: Tuple[str, ...] = ()
    topics: Tuple[str, ...] = ()
    word_count: int = 0
    character_count: int = 0
    content_hash: str = ""
    success: bool = True
    error: Optional[str] = None

    @classmethod
    def failure(cls, url: str, title: str, error: str) -> "ContentRecord":
        return cls(url=url, title=title, success=False, error=error)


@dataclass
class Job:
    target: str
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    status: JobStatus = JobStatus.PENDING
    total_urls: int = 0
    urls_processed: int = 0
    urls_failed: int = 0
    items_new: int = 0
    items_updated: int = 0
    items_unchanged: int = 0
    progress_percentage: float = 0.0
    retry_count: int = 0
    scheduled_at: str = field(default_factory=utcnow)
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    error_message: Optional[str] = None
    duration_seconds: Optional[float] = None
    avg_time_per_url: Optional[float] = None
    config: dict = field(default_factory=dict)

    @property
    def items_scraped(self) -> int:
        return self.items_new + self.items_updated + self.items_unchanged

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "target": self.target,
            "status": self.status.value,
            "total_urls": self.total_urls,
            "urls_processed": self.urls_processed,
            "urls_failed": self.urls_failed,
            "items_scraped": self.items_scraped,
            "items_new": self.items_new,
            "items_updated": self.items_updated,
            "items_unchanged": self.items_unchanged,
            "progress_percentage": self.progress_percentage,
            "retry_count": self.retry_count,
            "scheduled_at": self.scheduled_at,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
            "error_message": self.error_message,
            "duration_seconds": self.duration_seconds,
            "avg_time_per_url": self.avg_time_per_url,
            "config": self.config,
        }


def snippets_to_json(snippets: List[CodeSnippet]) -> List[dict]:
    return [{"language": s.language, "code": s.code} for s in snippets]
