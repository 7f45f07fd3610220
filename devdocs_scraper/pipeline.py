"""Crawl orchestration: manifest -> batched fetch/extract -> dedup -> store -> job accounting."""

import asyncio
import json
import logging
import sqlite3
from contextlib import aclosing
from dataclasses import dataclass
from typing import Any, List, Optional, Tuple

from .config import AppConfig
from .db import Database
from .dedup import Deduplicator
from .errors import (
    ContractViolation,
    FetchError,
    ManifestUnavailable,
    PersistenceFailure,
)
from .extractor import ContentExtractor
from .fetcher import Fetcher
from .models import ContentRecord, CrawlTarget, DedupDecision, Job, JobStatus, Outcome, WorkItem
from .scheduler import ItemOutcome, run_batches
from .tracker import JobTracker

logger = logging.getLogger("devdocs_scraper")

# Errors that fail a single page; anything else escaping a worker fails the run.
ITEM_ERRORS = (FetchError, PersistenceFailure)


@dataclass
class ItemResult:
    record: ContentRecord
    decision: Optional[DedupDecision] = None
    attempts: int = 1

    @property
    def outcome(self) -> Outcome:
        if not self.record.success or self.decision is None:
            return Outcome.FAILED
        if self.decision is DedupDecision.NEW:
            return Outcome.STORED_NEW
        if self.decision is DedupDecision.CHANGED:
            return Outcome.STORED_CHANGED
        return Outcome.UNCHANGED


class CrawlPipeline:
    def __init__(self, config: AppConfig, db: Database, fetcher: Optional[Fetcher] = None,
                 extractor: Optional[ContentExtractor] = None):
        config.scraper.validate()
        self.config = config
        self.db = db
        self.fetcher = fetcher or Fetcher(config.scraper)
        self.extractor = extractor or ContentExtractor(
            keyword_limit=config.extraction.keyword_limit,
            min_keyword_length=config.extraction.min_keyword_length,
        )
        self.dedup = Deduplicator(db)
        self.tracker = JobTracker(db)

    async def close(self):
        await self.fetcher.close()

    async def __aenter__(self) -> "CrawlPipeline":
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    # --- URLs ---

    @property
    def catalogue_url(self) -> str:
        return f"{self.config.base_url}/docs.json"

    def manifest_url(self, target: CrawlTarget) -> str:
        return f"{self.config.base_url}/docs/{target.slug}/index.json"

    def page_url(self, target: CrawlTarget, item: WorkItem) -> str:
        return f"{self.config.base_url}/{target.slug}/{item.path.lstrip('/')}"

    # --- manifest ---

    async def list_available_docs(self) -> List[dict]:
        """The documentation sets DevDocs currently offers."""
        docs = await self.fetcher.fetch_json(self.catalogue_url)
        if not isinstance(docs, list):
            raise ValueError(f"Unexpected catalogue format from {self.catalogue_url}")
        return docs

    async def fetch_manifest(self, target: CrawlTarget) -> List[WorkItem]:
        url = self.manifest_url(target)
        try:
            data = await self.fetcher.fetch_json(url)
        except FetchError as e:
            raise ManifestUnavailable(target.slug, str(e), e) from e
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ManifestUnavailable(target.slug, f"malformed JSON from {url}", e) from e
        return parse_manifest(target, data)

    # --- one work item ---

    async def fetch_with_retry(self, url: str) -> Tuple[bytes, int]:
        """Fetch url, retrying transient failures with exponential backoff.

        Returns (body, attempts). Re-raises the last FetchError once retries
        are exhausted or the error is not retryable.
        """
        sc = self.config.scraper
        max_attempts = max(1, sc.max_retries)

        last_error = None
        for attempt in range(max_attempts):
            try:
                return await self.fetcher.fetch(url, sc.timeout), attempt + 1
            except FetchError as e:
                last_error = e
                e.attempts = attempt + 1
                if not e.retryable or attempt + 1 >= max_attempts:
                    break
                wait = min(sc.retry_delay * sc.backoff_factor ** attempt, sc.max_retry_delay)
                logger.warning(f"Retry {attempt + 1}/{max_attempts} for {url}: {e} (wait {wait}s)")
                await asyncio.sleep(wait)

        raise last_error

    async def process_item(self, target: CrawlTarget, item: WorkItem) -> ItemResult:
        url = self.page_url(target, item)
        try:
            body, attempts = await self.fetch_with_retry(url)
        except FetchError as e:
            logger.error(f"[{target.slug}] Failed: {item.name}: {e}")
            return ItemResult(ContentRecord.failure(url, item.name, str(e)),
                              attempts=e.attempts)

        record = self.extractor.extract(body, item, target, url)

        try:
            decision = await self.dedup.decide(url, record.content_hash)
            if decision is not DedupDecision.UNCHANGED:
                await asyncio.to_thread(self.db.upsert, record, target.source_name, target.slug)
        except sqlite3.Error as e:
            raise PersistenceFailure(f"{url}: {e}") from e

        logger.debug(f"[{target.slug}] {decision.value}: {item.name}")
        return ItemResult(record, decision, attempts)

    # --- one run ---

    async def create_job(self, target: CrawlTarget) -> Job:
        sc = self.config.scraper
        return await self.tracker.create_job(target, {
            "docSlug": target.slug,
            "concurrency": sc.concurrency,
            "inter_batch_delay": sc.inter_batch_delay,
            "max_retries": sc.max_retries,
        })

    async def run(self, target: CrawlTarget, job: Optional[Job] = None) -> Job:
        """Crawl one documentation set. Returns the job in its final state."""
        if job is None:
            job = await self.create_job(target)

        try:
            try:
                items = await self.fetch_manifest(target)
            except ManifestUnavailable as e:
                await self.tracker.fail(job, str(e))
                return self.tracker.snapshot(job)

            logger.info(f"[{target.slug}] Found {len(items)} pages")
            await self.tracker.start(job, len(items))

            escalation = await self._dispatch(target, job, items)
            if escalation:
                await self.tracker.fail(job, escalation)
            elif job.status is JobStatus.RUNNING:
                await self.tracker.complete(job)
        except ContractViolation as e:
            logger.exception(f"[{target.slug}] Contract violation in job {job.id}")
            if not job.status.terminal:
                await self.tracker.fail(job, f"ContractViolation: {e}")
            raise
        except Exception as e:
            if not job.status.terminal:
                await self.tracker.fail(job, f"{type(e).__name__}: {e}")
            raise
        except asyncio.CancelledError:
            # interrupted mid-run (Ctrl-C, server shutdown): resumable, not failed
            if job.status is JobStatus.RUNNING:
                await self.tracker.pause(job)
            raise

        await self._touch_source(target, job)
        return self.tracker.snapshot(job)

    async def _dispatch(self, target: CrawlTarget, job: Job, items: List[WorkItem]) -> Optional[str]:
        """Feed items through the scheduler. Returns a run-level failure message, if any."""
        sc = self.config.scraper

        async def worker(item: WorkItem) -> ItemResult:
            return await self.process_item(target, item)

        batch_size = 0
        persistence_failures = 0
        outcomes = run_batches(items, sc.concurrency, sc.inter_batch_delay, worker)
        async with aclosing(outcomes):
            async for outcome in outcomes:
                batch_size += 1
                if isinstance(outcome.error, PersistenceFailure):
                    persistence_failures += 1
                await self._account(target, job, outcome)

                if not outcome.last_in_batch:
                    continue
                if persistence_failures == batch_size:
                    return (
                        f"PersistenceFailure: content store unavailable for all "
                        f"{batch_size} pages of batch {outcome.batch + 1}"
                    )
                batch_size = persistence_failures = 0

                if outcome.index + 1 < len(items) and await self.tracker.cancel_requested(job):
                    await self.tracker.cancel(job)
                    return None
        return None

    async def _account(self, target: CrawlTarget, job: Job, outcome: ItemOutcome[Any]):
        if not outcome.ok and not isinstance(outcome.error, ITEM_ERRORS):
            # a bug in the item pipeline, not a page failure
            raise outcome.error
        if outcome.ok:
            result: ItemResult = outcome.result
            await self.tracker.record_outcome(job, result.outcome, retries=result.attempts - 1)
            return
        logger.error(f"[{target.slug}] Failed: {outcome.item.name}: {outcome.error}")
        await self.tracker.record_outcome(job, Outcome.FAILED)

    async def _touch_source(self, target: CrawlTarget, job: Job):
        state = {
            "status": job.status.value,
            "total": job.total_urls,
            "scraped": job.items_scraped,
            "new": job.items_new,
            "updated": job.items_updated,
            "unchanged": job.items_unchanged,
            "failed": job.urls_failed,
            "duration_seconds": job.duration_seconds,
        }
        try:
            await asyncio.to_thread(self.db.touch_source, target.source_name,
                                    self.config.base_url, job.id, state)
        except sqlite3.Error as e:
            logger.warning(f"[{target.slug}] Could not update source bookkeeping: {e}")


def parse_manifest(target: CrawlTarget, data: Any) -> List[WorkItem]:
    """Turn a DevDocs index.json document into work items.

    Accepts {"entries": [...]} or a bare list. Entries without a path are
    skipped; duplicate paths are collapsed to the first occurrence.
    """
    entries = data.get("entries") if isinstance(data, dict) else data
    if not isinstance(entries, list):
        raise ManifestUnavailable(target.slug, "manifest has no entries list")

    items = []
    seen = set()
    for entry in entries:
        if not isinstance(entry, dict) or not entry.get("path"):
            logger.warning(f"[{target.slug}] Skipping manifest entry without path: {entry!r}")
            continue
        path = str(entry["path"])
        if path in seen:
            continue
        seen.add(path)
        items.append(WorkItem(
            name=str(entry.get("name") or path),
            path=path,
            type=str(entry.get("type") or ""),
        ))
    return items
