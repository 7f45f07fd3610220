"""Job lifecycle and progress accounting.

The tracker is the only writer of a Job's counters. Every mutation happens
under one lock and is persisted to the job store as a partial update, so a
reader polling the store always sees processed == scraped + failed.

    pending -> running -> completed | failed | cancelled | paused
    pending -> failed
"""

import asyncio
import dataclasses
import logging
from datetime import datetime
from typing import Optional

from .db import Database
from .errors import ContractViolation
from .models import CrawlTarget, Job, JobStatus, Outcome, utcnow

logger = logging.getLogger("devdocs_scraper")

_COUNTER_FOR_OUTCOME = {
    Outcome.STORED_NEW: "items_new",
    Outcome.STORED_CHANGED: "items_updated",
    Outcome.UNCHANGED: "items_unchanged",
    Outcome.FAILED: "urls_failed",
}


class JobTracker:
    def __init__(self, db: Database):
        self.db = db
        self._lock = asyncio.Lock()

    async def create_job(self, target: CrawlTarget, config: Optional[dict] = None) -> Job:
        job = Job(target=target.slug, config=dict(config or {}))
        await asyncio.to_thread(self.db.create_job, job)
        logger.info(f"[{target.slug}] Created job {job.id}")
        return job

    async def start(self, job: Job, total: int):
        if total < 0:
            raise ValueError(f"total must not be negative, got {total}")
        async with self._lock:
            self._require(job, JobStatus.PENDING, "start")
            job.status = JobStatus.RUNNING
            job.total_urls = total
            job.started_at = utcnow()
            await self._persist(job, "status", "total_urls", "started_at")
        logger.info(f"[{job.target}] Job {job.id} running: {total} pages")

    async def record_outcome(self, job: Job, outcome: Outcome, retries: int = 0):
        async with self._lock:
            self._require(job, JobStatus.RUNNING, f"record {outcome.value}")
            if job.urls_processed >= job.total_urls:
                raise ContractViolation(
                    f"Job {job.id}: outcome beyond total ({job.urls_processed}/{job.total_urls})"
                )

            counter = _COUNTER_FOR_OUTCOME[outcome]
            setattr(job, counter, getattr(job, counter) + 1)
            job.urls_processed += 1
            job.retry_count += retries
            job.progress_percentage = max(
                job.progress_percentage, 100.0 * job.urls_processed / job.total_urls
            )
            await self._persist(
                job, counter, "urls_processed", "items_scraped",
                "progress_percentage", "retry_count",
            )

    async def complete(self, job: Job):
        async with self._lock:
            self._require(job, JobStatus.RUNNING, "complete")
            job.status = JobStatus.COMPLETED
            job.completed_at = utcnow()
            if job.total_urls == 0:
                job.progress_percentage = 100.0
            job.duration_seconds = _elapsed(job.started_at, job.completed_at)
            if job.urls_processed:
                job.avg_time_per_url = job.duration_seconds / job.urls_processed
            await self._persist(
                job, "status", "completed_at", "progress_percentage",
                "duration_seconds", "avg_time_per_url",
            )
        logger.info(
            f"[{job.target}] Job {job.id} completed: {job.urls_processed} processed, "
            f"{job.items_new} new, {job.items_updated} updated, "
            f"{job.items_unchanged} unchanged, {job.urls_failed} failed"
        )

    async def fail(self, job: Job, message: str):
        async with self._lock:
            if job.status.terminal:
                raise ContractViolation(f"Job {job.id} is already {job.status.value}; cannot fail it")
            job.status = JobStatus.FAILED
            job.error_message = message
            job.completed_at = utcnow()
            if job.started_at:
                job.duration_seconds = _elapsed(job.started_at, job.completed_at)
            await self._persist(job, "status", "error_message", "completed_at", "duration_seconds")
        logger.error(f"[{job.target}] Job {job.id} failed: {message}")

    async def cancel(self, job: Job):
        await self._stop(job, JobStatus.CANCELLED)

    async def pause(self, job: Job):
        await self._stop(job, JobStatus.PAUSED)

    async def cancel_requested(self, job: Job) -> bool:
        return await asyncio.to_thread(self.db.is_cancel_requested, job.id)

    def snapshot(self, job: Job) -> Job:
        return dataclasses.replace(job, config=dict(job.config))

    async def _stop(self, job: Job, status: JobStatus):
        async with self._lock:
            self._require(job, JobStatus.RUNNING, status.value)
            job.status = status
            if status is JobStatus.CANCELLED:
                job.completed_at = utcnow()
                job.duration_seconds = _elapsed(job.started_at, job.completed_at)
            await self._persist(job, "status", "completed_at", "duration_seconds")
        logger.warning(
            f"[{job.target}] Job {job.id} {status.value} after "
            f"{job.urls_processed}/{job.total_urls} pages"
        )

    @staticmethod
    def _require(job: Job, expected: JobStatus, action: str):
        if job.status is not expected:
            raise ContractViolation(
                f"Job {job.id}: cannot {action} while {job.status.value} (expected {expected.value})"
            )

    async def _persist(self, job: Job, *fields: str):
        data = job.to_dict()
        await asyncio.to_thread(self.db.update_job, job.id, **{f: data[f] for f in fields})


def _elapsed(start: Optional[str], end: str) -> float:
    if not start:
        return 0.0
    delta = datetime.fromisoformat(end) - datetime.fromisoformat(start)
    return round(delta.total_seconds(), 3)
