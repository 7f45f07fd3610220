"""Tests for devdocs_scraper.db."""

from __future__ import annotations

import pytest

from devdocs_scraper.dedup import Deduplicator, fingerprint
from devdocs_scraper.models import CodeSnippet, ContentRecord, DedupDecision, Job, JobStatus


def make_record(url="https://devdocs.io/git/git-add", content="Add file contents to the index"):
    return ContentRecord(
        url=url,
        title="git add",
        content=content,
        code_snippets=(CodeSnippet("shell", "git add ."),),
        keywords=("contents", "index"),
        topics=("git", "Commands"),
        word_count=len(content.split()),
        character_count=len(content),
        content_hash=fingerprint(content),
    )


class TestContentStore:
    def test_lookup_missing(self, db):
        assert db.lookup("https://devdocs.io/nope") is None

    def test_upsert_then_lookup(self, db):
        record = make_record()
        assert db.upsert(record, "devdocs:git", "git") == 1
        assert db.lookup(record.url) == record.content_hash

        stored = db.get_content(record.url)
        assert stored["code_snippets"] == [{"language": "shell", "code": "git add ."}]
        assert stored["keywords"] == ["contents", "index"]
        assert stored["doc_slug"] == "git"

    def test_upsert_changed_bumps_version(self, db):
        db.upsert(make_record(), "devdocs:git", "git")
        changed = make_record(content="Stage changes for the next commit")
        assert db.upsert(changed, "devdocs:git", "git") == 2
        assert db.lookup(changed.url) == changed.content_hash

    def test_upsert_is_idempotent(self, db):
        db.upsert(make_record(), "devdocs:git", "git")
        assert db.upsert(make_record(), "devdocs:git", "git") == 1

    def test_stats_and_scraped_slugs(self, db):
        db.upsert(make_record(), "devdocs:git", "git")
        db.upsert(make_record(url="https://devdocs.io/git/git-commit"), "devdocs:git", "git")
        assert db.scraped_slugs() == {"git"}
        assert db.get_stats() == [("git", 2, 12, 0)]


class TestDeduplicator:
    @pytest.mark.asyncio
    async def test_decisions(self, db):
        dedup = Deduplicator(db)
        record = make_record()

        assert await dedup.decide(record.url, record.content_hash) is DedupDecision.NEW
        db.upsert(record, "devdocs:git", "git")
        assert await dedup.decide(record.url, record.content_hash) is DedupDecision.UNCHANGED
        assert await dedup.decide(record.url, fingerprint("something else")) is DedupDecision.CHANGED


class TestJobStore:
    def test_create_and_get(self, db):
        job = Job(target="react", config={"docSlug": "react"})
        db.create_job(job)

        stored = db.get_job(job.id)
        assert stored.status is JobStatus.PENDING
        assert stored.config == {"docSlug": "react"}
        assert stored.scheduled_at == job.scheduled_at

    def test_update_is_partial_merge(self, db):
        job = Job(target="react")
        db.create_job(job)
        db.update_job(job.id, status=JobStatus.RUNNING, total_urls=12)
        db.update_job(job.id, urls_processed=3)

        stored = db.get_job(job.id)
        assert stored.status is JobStatus.RUNNING
        assert stored.total_urls == 12
        assert stored.urls_processed == 3

    def test_update_rejects_unknown_fields(self, db):
        job = Job(target="react")
        db.create_job(job)
        with pytest.raises(ValueError):
            db.update_job(job.id, id="other")

    def test_update_missing_job(self, db):
        with pytest.raises(KeyError):
            db.update_job("missing", urls_processed=1)

    def test_list_jobs_with_filter(self, db):
        done = Job(target="react", status=JobStatus.COMPLETED)
        pending = Job(target="git")
        db.create_job(done)
        db.create_job(pending)

        assert {j.id for j in db.list_jobs()} == {done.id, pending.id}
        assert [j.id for j in db.list_jobs(status="completed")] == [done.id]

    def test_cancel_flag(self, db):
        job = Job(target="react")
        db.create_job(job)

        assert db.is_cancel_requested(job.id) is False
        assert db.request_cancel(job.id) is True
        assert db.is_cancel_requested(job.id) is True
        assert db.request_cancel("missing") is False

    def test_job_stats(self, db):
        db.create_job(Job(target="react"))
        db.create_job(Job(target="git"))
        assert db.get_job_stats() == [("pending", 2, 0, 0)]


class TestSources:
    def test_touch_source(self, db):
        db.touch_source("devdocs:git", "https://devdocs.io", "job-1", {"new": 3})
        db.touch_source("devdocs:git", "https://devdocs.io", "job-2", {"new": 0})

        source = db.get_source("devdocs:git")
        assert source["last_job_id"] == "job-2"
        assert source["state"] == {"new": 0}
        assert source["last_scraped_at"] is not None

    def test_missing_source(self, db):
        assert db.get_source("devdocs:none") is None
