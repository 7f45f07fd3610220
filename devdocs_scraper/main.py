"""CLI entry point."""

import argparse
import asyncio
import sys

from .config import load_config
from .db import Database
from .errors import ScraperError
from .logger import setup_logger
from .models import CrawlTarget
from .pipeline import CrawlPipeline


async def run_scraper(config, db, targets):
    """Crawl each documentation set in turn. Returns the finished jobs."""
    jobs = []
    async with CrawlPipeline(config, db) as pipeline:
        for target in targets:
            print(f"\n{'='*60}")
            print(f"  Docs: {target.slug}")
            print(f"{'='*60}")

            job = await pipeline.run(target)
            print_job(job)
            jobs.append(job)
    return jobs


async def list_docs(config, db):
    async with CrawlPipeline(config, db) as pipeline:
        docs = await pipeline.list_available_docs()

    scraped = db.scraped_slugs()
    print(f"{'Slug':<30} {'Name':<30} {'Version':<12} {'Scraped':>8}")
    print("-" * 84)
    for doc in sorted(docs, key=lambda d: d.get("slug", "")):
        slug = doc.get("slug", "")
        mark = "yes" if slug in scraped else ""
        print(f"{slug:<30} {doc.get('name', ''):<30} {doc.get('version') or '':<12} {mark:>8}")
    print(f"\n{len(docs)} documentation sets, {len(scraped)} scraped.")


def print_job(job):
    print(f"Job {job.id}  [{job.status.value}]  target={job.target}")
    print(f"  progress:  {job.progress_percentage:.1f}%  ({job.urls_processed}/{job.total_urls})")
    print(f"  new={job.items_new}  updated={job.items_updated}  "
          f"unchanged={job.items_unchanged}  failed={job.urls_failed}  retries={job.retry_count}")
    if job.duration_seconds is not None:
        print(f"  duration:  {job.duration_seconds:.1f}s")
    if job.error_message:
        print(f"  error:     {job.error_message}")


def show_jobs(db, limit=20):
    jobs = db.list_jobs(limit=limit)
    print(f"{'Job':<38} {'Target':<16} {'Status':<10} {'Progress':>9} {'Failed':>7}")
    print("-" * 84)
    for job in jobs:
        print(f"{job.id:<38} {job.target:<16} {job.status.value:<10} "
              f"{job.progress_percentage:>8.1f}% {job.urls_failed:>7}")


def show_stats(db):
    """Display stored content and job statistics."""
    print("\n" + "=" * 80)
    print("  CONTENT STATISTICS")
    print("=" * 80)
    print(f"{'Docs':<24} {'Pages':>8} {'Words':>14} {'Revisions':>10}  {'Last scraped':<20}")
    print("-" * 80)

    total_pages = 0
    total_words = 0
    for slug, pages, words, revisions in db.get_stats():
        source = db.get_source(CrawlTarget(slug).source_name) or {}
        last = (source.get("last_scraped_at") or "")[:19]
        print(f"{slug:<24} {pages:>8} {words:>14,} {revisions:>10}  {last:<20}")
        total_pages += pages
        total_words += words

    print("-" * 80)
    print(f"{'TOTAL':<24} {total_pages:>8} {total_words:>14,}")

    job_stats = db.get_job_stats()
    if job_stats:
        print("\n" + "=" * 70)
        print("  JOB STATISTICS")
        print("=" * 70)
        print(f"{'Status':<24} {'Jobs':>8} {'Processed':>14} {'Failed':>10}")
        print("-" * 70)
        for status, count, processed, failed in job_stats:
            print(f"{status:<24} {count:>8} {processed:>14,} {failed:>10}")

    print()


def positive_int(value):
    number = int(value)
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1, got {value}")
    return number


def non_negative_float(value):
    number = float(value)
    if number < 0:
        raise argparse.ArgumentTypeError(f"must not be negative, got {value}")
    return number


def main(argv=None):
    parser = argparse.ArgumentParser(description="DevDocs Documentation Scraper")
    parser.add_argument("--doc", action="append", default=[], metavar="SLUG",
                        help="Documentation set to crawl (repeatable)")
    parser.add_argument("--all", action="store_true",
                        help="Crawl every documentation set listed in the config")
    parser.add_argument("--list-docs", action="store_true",
                        help="List documentation sets available upstream")
    parser.add_argument("--jobs", action="store_true", help="Show recent jobs")
    parser.add_argument("--job", type=str, default=None, metavar="ID", help="Show one job")
    parser.add_argument("--cancel", type=str, default=None, metavar="ID",
                        help="Request cancellation of a running job")
    parser.add_argument("--stats", action="store_true",
                        help="Show content/job statistics")
    parser.add_argument("--concurrency", type=positive_int, default=None,
                        help="Pages fetched concurrently per batch")
    parser.add_argument("--delay", type=non_negative_float, default=None,
                        help="Seconds to pause between batches")
    parser.add_argument("--config", type=str, default="config.yaml",
                        help="Path to config file")
    args = parser.parse_args(argv)

    try:
        config = load_config(args.config)
    except (ValueError, TypeError) as e:
        parser.error(f"invalid config {args.config}: {e}")
    if args.concurrency is not None:
        config.scraper.concurrency = args.concurrency
    if args.delay is not None:
        config.scraper.inter_batch_delay = args.delay

    setup_logger(config.log_dir, config.log_file, config.log_level)
    db = Database(config.db_path)

    if args.stats:
        show_stats(db)
        return 0

    if args.jobs:
        show_jobs(db)
        return 0

    if args.job:
        job = db.get_job(args.job)
        if job is None:
            print(f"No such job: {args.job}", file=sys.stderr)
            return 1
        print_job(job)
        return 0

    if args.cancel:
        if not db.request_cancel(args.cancel):
            print(f"No such job: {args.cancel}", file=sys.stderr)
            return 1
        print(f"Cancellation requested for {args.cancel}")
        return 0

    if args.list_docs:
        try:
            asyncio.run(list_docs(config, db))
        except (ScraperError, ValueError) as e:
            print(f"Catalogue unavailable: {e}", file=sys.stderr)
            return 2
        return 0

    slugs = config.docs if args.all else args.doc
    if not slugs:
        parser.error("nothing to do: pass --doc SLUG or --all")
    try:
        targets = [CrawlTarget(slug) for slug in slugs]
    except ValueError as e:
        parser.error(str(e))

    print("DevDocs Scraper")
    print(f"Upstream: {config.base_url}")
    print(f"Database: {config.db_path}")

    try:
        jobs = asyncio.run(run_scraper(config, db, targets))
    except ScraperError as e:
        print(f"Aborted: {e}", file=sys.stderr)
        return 2
    except KeyboardInterrupt:
        print("Interrupted: the running job was left paused.", file=sys.stderr)
        return 130

    show_stats(db)
    return 0 if all(job.status.value == "completed" for job in jobs) else 1


if __name__ == "__main__":
    sys.exit(main())
