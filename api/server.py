"""FastAPI server: start crawl jobs and poll their progress."""

import logging
import os
from typing import Optional

from dotenv import load_dotenv
from fastapi import BackgroundTasks, Depends, FastAPI, Header, HTTPException, Query, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from devdocs_scraper.config import AppConfig, load_config
from devdocs_scraper.db import Database
from devdocs_scraper.errors import FetchError
from devdocs_scraper.models import CrawlTarget, Job
from devdocs_scraper.pipeline import CrawlPipeline

load_dotenv()

logger = logging.getLogger("devdocs_scraper")

app = FastAPI(
    title="DevDocs Scraper API",
    version="0.1.0",
    description="Trigger documentation crawls and follow their progress.",
)

# --- Rate limiting ---
limiter = Limiter(key_func=get_remote_address)
app.state.limiter = limiter


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    return Response(
        content='{"success": false, "error": "Rate limit exceeded. Please slow down."}',
        status_code=429,
        media_type="application/json",
    )


# --- CORS ---
default_origins = "http://localhost:3000,http://127.0.0.1:3000"
cors_origins = os.environ.get("CORS_ORIGINS", default_origins).split(",")

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in cors_origins],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- Dependencies ---

def get_config() -> AppConfig:
    return load_config(os.environ.get("SCRAPER_CONFIG", "config.yaml"))


def get_db(config: AppConfig = Depends(get_config)) -> Database:
    return Database(os.environ.get("SQLITE_DB_PATH", config.db_path))


def get_pipeline(config: AppConfig = Depends(get_config),
                 db: Database = Depends(get_db)) -> CrawlPipeline:
    return CrawlPipeline(config, db)


def require_secret(authorization: Optional[str] = Header(None)):
    secret = os.environ.get("SCRAPER_API_SECRET")
    if secret and authorization != f"Bearer {secret}":
        raise HTTPException(status_code=401, detail="Unauthorized")


def job_or_404(db: Database, job_id: str) -> Job:
    job = db.get_job(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return job


async def run_job(pipeline: CrawlPipeline, target: CrawlTarget, job: Job):
    try:
        await pipeline.run(target, job)
    except Exception:
        # failure is already recorded on the job row
        logger.exception(f"[{target.slug}] Background crawl {job.id} aborted")
    finally:
        await pipeline.close()


# --- Models ---

class ScrapeRequest(BaseModel):
    docSlug: str


# --- Routes ---

@app.get("/api/health")
async def health():
    return {"status": "ok", "service": "devdocs-scraper"}


@app.get("/api/scrape")
@limiter.limit("30/minute")
async def available_docs(request: Request, pipeline: CrawlPipeline = Depends(get_pipeline)):
    """Documentation sets offered upstream, flagged with whether we hold any of their pages."""
    try:
        docs = await pipeline.list_available_docs()
    except (FetchError, ValueError) as e:
        raise HTTPException(status_code=502, detail=f"DevDocs catalogue unavailable: {e}")
    finally:
        await pipeline.close()

    scraped = pipeline.db.scraped_slugs()
    return {
        "success": True,
        "docs": [
            {
                "name": d.get("name", ""),
                "slug": d.get("slug", ""),
                "type": d.get("type", ""),
                "version": d.get("version"),
                "scraped": d.get("slug") in scraped,
            }
            for d in docs
        ],
    }


@app.post("/api/scrape", dependencies=[Depends(require_secret)])
@limiter.limit("10/minute")
async def start_scrape(request: Request, req: ScrapeRequest, background_tasks: BackgroundTasks,
                       pipeline: CrawlPipeline = Depends(get_pipeline)):
    """Create a job and crawl in the background. Returns as soon as the job exists."""
    try:
        target = CrawlTarget(req.docSlug.strip())
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    job = await pipeline.create_job(target)
    background_tasks.add_task(run_job, pipeline, target, job)
    return {"success": True, "jobId": job.id, "status": job.status.value}


@app.get("/api/jobs")
@limiter.limit("60/minute")
async def list_jobs(
    request: Request,
    status: Optional[str] = None,
    limit: int = Query(50, ge=1, le=200),
    db: Database = Depends(get_db),
):
    return {"success": True, "jobs": [j.to_dict() for j in db.list_jobs(limit=limit, status=status)]}


@app.get("/api/jobs/{job_id}")
@limiter.limit("120/minute")
async def get_job(request: Request, job_id: str, db: Database = Depends(get_db)):
    return {"success": True, "job": job_or_404(db, job_id).to_dict()}


@app.post("/api/jobs/{job_id}/cancel", dependencies=[Depends(require_secret)])
@limiter.limit("20/minute")
async def cancel_job(request: Request, job_id: str, db: Database = Depends(get_db)):
    """Ask a running crawl to stop after its current batch."""
    job = job_or_404(db, job_id)
    if job.status.terminal:
        raise HTTPException(status_code=409, detail=f"Job already {job.status.value}")
    db.request_cancel(job_id)
    return {"success": True, "jobId": job_id, "cancelRequested": True}


@app.get("/api/content")
@limiter.limit("120/minute")
async def get_content(request: Request, url: str, db: Database = Depends(get_db)):
    """One stored page, looked up by its source URL."""
    page = db.get_content(url)
    if page is None:
        raise HTTPException(status_code=404, detail="Page not stored")
    return {"success": True, "page": page}


@app.get("/api/stats")
async def stats(db: Database = Depends(get_db)):
    """Stored content and job statistics."""
    docs = {}
    for slug, pages, words, revisions in db.get_stats():
        source = db.get_source(CrawlTarget(slug).source_name) or {}
        docs[slug] = {
            "pages": pages,
            "words": words,
            "revisions": revisions,
            "last_scraped_at": source.get("last_scraped_at"),
            "last_job_id": source.get("last_job_id"),
        }
    jobs = {
        status: {"jobs": count, "processed": processed, "failed": failed}
        for status, count, processed, failed in db.get_job_stats()
    }
    return {
        "total_pages": sum(d["pages"] for d in docs.values()),
        "docs": docs,
        "jobs": jobs,
    }
