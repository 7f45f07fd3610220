"""Content fingerprinting and new/changed/unchanged decisions."""

import asyncio
import hashlib
import logging

from .db import Database
from .models import DedupDecision

logger = logging.getLogger("devdocs_scraper")


def fingerprint(text: str) -> str:
    """SHA-256 of the normalized body text. Code blocks and metadata are not included."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


class Deduplicator:
    def __init__(self, db: Database):
        self.db = db

    async def decide(self, url: str, content_hash: str) -> DedupDecision:
        previous = await asyncio.to_thread(self.db.lookup, url)
        if previous is None:
            return DedupDecision.NEW
        if previous == content_hash:
            return DedupDecision.UNCHANGED
        logger.debug(f"Content changed: {url} ({previous[:12]} -> {content_hash[:12]})")
        return DedupDecision.CHANGED
