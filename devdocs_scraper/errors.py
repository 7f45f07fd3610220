"""Exception hierarchy for the crawl pipeline."""

from typing import Optional


class ScraperError(Exception):
    """Base class for all scraper errors."""


class FetchError(ScraperError):
    """A page or manifest could not be retrieved."""

    attempts = 1

    def __init__(self, url: str, message: str):
        super().__init__(f"{message} ({url})")
        self.url = url

    @property
    def retryable(self) -> bool:
        return True


class FetchTimeout(FetchError):
    pass


class NetworkFailure(FetchError):
    pass


class HttpStatusError(FetchError):
    def __init__(self, url: str, status_code: int):
        super().__init__(url, f"HTTP {status_code}")
        self.status_code = status_code

    @property
    def retryable(self) -> bool:
        # Client errors other than rate limiting will not go away on retry
        return self.status_code >= 500 or self.status_code == 429


class ManifestUnavailable(ScraperError):
    """The documentation index could not be fetched or parsed. Fatal to a run."""

    def __init__(self, slug: str, reason: str, cause: Optional[Exception] = None):
        super().__init__(f"ManifestUnavailable: {slug}: {reason}")
        self.slug = slug
        self.cause = cause


class PersistenceFailure(ScraperError):
    """The content store rejected a lookup or write."""


class ContractViolation(ScraperError):
    """An internal invariant was broken, e.g. recording progress on a job that is not running."""
