from __future__ import annotations


class ScraperError(Exception):
    """Base class for every error raised by the scraper package."""


class ExtractionError(ScraperError):
    """A single job could not be extracted. Always recoverable."""


class InvalidJobError(ExtractionError):
    """The job key cannot be submitted to the target form."""


class PageNotLoadedError(ExtractionError):
    """The result page came back without its data fields (likely throttled)."""


class SessionError(ScraperError):
    """A browser session became unusable and must be recreated."""


class PoolStartupError(ScraperError):
    """No browser session could be created at pool start."""


class JobSourceError(ScraperError):
    """The remote job queue could not be reached or rejected a request."""


class BatchError(ScraperError):
    """Batch accounting was used out of order."""
