"""Exceptions that abort a resolution run."""

from __future__ import annotations

from typing import Optional

DETECTION_REMEDIATION = (
    "Could not find the personalization configuration URL. Please make sure:\n"
    "1. The page has fully loaded\n"
    "2. The product uses a supported personalization vendor\n"
    "3. Try reloading the page and running the detection again"
)


class CrawlerError(RuntimeError):
    """Base class for failures surfaced to the user as a terminal error."""


class DetectionFailure(CrawlerError):
    """No configuration endpoint could be located for the page."""

    def __init__(self, page_url: str, message: str = DETECTION_REMEDIATION) -> None:
        super().__init__(message)
        self.page_url = page_url


class FetchFailure(CrawlerError):
    """The configuration endpoint could not be fetched or decoded."""

    def __init__(
        self,
        url: str,
        detail: str,
        status: Optional[int] = None,
    ) -> None:
        if status is not None:
            message = f"Failed to fetch configuration (HTTP {status}): {detail}"
        else:
            message = f"Failed to fetch configuration: {detail}"
        super().__init__(message)
        self.url = url
        self.status = status
        self.detail = detail
