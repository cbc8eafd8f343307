"""Error taxonomy and the transient/non-transient classifier.

Only NotStartedError and BrowserLaunchError are fatal to the process.
Everything raised while processing an item is converted into a failed item.
"""

from enum import Enum


class PriceHoundError(Exception):
    """Base class for all worker errors."""


class NotStartedError(PriceHoundError):
    """A page was requested from a browser session that is not running."""


class BrowserLaunchError(PriceHoundError):
    """The browser process could not be launched."""


class TransientBrowserError(PriceHoundError):
    """The browser session itself failed; retriable after a restart."""


class ExtractionFailure(PriceHoundError):
    """The search ran but produced no usable listings."""


class QueueIOError(PriceHoundError):
    """The job queue store could not be reached or rejected a call."""


class ErrorKind(str, Enum):
    TRANSIENT = "transient"
    NON_TRANSIENT = "non_transient"


SEARCH_UI_NOT_FOUND = "search input not found"

# Substrings that identify a failure of the browser session rather than of
# the search itself. Matched case-insensitively.
TRANSIENT_MARKERS: tuple[str, ...] = (
    SEARCH_UI_NOT_FOUND,
    "browser not started",
    "target closed",
    "target page, context or browser has been closed",
    "session closed",
    "connection closed",
    "browser has been closed",
    "browser closed",
    "protocol error",
)


def classify_error(error: str | BaseException) -> ErrorKind:
    """Classify a search failure as transient (restart + retry) or not."""
    if isinstance(error, TransientBrowserError):
        return ErrorKind.TRANSIENT
    if isinstance(error, ExtractionFailure | NotStartedError | BrowserLaunchError):
        return ErrorKind.NON_TRANSIENT
    message = str(error).lower()
    if any(marker in message for marker in TRANSIENT_MARKERS):
        return ErrorKind.TRANSIENT
    return ErrorKind.NON_TRANSIENT
