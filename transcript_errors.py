"""
Error taxonomy for transcript extraction.

Only CaptionsUnavailableError and TranscriptFetchError ever reach callers of
fetch_transcript(); the rest are raised inside a strategy and handled by the
orchestrator.
"""

from typing import Optional


class TranscriptError(Exception):
    """Base class for all transcript extraction errors."""


class CaptionsUnavailableError(TranscriptError):
    """The video has no usable captions (confirmed absence, not a fetch fault)."""

    def __init__(self, message: str = "This video doesn't have captions or has disabled captions",
                 video_id: Optional[str] = None):
        super().__init__(message)
        self.video_id = video_id


class TranscriptFetchError(TranscriptError):
    """Every strategy failed for reasons other than confirmed absence."""

    def __init__(self, message: str, cause: Optional[BaseException] = None,
                 video_id: Optional[str] = None):
        super().__init__(message)
        self.cause = cause
        self.video_id = video_id


class ExtractionError(TranscriptError):
    """A single strategy could not locate or parse captions."""

    def __init__(self, message: str, step: Optional[str] = None):
        super().__init__(message)
        self.step = step


class PlatformRequestError(TranscriptError):
    """A request to the platform failed (non-2xx status or transport error)."""

    def __init__(self, message: str, status_code: Optional[int] = None,
                 url: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.url = url


class RequestTimeoutError(PlatformRequestError):
    """A request to the platform exceeded its timeout."""
