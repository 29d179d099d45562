"""
Event helper functions for structured JSON logging.

Consistent event emission, stage timing and URL masking for the
transcript extraction pipeline.
"""

import logging
import time
from typing import Optional
from urllib.parse import parse_qs, urlencode, urlparse, urlunparse

logger = logging.getLogger("transcript.events")

SENSITIVE_QUERY_PARAMS = {'key', 'token', 'auth', 'session', 'sig', 'signature'}


def evt(event: str, **fields) -> None:
    """
    Emit a structured event with consistent field naming.

    Args:
        event: The event type/name
        **fields: Additional fields to include in the event

    Example:
        evt("strategy_failed", strategy="direct", error_type="RequestTimeoutError")
    """
    event_data = {"event": event}
    event_data.update(fields)
    logger.info("", extra=event_data)


def mask_url_for_logging(url: str) -> str:
    """Mask sensitive query parameters (API keys, signatures) in URLs for logging."""
    try:
        parsed = urlparse(url)
        if not parsed.query:
            return url
        params = parse_qs(parsed.query, keep_blank_values=True)
        masked_params = {
            key: ['***MASKED***'] * len(values) if key.lower() in SENSITIVE_QUERY_PARAMS else values
            for key, values in params.items()
        }
        return urlunparse(parsed._replace(query=urlencode(masked_params, doseq=True)))
    except ValueError:
        return f"{url.split('?')[0]}?***MASKED_QUERY***" if '?' in url else url


class StageTimer:
    """
    Context manager for automatic stage timing with structured logging.

    Emits stage_start on entry and stage_result on exit with the duration
    in milliseconds. Exceptions are reported and propagated.

    Example:
        with StageTimer("strategy", strategy="direct"):
            await fetch_direct(session, video_id)
    """

    def __init__(self, stage: str, **context_fields):
        self.stage = stage
        self.context_fields = context_fields
        self.start_time: Optional[float] = None
        self.outcome: Optional[str] = None

    def mark(self, outcome: str) -> None:
        """Override the success outcome (e.g. "empty" when a stage returned nothing)."""
        self.outcome = outcome

    def __enter__(self):
        self.start_time = time.monotonic()
        evt("stage_start", stage=self.stage, **self.context_fields)
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        duration_ms = int((time.monotonic() - (self.start_time or time.monotonic())) * 1000)

        event_fields = {
            "stage": self.stage,
            "outcome": "error" if exc_type is not None else (self.outcome or "success"),
            "dur_ms": duration_ms,
            **self.context_fields,
        }
        if exc_type is not None:
            event_fields["detail"] = f"{exc_type.__name__}: {exc_value}"

        evt("stage_result", **event_fields)
        return False


def classify_error_type(exception: BaseException) -> str:
    """
    Classify an exception into an error type for structured logging.

    Timeouts are kept apart from other network failures so they can be
    queried on their own.
    """
    exception_name = type(exception).__name__.lower()
    exception_str = str(exception).lower()

    if "timeout" in exception_name or "timed out" in exception_str:
        return "timeout"

    status_code = getattr(exception, "status_code", None)
    if status_code is not None:
        if status_code == 429:
            return "rate_limited"
        return "http_error"

    if any(term in exception_str for term in ["connection", "network", "dns", "ssl"]):
        return "network_error"

    if any(term in exception_str for term in ["no captions", "no caption tracks", "disabled"]):
        return "captions_unavailable"

    if "parse" in exception_str or "extract" in exception_name:
        return "extraction_error"

    return "unknown_error"
