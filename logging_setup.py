"""
Core logging infrastructure for the transcript extraction service.

Provides single-line JSON logging with per-request correlation context,
rate limiting, and third-party library noise suppression.
"""

import json
import logging
import threading
import time
from contextvars import ContextVar
from collections import defaultdict
from datetime import datetime, timezone
from typing import Dict, Optional, Set


# Correlation context; a ContextVar so concurrent asyncio tasks keep their own ids
_job_ctx: ContextVar[Optional[Dict[str, str]]] = ContextVar("transcript_job_ctx", default=None)

# Fields emitted in a fixed order ahead of any extras
_ORDERED_FIELDS = ('stage', 'event', 'outcome', 'dur_ms', 'detail')
_CONTEXT_FIELDS = ('strategy', 'step', 'attempt', 'cookie_source')

_RESERVED_ATTRS = {
    'name', 'msg', 'args', 'levelname', 'levelno', 'pathname', 'filename',
    'module', 'lineno', 'funcName', 'created', 'msecs', 'relativeCreated',
    'thread', 'threadName', 'processName', 'process', 'exc_info', 'exc_text',
    'stack_info', 'taskName', 'message', 'asctime',
}


def set_job_ctx(job_id: str = None, video_id: str = None):
    """
    Set correlation context for the current task.

    Args:
        job_id: Identifier of one fetch_transcript call
        video_id: YouTube video ID being processed
    """
    context = dict(_job_ctx.get() or {})
    if job_id is not None:
        context['job_id'] = job_id
    if video_id is not None:
        context['video_id'] = video_id
    _job_ctx.set(context)


def clear_job_ctx():
    """Clear correlation context for the current task."""
    _job_ctx.set({})


def get_job_ctx() -> Dict[str, str]:
    """Get a copy of the current correlation context."""
    return dict(_job_ctx.get() or {})


class JsonFormatter(logging.Formatter):
    """
    JSON formatter with standardized field order and context injection.

    Produces single-line JSON with stable schema:
    ts, lvl, job_id, video_id, stage, event, outcome, dur_ms, detail
    """

    def format(self, record: logging.LogRecord) -> str:
        try:
            dt = datetime.fromtimestamp(record.created, tz=timezone.utc)
            log_data = {
                'ts': dt.strftime('%Y-%m-%dT%H:%M:%S') + f'.{dt.microsecond // 1000:03d}Z',
                'lvl': record.levelname,
            }

            context = get_job_ctx()
            for key in ('job_id', 'video_id'):
                if key in context:
                    log_data[key] = context[key]

            for field in _ORDERED_FIELDS + _CONTEXT_FIELDS:
                value = getattr(record, field, None)
                if value is not None:
                    log_data[field] = value

            # Extras passed through logger.info(extra=...)
            for attr_name, attr_value in record.__dict__.items():
                if (attr_name.startswith('_') or attr_name in _RESERVED_ATTRS
                        or attr_name in log_data or attr_value is None):
                    continue
                if attr_name in ('job_id', 'video_id'):
                    log_data.setdefault(attr_name, attr_value)
                    continue
                log_data[attr_name] = attr_value

            if 'detail' not in log_data and record.getMessage():
                log_data['detail'] = record.getMessage()

            if record.exc_info:
                log_data['exc'] = self.formatException(record.exc_info)

            return json.dumps(log_data, separators=(',', ':'), ensure_ascii=False, default=str)

        except Exception:
            return json.dumps({
                'ts': datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z'),
                'lvl': record.levelname,
                'detail': str(record.msg),
            })


class RateLimitFilter(logging.Filter):
    """
    Rate limiting filter to prevent log spam.

    Limits messages to `per_key` per key per sliding window and marks the
    first suppressed record so the gap is visible.
    """

    def __init__(self, per_key: int = 5, window_sec: int = 60):
        super().__init__()
        self.per_key = per_key
        self.window_sec = window_sec
        self.counts: Dict[str, list] = defaultdict(list)
        self.suppressed: Set[str] = set()
        self._lock = threading.Lock()

    def _get_message_key(self, record: logging.LogRecord) -> str:
        # Structured events share an empty message, so key them by event name
        event = getattr(record, 'event', None)
        if event:
            return f"{record.levelname}:evt:{event}:{getattr(record, 'video_id', '')}"
        return f"{record.levelname}:{record.getMessage()[:100]}"

    def filter(self, record: logging.LogRecord) -> bool:
        key = self._get_message_key(record)
        now = time.time()

        with self._lock:
            cutoff = now - self.window_sec
            self.counts[key] = [ts for ts in self.counts[key] if ts > cutoff]

            if len(self.counts[key]) < self.per_key:
                self.counts[key].append(now)
                self.suppressed.discard(key)
                return True

            if key not in self.suppressed:
                self.suppressed.add(key)
                record.msg = f"{record.getMessage()} [suppressed]"
                record.args = ()
                return True

            return False


def configure_logging(log_level: str = "INFO", use_json: bool = True) -> logging.Logger:
    """
    Configure application logging with JSON formatting and noise suppression.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        use_json: Whether to use JSON formatting (True) or plain text (False)

    Returns:
        Configured root logger
    """
    root_logger = logging.getLogger()

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    handler = logging.StreamHandler()
    if use_json:
        handler.setFormatter(JsonFormatter())
        handler.addFilter(RateLimitFilter())
    else:
        handler.setFormatter(logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        ))
    root_logger.addHandler(handler)

    _suppress_library_noise()
    return root_logger


def _suppress_library_noise():
    """Suppress verbose logging from third-party libraries."""
    library_levels = {
        'httpx': logging.WARNING,
        'httpcore': logging.WARNING,
        'urllib3': logging.WARNING,
        'asyncio': logging.WARNING,
        'googleapiclient': logging.WARNING,
        'googleapiclient.discovery_cache': logging.ERROR,
    }

    for library, level in library_levels.items():
        logging.getLogger(library).setLevel(level)


def get_logger(name: str = None) -> logging.Logger:
    """Get a logger instance (defaults to the root logger)."""
    return logging.getLogger(name)
