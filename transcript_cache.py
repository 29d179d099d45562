import time
import logging
from dataclasses import dataclass
from typing import Callable, Dict, Optional


@dataclass
class CachedPage:
    html: str
    fetched_at: float


class HtmlCache:
    """In-memory watch-page cache with a short TTL, keyed by video id.

    Only exists so that one orchestration run does not download the same
    watch page once per strategy.
    """

    def __init__(self, ttl_seconds: float = 60.0, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, CachedPage] = {}

    def get(self, video_id: str) -> Optional[str]:
        """Return cached HTML if present and not expired"""
        entry = self._entries.get(video_id)
        if entry is None:
            return None

        if self._clock() - entry.fetched_at >= self.ttl_seconds:
            logging.debug(f"HTML cache entry expired for video {video_id}")
            del self._entries[video_id]
            return None

        logging.debug(f"HTML cache hit for video {video_id}")
        return entry.html

    def set(self, video_id: str, html: str) -> None:
        self._entries[video_id] = CachedPage(html=html, fetched_at=self._clock())

    def invalidate(self, video_id: str) -> bool:
        """Drop an entry, e.g. after its HTML failed to parse; True if one was removed"""
        removed = self._entries.pop(video_id, None) is not None
        if removed:
            logging.debug(f"HTML cache entry invalidated for video {video_id}")
        return removed

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
