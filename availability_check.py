"""
Availability pre-check: cheap look at the watch page for explicit
"no captions" signals before any strategy runs.
"""

import re

from log_events import classify_error_type, evt
from logging_setup import get_logger
from transcript_errors import TranscriptError
from youtube_session import YouTubeSession

logger = get_logger(__name__)

NEGATIVE_SIGNALS = {
    "empty_caption_tracks": re.compile(r'"captionTracks":\s*\[\s*\]'),
    "not_crawlable": re.compile(r'"isCrawlable":\s*false'),
    "subtitles_button_hidden": re.compile(r'"hideSubtitlesButton":\s*true'),
}

# Any caption track entry anywhere in the page overrides every negative signal
_TRACK_ENTRY_RE = re.compile(r'\\?"captionTracks\\?":\s*\[\s*\{|/api/timedtext\?')


def find_negative_signals(html: str) -> list:
    """Names of the negative signals present; empty when the page carries caption tracks."""
    if not html or _TRACK_ENTRY_RE.search(html):
        return []
    return [name for name, pattern in NEGATIVE_SIGNALS.items() if pattern.search(html)]


async def looks_unavailable(session: YouTubeSession, video_id: str) -> bool:
    """
    True only when the watch page explicitly says the video has no captions.

    Fetch failures are inconclusive and return False. The fetched page is
    left in the session's HTML cache for the strategies.
    """
    try:
        await session.ensure_session()
        html = await session.fetch_watch_page(video_id)
    except TranscriptError as e:
        evt("precheck_inconclusive", video_id=video_id, error_type=classify_error_type(e), error=str(e)[:120])
        return False

    signals = find_negative_signals(html)
    if signals:
        evt("precheck_unavailable", video_id=video_id, signals=",".join(signals))
        return True

    logger.debug(f"[{video_id}] Pre-check found no negative caption signals")
    return False
