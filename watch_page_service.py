"""Direct HTML strategy: locate caption tracks in the watch page itself."""

from typing import List

from caption_locator import locate, select_track
from log_events import evt
from logging_setup import get_logger
from timedtext_service import fetch_caption_lines
from transcript_errors import ExtractionError
from transcript_models import TranscriptLine
from youtube_session import YouTubeSession

logger = get_logger(__name__)


async def fetch_direct(session: YouTubeSession, video_id: str) -> List[TranscriptLine]:
    """
    Fetch the watch page, locate a caption track and parse its file.

    Raises:
        ExtractionError: no caption data in the page, or nothing parsed
        PlatformRequestError: the page or caption request failed
    """
    await session.ensure_session()
    html = await session.fetch_watch_page(video_id)

    tracks = locate(html, video_id)
    if not tracks:
        # A page without tracks may be a degraded variant; do not serve it again
        session.html_cache.invalidate(video_id)
        evt("direct_no_caption_data", video_id=video_id, page_length=len(html))
        raise ExtractionError("No captions data found in video page", step="locate")

    track = select_track(tracks, session.config.preferred_language)
    logger.info(f"[{video_id}] Direct strategy using {track.language_code or 'unknown'} track "
                f"(asr={track.is_asr}, {len(tracks)} available)")

    return await fetch_caption_lines(session, track, video_id)
