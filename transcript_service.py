"""
Transcript orchestration.

Pipeline for one video:
1. Availability pre-check (explicit "no captions" signals in the watch page)
2. Direct HTML strategy
3. Internal API (youtubei) strategy
4. Official Data API strategy, only when an API key is configured

Strategies run strictly in order inside one async flow and share one
YouTubeSession, so cookies and the watch-page cache carry over. The first
non-empty result wins. When every strategy fails the last error decides
between CaptionsUnavailableError and TranscriptFetchError.
"""

import re
import uuid
from typing import Awaitable, Callable, List, Optional, Tuple

from availability_check import looks_unavailable
from data_api_service import fetch_via_data_api
from log_events import StageTimer, classify_error_type, evt
from logging_setup import clear_job_ctx, get_logger, set_job_ctx
from transcript_config import TranscriptConfig, get_transcript_config
from transcript_errors import CaptionsUnavailableError, ExtractionError, TranscriptFetchError
from transcript_models import TranscriptLine
from watch_page_service import fetch_direct
from youtube_session import YouTubeSession
from youtubei_service import fetch_via_internal_api

logger = get_logger(__name__)

VIDEO_ID_RE = re.compile(r'^[A-Za-z0-9_-]{11}$')

# Substrings (lowercase) of a final error message that mean the video has no captions
CAPTIONS_UNAVAILABLE_MARKERS = (
    "no captions",
    "no caption tracks",
    "transcript tracks unavailable",
    "disabled",
    "captions not found",
    "no tracks",
)

Strategy = Callable[[YouTubeSession, str], Awaitable[Optional[List[TranscriptLine]]]]


def is_valid_video_id(video_id: str) -> bool:
    return isinstance(video_id, str) and bool(VIDEO_ID_RE.match(video_id))


def indicates_captions_unavailable(message: str) -> bool:
    lowered = (message or "").lower()
    return any(marker in lowered for marker in CAPTIONS_UNAVAILABLE_MARKERS)


class TranscriptService:
    def __init__(self, config: Optional[TranscriptConfig] = None,
                 session: Optional[YouTubeSession] = None):
        """
        Args:
            config: Pipeline configuration; the process-wide one when omitted
            session: Shared session to use; otherwise one is created and
                closed per fetch
        """
        self.config = config or get_transcript_config()
        self.session = session

    def strategies(self) -> List[Tuple[str, Strategy]]:
        """Enabled strategies in their fixed order."""
        strategies: List[Tuple[str, Strategy]] = []
        if self.config.enable_direct:
            strategies.append(("direct", fetch_direct))
        if self.config.enable_internal_api:
            strategies.append(("internal_api", fetch_via_internal_api))
        if self.config.data_api_enabled:
            strategies.append(("data_api", self._fetch_data_api))
        return strategies

    async def _fetch_data_api(self, session: YouTubeSession, video_id: str) -> Optional[List[TranscriptLine]]:
        return await fetch_via_data_api(video_id, self.config.youtube_api_key, self.config.preferred_language)

    async def fetch_transcript(self, video_id: str, job_id: Optional[str] = None) -> List[TranscriptLine]:
        """
        Fetch the caption cues of one video.

        Returns:
            Non-empty list of cues in source order

        Raises:
            ValueError: malformed video id
            CaptionsUnavailableError: the video has no usable captions
            TranscriptFetchError: every strategy failed for another reason
        """
        if not is_valid_video_id(video_id):
            raise ValueError(f"Invalid YouTube video id: {video_id!r}")

        set_job_ctx(job_id=job_id or f"j-{uuid.uuid4().hex[:12]}", video_id=video_id)
        try:
            if self.session is not None:
                return await self._execute_pipeline(self.session, video_id)
            async with YouTubeSession(self.config) as session:
                return await self._execute_pipeline(session, video_id)
        finally:
            clear_job_ctx()

    async def _execute_pipeline(self, session: YouTubeSession, video_id: str) -> List[TranscriptLine]:
        strategies = self.strategies()
        evt("transcript_start", video_id=video_id, strategies=",".join(name for name, _ in strategies))

        if self.config.enable_precheck:
            with StageTimer("precheck", video_id=video_id) as timer:
                unavailable = await looks_unavailable(session, video_id)
                timer.mark("unavailable" if unavailable else "available")
            if unavailable:
                evt("transcript_result", video_id=video_id, outcome="captions_unavailable", detail="precheck")
                raise CaptionsUnavailableError(video_id=video_id)

        last_error: Optional[BaseException] = None
        for name, strategy in strategies:
            try:
                with StageTimer("strategy", strategy=name, video_id=video_id) as timer:
                    lines = await strategy(session, video_id)
                    if not lines:
                        timer.mark("empty")
            except Exception as e:
                # Strategy boundary: any failure moves on to the next strategy
                evt("strategy_failed", strategy=name, video_id=video_id,
                    error_type=classify_error_type(e), error_class=type(e).__name__, detail=str(e)[:200])
                last_error = e
                continue

            if lines:
                evt("transcript_result", video_id=video_id, outcome="success", strategy=name, lines=len(lines))
                return list(lines)

            evt("strategy_empty", strategy=name, video_id=video_id)
            last_error = ExtractionError(f"{name} strategy found no caption tracks", step=name)

        if last_error is None:
            last_error = ExtractionError("No transcript strategy is enabled", step="orchestrator")

        message = str(last_error)
        if indicates_captions_unavailable(message):
            evt("transcript_result", video_id=video_id, outcome="captions_unavailable", detail=message[:200])
            raise CaptionsUnavailableError(video_id=video_id) from last_error

        evt("transcript_result", video_id=video_id, outcome="failed",
            error_type=classify_error_type(last_error), detail=message[:200])
        raise TranscriptFetchError(f"Failed to fetch transcript: {message}",
                                   cause=last_error, video_id=video_id) from last_error


async def fetch_transcript(video_id: str, session: Optional[YouTubeSession] = None,
                           config: Optional[TranscriptConfig] = None) -> List[TranscriptLine]:
    """Fetch a video's caption cues; see TranscriptService.fetch_transcript."""
    return await TranscriptService(config=config, session=session).fetch_transcript(video_id)
