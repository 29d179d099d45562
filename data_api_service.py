import asyncio
import logging
from typing import Any, Dict, List, Optional

from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from timedtext_service import parse_caption_file, parse_srt_or_vtt
from transcript_errors import ExtractionError
from transcript_models import TranscriptLine

DOWNLOAD_FORMATS = ("srt", "vtt", "ttml")


class DataApiCaptionService:
    """Caption listing and download through the official YouTube Data API (API key auth)."""

    def __init__(self, api_key: str, preferred_language: str = "en"):
        self.api_key = api_key
        self.preferred_language = preferred_language
        self.youtube = self._build_service()

    def _build_service(self):
        """Build the Data API client for a developer key"""
        return build('youtube', 'v3', developerKey=self.api_key, cache_discovery=False)

    def list_caption_tracks(self, video_id: str) -> List[Dict[str, Any]]:
        """
        List caption tracks of a video.

        Raises:
            ExtractionError: the API refused the request or listed no tracks
        """
        try:
            response = self.youtube.captions().list(part='snippet', videoId=video_id).execute()
        except HttpError as e:
            status = int(getattr(e.resp, 'status', 0) or 0)
            logging.warning(f"[{video_id}] Data API caption list failed with status {status}")
            if status == 403:
                raise ExtractionError("Captions disabled or private (API 403)", step="data_api_list")
            if status == 404:
                raise ExtractionError("Video or captions not found (API 404)", step="data_api_list")
            raise ExtractionError(f"Failed to list captions via API: HTTP {status}", step="data_api_list")

        items = response.get('items', [])
        if not items:
            raise ExtractionError("No caption tracks found via API", step="data_api_list")
        return items

    def pick_track(self, items: List[Dict[str, Any]]) -> Dict[str, Any]:
        """Preferred language first, else the first listed track"""
        for item in items:
            if item.get('snippet', {}).get('language') == self.preferred_language:
                return item
        return items[0]

    def download_caption(self, caption_id: str, video_id: str) -> Optional[List[TranscriptLine]]:
        """Try each download format in turn; None when none produced cues"""
        for fmt in DOWNLOAD_FORMATS:
            try:
                body = self.youtube.captions().download(id=caption_id, tfmt=fmt).execute()
            except HttpError as e:
                logging.warning(f"[{video_id}] Data API download failed for format {fmt}: "
                                f"status {getattr(e.resp, 'status', 'unknown')}")
                continue

            if isinstance(body, bytes):
                body = body.decode('utf-8', errors='replace')

            lines = parse_caption_file(body, video_id) if fmt == 'ttml' else parse_srt_or_vtt(body)
            if lines:
                logging.info(f"[{video_id}] Data API caption downloaded as {fmt}: {len(lines)} lines")
                return lines
            logging.warning(f"[{video_id}] Data API {fmt} download held no parsable cues")
        return None

    def fetch_lines(self, video_id: str) -> List[TranscriptLine]:
        items = self.list_caption_tracks(video_id)
        track = self.pick_track(items)
        caption_id = track.get('id')
        language = track.get('snippet', {}).get('language', 'unknown')
        logging.info(f"[{video_id}] Data API caption track {caption_id} ({language})")

        lines = self.download_caption(caption_id, video_id)
        if not lines:
            raise ExtractionError("Failed to download caption track using any format", step="data_api_download")
        return lines


async def fetch_via_data_api(video_id: str, api_key: Optional[str], preferred_language: str = "en") -> Optional[List[TranscriptLine]]:
    """
    Official Data API strategy. Returns None when no key is configured.

    The client library is blocking, so it runs in a worker thread.
    """
    if not api_key:
        logging.debug(f"[{video_id}] YouTube API key missing, skipping Data API strategy")
        return None

    def _fetch() -> List[TranscriptLine]:
        return DataApiCaptionService(api_key, preferred_language).fetch_lines(video_id)

    return await asyncio.to_thread(_fetch)
