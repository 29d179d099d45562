"""
Internal-API (youtubei) strategy.

Reads the Innertube API key and client version from the watch page, asks
``youtubei/v1/player`` for a fresh player response and takes its caption
tracks. When that avenue yields nothing, the watch page already in hand is
given to the Caption Locator instead.
"""

import re
from typing import Any, Dict, List, Optional, Tuple

from caption_locator import locate, locate_in_player_response, select_track
from log_events import classify_error_type, evt
from logging_setup import get_logger
from timedtext_service import fetch_caption_lines
from transcript_errors import PlatformRequestError
from transcript_models import TranscriptLine
from youtube_session import YouTubeSession, raise_for_platform_status

logger = get_logger(__name__)

INNERTUBE_PLAYER_URL = "https://www.youtube.com/youtubei/v1/player"
INNERTUBE_CLIENT_NAME = "WEB"
INNERTUBE_CLIENT_NAME_ID = "1"

_API_KEY_PATTERNS = [
    re.compile(r'"INNERTUBE_API_KEY":\s*"([^"]+)"'),
    re.compile(r'"innertubeApiKey":\s*"([^"]+)"'),
]
_CLIENT_VERSION_PATTERNS = [
    re.compile(r'"INNERTUBE_CLIENT_VERSION":\s*"([^"]+)"'),
    re.compile(r'"clientVersion":\s*"([^"]+)"'),
]


def _first_group(patterns: List[re.Pattern], html: str) -> Optional[str]:
    for pattern in patterns:
        match = pattern.search(html)
        if match:
            return match.group(1)
    return None


def extract_innertube_config(html: str) -> Tuple[Optional[str], Optional[str]]:
    """Return (api_key, client_version) from the watch page; either may be None."""
    html = html or ""
    return _first_group(_API_KEY_PATTERNS, html), _first_group(_CLIENT_VERSION_PATTERNS, html)


def build_player_payload(video_id: str, client_version: str, hl: str = "en") -> Dict[str, Any]:
    return {
        "context": {
            "client": {
                "clientName": INNERTUBE_CLIENT_NAME,
                "clientVersion": client_version,
                "hl": hl,
            }
        },
        "videoId": video_id,
    }


async def request_player_response(session: YouTubeSession, video_id: str,
                                  api_key: str, client_version: str) -> Optional[Dict[str, Any]]:
    """
    POST to the player endpoint.

    Returns the parsed JSON object, or None when the request fails or the
    body is not a JSON object.
    """
    url = f"{INNERTUBE_PLAYER_URL}?key={api_key}"
    headers = {
        "X-YouTube-Client-Name": INNERTUBE_CLIENT_NAME_ID,
        "X-YouTube-Client-Version": client_version,
    }

    try:
        response = await session.post(
            url, kind="api", video_id=video_id, headers=headers,
            json=build_player_payload(video_id, client_version),
            timeout=session.config.page_timeout, step="innertube_player",
        )
        raise_for_platform_status(response, "innertube player")
        data = response.json()
    except PlatformRequestError as e:
        evt("innertube_player_failed", video_id=video_id, error_type=classify_error_type(e),
            status_code=e.status_code, error=str(e)[:120])
        return None
    except ValueError as e:
        evt("innertube_player_invalid_json", video_id=video_id, error=str(e)[:120])
        return None

    if not isinstance(data, dict):
        return None

    playability = (data.get("playabilityStatus") or {}).get("status")
    if playability and playability != "OK":
        logger.info(f"[{video_id}] Innertube playability status: {playability}")
    return data


async def fetch_via_internal_api(session: YouTubeSession, video_id: str) -> Optional[List[TranscriptLine]]:
    """
    Internal-API strategy.

    Returns:
        Parsed cues, or None when no caption track could be found by any avenue.
        Errors from the caption file fetch propagate so the cause is kept.
    """
    await session.ensure_session()
    html = await session.fetch_watch_page(video_id)

    tracks = None
    api_key, client_version = extract_innertube_config(html)
    if api_key and client_version:
        data = await request_player_response(session, video_id, api_key, client_version)
        tracks = locate_in_player_response(data)
        if tracks:
            evt("innertube_tracks_found", video_id=video_id, tracks_count=len(tracks))
    else:
        evt("innertube_config_missing", video_id=video_id,
            has_api_key=bool(api_key), has_client_version=bool(client_version))

    if not tracks:
        tracks = locate(html, video_id)
        if tracks:
            evt("innertube_locator_fallback", video_id=video_id, tracks_count=len(tracks))

    if not tracks:
        evt("innertube_exhausted", video_id=video_id)
        return None

    track = select_track(tracks, session.config.preferred_language)
    logger.info(f"[{video_id}] Internal API strategy using {track.language_code or 'unknown'} track "
                f"(asr={track.is_asr})")
    return await fetch_caption_lines(session, track, video_id)
