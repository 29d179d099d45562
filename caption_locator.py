"""
Caption Locator - find caption track descriptors inside watch-page HTML.

The page embeds the player response in several shapes depending on the
client, experiment bucket and escaping layer it was served through, so the
locator runs an ordered list of tagged patterns and takes the first one
that yields at least one usable track.

Every hit is normalized to the player shape:
    {"playerCaptionsTracklistRenderer": {"captionTracks": [...]}}

A pattern that does not match is expected and silent. A pattern that
matches but cannot be parsed is logged as caption_locator_parse_failed.
"""

import json
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import parse_qs, urljoin, urlparse

from log_events import evt
from logging_setup import get_logger
from transcript_models import CaptionTrack

logger = get_logger(__name__)

YOUTUBE_BASE = "https://www.youtube.com"

_PLAYER_RESPONSE_RE = re.compile(r'ytInitialPlayerResponse"?\]?\s*=\s*(?=\{)')
_CAPTIONS_OBJECT_RE = re.compile(r'\\?"captions\\?":\s*(\{.*?\\?"captionTracks\\?":.*?\}),\s*\\?"videoDetails\\?"')
_CAPTION_TRACKS_RE = re.compile(r'\\?"captionTracks\\?":\s*(?=\[)')
_BASE_URL_RE = re.compile(r'"baseUrl":"(https://www\.youtube\.com/api/timedtext[^"]*)"')
_TIMEDTEXT_SCAN_RE = re.compile(
    r'((?:https?:(?:\\?/){2}www\.youtube\.com)?(?:\\?/)api(?:\\?/)timedtext\?'
    r'[^"\'\s<>\\]*(?:\\u0026[^"\'\s<>\\]*)*)'
)


@dataclass(frozen=True)
class LocatorPattern:
    """One tagged extraction pattern; ``match`` returns the normalized renderer or None."""
    name: str
    match: Callable[[str], Optional[Dict[str, Any]]]


# --- parsing helpers ---

def _balanced_fragment(text: str, start: int) -> Optional[str]:
    """
    Return the bracket-balanced JSON fragment opening at ``text[start]``.

    String-aware for real quotes; escaped characters are skipped so that an
    escaped payload (``\\"``) never opens a string.
    """
    opener = text[start]
    closer = '}' if opener == '{' else ']'
    depth = 0
    in_string = False
    i = start
    end = len(text)

    while i < end:
        ch = text[i]
        if ch == '\\':
            i += 2
            continue
        if in_string:
            if ch == '"':
                in_string = False
        elif ch == '"':
            in_string = True
        elif ch == opener:
            depth += 1
        elif ch == closer:
            depth -= 1
            if depth == 0:
                return text[start:i + 1]
        i += 1
    return None


def _unescape_once(fragment: str) -> str:
    return fragment.replace('\\"', '"').replace('\\\\', '\\')


def parse_json_fragment(fragment: str) -> Any:
    """
    Parse a JSON fragment lifted out of HTML or a JS string literal.

    Tries the raw text, then up to three unescape passes, then decodes
    ``\\u0026`` and ``\\/``. Raises ValueError when every attempt fails.
    """
    candidates = [fragment]
    current = fragment
    for _ in range(3):
        current = _unescape_once(current)
        candidates.append(current)
    candidates.append(current.replace('\\u0026', '&').replace('\\/', '/'))

    last_error = None
    for candidate in candidates:
        try:
            return json.loads(candidate)
        except ValueError as e:
            last_error = e
    raise ValueError(f"Unparsable JSON fragment: {last_error}")


def _decode_url(url: str) -> str:
    url = url.replace('\\u0026', '&').replace('\\/', '/').replace('&amp;', '&')
    return urljoin(YOUTUBE_BASE, url)


def _normalize(data: Any) -> Optional[Dict[str, Any]]:
    """Coerce a captions object or bare track array to the player shape."""
    tracks = None
    if isinstance(data, list):
        tracks = data
    elif isinstance(data, dict):
        renderer = data.get("playerCaptionsTracklistRenderer")
        if isinstance(renderer, dict):
            tracks = renderer.get("captionTracks")
        else:
            tracks = data.get("captionTracks")
    if not isinstance(tracks, list):
        return None
    return {"playerCaptionsTracklistRenderer": {"captionTracks": tracks}}


def _renderer_from_urls(urls: List[str]) -> Optional[Dict[str, Any]]:
    tracks = []
    for raw in urls:
        url = _decode_url(raw)
        lang = parse_qs(urlparse(url).query).get("lang", [""])[0]
        tracks.append({"baseUrl": url, "languageCode": lang})
    return _normalize(tracks) if tracks else None


def _track_name(raw_name: Any) -> str:
    if isinstance(raw_name, dict):
        if "simpleText" in raw_name:
            return str(raw_name["simpleText"])
        return "".join(str(run.get("text", "")) for run in raw_name.get("runs", []) if isinstance(run, dict))
    return str(raw_name or "")


def tracks_from_renderer(renderer: Optional[Dict[str, Any]]) -> List[CaptionTrack]:
    """Turn a normalized renderer into CaptionTracks, dropping entries without a baseUrl."""
    if not renderer:
        return []
    raw_tracks = renderer.get("playerCaptionsTracklistRenderer", {}).get("captionTracks") or []

    tracks = []
    for raw in raw_tracks:
        if not isinstance(raw, dict) or not raw.get("baseUrl"):
            continue
        tracks.append(CaptionTrack(
            language_code=str(raw.get("languageCode", "")),
            base_url=_decode_url(str(raw["baseUrl"])),
            kind=str(raw.get("kind", "")),
            name=_track_name(raw.get("name")),
        ))
    return tracks


# --- patterns ---

def extract_player_response(html: str) -> Optional[Dict[str, Any]]:
    """
    Return the embedded ``ytInitialPlayerResponse`` object, or None if absent.

    Raises ValueError when the blob is present but cannot be parsed.
    """
    match = _PLAYER_RESPONSE_RE.search(html or "")
    if not match:
        return None
    fragment = _balanced_fragment(html, match.end())
    if fragment is None:
        raise ValueError("Unterminated ytInitialPlayerResponse object")
    data = parse_json_fragment(fragment)
    if not isinstance(data, dict):
        raise ValueError("ytInitialPlayerResponse is not an object")
    return data


def _match_player_response(html: str) -> Optional[Dict[str, Any]]:
    data = extract_player_response(html)
    if data is None:
        return None
    return _normalize(data.get("captions"))


def _match_captions_object(html: str) -> Optional[Dict[str, Any]]:
    match = _CAPTIONS_OBJECT_RE.search(html)
    if not match:
        return None
    renderer = _normalize(parse_json_fragment(match.group(1)))
    if renderer is None:
        raise ValueError("captions object has no caption track array")
    return renderer


def _match_caption_tracks(html: str) -> Optional[Dict[str, Any]]:
    match = _CAPTION_TRACKS_RE.search(html)
    if not match:
        return None
    fragment = _balanced_fragment(html, match.end())
    if fragment is None:
        raise ValueError("Unterminated captionTracks array")
    return _normalize(parse_json_fragment(fragment))


def _match_base_url(html: str) -> Optional[Dict[str, Any]]:
    match = _BASE_URL_RE.search(html)
    if not match:
        return None
    return _renderer_from_urls([match.group(1)])


def _match_timedtext_scan(html: str) -> Optional[Dict[str, Any]]:
    urls = []
    for raw in _TIMEDTEXT_SCAN_RE.findall(html):
        if raw not in urls:
            urls.append(raw)
    return _renderer_from_urls(urls)


PATTERNS: List[LocatorPattern] = [
    LocatorPattern("player_response", _match_player_response),
    LocatorPattern("captions_before_video_details", _match_captions_object),
    LocatorPattern("caption_tracks_array", _match_caption_tracks),
    LocatorPattern("timedtext_base_url", _match_base_url),
    LocatorPattern("timedtext_url_scan", _match_timedtext_scan),
]


def locate(html: str, video_id: Optional[str] = None) -> Optional[List[CaptionTrack]]:
    """
    Find caption tracks in watch-page HTML.

    Returns:
        Tracks from the first pattern yielding at least one track with a
        baseUrl, or None when no pattern does.
    """
    if not html:
        return None

    for pattern in PATTERNS:
        try:
            renderer = pattern.match(html)
        except ValueError as e:
            evt("caption_locator_parse_failed", video_id=video_id, pattern=pattern.name, error=str(e)[:120])
            continue

        tracks = tracks_from_renderer(renderer)
        if tracks:
            evt("caption_locator_hit", video_id=video_id, pattern=pattern.name, tracks_count=len(tracks))
            return tracks
        if renderer is not None:
            logger.debug(f"[{video_id}] Pattern {pattern.name} matched without usable tracks")

    return None


def locate_in_player_response(data: Optional[Dict[str, Any]]) -> Optional[List[CaptionTrack]]:
    """Caption tracks from an already-parsed player response, or None."""
    if not isinstance(data, dict):
        return None
    tracks = tracks_from_renderer(_normalize(data.get("captions")))
    return tracks or None


def select_track(tracks: Optional[List[CaptionTrack]], preferred_language: str = "en") -> Optional[CaptionTrack]:
    """Prefer the track in ``preferred_language``, else the first in source order."""
    if not tracks:
        return None
    for track in tracks:
        if track.language_code == preferred_language:
            return track
    return tracks[0]
