"""
Timed-text caption file fetch and cue parsing.

This is the last step every strategy shares:
- Fetch a caption track's baseUrl through the session (cookies, Referer).
- Strict pre-parsing validation so an empty body or HTML page never reaches the parser.
- Cue parsing for the formats the timed-text endpoint serves:
  srv1 ``<text start dur>``, TTML ``<p begin end>``, srv3 ``<p t d>`` and json3.
- SRT/WebVTT parsing for Data API downloads.
"""

import json
import re
from typing import List, Optional

from caption_text import decode_and_clean, parse_millis, parse_timestamp
from log_events import evt, mask_url_for_logging
from logging_setup import get_logger
from transcript_errors import ExtractionError
from transcript_models import CaptionTrack, TranscriptLine
from youtube_session import YouTubeSession, is_consent_html, raise_for_platform_status

logger = get_logger(__name__)

MIN_CAPTION_LENGTH = 50

_TEXT_CUE_RE = re.compile(r'<text\b([^>]*?)(?<!/)>(.*?)</text>', re.IGNORECASE | re.DOTALL)
_P_CUE_RE = re.compile(r'<p\b([^>]*?)(?<!/)>(.*?)</p>', re.IGNORECASE | re.DOTALL)
_ATTR_RE = re.compile(r'([\w:-]+)\s*=\s*"([^"]*)"')
_BR_RE = re.compile(r'<br\s*/?>', re.IGNORECASE)
_ZERO_TIMESTAMP_RE = re.compile(r'[0:.,]*(?:m?s)?')
_SRT_RANGE_RE = re.compile(r'([\d:.,]+)\s*-->\s*([\d:.,]+)')
_VTT_TIMESTAMP_TAG_RE = re.compile(r'<\d[\d:.]*>')
_BLOCK_SPLIT_RE = re.compile(r'\r?\n\s*\r?\n')


def _attrs(tag_body: str) -> dict:
    # Local names only, so tts:begin and begin are the same attribute
    return {name.split(':')[-1].lower(): value for name, value in _ATTR_RE.findall(tag_body)}


def _unparsed(value: Optional[str]) -> bool:
    return bool(value) and parse_timestamp(value) == 0.0 and not _ZERO_TIMESTAMP_RE.fullmatch(value.strip())


def _timestamp(value: Optional[str], field: str, video_id: Optional[str]) -> float:
    """parse_timestamp plus a debug event when a non-zero value could not be read."""
    seconds = parse_timestamp(value)
    if _unparsed(value):
        logger.debug("", extra={"event": "caption_cue_timestamp_unparsed",
                                "video_id": video_id, "field": field, "value": value[:40]})
    return seconds


def _cue_text(raw: str) -> str:
    return decode_and_clean(_BR_RE.sub(' ', raw))


def _parse_text_cues(body: str, video_id: Optional[str]) -> List[TranscriptLine]:
    lines = []
    for tag_attrs, raw_text in _TEXT_CUE_RE.findall(body):
        text = _cue_text(raw_text)
        if not text:
            continue
        attrs = _attrs(tag_attrs)
        lines.append(TranscriptLine(
            text=text,
            offset=_timestamp(attrs.get("start"), "start", video_id),
            duration=_timestamp(attrs.get("dur"), "dur", video_id) if "dur" in attrs else 0.0,
        ))
    return lines


def _parse_paragraph_cues(body: str, video_id: Optional[str]) -> List[TranscriptLine]:
    lines = []
    for tag_attrs, raw_text in _P_CUE_RE.findall(body):
        attrs = _attrs(tag_attrs)

        if "begin" in attrs:
            offset = _timestamp(attrs["begin"], "begin", video_id)
            if "end" in attrs:
                end = _timestamp(attrs["end"], "end", video_id)
                # An unreadable end keeps the cue with no duration
                duration = 0.0 if _unparsed(attrs["end"]) else end - offset
                if duration < 0:
                    logger.debug(f"[{video_id}] Skipping cue with end before begin: {attrs}")
                    continue
            else:
                duration = _timestamp(attrs.get("dur"), "dur", video_id) if "dur" in attrs else 0.0
        elif "t" in attrs:
            offset = parse_millis(attrs["t"])
            duration = parse_millis(attrs["d"]) if "d" in attrs else 0.0
        else:
            continue

        text = _cue_text(raw_text)
        if text:
            lines.append(TranscriptLine(text=text, offset=offset, duration=duration))
    return lines


def parse_json3(body: str) -> List[TranscriptLine]:
    """Parse the json3 format: ``events[]`` with ``tStartMs``, ``dDurationMs`` and ``segs[].utf8``."""
    try:
        data = json.loads(body)
    except ValueError:
        evt("timedtext_json_parse_failed", content_preview=body[:100])
        return []

    lines = []
    for event in data.get("events", []) if isinstance(data, dict) else []:
        text = decode_and_clean("".join(seg.get("utf8", "") for seg in event.get("segs") or []))
        if not text:
            continue
        lines.append(TranscriptLine(
            text=text,
            offset=parse_millis(event.get("tStartMs", 0)),
            duration=parse_millis(event.get("dDurationMs", 0)),
        ))
    return lines


def parse_caption_file(body: str, video_id: Optional[str] = None) -> List[TranscriptLine]:
    """
    Parse a timed-text caption file into cues, in source order.

    ``<text>`` cues win; ``<p>`` cues (TTML ranges or millisecond ``t``/``d``)
    are only tried when there are none. Cues with empty text are dropped.
    """
    if not body:
        return []
    if body.lstrip().startswith('{'):
        return parse_json3(body)

    lines = _parse_text_cues(body, video_id)
    if lines:
        return lines
    return _parse_paragraph_cues(body, video_id)


def parse_srt_or_vtt(body: str) -> List[TranscriptLine]:
    """Parse SRT or WebVTT. Sequence numbers, the WEBVTT header and NOTE/STYLE blocks are skipped."""
    lines = []
    for block in _BLOCK_SPLIT_RE.split((body or "").strip()):
        rows = [row.strip() for row in block.splitlines() if row.strip()]
        timing_index = next((i for i, row in enumerate(rows) if '-->' in row), None)
        if timing_index is None:
            continue

        match = _SRT_RANGE_RE.search(rows[timing_index])
        if not match:
            continue
        offset = parse_timestamp(match.group(1))
        duration = parse_timestamp(match.group(2)) - offset
        if duration < 0:
            continue

        raw_text = " ".join(rows[timing_index + 1:])
        text = decode_and_clean(_VTT_TIMESTAMP_TAG_RE.sub('', raw_text))
        if text:
            lines.append(TranscriptLine(text=text, offset=offset, duration=duration))
    return lines


def _validate_caption_body(body: str, content_type: str) -> None:
    """Strict guard before parsing; raises ExtractionError with the reason."""
    if len(body) < MIN_CAPTION_LENGTH:
        evt("timedtext_suspiciously_small", content_length=len(body), content_preview=body[:80])
        raise ExtractionError(f"Caption file empty or too short (Length: {len(body)})", step="caption_file")

    head = body.lstrip()[:200].lower()
    if "html" in content_type or head.startswith(("<!doctype html", "<html")):
        if is_consent_html(body):
            evt("timedtext_consent_wall_detected", content_preview=body[:100])
        else:
            evt("timedtext_html_response", content_type=content_type, content_preview=body[:100])
        raise ExtractionError("Caption endpoint returned an HTML page", step="caption_file")


async def fetch_caption_lines(session: YouTubeSession, track: CaptionTrack, video_id: str) -> List[TranscriptLine]:
    """
    Download and parse one caption track.

    Raises:
        PlatformRequestError: non-2xx status or transport failure
        RequestTimeoutError: the caption request timed out
        ExtractionError: the body is unusable or holds no cues
    """
    evt("timedtext_fetch_start", video_id=video_id, lang=track.language_code,
        asr=track.is_asr, url=mask_url_for_logging(track.base_url))

    response = await session.get(
        track.base_url, kind="caption", video_id=video_id,
        timeout=session.config.caption_timeout, step="caption_file",
    )
    raise_for_platform_status(response, "caption file")

    body = response.text or ""
    _validate_caption_body(body, (response.headers.get("content-type") or "").lower())

    lines = parse_caption_file(body, video_id)
    if not lines:
        evt("timedtext_parse_empty", video_id=video_id, content_length=len(body), content_preview=body[:100])
        raise ExtractionError("Failed to parse transcript XML/TTML content", step="caption_parse")

    evt("timedtext_success", video_id=video_id, lang=track.language_code, lines=len(lines))
    return lines
