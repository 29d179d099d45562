"""
Timestamp normalization and caption text cleanup.

Both helpers are pure and never raise on malformed input: caption payloads
come from undocumented endpoints and a bad cue must not sink a whole file.
"""

import html
import math
import re

_WHITESPACE_RE = re.compile(r'\s+')
_LITERAL_NEWLINE_RE = re.compile(r'\\n')
# Inline styling tags that appear inside cue text (srv1/srv3/TTML)
_INLINE_TAG_RE = re.compile(r'</?(?:font|b|i|u|s|c|span|br)\b[^>]*>', re.IGNORECASE)


def parse_timestamp(value) -> float:
    """
    Convert a caption timestamp to seconds.

    Accepts ``SS[.ms]``, ``MM:SS[.ms]`` and ``HH:MM:SS[.ms]`` (comma decimal
    separators from SRT too) plus TTML clock values such as ``1.5s`` and
    ``1500ms``. Anything unparsable yields 0.0.

    >>> parse_timestamp("01:02:03.5")
    3723.5
    """
    if value is None:
        return 0.0

    text = str(value).strip().replace(',', '.')
    if not text:
        return 0.0

    scale = 1.0
    if ':' not in text:
        if text.endswith('ms'):
            text, scale = text[:-2], 0.001
        elif text.endswith('s'):
            text = text[:-1]

    parts = text.split(':')
    if len(parts) > 3:
        return 0.0

    seconds = 0.0
    try:
        for part in parts:
            seconds = seconds * 60 + float(part)
    except ValueError:
        return 0.0

    seconds *= scale
    if not math.isfinite(seconds) or seconds < 0:
        return 0.0
    return seconds


def parse_millis(value) -> float:
    """Convert an integer millisecond attribute (``t``/``d`` cues) to seconds; 0.0 if unparsable."""
    try:
        millis = float(str(value).strip())
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(millis) or millis < 0:
        return 0.0
    return millis / 1000.0


def _clean_once(text: str) -> str:
    text = html.unescape(text)
    text = _INLINE_TAG_RE.sub('', text)
    text = _LITERAL_NEWLINE_RE.sub(' ', text)
    return _WHITESPACE_RE.sub(' ', text).strip()


def decode_and_clean(text: str) -> str:
    """
    Decode HTML/XML entities and normalize whitespace in caption text.

    Repeats until the text stops changing so double-escaped payloads
    (``&amp;amp;``) end up fully decoded and the result is idempotent.
    """
    if not text:
        return ""

    cleaned = text
    while True:
        step = _clean_once(cleaned)
        if step == cleaned:
            return cleaned
        cleaned = step
