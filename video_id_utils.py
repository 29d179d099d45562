import re
from urllib.parse import parse_qs, urlparse

VIDEO_ID_RE = re.compile(r'^[A-Za-z0-9_-]{11}$')

_PATH_PATTERNS = [
    re.compile(r'^/(?:embed|shorts|live|v)/([A-Za-z0-9_-]{11})(?:[/?&#]|$)'),
]
_YOUTUBE_HOSTS = ("youtube.com", "www.youtube.com", "m.youtube.com", "music.youtube.com",
                  "youtube-nocookie.com", "www.youtube-nocookie.com")


def extract_video_id(url_or_id: str) -> str:
    """
    Extract the 11-character video id from a YouTube URL or a bare id.

    Handles watch (desktop and mobile), youtu.be, embed and shorts URLs.

    Raises:
        ValueError: nothing that looks like a video id was found
    """
    value = (url_or_id or "").strip()
    if VIDEO_ID_RE.match(value):
        return value

    if "://" not in value:
        value = f"https://{value}"
    parsed = urlparse(value)
    host = parsed.netloc.lower().split(':')[0]

    candidate = None
    if host in ("youtu.be", "www.youtu.be"):
        candidate = parsed.path.lstrip('/').split('/')[0]
    elif host in _YOUTUBE_HOSTS:
        if parsed.path == "/watch":
            candidate = parse_qs(parsed.query).get("v", [None])[0]
        else:
            for pattern in _PATH_PATTERNS:
                match = pattern.match(parsed.path)
                if match:
                    candidate = match.group(1)
                    break

    if candidate and VIDEO_ID_RE.match(candidate):
        return candidate
    raise ValueError(f"Could not extract a YouTube video id from: {url_or_id!r}")
