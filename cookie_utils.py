# cookie_utils.py
"""
Cookie header helpers for the browser-like session.

Cookies are carried as a plain ``name=value; name2=value2`` header string.
Merging is right-wins per name; attributes (Path, Expires, ...) are dropped.
"""
from collections import OrderedDict
from typing import Dict, Iterable, List, Optional

from logging_setup import get_logger

logger = get_logger(__name__)


def parse_cookie_header(header: Optional[str]) -> Dict[str, str]:
    """Parse ``a=1; b=2`` into an ordered name -> value map. Pairs without '=' are skipped."""
    cookies: Dict[str, str] = OrderedDict()
    if not header:
        return cookies
    for pair in header.split(';'):
        if '=' not in pair:
            continue
        name, value = pair.split('=', 1)
        name = name.strip()
        if name:
            cookies[name] = value.strip()
    return cookies


def serialize_cookies(cookies: Dict[str, str]) -> str:
    return "; ".join(f"{name}={value}" for name, value in cookies.items())


def merge_cookies(existing: Optional[str], new: Optional[str]) -> str:
    """
    Merge two cookie header strings.

    Values from ``new`` override ``existing`` for the same name; names keep
    their first-seen position.
    """
    merged = parse_cookie_header(existing)
    merged.update(parse_cookie_header(new))
    return serialize_cookies(merged)


def cookies_from_set_cookie(set_cookie_headers: Iterable[str]) -> str:
    """Reduce raw ``Set-Cookie`` header values to a cookie header string."""
    pairs: Dict[str, str] = OrderedDict()
    for raw in set_cookie_headers:
        if not raw:
            continue
        # Only the leading name=value is a cookie; the rest are attributes
        first = raw.split(';', 1)[0]
        if '=' not in first:
            continue
        name, value = first.split('=', 1)
        name = name.strip()
        if name:
            pairs[name] = value.strip()
    return serialize_cookies(pairs)


def parse_netscape_cookies_txt(raw: str) -> List[dict]:
    """
    Return a list of rows with keys:
    domain, include_subdomains, path, secure, expires, name, value
    """
    rows = []
    for line in raw.splitlines():
        line = line.strip()
        if line.startswith("#HttpOnly_"):
            line = line[len("#HttpOnly_"):]
        elif not line or line.startswith("#"):
            continue
        parts = line.split("\t")
        if len(parts) != 7:
            continue
        domain, include_sub, path, secure, expires, name, value = parts
        rows.append({
            "domain": domain,
            "include_subdomains": include_sub.upper() == "TRUE",
            "path": path or "/",
            "secure": secure.upper() == "TRUE",
            "expires": int(expires) if expires.isdigit() else 0,
            "name": name,
            "value": value,
        })
    return rows


def cookie_header_from_netscape(raw: str, domain_suffix: str = "youtube.com") -> str:
    """Build a cookie header from a Netscape cookies.txt export, keeping one site's cookies."""
    cookies: Dict[str, str] = OrderedDict()
    for row in parse_netscape_cookies_txt(raw):
        if row["domain"].lstrip(".").endswith(domain_suffix):
            cookies[row["name"]] = row["value"]
    return serialize_cookies(cookies)


def load_cookie_seed(cookie_header: str = "", cookies_file: str = "") -> str:
    """
    Combine the configured cookie seeds into one header.

    An unreadable cookies file is logged and ignored; seeding is best-effort.
    """
    seed = cookie_header or ""
    if cookies_file:
        try:
            with open(cookies_file, "r", encoding="utf-8") as f:
                seed = merge_cookies(seed, cookie_header_from_netscape(f.read()))
        except OSError as e:
            logger.warning(f"Could not read cookies file {cookies_file}: {e}")
    return seed
