"""
Browser-like YouTube session: cookie jar, request pacing, consent handling.

One YouTubeSession models one browser. It owns:
- a cookie header string merged from every Set-Cookie it sees (right-wins),
- advisory pacing between requests to the platform,
- manual redirect following, so cookies set on intermediate hops are kept,
- the consent interstitial solver (form replay, synthetic SOCS/CONSENT fallback),
- a short-TTL watch-page cache shared by every strategy in one run.

Sessions are explicit objects handed to the strategies; there is no module
level singleton. Two tasks sharing one session race on its jar (last writer
wins).
"""

import asyncio
import html as html_lib
import random
import re
import time
from typing import Dict, List, Optional, Tuple
from urllib.parse import urljoin, urlparse

import httpx
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential_jitter

from cookie_utils import cookies_from_set_cookie, load_cookie_seed, merge_cookies, parse_cookie_header
from logging_setup import get_logger
from log_events import evt, mask_url_for_logging
from transcript_cache import HtmlCache
from transcript_config import TranscriptConfig, get_transcript_config
from transcript_errors import ExtractionError, PlatformRequestError, RequestTimeoutError
from user_agent_manager import UserAgentManager

logger = get_logger(__name__)

YOUTUBE_HOME = "https://www.youtube.com/"
WATCH_URL = "https://www.youtube.com/watch?v={video_id}"
CONSENT_HOSTS = ("consent.youtube.com", "consent.google.com")
MAX_REDIRECTS = 5
MIN_PAGE_LENGTH = 500

# Used when the interstitial cannot be replayed
SYNTHETIC_CONSENT_COOKIES = "SOCS=CAESEwgDEgk0ODE3Nzk3MjQaAmVuIAEaBgiA_LyaBg; CONSENT=YES+cb.20210328-17-p0.en+FX+1"

_CONSENT_MARKERS = (
    "before you continue to youtube",
    'action="https://consent.youtube.com/s',
    "consent.youtube.com/save",
)
_FORM_RE = re.compile(r'<form\b([^>]*)>(.*?)</form>', re.IGNORECASE | re.DOTALL)
_INPUT_RE = re.compile(r'<(?:input|button)\b([^>]*)>', re.IGNORECASE)
_ATTR_RE = re.compile(r'([\w:-]+)\s*=\s*"([^"]*)"')


def _attrs(tag_body: str) -> Dict[str, str]:
    return {name.lower(): html_lib.unescape(value) for name, value in _ATTR_RE.findall(tag_body)}


def is_consent_html(body: str) -> bool:
    """True when the body looks like the cookie-consent interstitial."""
    lowered = (body or "").lower()
    return any(marker in lowered for marker in _CONSENT_MARKERS)


def parse_consent_forms(body: str) -> List[Tuple[str, Dict[str, str], str]]:
    """
    Reconstruct the consent forms of an interstitial page.

    Returns (action, hidden_fields, form_markup) tuples in page order; forms
    without an action are skipped.
    """
    forms = []
    for form_attrs, form_body in _FORM_RE.findall(body or ""):
        action = _attrs(form_attrs).get("action")
        if not action:
            continue
        fields: Dict[str, str] = {}
        for input_attrs in _INPUT_RE.findall(form_body):
            attrs = _attrs(input_attrs)
            name = attrs.get("name")
            if not name:
                continue
            if attrs.get("type", "hidden").lower() in ("hidden", "submit"):
                fields[name] = attrs.get("value", "")
        forms.append((html_lib.unescape(action), fields, form_body))
    return forms


def select_consent_form(forms: List[Tuple[str, Dict[str, str], str]]) -> Optional[Tuple[str, Dict[str, str]]]:
    """Prefer the "accept all" form, then the one with set_eom=false, then the first."""
    if not forms:
        return None
    for action, fields, markup in forms:
        if re.search(r'accept all|accept the use', markup, re.IGNORECASE):
            return action, fields
    for action, fields, _ in forms:
        if fields.get("set_eom") == "false":
            return action, fields
    action, fields, _ = forms[0]
    return action, fields


def raise_for_platform_status(response: httpx.Response, step: str) -> None:
    """Raise PlatformRequestError for a non-2xx response."""
    if response.is_success:
        return
    raise PlatformRequestError(
        f"Failed to fetch {step}: {response.status_code} {response.reason_phrase}",
        status_code=response.status_code,
        url=str(response.url),
    )


def _log_retry(retry_state) -> None:
    logger.info(f"Platform request failed ({retry_state.outcome.exception()!r}), "
                f"retrying in {retry_state.next_action.sleep:.2f}s...")


class YouTubeSession:
    """
    Cookie-carrying async HTTP session against youtube.com.

    Use as an async context manager, or call aclose() when done. An injected
    httpx client is not closed by the session.
    """

    def __init__(self, config: Optional[TranscriptConfig] = None,
                 client: Optional[httpx.AsyncClient] = None,
                 cookie_header: Optional[str] = None,
                 user_agents: Optional[UserAgentManager] = None):
        self.config = config or get_transcript_config()
        if cookie_header is None:
            cookie_header = load_cookie_seed(self.config.cookie_header, self.config.cookies_file)
        self.cookie_jar: str = cookie_header
        self.last_request_ts: float = 0.0
        self.established = False
        self.html_cache = HtmlCache(ttl_seconds=self.config.html_cache_ttl)
        self.user_agents = user_agents or UserAgentManager()
        self._client = client
        self._owns_client = client is None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                follow_redirects=False,
                timeout=httpx.Timeout(self.config.page_timeout),
            )
        return self._client

    async def aclose(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "YouTubeSession":
        return self

    async def __aexit__(self, exc_type, exc_value, traceback) -> None:
        await self.aclose()

    # --- cookies and pacing ---

    def absorb_cookies(self, response: httpx.Response) -> None:
        """Fold a response's Set-Cookie headers into the jar."""
        new_cookies = cookies_from_set_cookie(response.headers.get_list("set-cookie"))
        if new_cookies:
            self.cookie_jar = merge_cookies(self.cookie_jar, new_cookies)
            logger.debug(f"Merged cookies {list(parse_cookie_header(new_cookies))} from {urlparse(str(response.url)).netloc}")

    def has_consent_cookie(self) -> bool:
        jar = parse_cookie_header(self.cookie_jar)
        return "SOCS" in jar or jar.get("CONSENT", "").startswith("YES")

    async def _pace(self) -> None:
        """Advisory spacing between platform requests: interval plus random jitter."""
        target = self.config.min_request_interval + random.uniform(0, self.config.request_jitter)
        if self.last_request_ts and target > 0:
            elapsed = time.monotonic() - self.last_request_ts
            if elapsed < target:
                await asyncio.sleep(target - elapsed)
        self.last_request_ts = time.monotonic()

    # --- requests ---

    async def request(self, method: str, url: str, *, kind: str = "page",
                      video_id: Optional[str] = None,
                      headers: Optional[Dict[str, str]] = None,
                      timeout: Optional[float] = None,
                      json: Optional[dict] = None,
                      data: Optional[Dict[str, str]] = None,
                      step: str = "request") -> httpx.Response:
        """
        Send one logical request to the platform.

        Transport errors are retried per config.request_retries. Timeouts
        surface as RequestTimeoutError, other transport and body decoding
        failures as PlatformRequestError. HTTP status codes are left to the caller.
        """
        timeout = timeout or self.config.page_timeout
        masked_url = mask_url_for_logging(url)

        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.config.request_retries + 1),
                wait=wait_exponential_jitter(multiplier=0.5, max=2.0),
                retry=retry_if_exception_type(httpx.TransportError),
                before_sleep=_log_retry,
                reraise=True,
            ):
                with attempt:
                    return await self._send_following_redirects(
                        method, url, kind=kind, video_id=video_id, headers=headers,
                        timeout=timeout, json=json, data=data,
                    )
        except httpx.TimeoutException as e:
            evt("platform_request_timeout", step=step, url=masked_url, timeout_s=timeout,
                error_type=type(e).__name__)
            raise RequestTimeoutError(f"Request timed out after {timeout}s ({step}): {masked_url}", url=url) from e
        except httpx.TransportError as e:
            evt("platform_request_failed", step=step, url=masked_url,
                error_type=type(e).__name__, error=str(e)[:120])
            raise PlatformRequestError(f"Network error during {step}: {type(e).__name__}: {e}", url=url) from e
        except httpx.HTTPError as e:
            # Body decoding and other non-transport failures; not retried
            evt("platform_request_failed", step=step, url=masked_url,
                error_type=type(e).__name__, error=str(e)[:120])
            raise PlatformRequestError(f"Request failed during {step}: {type(e).__name__}: {e}", url=url) from e

    async def _send_following_redirects(self, method: str, url: str, *, kind: str,
                                        video_id: Optional[str], headers: Optional[Dict[str, str]],
                                        timeout: float, json: Optional[dict],
                                        data: Optional[Dict[str, str]]) -> httpx.Response:
        current_method, current_url = method, url
        response = None

        for _ in range(MAX_REDIRECTS + 1):
            await self._pace()
            request_headers = self.user_agents.get_headers(kind=kind, video_id=video_id, additional_headers=headers)
            if self.cookie_jar:
                request_headers["Cookie"] = self.cookie_jar

            response = await self.client.request(
                current_method, current_url, headers=request_headers,
                timeout=timeout, json=json, data=data,
            )
            self.absorb_cookies(response)

            location = response.headers.get("location")
            if not response.is_redirect or not location:
                return response

            current_url = urljoin(str(response.url), location)
            if response.status_code in (301, 302, 303) and current_method != "GET":
                current_method, json, data = "GET", None, None
            logger.debug(f"Following redirect to {mask_url_for_logging(current_url)}")

        evt("platform_redirect_limit", url=mask_url_for_logging(url), max_redirects=MAX_REDIRECTS)
        return response

    async def get(self, url: str, **kwargs) -> httpx.Response:
        return await self.request("GET", url, **kwargs)

    async def post(self, url: str, **kwargs) -> httpx.Response:
        return await self.request("POST", url, **kwargs)

    # --- consent ---

    @staticmethod
    def is_consent_response(response: httpx.Response) -> bool:
        host = urlparse(str(response.url)).netloc.lower()
        if host in CONSENT_HOSTS:
            return True
        content_type = (response.headers.get("content-type") or "").lower()
        if "html" not in content_type:
            return False
        return is_consent_html(response.text)

    async def process_consent_page(self, url: str, html: Optional[str] = None) -> bool:
        """
        Resolve the consent interstitial at ``url``.

        Replays the consent form from its hidden fields. When no form can be
        reconstructed the synthetic SOCS/CONSENT cookies are merged instead.
        Returns True when a form was submitted.
        """
        if html is None:
            response = await self.get(url, step="consent_page")
            html, url = response.text, str(response.url)

        form = select_consent_form(parse_consent_forms(html))
        if form is None:
            evt("consent_form_missing", url=mask_url_for_logging(url))
            self.cookie_jar = merge_cookies(self.cookie_jar, SYNTHETIC_CONSENT_COOKIES)
            return False

        action, fields = form
        action_url = urljoin(url, action)
        response = await self.post(
            action_url, data=fields, step="consent_submit",
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )
        evt("consent_submitted", action=mask_url_for_logging(action_url),
            field_count=len(fields), status_code=response.status_code)

        if not self.has_consent_cookie():
            self.cookie_jar = merge_cookies(self.cookie_jar, SYNTHETIC_CONSENT_COOKIES)
        return True

    async def ensure_session(self) -> bool:
        """
        Establish the session once by visiting the platform root.

        Best-effort: a failed visit is logged and the session stays
        unestablished so the next call tries again.
        """
        if self.established:
            return True

        try:
            response = await self.get(YOUTUBE_HOME, step="session")
            if self.is_consent_response(response):
                await self.process_consent_page(str(response.url), html=response.text)
        except PlatformRequestError as e:
            evt("session_establish_failed", error_type=type(e).__name__, error=str(e)[:120])
            return False

        self.established = True
        evt("session_established", cookie_count=len(parse_cookie_header(self.cookie_jar)))
        return True

    # --- watch page ---

    async def fetch_watch_page(self, video_id: str, use_cache: bool = True) -> str:
        """
        Return the watch-page HTML for ``video_id``.

        Served from the HTML cache when fresh. A consent interstitial is
        resolved and the page requested once more.

        Raises:
            PlatformRequestError: non-2xx status or transport failure
            ExtractionError: the page is not usable HTML
        """
        if use_cache:
            cached = self.html_cache.get(video_id)
            if cached is not None:
                evt("watch_page_cache_hit", video_id=video_id)
                return cached

        url = WATCH_URL.format(video_id=video_id)
        response = await self.get(url, step="watch_page")

        if self.is_consent_response(response):
            evt("consent_interstitial_detected", video_id=video_id)
            await self.process_consent_page(str(response.url), html=response.text)
            response = await self.get(url, step="watch_page_retry")
            if self.is_consent_response(response):
                raise ExtractionError("Consent interstitial could not be resolved", step="consent")

        raise_for_platform_status(response, "video page")

        content_type = (response.headers.get("content-type") or "").lower()
        if "text/html" not in content_type:
            if "application/json" in content_type:
                logger.warning(f"[{video_id}] Watch page request returned JSON instead of HTML; "
                               "content might be blocked or page structure changed")
            else:
                raise ExtractionError(f"Invalid content type returned: {content_type or 'none'}", step="watch_page")

        body = response.text
        if len(body) < MIN_PAGE_LENGTH:
            raise ExtractionError(f"Empty or too short response from YouTube (Length: {len(body)})", step="watch_page")

        self.html_cache.set(video_id, body)
        return body
