"""
UserAgentManager - browser-like request headers for YouTube requests.

Every request to the platform looks like it came from a desktop browser;
the header set varies with what is being fetched (page, caption file,
internal JSON API).
"""

import logging
from typing import Dict, Optional

logger = logging.getLogger(__name__)

YOUTUBE_ORIGIN = "https://www.youtube.com"


class UserAgentManager:
    """Builds browser-like headers for the different request kinds."""

    USER_AGENT_CONFIG = {
        "default": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/127.0.0.0 Safari/537.36",
        "fallback": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/126.0.0.0 Safari/537.36",
        "firefox": "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:128.0) Gecko/20100101 Firefox/128.0",
    }

    ACCEPT_BY_KIND = {
        "page": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
        "caption": "*/*",
        "api": "application/json",
    }

    def __init__(self, request_type: str = "default", accept_language: str = "en-US,en;q=0.9"):
        self.request_type = request_type
        self.accept_language = accept_language

    def get_user_agent(self, request_type: Optional[str] = None) -> str:
        """User-Agent for the given type, falling back to the default one."""
        request_type = request_type or self.request_type
        user_agent = self.USER_AGENT_CONFIG.get(request_type)
        if not user_agent or not self.validate_user_agent(user_agent):
            logger.warning(f"Invalid User-Agent for type '{request_type}', using default")
            user_agent = self.USER_AGENT_CONFIG["default"]
        return user_agent

    def get_headers(self, kind: str = "page", video_id: Optional[str] = None,
                    additional_headers: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        """
        Build headers for one request.

        Args:
            kind: "page", "caption" or "api"
            video_id: When given, the watch page is sent as Referer
            additional_headers: Extra headers; they override the defaults

        Returns:
            Header dict ready for httpx
        """
        headers = {
            "User-Agent": self.get_user_agent(),
            "Accept-Language": self.accept_language,
            "Accept": self.ACCEPT_BY_KIND.get(kind, "*/*"),
        }
        if video_id:
            headers["Referer"] = f"{YOUTUBE_ORIGIN}/watch?v={video_id}"
        else:
            headers["Referer"] = f"{YOUTUBE_ORIGIN}/"
        if kind == "api":
            headers["Origin"] = YOUTUBE_ORIGIN
            headers["Content-Type"] = "application/json"
        if additional_headers:
            headers.update(additional_headers)
        return headers

    @staticmethod
    def validate_user_agent(user_agent: str) -> bool:
        """True when the string looks like a real desktop browser UA."""
        if not user_agent or len(user_agent) < 50:
            return False
        browser_indicators = ["Mozilla", "AppleWebKit", "Chrome", "Safari", "Firefox", "Gecko"]
        os_indicators = ["Windows", "Macintosh", "Linux", "X11"]
        return (any(indicator in user_agent for indicator in browser_indicators)
                and any(indicator in user_agent for indicator in os_indicators))
