#!/usr/bin/env python3
"""
Configuration management for transcript extraction.

Loads timeouts, pacing, cache TTL, strategy flags and the optional
YouTube Data API key from environment variables (and a local .env file)
with sensible defaults and bounds validation.
"""

import os
from dataclasses import dataclass, field
from typing import Optional, Dict, Any

from dotenv import load_dotenv

from logging_setup import get_logger

logger = get_logger(__name__)

# Existing environment variables win over .env entries
load_dotenv(override=False)


@dataclass
class TranscriptConfig:
    """Configuration for the transcript extraction pipeline."""

    # Official Data API credential; empty disables that strategy
    youtube_api_key: str = field(default="", repr=False)

    # Timeouts (seconds)
    page_timeout: float = 15.0
    caption_timeout: float = 10.0

    # Retries of a single request on transport errors
    request_retries: int = 1

    # Advisory pacing between requests to the platform (seconds)
    min_request_interval: float = 0.5
    request_jitter: float = 0.25

    # Watch-page cache
    html_cache_ttl: float = 60.0

    # Feature flags
    enable_precheck: bool = True
    enable_direct: bool = True
    enable_internal_api: bool = True

    # Cookie seed for the session
    cookie_header: str = field(default="", repr=False)
    cookies_file: str = ""

    preferred_language: str = "en"

    @classmethod
    def from_env(cls) -> 'TranscriptConfig':
        """Load configuration from environment variables with validation."""
        config = cls(
            youtube_api_key=os.getenv("YOUTUBE_API_KEY", "").strip(),

            page_timeout=cls._parse_float_env("PAGE_TIMEOUT", 15.0, min_val=10.0, max_val=30.0),
            caption_timeout=cls._parse_float_env("CAPTION_TIMEOUT", 10.0, min_val=5.0, max_val=30.0),
            request_retries=cls._parse_int_env("REQUEST_RETRIES", 1, min_val=0, max_val=3),

            min_request_interval=cls._parse_int_env("MIN_REQUEST_INTERVAL_MS", 500, min_val=0, max_val=10000) / 1000.0,
            request_jitter=cls._parse_int_env("REQUEST_JITTER_MS", 250, min_val=0, max_val=5000) / 1000.0,

            html_cache_ttl=cls._parse_float_env("HTML_CACHE_TTL", 60.0, min_val=0.0, max_val=3600.0),

            enable_precheck=cls._parse_bool_env("ENABLE_PRECHECK", True),
            enable_direct=cls._parse_bool_env("ENABLE_DIRECT", True),
            enable_internal_api=cls._parse_bool_env("ENABLE_INTERNAL_API", True),

            cookie_header=os.getenv("YOUTUBE_COOKIES", "").strip(),
            cookies_file=os.getenv("YOUTUBE_COOKIES_FILE", "").strip(),

            preferred_language=os.getenv("PREFERRED_LANGUAGE", "en").strip() or "en",
        )

        config._validate_config()
        config._log_config()
        return config

    @staticmethod
    def _parse_bool_env(env_var: str, default: bool) -> bool:
        """Parse boolean environment variable."""
        value = os.getenv(env_var, str(default).lower())
        return value.lower() in ("1", "true", "yes", "on")

    @staticmethod
    def _parse_int_env(env_var: str, default: int, min_val: Optional[int] = None, max_val: Optional[int] = None) -> int:
        """Parse integer environment variable, clamped to [min_val, max_val]."""
        try:
            value = int(os.getenv(env_var, str(default)))
        except (ValueError, TypeError):
            logger.error(f"Invalid value for {env_var}: {os.getenv(env_var)}, using default {default}")
            return default

        if min_val is not None and value < min_val:
            logger.warning(f"{env_var}={value} is below minimum {min_val}, using {min_val}")
            return min_val
        if max_val is not None and value > max_val:
            logger.warning(f"{env_var}={value} is above maximum {max_val}, using {max_val}")
            return max_val
        return value

    @staticmethod
    def _parse_float_env(env_var: str, default: float, min_val: Optional[float] = None, max_val: Optional[float] = None) -> float:
        """Parse float environment variable, clamped to [min_val, max_val]."""
        try:
            value = float(os.getenv(env_var, str(default)))
        except (ValueError, TypeError):
            logger.error(f"Invalid value for {env_var}: {os.getenv(env_var)}, using default {default}")
            return default

        if min_val is not None and value < min_val:
            logger.warning(f"{env_var}={value} is below minimum {min_val}, using {min_val}")
            return min_val
        if max_val is not None and value > max_val:
            logger.warning(f"{env_var}={value} is above maximum {max_val}, using {max_val}")
            return max_val
        return value

    @property
    def data_api_enabled(self) -> bool:
        return bool(self.youtube_api_key)

    def _validate_config(self) -> None:
        """Log warnings for problematic combinations."""
        warnings = []

        if not (self.enable_direct or self.enable_internal_api or self.data_api_enabled):
            warnings.append("All transcript strategies are disabled - every fetch will fail")

        if self.cookies_file and not os.path.exists(self.cookies_file):
            warnings.append(f"YOUTUBE_COOKIES_FILE={self.cookies_file} does not exist - ignoring it")

        if self.min_request_interval == 0:
            warnings.append("Request pacing disabled - the platform may throttle this client")

        for warning in warnings:
            logger.warning(f"Configuration warning: {warning}")

    def _log_config(self) -> None:
        logger.info("Transcript configuration loaded:")
        logger.info(f"  Timeouts: page={self.page_timeout}s, caption={self.caption_timeout}s, retries={self.request_retries}")
        logger.info(f"  Pacing: interval={self.min_request_interval}s, jitter={self.request_jitter}s, html_cache_ttl={self.html_cache_ttl}s")
        logger.info(f"  Strategies: precheck={self.enable_precheck}, direct={self.enable_direct}, "
                    f"internal_api={self.enable_internal_api}, data_api={self.data_api_enabled}")

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to a dict with secrets left out."""
        return {
            "timeouts": {
                "page_timeout": self.page_timeout,
                "caption_timeout": self.caption_timeout,
                "request_retries": self.request_retries,
            },
            "pacing": {
                "min_request_interval": self.min_request_interval,
                "request_jitter": self.request_jitter,
                "html_cache_ttl": self.html_cache_ttl,
            },
            "strategies": {
                "precheck": self.enable_precheck,
                "direct": self.enable_direct,
                "internal_api": self.enable_internal_api,
                "data_api": self.data_api_enabled,
            },
            "cookies_seeded": bool(self.cookie_header or self.cookies_file),
            "preferred_language": self.preferred_language,
        }


_transcript_config: Optional[TranscriptConfig] = None


def get_transcript_config() -> TranscriptConfig:
    """Get the process-wide configuration instance."""
    global _transcript_config
    if _transcript_config is None:
        _transcript_config = TranscriptConfig.from_env()
    return _transcript_config


def reload_transcript_config() -> TranscriptConfig:
    """Reload configuration from environment variables."""
    global _transcript_config
    _transcript_config = TranscriptConfig.from_env()
    return _transcript_config
