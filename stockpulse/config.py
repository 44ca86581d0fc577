"""Application configuration settings.

This module provides centralized configuration management using environment
variables with sensible defaults.
"""

import os
from dataclasses import dataclass


def _get_bool_env(name: str, default: bool = False) -> bool:
    """Get a boolean value from environment variable.

    Args:
        name: Environment variable name.
        default: Default value if not set.

    Returns:
        Boolean value from environment.
    """
    value = os.getenv(name, "").lower()
    if value in ("true", "1", "yes", "on"):
        return True
    if value in ("false", "0", "no", "off"):
        return False
    return default


def _get_float_env(name: str, default: float) -> float:
    """Get a float value from environment variable, falling back on bad input."""
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    try:
        return float(value)
    except ValueError:
        return default


@dataclass
class Settings:
    """Application settings loaded from environment variables.

    Attributes:
        EXCHANGE_BASE_URL: Base URL of the primary exchange quote API.
        ALPHA_VANTAGE_API_KEY: API key for the tertiary quote vendor.
        ALPHA_VANTAGE_BASE_URL: Base URL of the tertiary quote vendor.
        NEWS_FEED_URL: Headline search endpoint used for news sentiment.
        SOCIAL_SEARCH_URL: Community search endpoint used for social sentiment.
        SOCIAL_COMMUNITIES: Comma-separated communities searched for mentions.
        MARKET_SUFFIX: Exchange suffix appended for vendors that need one.
        STRICT_RATE_LIMIT: Reject rate-limited callers that have no cache entry.
        CACHE_REAPER_INTERVAL: Seconds between cache sweeps.
        CACHE_STALENESS_FACTOR: Entries older than ttl * factor are swept.
    """

    # Data sources
    EXCHANGE_BASE_URL: str = "https://www.nseindia.com"
    ALPHA_VANTAGE_API_KEY: str | None = None
    ALPHA_VANTAGE_BASE_URL: str = "https://www.alphavantage.co"
    NEWS_FEED_URL: str = "https://news.google.com/rss/search"
    SOCIAL_SEARCH_URL: str = "https://www.reddit.com"
    SOCIAL_COMMUNITIES: str = "IndiaInvestments,stocks,wallstreetbets"
    MARKET_SUFFIX: str = ".NS"

    # Resolution behaviour
    STRICT_RATE_LIMIT: bool = False
    CACHE_REAPER_INTERVAL: float = 300.0
    CACHE_STALENESS_FACTOR: float = 12.0

    @property
    def social_communities(self) -> list[str]:
        """Communities to search, with blanks removed."""
        return [c.strip() for c in self.SOCIAL_COMMUNITIES.split(",") if c.strip()]

    @classmethod
    def from_env(cls) -> "Settings":
        """Create settings from environment variables.

        Returns:
            Settings instance populated from environment.
        """
        return cls(
            EXCHANGE_BASE_URL=os.getenv("EXCHANGE_BASE_URL", "https://www.nseindia.com"),
            ALPHA_VANTAGE_API_KEY=os.getenv("ALPHA_VANTAGE_API_KEY"),
            ALPHA_VANTAGE_BASE_URL=os.getenv(
                "ALPHA_VANTAGE_BASE_URL", "https://www.alphavantage.co"
            ),
            NEWS_FEED_URL=os.getenv("NEWS_FEED_URL", "https://news.google.com/rss/search"),
            SOCIAL_SEARCH_URL=os.getenv("SOCIAL_SEARCH_URL", "https://www.reddit.com"),
            SOCIAL_COMMUNITIES=os.getenv(
                "SOCIAL_COMMUNITIES", "IndiaInvestments,stocks,wallstreetbets"
            ),
            MARKET_SUFFIX=os.getenv("MARKET_SUFFIX", ".NS"),
            STRICT_RATE_LIMIT=_get_bool_env("STRICT_RATE_LIMIT", default=False),
            CACHE_REAPER_INTERVAL=_get_float_env("CACHE_REAPER_INTERVAL", 300.0),
            CACHE_STALENESS_FACTOR=_get_float_env("CACHE_STALENESS_FACTOR", 12.0),
        )


# Global settings instance
settings = Settings.from_env()
