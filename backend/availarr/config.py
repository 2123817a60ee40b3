"""
Configuration Management for Availarr

This module centralizes all job configuration: catalog credentials, the embed
domain and proxy rotation lists, probe timeouts, freshness windows, batch sizes
and the retry policy used for store writes and database connections.

All configuration values have sensible defaults and can be overridden via
environment variables, so the same code runs unchanged from cron, a container
or a developer shell.
"""

import os
from typing import List

from availarr.services.exceptions import ConfigurationError


def _split_list(value: str) -> List[str]:
    """Split a comma-separated environment value, dropping blanks."""
    return [item.strip() for item in value.split(",") if item.strip()]


def _default_workers() -> int:
    """One worker per spare CPU, between 1 and 4."""
    cpus = os.cpu_count() or 1
    return max(1, min(4, cpus - 1))


DEFAULT_VIDSRC_DOMAINS = [
    "vidsrc.me",
    "vidsrc.in",
    "vidsrc.pm",
    "vidsrc.net",
    "vidsrc.xyz",
    "vidsrc.io",
    "vidsrc.vc",
]

DEFAULT_PROXIES = [
    "154.213.165.20:3128",
    "156.242.34.42:3128",
    "156.249.138.20:3128",
    "156.233.92.28:3128",
    "156.233.84.24:3128",
    "156.253.176.141:3128",
    "156.228.76.219:3128",
    "156.242.40.3:3128",
    "154.213.202.112:3128",
    "154.213.167.104:3128",
    "154.94.13.245:3128",
    "154.213.199.24:3128",
    "156.242.47.132:3128",
    "156.228.114.150:3128",
    "156.228.79.145:3128",
]


class Config:
    """
    Centralized configuration management using environment variables.

    Values are read once at import time. Tests override individual attributes
    with ``patch.object(Config, ...)`` rather than touching the environment.
    """

    # =============================================================================
    # APPLICATION SETTINGS
    # =============================================================================
    APP_VERSION = "1.0.0"
    APP_TITLE = "Availarr"
    APP_DESCRIPTION = "Catalog availability reconciliation for embed streaming sources"
    APP_HOST = os.getenv("APP_HOST", "0.0.0.0")
    APP_PORT = int(os.getenv("APP_PORT", "8000"))
    DEBUG = os.getenv("DEBUG", "false").lower() == "true"

    # =============================================================================
    # DATABASE CONFIGURATION
    # =============================================================================
    DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./data/availarr.db")

    # Startup connection retry
    DB_CONNECT_MAX_ATTEMPTS = int(os.getenv("DB_CONNECT_MAX_ATTEMPTS", "3"))
    DB_CONNECT_RETRY_DELAY = float(os.getenv("DB_CONNECT_RETRY_DELAY", "5.0"))

    # Evictions are retried with a fixed delay
    DELETE_MAX_ATTEMPTS = int(os.getenv("DELETE_MAX_ATTEMPTS", "3"))
    DELETE_RETRY_DELAY = float(os.getenv("DELETE_RETRY_DELAY", "2.0"))

    # =============================================================================
    # CATALOG (TMDB)
    # =============================================================================
    TMDB_API_KEY = os.getenv("TMDB_API_KEY", "")
    TMDB_API_BASE = os.getenv("TMDB_API_BASE", "https://api.themoviedb.org/3")
    TMDB_API_TIMEOUT = int(os.getenv("TMDB_API_TIMEOUT", "10"))
    # TMDB refuses discover pages past 500
    TMDB_MAX_PAGES = int(os.getenv("TMDB_MAX_PAGES", "500"))
    # Request budget shared by every catalog call of a process
    TMDB_REQUESTS_PER_WINDOW = int(os.getenv("TMDB_REQUESTS_PER_WINDOW", "40"))
    TMDB_RATE_WINDOW_SECONDS = float(os.getenv("TMDB_RATE_WINDOW_SECONDS", "10"))

    # =============================================================================
    # EMBED PROBING
    # =============================================================================
    VIDSRC_DOMAINS: List[str] = _split_list(
        os.getenv("VIDSRC_DOMAINS", ",".join(DEFAULT_VIDSRC_DOMAINS))
    )
    PROXY_LIST: List[str] = _split_list(
        os.getenv("PROXY_LIST", ",".join(DEFAULT_PROXIES))
    )

    # Per-attempt timeout and pause between attempts (milliseconds)
    PROBE_TIMEOUT_MS = int(os.getenv("PROBE_TIMEOUT_MS", "5000"))
    PROBE_ATTEMPT_DELAY_MS = int(os.getenv("PROBE_ATTEMPT_DELAY_MS", "250"))

    # =============================================================================
    # FRESHNESS WINDOWS (hours)
    # =============================================================================
    FRESHNESS_WINDOW_HOURS = float(os.getenv("FRESHNESS_WINDOW_HOURS", "24"))
    FETCH_ALL_FRESHNESS_WINDOW_HOURS = float(os.getenv("FETCH_ALL_FRESHNESS_WINDOW_HOURS", "1"))

    # Janitor retention (days)
    CLEANUP_MAX_AGE_DAYS = int(os.getenv("CLEANUP_MAX_AGE_DAYS", "7"))
    CACHE_CLEANUP_MAX_AGE_DAYS = int(os.getenv("CACHE_CLEANUP_MAX_AGE_DAYS", "30"))

    # =============================================================================
    # CONCURRENCY
    # =============================================================================
    DEFAULT_CONCURRENCY = int(os.getenv("DEFAULT_CONCURRENCY", "10"))
    EPISODE_CONCURRENCY = int(os.getenv("EPISODE_CONCURRENCY", "5"))
    NUM_WORKERS = int(os.getenv("NUM_WORKERS", str(_default_workers())))
    REFRESH_BATCH_SIZE = int(os.getenv("REFRESH_BATCH_SIZE", "100"))
    FETCH_ALL_PAGE_CHUNK = int(os.getenv("FETCH_ALL_PAGE_CHUNK", "10"))

    # =============================================================================
    # PATHS
    # =============================================================================
    CHECKPOINT_DIR = os.getenv("CHECKPOINT_DIR", ".")
    LOG_DIR = os.getenv("LOG_DIR", "logs")
    LOG_JSON = os.getenv("LOG_JSON", "false").lower() == "true"

    @classmethod
    def validate(cls, require_catalog: bool = True) -> bool:
        """
        Validate critical configuration values.

        Args:
            require_catalog: Whether the calling job talks to TMDB

        Returns:
            True if configuration is valid

        Raises:
            ConfigurationError: If a required value is missing or out of range
        """
        if not cls.DATABASE_URL:
            raise ConfigurationError("DATABASE_URL is not set")

        if require_catalog and not cls.TMDB_API_KEY:
            raise ConfigurationError(
                "TMDB_API_KEY is not set. Export a v3 API key or v4 read token."
            )

        if not cls.VIDSRC_DOMAINS:
            raise ConfigurationError("VIDSRC_DOMAINS must list at least one domain")

        if not cls.PROXY_LIST:
            raise ConfigurationError("PROXY_LIST must list at least one proxy")

        if cls.PROBE_TIMEOUT_MS <= 0:
            raise ConfigurationError(f"PROBE_TIMEOUT_MS must be positive, got {cls.PROBE_TIMEOUT_MS}")

        if not 1 <= cls.NUM_WORKERS <= 4:
            raise ConfigurationError(f"NUM_WORKERS must be between 1 and 4, got {cls.NUM_WORKERS}")

        return True

    @classmethod
    def get_summary(cls) -> dict:
        """
        Get configuration summary for logging/debugging.

        Returns:
            Dictionary with non-sensitive configuration values
        """
        return {
            "app_version": cls.APP_VERSION,
            "database_url": cls.DATABASE_URL.split("@")[-1] if "@" in cls.DATABASE_URL else cls.DATABASE_URL,
            "tmdb_configured": bool(cls.TMDB_API_KEY),
            "tmdb_api_base": cls.TMDB_API_BASE,
            "vidsrc_domains": len(cls.VIDSRC_DOMAINS),
            "proxies": len(cls.PROXY_LIST),
            "probe_timeout_ms": cls.PROBE_TIMEOUT_MS,
            "probe_attempt_delay_ms": cls.PROBE_ATTEMPT_DELAY_MS,
            "freshness_window_hours": cls.FRESHNESS_WINDOW_HOURS,
            "default_concurrency": cls.DEFAULT_CONCURRENCY,
            "num_workers": cls.NUM_WORKERS,
            "log_dir": cls.LOG_DIR,
        }


# Singleton instance
config = Config()
