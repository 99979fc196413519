"""
Configuration Management

Single source of truth for relay settings. Values load from environment
variables (case-insensitive) or a local ``.env`` file; command-line flags
override the receiver/polling values at startup.
"""

from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Relay Settings

    Intervals are in seconds. Defaults match the receiver application's
    stock port (11180) and the viewer-count server port the browser
    extension expects (11190).
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    log_level: str = "INFO"
    log_categories: Optional[str] = None  # Comma-separated (chat,token,status,delivery,viewer_count,system). If None, show all logs.

    # Receiver (comment display application)
    receiver_host: str = "localhost"
    receiver_port: int = 11180

    # Viewer count server
    viewer_count_host: str = "127.0.0.1"
    viewer_count_port: int = 11190

    # Chat polling
    poll_interval_seconds: float = 3.0
    max_poll_interval_seconds: float = 120.0  # Upper bound for rate-limit doubling
    history_page_limit: int = 1000

    # Session housekeeping
    status_poll_interval_seconds: float = 30.0
    token_check_interval_seconds: float = 30.0
    buffer_flush_interval_seconds: float = 30.0
    stats_interval_seconds: float = 60.0

    # Delivery
    duplicate_filter_max_size: int = 10_000
    delivery_buffer_max_size: int = 1_000
    delivery_retry_delays_seconds: List[float] = [1.0, 2.0, 4.0]

    # HTTP
    http_timeout_seconds: float = 30.0
    http_connect_timeout_seconds: float = 10.0


# Loaded once at import and shared by every component
settings = Settings()
