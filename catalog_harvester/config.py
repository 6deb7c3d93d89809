"""Application configuration using Pydantic settings."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    # App Settings
    debug: bool = False
    log_level: str = "INFO"
    log_dir: str = "logs"
    log_file_max_bytes: int = 10 * 1024 * 1024
    log_file_backups: int = 5
    app_host: str = "0.0.0.0"
    app_port: int = 8001

    # ==========================================================================
    # Browser Session Settings
    # ==========================================================================
    headless: bool = True
    browser_viewport_width: int = 1280
    browser_viewport_height: int = 900
    browser_user_agent: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/123.0.0.0 Safari/537.36"
    )
    browser_locale: str = "en-US"
    navigation_timeout_ms: int = 30000

    # Navigation retry (rate limit / timeout only)
    navigation_max_attempts: int = 3
    navigation_backoff_base_ms: int = 1000

    # ==========================================================================
    # Pacing Settings (milliseconds)
    # ==========================================================================
    request_delay_min_ms: int = 100
    request_delay_jitter_ms: int = 200
    worker_request_delay_min_ms: int = 150
    worker_request_delay_jitter_ms: int = 100
    section_delay_min_ms: int = 500
    section_delay_jitter_ms: int = 300

    # ==========================================================================
    # Content Materializer Settings
    # ==========================================================================
    scroll_pause_ms: int = 250
    scroll_max_passes: int = 50
    content_probe_timeout_ms: int = 25000
    content_probe_poll_ms: int = 500
    see_more_max_clicks: int = 10
    section_wait_attempts: int = 15

    # Item discovery
    brute_force_threshold: int = 5  # Brute-force anchor scan runs below this count
    click_request_timeout_ms: int = 8000

    # ==========================================================================
    # Detail Fetch Settings
    # ==========================================================================
    detail_workers: int = 3  # Kept low to avoid rate limiting
    detail_response_timeout_ms: int = 15000
    progress_batch_size: int = 10
    retry_max_rounds: int = 10

    # ==========================================================================
    # Job Store Settings
    # ==========================================================================
    job_ttl_seconds: int = 3600  # Terminal records expire after 1 hour
    job_sweep_interval_seconds: int = 300

    # Request defaults
    default_timeout_ms: int = 60000
    min_timeout_ms: int = 10000

    # Export
    export_output_dir: str = "data/exports"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


settings = Settings()
