"""Configuration management for the job application tracker."""

from typing import Dict, List, Optional
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Persistence
    database_url: str = Field("sqlite:///./job_tracker.db", description="SQLAlchemy database URL")
    database_echo: bool = Field(False, description="Echo SQL statements")

    # Scraper service
    scraper_service_url: str = Field("http://localhost:8000", description="Base URL of the job scraping service")
    scraper_api_key: Optional[str] = Field(None, description="API key sent to the scraping service")
    scraper_timeout_seconds: float = Field(300.0, description="Timeout for one scraping request")
    scraper_cancel_timeout_seconds: float = Field(10.0, description="Timeout for the remote cancel call")
    scraper_max_jobs_per_platform: int = Field(50, description="Maximum jobs requested per platform")
    scraper_platforms: List[str] = Field(
        ["linkedin", "indeed", "glassdoor"], description="Platforms requested from the scraper"
    )

    # Scraping limits
    scraping_daily_session_limits: Dict[str, int] = Field(
        {"basic": 3, "premium": 10, "enterprise": 50},
        description="Scraping sessions allowed per rolling day, by package type"
    )
    scraping_stats_window_days: int = Field(30, description="Default window for scraping statistics")

    # Application Configuration
    debug: bool = Field(False, description="Enable debug mode")
    log_level: str = Field("INFO", description="Logging level")
    max_retries: int = Field(3, description="Maximum retry attempts on concurrent modification")
    default_page_size: int = Field(20, description="Default page size for listings")
    max_page_size: int = Field(100, description="Maximum page size for listings")

    # Server Configuration
    host: str = Field("0.0.0.0", description="Server host")
    port: int = Field(8080, description="Server port")
    reload: bool = Field(False, description="Enable auto-reload")
    allowed_origins: List[str] = Field(["*"], description="CORS allowed origins")
    allowed_hosts: Optional[List[str]] = Field(None, description="Trusted hosts")

    # Actor context (authentication happens upstream)
    actor_id_header: str = Field("X-Actor-Id", description="Header carrying the acting user id")
    actor_role_header: str = Field("X-Actor-Role", description="Header carrying the acting user role")


# Global settings instance
settings = Settings()
