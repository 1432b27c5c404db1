"""
Visit Ingestion Pipeline - Configuration Settings

Centralized configuration using Pydantic Settings for type-safe
environment variable handling with validation.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, computed_field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings can be overridden via environment variables.
    Example: DEDUP_PAGE_VISIT_SECONDS=300 restores the older 5-minute window.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # =========================================================================
    # Application Settings
    # =========================================================================
    app_env: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Application environment"
    )
    app_debug: bool = Field(
        default=True,
        description="Enable debug mode"
    )
    app_log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging level"
    )

    # =========================================================================
    # Redis Configuration (shared cache tier, pub/sub notifications)
    # =========================================================================
    redis_enabled: bool = Field(
        default=True,
        description="Use Redis as the shared cache tier"
    )
    redis_host: str = Field(
        default="localhost",
        description="Redis server hostname"
    )
    redis_port: int = Field(
        default=6379,
        description="Redis server port"
    )
    redis_db: int = Field(
        default=0,
        description="Redis database number"
    )
    redis_key_prefix: str = Field(
        default="visits:",
        description="Prefix for all Redis keys and channels"
    )
    redis_password: str | None = Field(
        default=None,
        description="Redis password (optional)"
    )
    redis_socket_timeout_seconds: float = Field(
        default=0.5,
        description="Socket timeout for shared cache operations"
    )

    @computed_field  # type: ignore[prop-decorator]
    @property
    def redis_url(self) -> str:
        """Construct Redis connection URL."""
        auth = f":{self.redis_password}@" if self.redis_password else ""
        return f"redis://{auth}{self.redis_host}:{self.redis_port}/{self.redis_db}"

    # =========================================================================
    # PostgreSQL Configuration (visit store, website directory)
    # =========================================================================
    postgres_enabled: bool = Field(
        default=True,
        description="Persist visits and resolve websites through PostgreSQL"
    )
    postgres_host: str = Field(
        default="localhost",
        description="PostgreSQL server hostname"
    )
    postgres_port: int = Field(
        default=5432,
        description="PostgreSQL server port"
    )
    postgres_db: str = Field(
        default="visit_tracking",
        description="PostgreSQL database name"
    )
    postgres_user: str = Field(
        default="tracking_user",
        description="PostgreSQL username"
    )
    postgres_password: str = Field(
        default="",
        description="PostgreSQL password (set via POSTGRES_PASSWORD env var)"
    )

    @computed_field  # type: ignore[prop-decorator]
    @property
    def postgres_url(self) -> str:
        """Construct PostgreSQL connection URL for asyncpg."""
        return (
            f"postgresql+asyncpg://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    # =========================================================================
    # API Configuration
    # =========================================================================
    api_host: str = Field(
        default="0.0.0.0",
        description="API server bind address"
    )
    api_port: int = Field(
        default=8000,
        description="API server port"
    )
    cors_allow_origins: str = Field(
        default="*",
        description="Comma-separated list of allowed CORS origins"
    )
    metrics_token: str | None = Field(
        default=None,
        description="Token required to access /metrics (optional)"
    )

    @computed_field  # type: ignore[prop-decorator]
    @property
    def cors_allow_origins_list(self) -> list[str]:
        """Return CORS origins as a list."""
        if not self.cors_allow_origins:
            return []
        return [origin.strip() for origin in self.cors_allow_origins.split(",") if origin.strip()]

    # =========================================================================
    # Metrics Configuration
    # =========================================================================
    metrics_enabled: bool = Field(
        default=True,
        description="Enable Prometheus metrics endpoint"
    )
    metrics_external_enabled: bool = Field(
        default=False,
        description="Enable standalone metrics server (binds separate port)"
    )
    metrics_port: int = Field(
        default=9100,
        description="Prometheus metrics port"
    )
    target_e2e_latency_ms: int = Field(
        default=500,
        description="Latency above which a tracking request counts as slow"
    )

    # =========================================================================
    # Upstream Providers
    # =========================================================================
    ipinfo_token: str | None = Field(
        default=None,
        description="ipinfo.io token (optional, raises rate limits)"
    )
    iphub_api_key: str | None = Field(
        default=None,
        description="IPHub API key; reputation lookups are skipped without it"
    )
    ipqualityscore_api_key: str | None = Field(
        default=None,
        description="IPQualityScore API key (optional second reputation source)"
    )
    provider_user_agent: str = Field(
        default="IP-Tracker/2.0",
        description="User-Agent header sent to upstream providers"
    )
    location_provider_timeout_seconds: float = Field(
        default=2.0,
        description="Per-provider timeout for geolocation lookups"
    )
    threat_provider_timeout_seconds: float = Field(
        default=2.0,
        description="Per-provider timeout for reputation lookups"
    )
    heuristic_timeout_seconds: float = Field(
        default=1.5,
        description="Timeout for the ISP keyword heuristic when the ISP is already known"
    )
    resolution_deadline_seconds: float = Field(
        default=3.0,
        description="Overall deadline for one location or threat resolution"
    )

    # =========================================================================
    # Cache TTLs (seconds)
    # =========================================================================
    location_ttl_seconds: int = Field(default=300, description="Successful location TTL")
    location_failure_ttl_seconds: int = Field(default=60, description="Failed location TTL")
    threat_ttl_seconds: int = Field(default=1800, description="Successful threat TTL")
    threat_failure_ttl_seconds: int = Field(default=300, description="Failed threat TTL")
    local_cache_max_entries: int = Field(
        default=10000,
        description="Upper bound on process-local cache entries"
    )

    # =========================================================================
    # Sessions & Identity
    # =========================================================================
    session_ttl_seconds: int = Field(
        default=1800,
        description="Session expires after this much inactivity"
    )
    fingerprint_match_window_seconds: int = Field(
        default=3600,
        description="Fingerprint matches only sessions created within this window"
    )
    high_visit_frequency_threshold: int = Field(
        default=30,
        description="Session visit count above which activity is flagged"
    )

    # =========================================================================
    # Deduplication Windows (seconds)
    # Shorter windows from the latest tracking variant; see DESIGN.md
    # =========================================================================
    dedup_page_visit_seconds: int = Field(default=120, ge=0)
    dedup_heartbeat_seconds: int = Field(default=15, ge=0)
    dedup_session_end_seconds: int = Field(default=0, ge=0)

    # =========================================================================
    # Rate Limiting
    # =========================================================================
    rate_limit_enabled: bool = Field(
        default=True,
        description="Reject IPs exceeding the per-minute request budget"
    )
    rate_limit_per_minute: int = Field(
        default=100,
        description="Max tracking requests per IP per minute"
    )

    # =========================================================================
    # Fraud Scoring
    # =========================================================================
    high_fraud_score_threshold: int = Field(
        default=50,
        ge=0,
        le=100,
        description="Score above which a high_fraud_score annotation is added"
    )
    security_alert_threshold: int = Field(
        default=70,
        ge=0,
        le=100,
        description="Score above which a security alert is published"
    )

    # =========================================================================
    # Persistence
    # =========================================================================
    storage_retry_attempts: int = Field(
        default=1,
        ge=0,
        description="Retries for a failed visit write before dropping it"
    )

    @model_validator(mode="after")
    def _validate_production_security(self) -> "Settings":
        """Enforce required settings in production."""
        if self.app_env == "production":
            missing: list[str] = []
            if not self.metrics_token:
                missing.append("METRICS_TOKEN")
            if self.postgres_enabled and not self.postgres_password:
                missing.append("POSTGRES_PASSWORD")
            if missing:
                raise ValueError(
                    "Missing required settings for production: "
                    + ", ".join(missing)
                )
        return self


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses LRU cache to avoid re-parsing environment on every call.
    """
    return Settings()


# Singleton settings instance for easy import
settings = get_settings()
