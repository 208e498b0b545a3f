# ==============================================================================
# Application Configuration
# ==============================================================================
"""
Configuration management using pydantic-settings.

All configuration is loaded from environment variables, with support for
.env files via python-dotenv.
"""

from functools import lru_cache
from typing import Literal, Optional

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load .env file before any settings are instantiated
load_dotenv()


class PostgresSettings(BaseSettings):
    """PostgreSQL connection settings."""

    model_config = SettingsConfigDict(env_prefix="PG_")

    host: str = Field(default="localhost", description="PostgreSQL host")
    port: int = Field(default=5432, description="PostgreSQL port")
    user: str = Field(default="postgres", description="PostgreSQL username")
    password: str = Field(default="", description="PostgreSQL password")
    database: str = Field(default="postmetric", description="Database name")
    schema_name: str = Field(default="postmetric", description="Schema name")
    sslmode: str = Field(default="prefer", description="SSL mode")

    # Connection pool used by the request handlers
    pool_min_connections: int = Field(default=1, description="Minimum pooled connections")
    pool_max_connections: int = Field(default=10, description="Maximum pooled connections")
    pool_acquire_timeout_seconds: float = Field(
        default=30.0, description="Seconds a request waits for a free pooled connection"
    )

    @property
    def connection_string(self) -> str:
        """Build PostgreSQL connection string."""
        return (
            f"postgresql://{self.user}:{self.password}@"
            f"{self.host}:{self.port}/{self.database}?sslmode={self.sslmode}"
        )


class ValkeySettings(BaseSettings):
    """Valkey (Redis-compatible) connection settings for counters and caching."""

    model_config = SettingsConfigDict(env_prefix="VALKEY_")

    host: str = Field(default="localhost", description="Valkey host")
    port: int = Field(default=6379, description="Valkey port")
    password: Optional[str] = Field(default=None, description="Valkey password")
    db: int = Field(default=0, description="Valkey database number")
    ssl: bool = Field(default=False, description="Use SSL/TLS connection")

    # Hot-path clients fail fast instead of retrying
    socket_timeout: float = Field(
        default=0.5, description="Socket timeout in seconds for request-path operations"
    )

    @property
    def url(self) -> str:
        """Build Valkey connection URL."""
        scheme = "rediss" if self.ssl else "redis"
        if self.password:
            return f"{scheme}://:{self.password}@{self.host}:{self.port}/{self.db}"
        return f"{scheme}://{self.host}:{self.port}/{self.db}"


class GeolocationSettings(BaseSettings):
    """IP geolocation provider settings.

    Providers are tried in order: MaxMind database (when a path is set),
    ipapi.co, IPStack (when an API key is set), ip-api.com.
    """

    model_config = SettingsConfigDict(env_prefix="GEO_")

    enabled: bool = Field(default=True, description="Enable IP geolocation lookups")
    maxmind_db_path: Optional[str] = Field(
        default=None, description="Path to a GeoLite2/GeoIP2 City database"
    )
    ipapi_key: Optional[str] = Field(default=None, description="ipapi.co API key (optional)")
    ipstack_api_key: Optional[str] = Field(default=None, description="IPStack API key")
    use_ip_api_com: bool = Field(default=True, description="Fall back to ip-api.com")
    timeout_seconds: float = Field(default=1.5, description="Timeout per provider request")
    budget_seconds: float = Field(
        default=2.0, description="Total time allowed for one lookup across all providers"
    )
    cache_ttl_seconds: int = Field(default=86400, description="TTL for cached lookups")
    user_agent: str = Field(default="PostMetric/1.0", description="User-Agent for HTTP lookups")


class AttackModeSettings(BaseSettings):
    """Attack-mode spike detection and admission control settings."""

    model_config = SettingsConfigDict(env_prefix="ATTACK_MODE_")

    policy: Literal["threshold", "baseline"] = Field(
        default="threshold", description="Spike detection policy (threshold, baseline)"
    )
    default_threshold: int = Field(
        default=1000, description="Hits per spike window when the site sets no threshold"
    )
    spike_window_seconds: int = Field(default=3600, description="Spike counter window")
    baseline_multiplier: float = Field(
        default=3.0, description="Baseline policy: spike when current > multiplier x previous"
    )
    per_ip_limit: int = Field(
        default=10, description="Hits allowed per IP per window while attack mode is active"
    )
    per_ip_window_seconds: int = Field(default=60, description="Per-IP admission window")


class TrackingSettings(BaseSettings):
    """Tracking endpoint behaviour: cookies, limits and hostname validation."""

    model_config = SettingsConfigDict(env_prefix="TRACKING_")

    visitor_cookie_name: str = Field(default="_pm_vid", description="Visitor cookie name")
    session_cookie_name: str = Field(default="_pm_sid", description="Session cookie name")
    visitor_cookie_max_age: int = Field(
        default=365 * 24 * 3600, description="Visitor cookie lifetime in seconds"
    )
    session_cookie_max_age: int = Field(
        default=30 * 60, description="Session cookie lifetime in seconds"
    )
    active_session_window_seconds: int = Field(
        default=300, description="Window for re-attaching a hit to a recent session"
    )
    max_path_length: int = Field(default=2048, description="Maximum stored path length")
    max_title_length: int = Field(default=500, description="Maximum stored title length")
    strict_hostnames: bool = Field(
        default=False,
        description="Drop hits whose hostname matches neither the site domain "
        "nor its additional domains",
    )
    cors_max_age: int = Field(default=86400, description="CORS preflight max-age")


class ServerSettings(BaseSettings):
    """HTTP server settings."""

    model_config = SettingsConfigDict(env_prefix="SERVER_")

    host: str = Field(default="0.0.0.0", description="Bind address")
    port: int = Field(default=8000, description="Bind port")
    workers: int = Field(default=1, description="Number of uvicorn worker processes")


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        extra="ignore",
    )

    # Nested settings
    postgres: PostgresSettings = Field(default_factory=PostgresSettings)
    valkey: ValkeySettings = Field(default_factory=ValkeySettings)
    geolocation: GeolocationSettings = Field(default_factory=GeolocationSettings)
    attack_mode: AttackModeSettings = Field(default_factory=AttackModeSettings)
    tracking: TrackingSettings = Field(default_factory=TrackingSettings)
    server: ServerSettings = Field(default_factory=ServerSettings)

    # General settings
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Logging level")


@lru_cache
def get_settings() -> Settings:
    """
    Get cached application settings.

    Settings are loaded once and cached for subsequent calls.
    """
    return Settings()
