"""Application settings and configuration.

This module defines all configuration options for the Redeem Guard service.
Settings are loaded from environment variables with sensible defaults.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Every rate-limit window, threshold and alerting knob used by the fraud
    core lives here so deployments can tune them without code changes.
    """

    # Application metadata
    app_name: str = Field(default="Redeem Guard", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Security and authentication
    secret_key: str = Field(alias="SECRET_KEY")
    debug: bool = Field(default=False, alias="DEBUG")
    jwt_algorithm: str = Field(default="HS256", alias="JWT_ALGORITHM")
    access_token_expire_minutes: int = Field(
        default=60 * 12,
        alias="ACCESS_TOKEN_EXPIRE_MINUTES",
    )

    # Database configuration
    database_url: str = Field(default="sqlite:///./redeem_guard.db", alias="DATABASE_URL")
    test_database_url: str | None = Field(default=None, alias="TEST_DATABASE_URL")
    use_testing_database: bool = Field(default=False, alias="USE_TEST_DATABASE")
    sql_debug: bool = Field(default=False, alias="SQL_DEBUG")

    # Per-IP+device policy applied by the HTTP redemption steps
    device_rate_limit_window_seconds: int = Field(
        default=10 * 60, alias="DEVICE_RATE_LIMIT_WINDOW_SECONDS"
    )
    device_rate_limit_max_attempts: int = Field(default=5, alias="DEVICE_RATE_LIMIT_MAX_ATTEMPTS")

    # Tighter per-IP policy applied by the fraud check orchestrator
    ip_rate_limit_window_seconds: int = Field(default=60, alias="IP_RATE_LIMIT_WINDOW_SECONDS")
    ip_rate_limit_max_attempts: int = Field(default=3, alias="IP_RATE_LIMIT_MAX_ATTEMPTS")

    # Per-merchant redemption policy
    merchant_rate_limit_window_seconds: int = Field(
        default=5 * 60, alias="MERCHANT_RATE_LIMIT_WINDOW_SECONDS"
    )
    merchant_rate_limit_max_attempts: int = Field(
        default=10, alias="MERCHANT_RATE_LIMIT_MAX_ATTEMPTS"
    )

    # Fraud-log backed pattern checks
    device_failure_window_minutes: int = Field(default=60, alias="DEVICE_FAILURE_WINDOW_MINUTES")
    device_failure_max: int = Field(default=5, alias="DEVICE_FAILURE_MAX")
    pattern_window_minutes: int = Field(default=60, alias="PATTERN_WINDOW_MINUTES")
    pattern_max_unique_ips: int = Field(default=3, alias="PATTERN_MAX_UNIQUE_IPS")

    # Suspicious activity aggregation
    suspicious_window_seconds: int = Field(default=5 * 60, alias="SUSPICIOUS_WINDOW_SECONDS")
    suspicious_threshold: int = Field(default=3, alias="SUSPICIOUS_THRESHOLD")
    suspicious_high_severity_at: int = Field(default=5, alias="SUSPICIOUS_HIGH_SEVERITY_AT")

    # Periodic cleanup of in-memory tables
    sweep_interval_seconds: float = Field(default=5 * 60, alias="SWEEP_INTERVAL_SECONDS")

    # Redemption payload bounds
    payload_min_length: int = Field(default=3, alias="PAYLOAD_MIN_LENGTH")
    payload_max_length: int = Field(default=500, alias="PAYLOAD_MAX_LENGTH")

    # Fraud alert delivery
    fraud_alert_webhook_url: str | None = Field(default=None, alias="FRAUD_ALERT_WEBHOOK_URL")
    fraud_alert_signing_secret: str | None = Field(
        default=None, alias="FRAUD_ALERT_SIGNING_SECRET"
    )
    fraud_alert_max_attempts: int = Field(default=3, alias="FRAUD_ALERT_MAX_ATTEMPTS")
    fraud_alert_retry_delays: list[float] = Field(
        default=[1.0, 3.0, 9.0], alias="FRAUD_ALERT_RETRY_DELAYS"
    )
    fraud_alert_timeout_seconds: float = Field(default=10.0, alias="FRAUD_ALERT_TIMEOUT_SECONDS")
    fraud_alert_on_block: bool = Field(default=True, alias="FRAUD_ALERT_ON_BLOCK")
    fraud_alert_queue_size: int = Field(default=1000, alias="FRAUD_ALERT_QUEUE_SIZE")

    # CORS configuration for the merchant dashboard
    cors_origins: list[str] = Field(
        default=["*"],
        alias="CORS_ORIGINS",
    )
    cors_allow_credentials: bool = Field(default=True, alias="CORS_ALLOW_CREDENTIALS")
    cors_allow_methods: list[str] = Field(
        default=["GET", "POST", "OPTIONS"],
        alias="CORS_ALLOW_METHODS",
    )
    cors_allow_headers: list[str] = Field(
        default=["*"],
        alias="CORS_ALLOW_HEADERS",
    )

    # Peers allowed to set X-Forwarded-For; anyone else is keyed on the socket address
    forwarded_allow_ips: str = Field(default="127.0.0.1", alias="FORWARDED_ALLOW_IPS")

    model_config = SettingsConfigDict(
        env_file=".env",
        validate_assignment=True,
        extra="ignore",
    )

    @property
    def database_url_sync(self) -> str:
        """Return a sync-compatible database URL for tooling.

        Converts asyncpg URLs to psycopg for synchronous database operations
        like Alembic migrations.
        """
        url = self.effective_database_url
        if url.startswith("postgresql+asyncpg"):
            return url.replace("postgresql+asyncpg", "postgresql+psycopg", 1)
        return url

    @property
    def effective_database_url(self) -> str:
        """Return the database URL respecting testing overrides."""
        if self.use_testing_database and self.test_database_url:
            return self.test_database_url
        return self.database_url

    @property
    def alerting_enabled(self) -> bool:
        """Return True when an alert sink has been configured."""
        return bool(self.fraud_alert_webhook_url)


settings = Settings()  # type: ignore[call-arg]
