"""
AdaptRisk Configuration.

Pydantic Settings v2 — loads from .env, environment variables.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── Application ──────────────────────────────────────────────────────
    app_name: str = "AdaptRisk"
    app_version: str = "1.0.0"
    environment: str = Field(default="development", alias="ENVIRONMENT")
    debug: bool = Field(default=False, alias="DEBUG")

    # ── API ───────────────────────────────────────────────────────────────
    api_host: str = Field(default="0.0.0.0", alias="API_HOST")
    api_port: int = Field(default=8002, alias="API_PORT")
    api_prefix: str = "/api/v1"
    tenant_header: str = "X-Tenant-ID"

    # ── Database ─────────────────────────────────────────────────────────
    database_url: str = Field(
        default="sqlite+aiosqlite:///./adaptrisk.db",
        alias="DATABASE_URL",
    )
    db_pool_recycle: int = Field(default=3600, alias="DB_POOL_RECYCLE")
    store_backend: str = Field(
        default="sql", alias="STORE_BACKEND",
        description="sql (documents table) or memory (single process, tests)",
    )

    # ── Simulation Engine ─────────────────────────────────────────────────
    default_runs: int = Field(default=1000, alias="SIM_DEFAULT_RUNS")
    default_seed: int = Field(default=42, alias="SIM_DEFAULT_SEED")
    max_runs: int = Field(default=100_000, alias="SIM_MAX_RUNS")
    min_dependence_runs: int = Field(
        default=50, alias="SIM_MIN_DEPENDENCE_RUNS",
        description="Below this run count rank correlation estimates are meaningless",
    )

    # ── Guardrail Auto-Adjustment ─────────────────────────────────────────
    guardrail_breach_window_days: int = Field(default=90, alias="GUARDRAIL_BREACH_WINDOW_DAYS")
    guardrail_breach_threshold_count: int = Field(default=2, alias="GUARDRAIL_BREACH_THRESHOLD_COUNT")
    guardrail_tightening_percent: float = Field(default=0.10, alias="GUARDRAIL_TIGHTENING_PERCENT")
    guardrail_severity_based_adjustment: bool = Field(
        default=False, alias="GUARDRAIL_SEVERITY_BASED_ADJUSTMENT",
    )

    # ── Signal Refresh ────────────────────────────────────────────────────
    auto_refresh_enabled: bool = Field(default=True, alias="AUTO_REFRESH_ENABLED")
    refresh_debounce_seconds: float = Field(default=2.0, alias="REFRESH_DEBOUNCE_SECONDS")
    refresh_change_threshold: float = Field(default=0.05, alias="REFRESH_CHANGE_THRESHOLD")
    refresh_batch_size: int = Field(default=10, alias="REFRESH_BATCH_SIZE")
    signal_poll_interval_seconds: int = Field(default=60, alias="SIGNAL_POLL_INTERVAL_SECONDS")
    signal_monitor_enabled: bool = Field(default=False, alias="SIGNAL_MONITOR_ENABLED")

    # ── Learning Trace / Portfolio ────────────────────────────────────────
    learning_trace_max_entries: int = Field(default=100, alias="LEARNING_TRACE_MAX_ENTRIES")
    antifragility_history_max_snapshots: int = Field(default=500, alias="ANTIFRAGILITY_HISTORY_MAX_SNAPSHOTS")
    portfolio_history_size: int = Field(default=30, alias="PORTFOLIO_HISTORY_SIZE")
    portfolio_cvar_multiplier: float = Field(default=1.15, alias="PORTFOLIO_CVAR_MULTIPLIER")

    # ── External Services ─────────────────────────────────────────────────
    signal_feed_url: str = Field(default="", alias="SIGNAL_FEED_URL")
    signal_feed_api_key: str = Field(default="", alias="SIGNAL_FEED_API_KEY")
    signal_feed_timeout_seconds: float = Field(default=10.0, alias="SIGNAL_FEED_TIMEOUT_SECONDS")
    signal_feed_retry_attempts: int = Field(default=3, alias="SIGNAL_FEED_RETRY_ATTEMPTS")

    # ── Operational ────────────────────────────────────────────────────────
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_format: str = Field(default="console", alias="LOG_FORMAT")

    @property
    def async_database_url(self) -> str:
        """Ensure the database URL uses an async driver."""
        url = self.database_url
        if url.startswith("postgresql://"):
            url = url.replace("postgresql://", "postgresql+asyncpg://", 1)
        if url.startswith("sqlite://"):
            url = url.replace("sqlite://", "sqlite+aiosqlite://", 1)
        return url


settings = Settings()
