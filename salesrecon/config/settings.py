"""
Sales Reconciliation Service
Centralized Configuration Management

Pydantic settings with environment variable support, validation, and type safety.
"""

from functools import lru_cache
from typing import Optional
from pydantic import Field, field_validator, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    """PostgreSQL Document Store Configuration"""

    model_config = SettingsConfigDict(env_prefix="POSTGRES_")

    host: str = Field(default="localhost", description="Database host")
    port: int = Field(default=5432, description="Database port")
    db: str = Field(default="salesrecon", alias="database", description="Database name")
    user: str = Field(default="salesrecon", description="Database user")
    password: SecretStr = Field(default="secure_password", description="Database password")
    echo: bool = Field(default=False, description="Echo SQL queries")
    create_tables: bool = Field(default=True, description="Create the documents table on startup")
    url: Optional[str] = Field(default=None, alias="DATABASE_URL", description="Full async URL (overrides host/port)")

    @property
    def async_url(self) -> str:
        """Async database URL for asyncpg"""
        if self.url:
            return self.url
        return f"postgresql+asyncpg://{self.user}:{self.password.get_secret_value()}@{self.host}:{self.port}/{self.db}"


class RedisSettings(BaseSettings):
    """Redis Configuration (import session handoff)"""

    model_config = SettingsConfigDict(env_prefix="REDIS_")

    host: str = Field(default="localhost", description="Redis host")
    port: int = Field(default=6379, description="Redis port")
    password: Optional[SecretStr] = Field(default=None, description="Redis password")
    db: int = Field(default=0, description="Redis database number")
    max_connections: int = Field(default=20, description="Max connections")
    socket_timeout: int = Field(default=5, description="Socket timeout in seconds")
    url: Optional[str] = Field(default=None, alias="REDIS_URL", description="Redis URL (overrides host/port)")

    def get_url(self) -> str:
        """Redis connection URL - uses REDIS_URL if set, otherwise builds from host/port"""
        if self.url:
            return self.url
        if self.password:
            return f"redis://:{self.password.get_secret_value()}@{self.host}:{self.port}/{self.db}"
        return f"redis://{self.host}:{self.port}/{self.db}"


class ImportSettings(BaseSettings):
    """Sales Import Pipeline Configuration"""

    model_config = SettingsConfigDict(env_prefix="IMPORT_")

    per_order_cost: float = Field(default=1250, ge=0, description="Marketplace handling cost posted per imported order")
    expense_name_prefix: str = Field(default="Biaya Resi Marketplace", description="Name prefix of the consolidated cost expense")
    expense_category: str = Field(default="Operasional", description="Category of the consolidated cost expense")
    expense_subcategory: str = Field(default="Biaya Pengiriman", description="Subcategory of the consolidated cost expense")
    new_product_category: str = Field(default="Imported", description="Category given to products created during resolution")
    session_backend: str = Field(default="memory", description="Import session store: memory or redis")
    session_ttl_seconds: int = Field(default=6 * 3600, description="Lifetime of an unconfirmed import session")

    @field_validator("session_backend")
    @classmethod
    def validate_backend(cls, v: str) -> str:
        """Validate session backend"""
        allowed = ["memory", "redis"]
        if v.lower() not in allowed:
            raise ValueError(f"Session backend must be one of: {allowed}")
        return v.lower()


class ReportSettings(BaseSettings):
    """Financial Report Configuration"""

    model_config = SettingsConfigDict(env_prefix="REPORT_")

    dashboard_window_days: int = Field(default=14, ge=1, description="Trailing window of the dashboard summary")
    csv_dept: str = Field(default="UTM", description="Department column value in the CSV export")
    csv_customer_code: str = Field(default="PL0001", description="Customer code column value")
    csv_customer_name: str = Field(default="PELANGGAN", description="Customer name column value")
    csv_filename: str = Field(default="laporan_laba_rugi.csv", description="Download filename of the CSV export")


class MonitoringSettings(BaseSettings):
    """Logging and Metrics Configuration"""

    model_config = SettingsConfigDict(env_prefix="")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL", description="Logging level")
    log_format: str = Field(default="json", alias="LOG_FORMAT", description="Log format: json or text")
    metrics_enabled: bool = Field(default=True, alias="METRICS_ENABLED", description="Expose Prometheus metrics at /metrics")


class Settings(BaseSettings):
    """
    Main Application Settings

    Aggregates all configuration sections and provides a single entry point
    for accessing application configuration.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="salesrecon", alias="APP_NAME", description="Application name")
    app_env: str = Field(default="development", alias="APP_ENV", description="Environment")
    debug: bool = Field(default=False, alias="DEBUG", description="Debug mode")

    # API Server
    api_host: str = Field(default="0.0.0.0", alias="API_HOST", description="API host")
    api_port: int = Field(default=8000, alias="API_PORT", description="API port")

    # Version
    version: str = Field(default="1.0.0", description="Application version")

    # Document store backend
    store_backend: str = Field(default="sql", alias="STORE_BACKEND", description="Document store: sql or memory")

    # Subsystem configurations
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    imports: ImportSettings = Field(default_factory=ImportSettings)
    reports: ReportSettings = Field(default_factory=ReportSettings)
    monitoring: MonitoringSettings = Field(default_factory=MonitoringSettings)

    @field_validator("app_env")
    @classmethod
    def validate_env(cls, v: str) -> str:
        """Validate environment value"""
        allowed = ["development", "staging", "production", "testing"]
        if v.lower() not in allowed:
            raise ValueError(f"Environment must be one of: {allowed}")
        return v.lower()

    @field_validator("store_backend")
    @classmethod
    def validate_store_backend(cls, v: str) -> str:
        """Validate document store backend"""
        allowed = ["sql", "memory"]
        if v.lower() not in allowed:
            raise ValueError(f"Store backend must be one of: {allowed}")
        return v.lower()

    @property
    def is_production(self) -> bool:
        """Check if running in production"""
        return self.app_env == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development"""
        return self.app_env == "development"


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached application settings.

    Uses LRU cache to ensure settings are only loaded once.

    Returns:
        Settings: Application settings instance
    """
    return Settings()
