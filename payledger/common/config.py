"""Central environment-driven settings shared by the ledger and invoicing services.

Each service process loads this once at startup. Service-specific behavior is
controlled by environment variables (see `.env.example`).
"""

from decimal import Decimal

from pydantic_settings import BaseSettings, SettingsConfigDict


class CommonSettings(BaseSettings):
    """Typed view of runtime configuration from environment variables."""

    service_name: str = "unknown-service"
    log_level: str = "INFO"
    database_url: str
    api_key: str
    upstream_url: str = "http://records-api:8080/exec"
    upstream_api_key: str | None = None
    upstream_timeout_seconds: float = 10.0
    kafka_bootstrap_servers: str = "kafka:9092"
    redis_url: str = "redis://redis:6379/0"
    otel_exporter_otlp_endpoint: str = "http://otel-collector:4318/v1/traces"
    tracing_enabled: bool = True
    # Payroll rates used by ledger derivation; invoices take their own contact rate.
    guard_daily_rate: Decimal = Decimal("500")
    labor_daily_rate: Decimal = Decimal("500")
    escort_daily_rate: Decimal = Decimal("500")
    labor_hours_per_day: Decimal = Decimal("9")
    invoice_number_start: int = 1000
    derive_lock_timeout_seconds: int = 300
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


settings = CommonSettings()
