from functools import lru_cache
from typing import Any
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

from pydantic import AnyUrl, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _ensure_sqlalchemy_postgres_scheme(value: str) -> str:
    if not value.lower().startswith("postgres"):
        return value

    parsed = urlparse(value)
    scheme = parsed.scheme.lower()

    if scheme == "postgres":
        scheme = "postgresql"

    if scheme == "postgresql":
        scheme = "postgresql+psycopg"

    if scheme != "postgresql+psycopg":
        scheme = "postgresql+psycopg"

    query_params = dict(parse_qsl(parsed.query, keep_blank_values=True))
    query_params.setdefault("sslmode", "require")
    new_query = urlencode(query_params, doseq=True)

    return urlunparse(parsed._replace(scheme=scheme, query=new_query))


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    debug: bool = Field(False, description="Enable FastAPI debug mode")
    environment: str = Field(
        default="development",
        description="Runtime environment (development|staging|production)",
    )
    database_url: AnyUrl | str = Field(
        default="sqlite:///./data/seedbank.db",
        description="SQLAlchemy compatible database URL",
    )
    production_database_url: AnyUrl | str | None = Field(
        default=None,
        description="Postgres connection string used when ENVIRONMENT=production",
    )
    indicator_feed_base_url: AnyUrl = Field(
        default="https://indicators.seed.internal",
        description="Base URL of the indicator ingestion service",
    )
    indicator_feed_snapshots_path: str = Field(
        default="/decisions/{decision_id}/snapshots",
        description="Relative path template for a decision's indicator snapshots",
    )
    indicator_feed_timeout_seconds: float = Field(
        default=10.0,
        description="HTTP timeout applied to indicator feed requests",
        gt=0,
    )
    resolution_batch_size: int = Field(
        default=25,
        description="Number of decisions evaluated per chunk by the resolution sweep",
        ge=1,
    )
    settlement_workers: int = Field(
        default=4,
        description="Number of anticipations settled concurrently within one decision batch",
        ge=1,
    )
    settlement_lease_seconds: int = Field(
        default=900,
        description="Seconds after which a running settlement lease is considered abandoned",
        ge=1,
    )
    bid_retry_attempts: int = Field(
        default=3,
        description="Number of attempts for a featured-argument bid that loses a concurrent race",
        ge=1,
    )
    bid_retry_backoff_seconds: list[float] | tuple[float, ...] | str = Field(
        default_factory=lambda: [0.05, 0.1, 0.2],
        description="Comma-separated list or array of delays (seconds) between bid retries",
    )
    rules_path: str | None = Field(
        default=None,
        description="Optional YAML file overriding the published resolution and Seeds rules",
    )

    @field_validator("database_url", "production_database_url", mode="before")
    @classmethod
    def _normalize_postgres_urls(cls, value: Any) -> Any:
        if value is None or not isinstance(value, str):
            return value

        if value.startswith("postgresql+psycopg://"):
            return value

        if value.startswith("postgres://"):
            return "postgresql://" + value[len("postgres://") :]

        return value

    @field_validator("indicator_feed_snapshots_path")
    @classmethod
    def _require_decision_placeholder(cls, value: str) -> str:
        if "{decision_id}" not in value:
            raise ValueError(
                "INDICATOR_FEED_SNAPSHOTS_PATH must contain a {decision_id} placeholder"
            )
        return value

    @field_validator("bid_retry_backoff_seconds", mode="before")
    @classmethod
    def _parse_retry_backoff(cls, value: Any) -> list[float]:
        if value in (None, "", []):
            return [0.05, 0.1, 0.2]
        if isinstance(value, str):
            tokens = [token.strip() for token in value.split(",") if token.strip()]
            if not tokens:
                raise ValueError("BID_RETRY_BACKOFF_SECONDS must contain at least one value")
            value = tokens
        if isinstance(value, (list, tuple)):
            backoff: list[float] = []
            for item in value:
                try:
                    delay = float(item)
                except (TypeError, ValueError) as exc:
                    raise ValueError("BID_RETRY_BACKOFF_SECONDS entries must be numeric") from exc
                if delay < 0:
                    raise ValueError("BID_RETRY_BACKOFF_SECONDS entries must not be negative")
                backoff.append(delay)
            if not backoff:
                raise ValueError("BID_RETRY_BACKOFF_SECONDS must contain at least one value")
            return backoff
        raise ValueError(
            "BID_RETRY_BACKOFF_SECONDS must be provided as a comma-separated string or list of numbers"
        )

    @property
    def resolved_database_url(self) -> str:
        environment = self.environment.lower()
        if environment == "production":
            if not self.production_database_url:
                raise ValueError(
                    "PRODUCTION_DATABASE_URL must be set when ENVIRONMENT=production"
                )
            return _ensure_sqlalchemy_postgres_scheme(str(self.production_database_url))
        return _ensure_sqlalchemy_postgres_scheme(str(self.database_url))

    @property
    def bid_retry_backoff_schedule(self) -> tuple[float, ...]:
        sequence = tuple(float(value) for value in self.bid_retry_backoff_seconds)
        if not sequence:
            return (0.0,)
        return sequence


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
