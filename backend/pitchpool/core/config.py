from decimal import Decimal
from functools import lru_cache
from typing import Any
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

from pydantic import AnyUrl, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _ensure_sqlalchemy_postgres_scheme(value: str) -> str:
    if not value.lower().startswith("postgres"):
        return value

    parsed = urlparse(value)
    scheme = parsed.scheme.lower()

    if scheme in {"postgres", "postgresql"}:
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
        default="sqlite:///../data/pitchpool.db",
        description="SQLAlchemy compatible database URL",
    )
    supabase_db_url: AnyUrl | str | None = Field(
        default=None,
        description="Hosted Postgres connection string used when ENVIRONMENT=production",
    )

    default_platform_fee_percentage: Decimal = Field(
        default=Decimal("0.03"),
        description="Platform fee applied to new markets, as a fraction of the pool",
    )
    default_creator_reward_percentage: Decimal = Field(
        default=Decimal("0.02"),
        description="Creator reward applied to new markets, as a fraction of the pool",
    )
    max_platform_fee_percentage: Decimal = Field(
        default=Decimal("0.10"),
        description="Upper bound accepted for any market's platform fee",
    )
    max_creator_reward_percentage: Decimal = Field(
        default=Decimal("0.10"),
        description="Upper bound accepted for any market's creator reward",
    )

    atomic_units_per_token: int = Field(
        default=100_000,
        description="Number of atomic units in one whole token",
        ge=1,
    )
    token_decimals: int = Field(
        default=5,
        description="Decimal places used when formatting token amounts",
        ge=0,
    )
    token_symbol: str = Field(default="MNEE", description="Display symbol for amounts")
    min_transfer_amount: int = Field(
        default=1_000,
        description="Smallest transfer accepted, in atomic units",
        ge=0,
    )
    max_transfer_amount: int = Field(
        default=100_000_000_000,
        description="Largest transfer accepted, in atomic units",
        ge=1,
    )

    football_data_base_url: AnyUrl | str = Field(
        default="https://api.football-data.org/v4",
        description="Base URL for the football-data.org API",
    )
    football_data_api_keys: list[str] | str = Field(
        default_factory=list,
        description=(
            "football-data.org API keys; the client rotates to the next key when "
            "one is rate-limited."
        ),
    )
    football_data_timeout_seconds: float = Field(
        default=10.0,
        description="HTTP timeout for match feed requests",
        gt=0,
    )
    settlement_summary_path: str | None = Field(
        default=None,
        description="Default path for the settlement job's JSON summary (blank to disable)",
    )

    @field_validator(
        "default_platform_fee_percentage",
        "default_creator_reward_percentage",
        "max_platform_fee_percentage",
        "max_creator_reward_percentage",
    )
    @classmethod
    def _validate_fraction(cls, value: Decimal) -> Decimal:
        if not value.is_finite() or value < 0 or value > 1:
            raise ValueError("fee percentages must be fractions between 0 and 1")
        return value

    @field_validator("database_url", "supabase_db_url", mode="before")
    @classmethod
    def _normalize_postgres_urls(cls, value: Any) -> Any:
        if value is None or not isinstance(value, str):
            return value
        if value.startswith("postgres://"):
            return "postgresql://" + value[len("postgres://") :]
        return value

    @field_validator("football_data_api_keys", mode="after")
    @classmethod
    def _parse_api_keys(cls, value: Any) -> list[str]:
        if value in (None, "", []):
            return []
        if isinstance(value, str):
            return [item for item in (part.strip() for part in value.split(",")) if item]
        if isinstance(value, (list, tuple, set)):
            return [str(item).strip() for item in value if str(item).strip()]
        raise ValueError(
            "FOOTBALL_DATA_API_KEYS must be provided as a list or comma-separated string"
        )

    @model_validator(mode="after")
    def _check_transfer_bounds(self) -> "Settings":
        if self.min_transfer_amount > self.max_transfer_amount:
            raise ValueError("MIN_TRANSFER_AMOUNT cannot exceed MAX_TRANSFER_AMOUNT")
        return self

    @property
    def resolved_database_url(self) -> str:
        if self.environment.lower() == "production":
            if not self.supabase_db_url:
                raise ValueError(
                    "SUPABASE_DB_URL must be set when ENVIRONMENT=production"
                )
            return _ensure_sqlalchemy_postgres_scheme(str(self.supabase_db_url))
        return _ensure_sqlalchemy_postgres_scheme(str(self.database_url))


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
