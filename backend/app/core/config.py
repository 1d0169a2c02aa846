from functools import lru_cache
from typing import Any
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

from pydantic import AnyUrl, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

CHAIN_READER_STRATEGIES = ("log_filter", "block_scan")


class ConfigurationError(RuntimeError):
    """Raised when required settings are missing at startup."""


def _ensure_sqlalchemy_postgres_scheme(value: str) -> str:
    if not value.lower().startswith("postgres"):
        return value

    parsed = urlparse(value)
    scheme = parsed.scheme.lower()

    if scheme == "postgres":
        scheme = "postgresql"

    if scheme == "postgresql":
        scheme = "postgresql+psycopg"

    if scheme not in {"postgresql+psycopg", "postgresql+asyncpg"}:
        scheme = "postgresql+psycopg"

    query_params = dict(parse_qsl(parsed.query, keep_blank_values=True))
    query_params.setdefault("target_session_attrs", "read-write")
    new_query = urlencode(query_params, doseq=True)

    normalized = urlunparse(
        parsed._replace(
            scheme=scheme,
            query=new_query,
        )
    )
    return normalized


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    debug: bool = Field(False, description="Echo SQL statements and enable verbose logging")
    environment: str = Field(
        default="development",
        description="Runtime environment (development|staging|production)",
    )
    database_url: AnyUrl | str = Field(
        default="sqlite:///../data/market_sync.db",
        description="SQLAlchemy compatible database URL",
    )
    rpc_url: str | None = Field(
        default=None,
        description="JSON-RPC endpoint of the chain node",
    )
    contract_address: str | None = Field(
        default=None,
        description="Address of the prediction market contract whose events are synced",
    )
    chain_reader: str = Field(
        default="log_filter",
        description="Chain reader strategy (log_filter|block_scan)",
    )
    tendermint_rpc_url: str | None = Field(
        default=None,
        description="Tendermint RPC endpoint used by the block_scan strategy (defaults to RPC_URL)",
    )
    rpc_timeout_seconds: float = Field(
        default=10.0,
        description="Timeout applied to every chain node request",
        gt=0,
    )
    rpc_poa_middleware: bool = Field(
        default=False,
        description="Inject the proof-of-authority extraData middleware into web3",
    )
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection string holding the sync checkpoint",
    )
    checkpoint_key: str = Field(
        default="LAST_PROCESSED_BLOCK",
        description="Redis key storing the last fully processed block height",
    )
    sync_batch_size: int = Field(
        default=10,
        description="Maximum number of additional blocks consumed per sync tick",
        ge=0,
    )
    poll_interval_seconds: float = Field(
        default=6.0,
        description="Cadence of the sync loop",
        gt=0,
    )
    expiry_sweep_interval_seconds: float = Field(
        default=30.0,
        description="Cadence of the market expiry sweep",
        gt=0,
    )

    @field_validator("database_url", mode="before")
    @classmethod
    def _normalize_postgres_urls(cls, value: Any) -> Any:
        if value is None or not isinstance(value, str):
            return value

        if value.startswith("postgresql+psycopg://") or value.startswith(
            "postgresql+asyncpg://"
        ):
            return value

        normalized = value
        if normalized.startswith("postgres://"):
            normalized = "postgresql://" + normalized[len("postgres://") :]

        return normalized

    @field_validator("chain_reader", mode="before")
    @classmethod
    def _validate_chain_reader(cls, value: Any) -> str:
        candidate = str(value or "").strip().lower().replace("-", "_")
        if candidate not in CHAIN_READER_STRATEGIES:
            raise ValueError(
                "CHAIN_READER must be one of: " + ", ".join(CHAIN_READER_STRATEGIES)
            )
        return candidate

    @field_validator("contract_address", mode="before")
    @classmethod
    def _validate_contract_address(cls, value: Any) -> str | None:
        if value in (None, ""):
            return None
        candidate = str(value).strip()
        body = candidate[2:] if candidate.lower().startswith("0x") else ""
        if len(body) != 40 or any(char not in "0123456789abcdefABCDEF" for char in body):
            raise ValueError("CONTRACT_ADDRESS must be a 0x-prefixed 20 byte hex address")
        return candidate

    @field_validator("rpc_url", "tendermint_rpc_url", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @property
    def resolved_database_url(self) -> str:
        return _ensure_sqlalchemy_postgres_scheme(str(self.database_url))

    @property
    def resolved_tendermint_rpc_url(self) -> str | None:
        return self.tendermint_rpc_url or self.rpc_url

    def missing_sync_settings(self) -> list[str]:
        """Return the environment names of required sync settings that are unset."""

        missing: list[str] = []
        if not self.rpc_url:
            missing.append("RPC_URL")
        if not self.contract_address:
            missing.append("CONTRACT_ADDRESS")
        return missing

    def require_sync_settings(self) -> None:
        missing = self.missing_sync_settings()
        if missing:
            raise ConfigurationError(
                "Missing required configuration: " + ", ".join(missing)
            )


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
