"""Config file."""
from urllib.parse import quote_plus

from pydantic import Field, SecretStr, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from launchpad_indexer.app.domain.errors import ConfigurationError

_DEFAULT_GATEWAYS = (
    "https://gateway.pinata.cloud/ipfs/",
    "https://cloudflare-ipfs.com/ipfs/",
    "https://ipfs.io/ipfs/",
)


class Settings(BaseSettings):
    """Application settings."""

    # PROJECT
    project_name: str = Field("launchpad-indexer", alias="PROJECT_NAME")
    log_level: str = Field("INFO", alias="LOG_LEVEL")

    # DATABASE
    postgres_user: str | None = Field(None, alias="POSTGRES_USER")
    postgres_password: SecretStr | None = Field(None, alias="POSTGRES_PASSWORD")
    postgres_server: str | None = Field(None, alias="POSTGRES_SERVER")
    postgres_port: int = Field(5432, alias="POSTGRES_PORT")
    postgres_db: str | None = Field(None, alias="POSTGRES_DB")
    database_url: str | None = Field(None, alias="DATABASE_URL")
    sync_database_url: str | None = Field(None, alias="SYNC_DATABASE_URL")

    # CACHE (optional; no url -> caching disabled)
    redis_url: str | None = Field(None, alias="REDIS_URL")

    # CHAIN
    primary_rpc_url: str | None = Field(None, alias="PRIMARY_RPC_URL")
    secondary_rpc_url: str | None = Field(None, alias="SECONDARY_RPC_URL")
    tertiary_rpc_url: str | None = Field(None, alias="TERTIARY_RPC_URL")
    token_factory_address: str = Field(..., alias="TOKEN_FACTORY_ADDRESS")
    marketplace_address: str = Field(..., alias="MARKETPLACE_ADDRESS")
    start_block: int = Field(0, alias="START_BLOCK", ge=0)
    confirmations: int = Field(3, alias="INDEXER_CONFIRMATIONS", ge=0)

    # RPC RESILIENCE
    rpc_rate_limit: int = Field(10, alias="RPC_RATE_LIMIT", gt=0)
    rpc_retries: int = Field(2, alias="RPC_RETRIES", ge=0)
    rpc_stall_timeout: float = Field(2.0, alias="RPC_STALL_TIMEOUT", gt=0)
    rpc_request_timeout: float = Field(30.0, alias="RPC_REQUEST_TIMEOUT", gt=0)

    # INDEXER
    indexer_enabled: bool = Field(True, alias="INDEXER_ENABLED")
    indexer_poll_interval: float = Field(5.0, alias="INDEXER_POLL_INTERVAL", gt=0)
    indexer_batch_size: int = Field(50, alias="INDEXER_BATCH_SIZE", gt=0)
    indexer_start_from_current: bool = Field(False, alias="INDEXER_START_FROM_CURRENT")
    indexer_error_backoff: float = Field(5.0, alias="INDEXER_ERROR_BACKOFF", gt=0)

    # METADATA
    metadata_gateways_csv: str = Field(",".join(_DEFAULT_GATEWAYS), alias="METADATA_GATEWAYS")
    metadata_timeout: float = Field(10.0, alias="METADATA_TIMEOUT", gt=0)
    metadata_cache_ttl: int = Field(3600, alias="METADATA_CACHE_TTL", gt=0)

    # WORKERS
    metrics_tick_interval: float = Field(30.0, alias="METRICS_TICK_INTERVAL", gt=0)
    bootstrap_concurrency: int = Field(10, alias="BOOTSTRAP_CONCURRENCY", gt=0)
    holder_resync_block_chunk: int = Field(5000, alias="HOLDER_RESYNC_BLOCK_CHUNK", gt=0)

    @field_validator("token_factory_address", "marketplace_address")
    @classmethod
    def normalize_contract_address(cls, value: str) -> str:
        value = value.strip().lower()
        if len(value) != 42 or not value.startswith("0x"):
            raise ValueError(f"not an EVM address: {value!r}")
        return value

    @model_validator(mode="after")
    def assemble_db_urls(self) -> "Settings":
        if not self.database_url:
            if not (self.postgres_user and self.postgres_password and self.postgres_server and self.postgres_db):
                raise ValueError("DATABASE_URL or POSTGRES_USER/PASSWORD/SERVER/DB must be set")

            user = quote_plus(self.postgres_user)
            password = quote_plus(self.postgres_password.get_secret_value())
            host = self.postgres_server
            port = self.postgres_port
            db = self.postgres_db

            self.database_url = f"postgresql+asyncpg://{user}:{password}@{host}:{port}/{db}"

        if not self.sync_database_url:
            self.sync_database_url = self.database_url.replace("postgresql+asyncpg://", "postgresql://", 1)

        if not self.rpc_urls:
            raise ValueError("at least one RPC endpoint (PRIMARY_RPC_URL) must be set")

        if not self.metadata_gateways:
            raise ValueError("METADATA_GATEWAYS must list at least one gateway")

        return self

    @property
    def rpc_urls(self) -> list[str]:
        urls = [self.primary_rpc_url, self.secondary_rpc_url, self.tertiary_rpc_url]
        return [u for u in urls if u]

    @property
    def metadata_gateways(self) -> list[str]:
        return [g.strip() for g in self.metadata_gateways_csv.split(",") if g.strip()]

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )


def load_settings(**overrides: object) -> Settings:
    """
    Build settings from the environment (and .env).

    Any validation problem is a fatal configuration error: the caller is
    expected to exit instead of limping along without RPC or database.
    """
    try:
        return Settings(**overrides)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid configuration: {exc}") from exc
