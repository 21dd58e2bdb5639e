from pathlib import Path

from pydantic import computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict

from chainrelay.clients.resilience import BackoffKind
from chainrelay.models.enums import Transport


class Settings(BaseSettings):
    """Application configuration loaded from environment variables and .env file.

    RPC endpoints default to public nodes; ``RPC_URLS`` (a JSON object keyed by
    ``"network:networkType"``) overrides individual endpoints.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Serving: transport, bind address and auth
    transport: Transport = Transport.GATEWAY
    host: str = "0.0.0.0"
    port: int = 3000
    mcp_auth_token: str | None = None
    admin_token: str | None = None

    # Upstream RPC
    rpc_urls: dict[str, str] = {}
    rpc_timeout: float = 15.0
    default_network: str = "ethereum"
    default_network_type: str = "mainnet"

    # RPC cache
    cache_max_size: int = 1000
    cache_default_ttl: float = 5.0
    cache_ttl_overrides: dict[str, float] = {}

    # Per-network task queue
    queue_concurrency: int = 3
    queue_max_retries: int = 3
    queue_retry_delay: float = 1.0
    queue_backoff: BackoffKind = BackoffKind.CONSTANT
    queue_max_retry_delay: float = 30.0

    # Proxies whose X-Forwarded-For uvicorn trusts when setting the client address
    forwarded_allow_ips: str = "127.0.0.1"

    # WebSocket abuse limits
    ws_max_connections_per_ip: int = 10
    ws_rate_limit_max: int = 60
    ws_rate_limit_window: float = 60.0

    # Real-time producers
    gas_poll_interval: float = 15.0
    block_poll_interval: float = 4.0
    tx_poll_interval: float = 4.0
    relay_balance_delay: float = 2.0

    # Paths & logging: default is <project_root>/data so it works
    # regardless of the process working directory.
    data_dir: Path = Path(__file__).resolve().parent.parent / "data"
    log_level: str = "INFO"

    @computed_field  # type: ignore[prop-decorator]
    @property
    def log_path(self) -> Path:
        return self.data_dir / "logs" / "gateway.log"

    @property
    def admin_auth_enabled(self) -> bool:
        """Return True when cache administration requires a bearer token."""
        return bool(self.admin_token)


_settings: Settings | None = None


def get_settings() -> Settings:
    """Return the cached Settings singleton. Created on first call."""
    global _settings  # noqa: PLW0603
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Clear the cached settings. Used in tests."""
    global _settings  # noqa: PLW0603
    _settings = None
