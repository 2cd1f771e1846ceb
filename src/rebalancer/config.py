"""Configuration system using pydantic-settings with environment variable loading."""

from decimal import Decimal

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from rebalancer.exceptions import InvalidConfiguration


class ChainSettings(BaseSettings):
    """Ethereum RPC, signing key, and contract addresses (mainnet defaults)."""

    model_config = SettingsConfigDict(env_prefix="CHAIN_")

    rpc_url: str = ""
    private_key: SecretStr = SecretStr("")
    steth_address: str = "0xae7ab96520DE3A18E5e111B5EaAb095312D7fE84"
    weth_address: str = "0xC02aaA39b223FE8D0A0e5C4F27eAD9083C756Cc2"
    withdrawal_queue_address: str = "0x889edC2eDab5f40e902b864aD4d7AdE8E412F9B1"
    pool_address: str = "0x63818BbDd21E69bE108A23aC1E84cBf66399Bd7D"  # Uniswap V3 stETH/WETH
    receipt_timeout_seconds: float = 180.0
    request_timeout_seconds: float = 30.0


class StrategySettings(BaseSettings):
    """Rebalancing thresholds and anti-flip-flop parameters."""

    model_config = SettingsConfigDict(env_prefix="STRATEGY_")

    threshold_pct: Decimal = Field(default=Decimal("0.4"), ge=0)  # % away from parity
    safety_buffer_eth: Decimal = Field(default=Decimal("0.02"), ge=0)  # kept for gas
    min_trade_eth: Decimal = Field(default=Decimal("0.01"), ge=0)
    min_trade_steth: Decimal = Field(default=Decimal("0.01"), ge=0)
    cooldown_minutes: float = Field(default=60.0, ge=0)
    min_hold_hours: float = Field(default=1.0, ge=0)
    confirmation_checks: int = Field(default=3, ge=0)  # consecutive ticks to allow a flip


class LoopSettings(BaseSettings):
    """Control loop interval and error backoff."""

    model_config = SettingsConfigDict(env_prefix="LOOP_")

    interval_seconds: float = Field(default=60.0, ge=1)
    backoff_initial_seconds: float = Field(default=5.0, gt=0)
    backoff_max_seconds: float = Field(default=300.0, gt=0)


class StorageSettings(BaseSettings):
    """Location of the persisted strategy state and price history."""

    model_config = SettingsConfigDict(env_prefix="STORAGE_")

    state_path: str = "data/strategy-state.json"
    price_history_path: str = "data/price-history.json"
    price_history_limit: int = Field(default=2000, ge=0)  # 0 disables history


class DashboardSettings(BaseSettings):
    """Read-only status API server configuration."""

    model_config = SettingsConfigDict(env_prefix="DASHBOARD_")

    host: str = "0.0.0.0"
    port: int = 3001
    enabled: bool = True


class AppSettings(BaseSettings):
    """Root application settings, composing all sub-settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
    )

    log_level: str = "INFO"
    log_format: str = "console"  # "json" for log shippers
    chain: ChainSettings = ChainSettings()
    strategy: StrategySettings = StrategySettings()
    loop: LoopSettings = LoopSettings()
    storage: StorageSettings = StorageSettings()
    dashboard: DashboardSettings = DashboardSettings()


def validate_settings(settings: AppSettings) -> None:
    """Fail fast on settings the bot cannot run without.

    Raises:
        InvalidConfiguration: If the RPC URL or private key is missing, or
            the backoff floor exceeds its cap.
    """
    missing = []
    if not settings.chain.rpc_url.strip():
        missing.append("CHAIN_RPC_URL")
    if not settings.chain.private_key.get_secret_value().strip():
        missing.append("CHAIN_PRIVATE_KEY")
    if missing:
        raise InvalidConfiguration(f"Missing required settings: {', '.join(missing)}")

    if settings.loop.backoff_initial_seconds > settings.loop.backoff_max_seconds:
        raise InvalidConfiguration(
            "LOOP_BACKOFF_INITIAL_SECONDS must not exceed LOOP_BACKOFF_MAX_SECONDS"
        )
