"""Shared test fixtures for the stETH rebalancer."""

from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from rebalancer.config import LoopSettings, StrategySettings
from rebalancer.gateway.client import ChainGateway
from rebalancer.state.store import StateStore

BOT_ADDRESS = "0x90F8bf6A479f320ead074411a4B0e7944Ea8c9C1"

NOW = datetime(2025, 6, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def now() -> datetime:
    """Fixed 'current time' for deterministic cooldown/hold checks."""
    return NOW


@pytest.fixture
def strategy_settings() -> StrategySettings:
    """StrategySettings with the documented defaults made explicit."""
    return StrategySettings(
        threshold_pct=Decimal("0.4"),
        safety_buffer_eth=Decimal("0.02"),
        min_trade_eth=Decimal("0.01"),
        min_trade_steth=Decimal("0.01"),
        cooldown_minutes=60,
        min_hold_hours=1,
        confirmation_checks=3,
    )


@pytest.fixture
def loop_settings() -> LoopSettings:
    return LoopSettings(
        interval_seconds=60,
        backoff_initial_seconds=5,
        backoff_max_seconds=300,
    )


@pytest.fixture
def store(tmp_path) -> StateStore:
    """StateStore writing into a per-test temp directory."""
    return StateStore(tmp_path / "data" / "strategy-state.json")


@pytest.fixture
def mock_gateway() -> AsyncMock:
    """Mock ChainGateway with the bot address set."""
    gateway = AsyncMock(spec=ChainGateway)
    gateway.address = BOT_ADDRESS
    gateway.get_withdrawal_statuses.return_value = []
    return gateway
