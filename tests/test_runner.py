"""Tests for StrategyRunner -- tick pipeline and error backoff.

Tick tests wire the real engine, executor, tracker, and JSON store around a
mocked gateway and oracle. Loop tests patch the runner's
interruptible sleep to record the backoff schedule without waiting.
"""

import asyncio
from datetime import timedelta
from decimal import Decimal
from unittest.mock import AsyncMock, patch

import pytest
from structlog.testing import capture_logs

from rebalancer.config import LoopSettings, StrategySettings
from rebalancer.exceptions import GatewayError, PriceUnavailable
from rebalancer.models import (
    ActionType,
    Asset,
    PriceSample,
    RequestStatus,
    StrategyState,
    TxResult,
    WithdrawalStatus,
)
from rebalancer.oracle.price_oracle import PriceOracle
from rebalancer.runner import StrategyRunner
from rebalancer.state.price_history import PriceHistory
from rebalancer.state.store import StateStore
from rebalancer.strategy.actions import ActionExecutor
from rebalancer.strategy.decision import Action, Decision, DecisionEngine, DecisionReason
from rebalancer.strategy.withdrawals import WithdrawalTracker


@pytest.fixture
def mock_oracle(now) -> AsyncMock:
    oracle = AsyncMock(spec=PriceOracle)
    oracle.get_sample.return_value = PriceSample(ratio=Decimal("0.990"), captured_at=now)
    return oracle


@pytest.fixture
def balances(mock_gateway: AsyncMock) -> dict:
    """Mutable balance table served by the mock gateway."""
    table = {Asset.ETH: Decimal("1.52"), Asset.STETH: Decimal("0")}

    async def _balance(asset: Asset, address: str) -> Decimal:
        return table[asset]

    mock_gateway.get_balance.side_effect = _balance
    return table


@pytest.fixture
def runner(
    loop_settings: LoopSettings,
    strategy_settings: StrategySettings,
    mock_gateway: AsyncMock,
    mock_oracle: AsyncMock,
    store: StateStore,
    balances: dict,
    tmp_path,
    now,
) -> StrategyRunner:
    return StrategyRunner(
        settings=loop_settings,
        gateway=mock_gateway,
        oracle=mock_oracle,
        store=store,
        engine=DecisionEngine(strategy_settings),
        executor=ActionExecutor(mock_gateway, store, strategy_settings),
        tracker=WithdrawalTracker(mock_gateway, store),
        price_history=PriceHistory(tmp_path / "data" / "price-history.json"),
        clock=lambda: now,
    )


class TestRunOnce:
    """One full tick through the real strategy components."""

    @pytest.mark.asyncio
    async def test_discount_tick_stakes_and_records(
        self,
        runner: StrategyRunner,
        mock_gateway: AsyncMock,
        store: StateStore,
        now,
    ) -> None:
        mock_gateway.submit_stake.return_value = TxResult(tx_hash="0xstake")

        with capture_logs() as logs:
            decision = await runner.run_once()

        assert decision == Decision(Action.STAKE, DecisionReason.DISCOUNT_THRESHOLD)
        mock_gateway.submit_stake.assert_awaited_once_with(Decimal("1.50"))
        state = store.load()
        assert state.consecutive.discount == 1
        assert state.consecutive.premium == 0
        assert state.last_action.type == ActionType.STAKE
        assert state.last_tick == now
        events = [e["event"] for e in logs]
        assert events.index("tick") < events.index("decision") < events.index("stake_sent")
        assert runner.last_decision == decision
        assert runner.last_sample.ratio == Decimal("0.990")

    @pytest.mark.asyncio
    async def test_decision_is_logged_when_no_action(
        self, runner: StrategyRunner, mock_oracle: AsyncMock, mock_gateway: AsyncMock, now
    ) -> None:
        mock_oracle.get_sample.return_value = PriceSample(ratio=Decimal("0.999"), captured_at=now)

        with capture_logs() as logs:
            decision = await runner.run_once()

        assert decision.action == Action.NONE
        logged = [e for e in logs if e["event"] == "decision"][0]
        assert logged["action"] == "none"
        assert logged["reason"] == "no_signal"
        mock_gateway.submit_stake.assert_not_called()
        mock_gateway.request_withdrawal.assert_not_called()

    @pytest.mark.asyncio
    async def test_tick_records_price_history(self, runner: StrategyRunner, tmp_path) -> None:
        await runner.run_once()
        points = PriceHistory(tmp_path / "data" / "price-history.json").load()
        assert [p["priceRatio"] for p in points] == ["0.990"]

    @pytest.mark.asyncio
    async def test_counters_persist_even_if_reconcile_fails(
        self,
        runner: StrategyRunner,
        mock_gateway: AsyncMock,
        store: StateStore,
        now,
    ) -> None:
        store.save(StrategyState().add_requests(["1"], Decimal("1"), "0xreq", now))
        mock_gateway.get_withdrawal_statuses.side_effect = GatewayError(
            "get_withdrawal_statuses", "rpc down"
        )

        with pytest.raises(GatewayError):
            await runner.run_once()

        state = store.load()
        assert state.consecutive.discount == 1
        assert state.last_action is None
        mock_gateway.submit_stake.assert_not_called()

    @pytest.mark.asyncio
    async def test_claims_before_deciding(
        self,
        runner: StrategyRunner,
        mock_gateway: AsyncMock,
        store: StateStore,
        now,
    ) -> None:
        """A finalized request is claimed in the same tick as the new stake."""
        store.save(
            StrategyState().add_requests(["1"], Decimal("1"), "0xreq", now - timedelta(days=3))
        )
        mock_gateway.get_withdrawal_statuses.return_value = [
            WithdrawalStatus(request_id="1", is_finalized=True, is_claimed=False)
        ]
        mock_gateway.claim_withdrawals.return_value = TxResult(tx_hash="0xclaim")
        mock_gateway.submit_stake.return_value = TxResult(tx_hash="0xstake")

        await runner.run_once()

        state = store.load()
        assert state.requests[0].status == RequestStatus.CLAIMED
        assert state.last_action.type == ActionType.STAKE

    @pytest.mark.asyncio
    async def test_price_failure_aborts_before_state_change(
        self, runner: StrategyRunner, mock_oracle: AsyncMock, store: StateStore
    ) -> None:
        mock_oracle.get_sample.side_effect = PriceUnavailable("zero price")

        with pytest.raises(PriceUnavailable):
            await runner.run_once()

        assert store.load() == StrategyState()


class TestLoop:
    """Loop lifecycle and exponential backoff."""

    @pytest.mark.asyncio
    async def test_backoff_doubles_up_to_cap(
        self, runner: StrategyRunner, loop_settings: LoopSettings
    ) -> None:
        runner._settings = loop_settings.model_copy(update={"backoff_max_seconds": 60})
        runner.run_once = AsyncMock(side_effect=GatewayError("get_balance_eth", "down"))
        sleeps: list[float] = []

        async def fake_sleep(seconds: float) -> None:
            sleeps.append(seconds)
            if len(sleeps) >= 6:
                await runner.stop()

        with capture_logs() as logs, patch.object(
            runner, "_sleep", side_effect=fake_sleep
        ):
            await runner.start()

        assert sleeps == [5, 10, 20, 40, 60, 60]
        errors = [e for e in logs if e["event"] == "loop_error"]
        assert len(errors) == 6
        assert errors[0]["error_type"] == "GatewayError"
        assert errors[0]["backoff_seconds"] == 5

    @pytest.mark.asyncio
    async def test_success_resets_backoff(self, runner: StrategyRunner) -> None:
        runner.run_once = AsyncMock(
            side_effect=[
                GatewayError("a", "down"),
                GatewayError("b", "down"),
                Decision.none(DecisionReason.NO_SIGNAL),
                GatewayError("c", "down"),
            ]
        )
        sleeps: list[float] = []

        async def fake_sleep(seconds: float) -> None:
            sleeps.append(seconds)
            if len(sleeps) >= 4:
                await runner.stop()

        with patch.object(runner, "_sleep", side_effect=fake_sleep):
            await runner.start()

        # two failures, then the interval sleep, then the floor again
        assert sleeps == [5, 10, 60, 5]
        assert runner.backoff_seconds == 10

    @pytest.mark.asyncio
    async def test_cancellation_stops_cleanly(self, runner: StrategyRunner) -> None:
        runner.run_once = AsyncMock(return_value=Decision.none(DecisionReason.NO_SIGNAL))

        task = asyncio.create_task(runner.start())
        for _ in range(5):
            await asyncio.sleep(0)
        assert runner.is_running

        task.cancel()
        await task

        assert not runner.is_running
        assert runner.run_once.await_count == 1

    @pytest.mark.asyncio
    async def test_stop_interrupts_interval_sleep(self, runner: StrategyRunner) -> None:
        """stop() returns the loop promptly instead of waiting out the interval."""
        runner.run_once = AsyncMock(return_value=Decision.none(DecisionReason.NO_SIGNAL))

        task = asyncio.create_task(runner.start())
        for _ in range(5):
            await asyncio.sleep(0)

        await runner.stop()
        await asyncio.wait_for(task, timeout=1)

        assert not runner.is_running
        assert runner.run_once.await_count == 1
