"""Strategy runner -- the control loop that drives one tick at a time.

Each tick:
  1. READ: price ratio and ETH/stETH balances, concurrently
  2. COUNT: update consecutive discount/premium counters and persist them
  3. RECONCILE: withdrawal lifecycle (status query, promote, claim)
  4. DECIDE: stake / withdraw / none
  5. ACT: execute the decision and record it

Ticks never overlap. Any exception escaping a tick is logged as
``loop_error`` and followed by an exponential backoff sleep (doubling,
capped); a successful tick resets the backoff to its floor. Nothing is
retried inside a tick.

All collaborators are injected; there is no module-level state.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from datetime import datetime
from decimal import Decimal

from rebalancer.config import LoopSettings
from rebalancer.gateway.client import ChainGateway
from rebalancer.logging import bind_wallet, get_logger
from rebalancer.models import Asset, PriceSample, StrategyState, utc_now
from rebalancer.oracle.price_oracle import PriceOracle
from rebalancer.state.price_history import PriceHistory
from rebalancer.state.store import StateStore
from rebalancer.strategy.actions import ActionExecutor
from rebalancer.strategy.decision import Action, Decision, DecisionEngine
from rebalancer.strategy.withdrawals import WithdrawalTracker

logger = get_logger(__name__)


class StrategyRunner:
    """Single-instance rebalancing loop.

    Args:
        settings: Loop interval and backoff parameters.
        gateway: Chain gateway for balance reads.
        oracle: stETH/ETH price source.
        store: Persistent strategy state.
        engine: Decision engine.
        executor: Stake/withdraw executor.
        tracker: Withdrawal lifecycle tracker.
        price_history: Optional price history recorder.
        clock: Returns the current UTC time (injectable for tests).
    """

    def __init__(
        self,
        settings: LoopSettings,
        gateway: ChainGateway,
        oracle: PriceOracle,
        store: StateStore,
        engine: DecisionEngine,
        executor: ActionExecutor,
        tracker: WithdrawalTracker,
        price_history: PriceHistory | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._settings = settings
        self._gateway = gateway
        self._oracle = oracle
        self._store = store
        self._engine = engine
        self._executor = executor
        self._tracker = tracker
        self._price_history = price_history
        self._clock = clock
        self._running = False
        self._stop_event = asyncio.Event()
        self._backoff = settings.backoff_initial_seconds
        self._last_sample: PriceSample | None = None
        self._last_decision: Decision | None = None

    async def start(self) -> None:
        """Run ticks until stop() is called or the task is cancelled."""
        bind_wallet(self._gateway.address)
        logger.info(
            "runner_starting",
            address=self._gateway.address,
            interval_seconds=self._settings.interval_seconds,
        )
        self._running = True
        self._stop_event.clear()
        try:
            await self._run_loop()
        finally:
            self._running = False
            logger.info("runner_stopped")

    async def stop(self) -> None:
        """Signal the loop to exit; a pending sleep returns immediately."""
        logger.info("runner_stopping")
        self._running = False
        self._stop_event.set()

    async def _run_loop(self) -> None:
        while self._running:
            try:
                await self.run_once()
                self._backoff = self._settings.backoff_initial_seconds
                await self._sleep(self._settings.interval_seconds)
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(
                    "loop_error",
                    error=str(e),
                    error_type=type(e).__name__,
                    backoff_seconds=self._backoff,
                    exc_info=True,
                )
                await self._sleep(self._backoff)
                self._backoff = min(
                    self._settings.backoff_max_seconds, self._backoff * 2
                )

    async def _sleep(self, seconds: float) -> None:
        """Wait ``seconds``, or less if stop() is called meanwhile."""
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    async def run_once(self) -> Decision:
        """Execute one full tick and return the decision taken."""
        address = self._gateway.address
        sample, eth_balance, steth_balance = await asyncio.gather(
            self._oracle.get_sample(),
            self._gateway.get_balance(Asset.ETH, address),
            self._gateway.get_balance(Asset.STETH, address),
        )
        self._last_sample = sample
        discount_pct = sample.discount_pct
        premium_pct = sample.premium_pct

        now = self._clock()
        state = self._store.update(
            lambda s: s.with_counters(
                self._engine.update_counters(s.consecutive, discount_pct, premium_pct)
            ).with_last_tick(now)
        )
        if self._price_history is not None:
            self._price_history.append(sample)

        logger.info(
            "tick",
            price_ratio=str(sample.ratio),
            discount_pct=str(discount_pct),
            premium_pct=str(premium_pct),
            eth_balance=str(eth_balance),
            steth_balance=str(steth_balance),
            consecutive_discount=state.consecutive.discount,
            consecutive_premium=state.consecutive.premium,
        )

        state = await self._tracker.reconcile(now)

        decision = self._engine.decide(state, discount_pct, premium_pct, now)
        self._last_decision = decision
        logger.info(
            "decision",
            action=decision.action.value,
            reason=decision.reason.value,
        )

        await self._execute(decision, sample, eth_balance, steth_balance, now)
        return decision

    async def _execute(
        self,
        decision: Decision,
        sample: PriceSample,
        eth_balance: Decimal,
        steth_balance: Decimal,
        now: datetime,
    ) -> None:
        if decision.action == Action.STAKE:
            await self._executor.stake_all(
                eth_balance, sample, decision.reason.value, now
            )
        elif decision.action == Action.WITHDRAW:
            await self._executor.withdraw_all(
                steth_balance, sample, decision.reason.value, now
            )

    def get_state(self) -> StrategyState:
        """Latest persisted state (read-only snapshot for the status API)."""
        return self._store.load()

    @property
    def is_running(self) -> bool:
        """Whether the loop is active."""
        return self._running

    @property
    def backoff_seconds(self) -> float:
        """Sleep applied after the next failed tick."""
        return self._backoff

    @property
    def last_sample(self) -> PriceSample | None:
        return self._last_sample

    @property
    def last_decision(self) -> Decision | None:
        return self._last_decision
