"""Executes the engine's stake/withdraw decisions against the chain gateway.

Guards (safety buffer, minimum trade size) are outcomes, not errors: a
skipped action is logged and leaves ``last_action`` untouched. Transaction
failures propagate to the runner and nothing is recorded, so the next tick
retries from a consistent state.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from rebalancer.config import StrategySettings
from rebalancer.gateway.client import ChainGateway
from rebalancer.logging import get_logger
from rebalancer.models import ActionType, PriceSample
from rebalancer.state.store import StateStore

logger = get_logger(__name__)

_ZERO = Decimal("0")


class ActionExecutor:
    """Stake all spendable ETH or request withdrawal of all stETH.

    Args:
        gateway: Chain gateway for transaction submission.
        store: State store where executed actions are recorded.
        settings: Safety buffer and minimum trade sizes.
    """

    def __init__(
        self,
        gateway: ChainGateway,
        store: StateStore,
        settings: StrategySettings,
    ) -> None:
        self._gateway = gateway
        self._store = store
        self._settings = settings

    def spendable_eth(self, eth_balance: Decimal) -> Decimal:
        """ETH available to stake after keeping the safety buffer for gas."""
        return max(_ZERO, eth_balance - self._settings.safety_buffer_eth)

    async def stake_all(
        self,
        eth_balance: Decimal,
        sample: PriceSample,
        reason: str,
        now: datetime,
    ) -> bool:
        """Stake everything above the safety buffer.

        Returns:
            True if a stake transaction was mined and recorded, False if skipped.
        """
        spendable = self.spendable_eth(eth_balance)
        if spendable < self._settings.min_trade_eth:
            logger.info(
                "stake_skipped",
                reason="min_trade_not_met",
                spendable_eth=str(spendable),
                min_trade_eth=str(self._settings.min_trade_eth),
            )
            return False

        result = await self._gateway.submit_stake(spendable)
        logger.info(
            "stake_sent",
            reason=reason,
            tx_hash=result.tx_hash,
            amount_eth=str(spendable),
            price_ratio=str(sample.ratio),
        )

        self._store.update(lambda s: s.with_last_action(ActionType.STAKE, now))
        return True

    async def withdraw_all(
        self,
        steth_balance: Decimal,
        sample: PriceSample,
        reason: str,
        now: datetime,
    ) -> bool:
        """Request withdrawal of the entire stETH balance as a single request.

        New ledger records (one per protocol-assigned request id) and the
        last action are persisted in one store update.

        Returns:
            True if the request was mined and recorded, False if skipped.
        """
        if steth_balance < self._settings.min_trade_steth:
            logger.info(
                "withdraw_skipped",
                reason="min_trade_not_met",
                steth_balance=str(steth_balance),
                min_trade_steth=str(self._settings.min_trade_steth),
            )
            return False

        result = await self._gateway.request_withdrawal(
            steth_balance, self._gateway.address
        )

        self._store.update(
            lambda s: s.add_requests(
                result.request_ids, steth_balance, result.tx_hash, now
            ).with_last_action(ActionType.WITHDRAW, now)
        )

        logger.info(
            "withdraw_requested",
            reason=reason,
            tx_hash=result.tx_hash,
            request_ids=result.request_ids,
            amount_steth=str(steth_balance),
            price_ratio=str(sample.ratio),
        )
        return True
