"""Withdrawal lifecycle tracker (pending -> ready -> claimed).

Runs at the start of every tick, before the decision engine. Each pass:

  1. Batch-queries the withdrawal queue for every pending/ready record.
  2. Marks anything the queue reports as claimed (out-of-band claims,
     manual intervention) as ``claimed`` and drops it from this pass.
  3. Marks finalized-but-unclaimed records ``ready``.
  4. Claims all ready records in one transaction and marks them ``claimed``.

Claimed records are never queried again, so repeated passes over unchanged
queue responses produce no new transitions or transactions.

A failed status query propagates (the tick aborts: acting on a stale ledger
is worse than retrying later). A failed claim leaves records ``ready`` so
the next tick retries the claim directly.
"""

from __future__ import annotations

from datetime import datetime

from rebalancer.gateway.client import ChainGateway
from rebalancer.logging import get_logger
from rebalancer.models import RequestStatus, StrategyState
from rebalancer.state.store import StateStore

logger = get_logger(__name__)


class WithdrawalTracker:
    """Reconciles the withdrawal ledger against the settlement queue.

    Args:
        gateway: Chain gateway for status queries and claims.
        store: State store holding the ledger.
    """

    def __init__(self, gateway: ChainGateway, store: StateStore) -> None:
        self._gateway = gateway
        self._store = store

    async def reconcile(self, now: datetime) -> StrategyState:
        """Run one reconciliation pass and return the resulting state."""
        state = self._store.load()
        open_requests = state.open_requests()
        if not open_requests:
            return state

        statuses = await self._gateway.get_withdrawal_statuses(
            [r.request_id for r in open_requests]
        )

        open_ids = {r.request_id for r in open_requests}
        claimed_ids = [
            s.request_id for s in statuses if s.request_id in open_ids and s.is_claimed
        ]
        ready_ids = [
            s.request_id
            for s in statuses
            if s.request_id in open_ids and s.is_finalized and not s.is_claimed
        ]

        if claimed_ids:
            state = self._store.update(
                lambda s: s.mark_requests(claimed_ids, RequestStatus.CLAIMED, now)
            )

        if not ready_ids:
            if claimed_ids:
                logger.info(
                    "withdrawal_status",
                    ready_ids=ready_ids,
                    claimed_ids=claimed_ids,
                )
            return state

        state = self._store.update(
            lambda s: s.mark_requests(ready_ids, RequestStatus.READY, now)
        )

        result = await self._gateway.claim_withdrawals(ready_ids)

        state = self._store.update(
            lambda s: s.mark_requests(ready_ids, RequestStatus.CLAIMED, now)
        )
        logger.info(
            "withdraw_claimed",
            tx_hash=result.tx_hash,
            request_ids=ready_ids,
            already_claimed_ids=claimed_ids,
        )
        return state
