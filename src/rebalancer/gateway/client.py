"""Abstract chain gateway interface.

Defines the contract for all on-chain access the rebalancer needs.
Strategy, oracle, and lifecycle code depends only on this interface,
keeping web3 and Lido contract details isolated in the concrete implementation.

Every method raises GatewayError on failure.
"""

from abc import ABC, abstractmethod
from decimal import Decimal

from rebalancer.models import (
    Asset,
    PoolSlot,
    TxResult,
    WithdrawalRequestResult,
    WithdrawalStatus,
)


class ChainGateway(ABC):
    """Abstract base class for chain gateways."""

    @property
    @abstractmethod
    def address(self) -> str:
        """The bot wallet address."""
        ...

    @abstractmethod
    async def connect(self) -> None:
        """Verify RPC connectivity."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release the RPC session."""
        ...

    @abstractmethod
    async def get_balance(self, asset: Asset, address: str) -> Decimal:
        """Balance of ``asset`` held by ``address`` in whole-token units."""
        ...

    @abstractmethod
    async def submit_stake(self, amount: Decimal) -> TxResult:
        """Stake ``amount`` ETH and wait until the transaction is mined."""
        ...

    @abstractmethod
    async def request_withdrawal(
        self, amount: Decimal, owner: str
    ) -> WithdrawalRequestResult:
        """Request withdrawal of ``amount`` stETH in a single request.

        Request ids are obtained from a dry run before submission, since the
        protocol assigns them only when the transaction is mined.
        """
        ...

    @abstractmethod
    async def get_withdrawal_statuses(
        self, request_ids: list[str]
    ) -> list[WithdrawalStatus]:
        """Batch query finalization/claim status for the given request ids."""
        ...

    @abstractmethod
    async def claim_withdrawals(self, request_ids: list[str]) -> TxResult:
        """Claim all given finalized requests in one transaction."""
        ...

    @abstractmethod
    async def get_pool_ratio(self, pool_address: str) -> PoolSlot:
        """Read the pool's two asset addresses and its sqrtPriceX96."""
        ...
