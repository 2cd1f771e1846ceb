"""Lido chain gateway implementation via web3 async.

Wraps AsyncWeb3 with local transaction signing (eth_account), the stETH
token, the Lido withdrawal queue, and a Uniswap V3 pool. Every public
method blocks until its read returns or its transaction is mined, and
translates any web3/transport failure into GatewayError.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterator
from contextlib import contextmanager
from decimal import Decimal
from typing import Any

from aiohttp import ClientError, ClientTimeout
from eth_account import Account
from web3 import AsyncWeb3
from web3.exceptions import Web3Exception

from rebalancer.config import ChainSettings
from rebalancer.exceptions import GatewayError
from rebalancer.gateway.abi import (
    ERC20_ABI,
    STETH_ABI,
    UNISWAP_V3_POOL_ABI,
    WITHDRAWAL_QUEUE_ABI,
)
from rebalancer.gateway.client import ChainGateway
from rebalancer.logging import get_logger
from rebalancer.models import (
    Asset,
    PoolSlot,
    TxResult,
    WithdrawalRequestResult,
    WithdrawalStatus,
)

logger = get_logger(__name__)

_ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

# Index of isFinalized / isClaimed in the WithdrawalRequestStatus tuple
_STATUS_FINALIZED = 4
_STATUS_CLAIMED = 5


def to_wei(amount: Decimal) -> int:
    """Convert whole ETH/stETH to wei (both tokens use 18 decimals)."""
    return int(AsyncWeb3.to_wei(amount, "ether"))


def from_wei(amount: int) -> Decimal:
    """Convert wei to whole ETH/stETH as Decimal."""
    return Decimal(AsyncWeb3.from_wei(amount, "ether"))


@contextmanager
def _gateway_call(operation: str) -> Iterator[None]:
    """Translate web3/transport failures into GatewayError."""
    try:
        yield
    except GatewayError:
        raise
    except (Web3Exception, ClientError, asyncio.TimeoutError, ValueError) as exc:
        raise GatewayError(operation, str(exc)) from exc


class LidoGateway(ChainGateway):
    """Concrete chain gateway for Lido on Ethereum using web3 async."""

    def __init__(self, settings: ChainSettings, w3: AsyncWeb3 | None = None) -> None:
        self._settings = settings
        self._w3 = w3 or AsyncWeb3(
            AsyncWeb3.AsyncHTTPProvider(
                settings.rpc_url,
                request_kwargs={
                    "timeout": ClientTimeout(total=settings.request_timeout_seconds)
                },
            )
        )
        self._account = Account.from_key(settings.private_key.get_secret_value())

        eth = self._w3.eth
        self._steth = eth.contract(
            address=AsyncWeb3.to_checksum_address(settings.steth_address),
            abi=STETH_ABI,
        )
        self._queue = eth.contract(
            address=AsyncWeb3.to_checksum_address(settings.withdrawal_queue_address),
            abi=WITHDRAWAL_QUEUE_ABI,
        )

    @property
    def address(self) -> str:
        return self._account.address

    async def connect(self) -> None:
        """Check the RPC endpoint answers before the loop starts."""
        logger.info("connecting_to_rpc", address=self.address)
        with _gateway_call("connect"):
            chain_id = await self._w3.eth.chain_id
        logger.info("rpc_connected", chain_id=chain_id, address=self.address)

    async def close(self) -> None:
        """Release the provider's HTTP session."""
        logger.info("closing_rpc_connection")
        await self._w3.provider.disconnect()

    async def get_balance(self, asset: Asset, address: str) -> Decimal:
        checksum = AsyncWeb3.to_checksum_address(address)
        with _gateway_call(f"get_balance_{asset.value}"):
            if asset == Asset.ETH:
                wei = await self._w3.eth.get_balance(checksum)
            else:
                wei = await self._steth.functions.balanceOf(checksum).call()
        return from_wei(wei)

    async def submit_stake(self, amount: Decimal) -> TxResult:
        amount_wei = to_wei(amount)
        if amount_wei <= 0:
            raise GatewayError("submit_stake", "stake amount must be greater than 0")
        call = self._steth.functions.submit(_ZERO_ADDRESS)
        tx_hash = await self._send(call, "submit_stake", value=amount_wei)
        return TxResult(tx_hash=tx_hash)

    async def request_withdrawal(
        self, amount: Decimal, owner: str
    ) -> WithdrawalRequestResult:
        amount_wei = to_wei(amount)
        if amount_wei <= 0:
            raise GatewayError(
                "request_withdrawal", "withdrawal amount must be greater than 0"
            )
        owner = AsyncWeb3.to_checksum_address(owner)

        await self._ensure_allowance(self._queue.address, amount_wei)

        call = self._queue.functions.requestWithdrawals([amount_wei], owner)
        with _gateway_call("request_withdrawal_dry_run"):
            request_ids = await call.call({"from": self.address})

        tx_hash = await self._send(call, "request_withdrawal")
        return WithdrawalRequestResult(
            tx_hash=tx_hash,
            request_ids=[str(request_id) for request_id in request_ids],
        )

    async def get_withdrawal_statuses(
        self, request_ids: list[str]
    ) -> list[WithdrawalStatus]:
        if not request_ids:
            return []
        ids = [int(request_id) for request_id in request_ids]
        with _gateway_call("get_withdrawal_statuses"):
            raw = await self._queue.functions.getWithdrawalStatus(ids).call()
        return [
            WithdrawalStatus(
                request_id=request_id,
                is_finalized=bool(status[_STATUS_FINALIZED]),
                is_claimed=bool(status[_STATUS_CLAIMED]),
            )
            for request_id, status in zip(request_ids, raw)
        ]

    async def claim_withdrawals(self, request_ids: list[str]) -> TxResult:
        if not request_ids:
            raise GatewayError("claim_withdrawals", "request_ids must not be empty")
        # findCheckpointHints requires ascending ids
        ids = sorted(int(request_id) for request_id in request_ids)
        with _gateway_call("find_checkpoint_hints"):
            last_index = await self._queue.functions.getLastCheckpointIndex().call()
            hints = await self._queue.functions.findCheckpointHints(
                ids, 1, last_index
            ).call()

        call = self._queue.functions.claimWithdrawals(ids, list(hints))
        tx_hash = await self._send(call, "claim_withdrawals")
        return TxResult(tx_hash=tx_hash)

    async def get_pool_ratio(self, pool_address: str) -> PoolSlot:
        pool = self._w3.eth.contract(
            address=AsyncWeb3.to_checksum_address(pool_address),
            abi=UNISWAP_V3_POOL_ABI,
        )
        with _gateway_call("get_pool_ratio"):
            token0, token1, slot0 = await asyncio.gather(
                pool.functions.token0().call(),
                pool.functions.token1().call(),
                pool.functions.slot0().call(),
            )
        return PoolSlot(asset0=token0, asset1=token1, sqrt_price_x96=int(slot0[0]))

    async def _ensure_allowance(self, spender: str, amount_wei: int) -> None:
        """Approve the withdrawal queue to pull stETH if the allowance is short."""
        token = self._w3.eth.contract(address=self._steth.address, abi=ERC20_ABI)
        with _gateway_call("allowance"):
            allowance = await token.functions.allowance(self.address, spender).call()
        if allowance >= amount_wei:
            return
        logger.info("approving_steth", spender=spender, amount_wei=str(amount_wei))
        await self._send(token.functions.approve(spender, amount_wei), "approve")

    async def _send(self, call: Any, operation: str, value: int = 0) -> str:
        """Sign, submit, and wait for a contract call. Returns the tx hash.

        Raises:
            GatewayError: On any RPC failure or a reverted receipt.
        """
        with _gateway_call(operation):
            nonce = await self._w3.eth.get_transaction_count(self.address, "pending")
            tx = await call.build_transaction(
                {"from": self.address, "value": value, "nonce": nonce}
            )
            signed = self._account.sign_transaction(tx)
            raw_hash = await self._w3.eth.send_raw_transaction(signed.raw_transaction)
            tx_hash = AsyncWeb3.to_hex(raw_hash)
            logger.debug("tx_submitted", operation=operation, tx_hash=tx_hash)
            receipt = await self._w3.eth.wait_for_transaction_receipt(
                raw_hash, timeout=self._settings.receipt_timeout_seconds
            )

        if receipt["status"] != 1:
            raise GatewayError(operation, f"transaction {tx_hash} reverted")
        return tx_hash
