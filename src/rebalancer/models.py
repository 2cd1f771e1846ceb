"""Shared data models for the stETH rebalancer.

CRITICAL: All token amounts use Decimal in whole-token units (ETH / stETH).
Wei conversion happens only inside the web3 gateway.

StrategyState is immutable: every change returns a new snapshot, which the
StateStore swaps in wholesale on save.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Iterable

_ONE = Decimal("1")
_HUNDRED = Decimal("100")


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def format_timestamp(value: datetime) -> str:
    """Serialize a datetime to an ISO-8601 string (UTC)."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 string into a timezone-aware UTC datetime.

    Accepts the trailing ``Z`` form written by JavaScript's toISOString().

    Raises:
        ValueError: If the string is not a valid ISO-8601 timestamp.
    """
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


class Asset(str, Enum):
    """Assets the gateway can report balances for."""

    ETH = "eth"
    STETH = "steth"


class ActionType(str, Enum):
    """On-chain action recorded as the last action."""

    STAKE = "stake"
    WITHDRAW = "withdraw"


class RequestStatus(str, Enum):
    """Withdrawal request lifecycle status."""

    PENDING = "pending"
    READY = "ready"
    CLAIMED = "claimed"


@dataclass(frozen=True)
class PriceSample:
    """Value of one stETH expressed in ETH at a point in time (1.0 = parity)."""

    ratio: Decimal
    captured_at: datetime = field(default_factory=utc_now)

    @property
    def discount_pct(self) -> Decimal:
        return (_ONE - self.ratio) * _HUNDRED

    @property
    def premium_pct(self) -> Decimal:
        return (self.ratio - _ONE) * _HUNDRED

    def to_dict(self) -> dict:
        return {
            "timestamp": format_timestamp(self.captured_at),
            "priceRatio": str(self.ratio),
            "discountPct": str(self.discount_pct),
            "premiumPct": str(self.premium_pct),
        }


@dataclass(frozen=True)
class ConsecutiveCounters:
    """Consecutive ticks on which discount / premium exceeded the threshold.

    The two counters are independent: both may be non-zero.
    """

    discount: int = 0
    premium: int = 0

    def to_dict(self) -> dict:
        return {"discount": self.discount, "premium": self.premium}

    @classmethod
    def from_dict(cls, data: Any) -> ConsecutiveCounters:
        if not isinstance(data, dict):
            return cls()
        return cls(
            discount=_non_negative_int(data.get("discount")),
            premium=_non_negative_int(data.get("premium")),
        )


@dataclass(frozen=True)
class LastAction:
    """The most recently executed on-chain action."""

    type: ActionType
    timestamp: datetime

    def to_dict(self) -> dict:
        return {"type": self.type.value, "timestamp": format_timestamp(self.timestamp)}

    @classmethod
    def from_dict(cls, data: Any) -> LastAction | None:
        """Parse a persisted last action. Unknown types or bad timestamps yield None."""
        if not isinstance(data, dict):
            return None
        try:
            return cls(
                type=ActionType(data.get("type")),
                timestamp=parse_timestamp(str(data.get("timestamp"))),
            )
        except ValueError:
            return None


@dataclass(frozen=True)
class WithdrawalRequestRecord:
    """One entry of the append-only withdrawal ledger, keyed by request_id."""

    request_id: str
    amount_steth: Decimal
    tx_hash: str
    created_at: datetime
    status: RequestStatus = RequestStatus.PENDING
    claimed_at: datetime | None = None

    @property
    def is_open(self) -> bool:
        """Pending or ready records still need reconciliation."""
        return self.status != RequestStatus.CLAIMED

    def to_dict(self) -> dict:
        data = {
            "requestId": self.request_id,
            "amountSteth": str(self.amount_steth),
            "status": self.status.value,
            "txHash": self.tx_hash,
            "createdAt": format_timestamp(self.created_at),
        }
        if self.claimed_at is not None:
            data["claimedAt"] = format_timestamp(self.claimed_at)
        return data

    @classmethod
    def from_dict(cls, data: dict) -> WithdrawalRequestRecord:
        """Parse a persisted ledger record.

        Raises:
            KeyError: If requestId is missing.
            ValueError: If status or timestamps are malformed.
        """
        claimed_at = data.get("claimedAt")
        return cls(
            request_id=str(data["requestId"]),
            amount_steth=_to_decimal(data.get("amountSteth")),
            tx_hash=str(data.get("txHash", "")),
            created_at=parse_timestamp(str(data.get("createdAt"))),
            status=RequestStatus(data.get("status", RequestStatus.PENDING.value)),
            claimed_at=parse_timestamp(str(claimed_at)) if claimed_at else None,
        )


@dataclass(frozen=True)
class StrategyState:
    """Aggregate root persisted by the StateStore.

    Single writer: the StrategyRunner. Every helper returns a new snapshot.
    """

    consecutive: ConsecutiveCounters = field(default_factory=ConsecutiveCounters)
    requests: tuple[WithdrawalRequestRecord, ...] = ()
    last_action: LastAction | None = None
    last_tick: datetime | None = None

    def with_counters(self, counters: ConsecutiveCounters) -> StrategyState:
        return replace(self, consecutive=counters)

    def with_last_action(self, action_type: ActionType, now: datetime) -> StrategyState:
        return replace(self, last_action=LastAction(type=action_type, timestamp=now))

    def with_last_tick(self, now: datetime) -> StrategyState:
        return replace(self, last_tick=now)

    def add_requests(
        self,
        request_ids: Iterable[str],
        amount_steth: Decimal,
        tx_hash: str,
        now: datetime,
    ) -> StrategyState:
        """Append new pending records. Ids already in the ledger are ignored."""
        known = {r.request_id for r in self.requests}
        new_records = []
        for request_id in request_ids:
            if request_id in known:
                continue
            known.add(request_id)
            new_records.append(
                WithdrawalRequestRecord(
                    request_id=request_id,
                    amount_steth=amount_steth,
                    tx_hash=tx_hash,
                    created_at=now,
                )
            )
        if not new_records:
            return self
        return replace(self, requests=self.requests + tuple(new_records))

    def mark_requests(
        self,
        request_ids: Iterable[str],
        status: RequestStatus,
        now: datetime,
    ) -> StrategyState:
        """Move the given records to ``status``.

        Claimed records never change. Moving to READY only applies to
        pending records; moving to CLAIMED stamps ``claimed_at``.
        """
        targets = set(request_ids)
        if not targets:
            return self

        updated = []
        for record in self.requests:
            if record.request_id not in targets or record.status == RequestStatus.CLAIMED:
                updated.append(record)
            elif status == RequestStatus.CLAIMED:
                updated.append(replace(record, status=status, claimed_at=now))
            elif status == RequestStatus.READY and record.status == RequestStatus.PENDING:
                updated.append(replace(record, status=status))
            else:
                updated.append(record)
        return replace(self, requests=tuple(updated))

    def open_requests(self) -> list[WithdrawalRequestRecord]:
        """Records in pending or ready status."""
        return [r for r in self.requests if r.is_open]

    def requests_with_status(self, status: RequestStatus) -> list[WithdrawalRequestRecord]:
        return [r for r in self.requests if r.status == status]

    def to_dict(self) -> dict:
        data: dict[str, Any] = {}
        if self.last_action is not None:
            data["lastAction"] = self.last_action.to_dict()
        data["consecutive"] = self.consecutive.to_dict()
        data["requests"] = [r.to_dict() for r in self.requests]
        if self.last_tick is not None:
            data["lastTick"] = format_timestamp(self.last_tick)
        return data

    @classmethod
    def from_dict(cls, data: Any) -> StrategyState:
        """Parse persisted state, normalizing missing or invalid sections to defaults."""
        if not isinstance(data, dict):
            return cls()

        raw_requests = data.get("requests")
        records: list[WithdrawalRequestRecord] = []
        if isinstance(raw_requests, list):
            for raw in raw_requests:
                if not isinstance(raw, dict) or "requestId" not in raw:
                    continue
                try:
                    records.append(WithdrawalRequestRecord.from_dict(raw))
                except (KeyError, ValueError):
                    continue

        last_tick = None
        raw_tick = data.get("lastTick")
        if raw_tick:
            try:
                last_tick = parse_timestamp(str(raw_tick))
            except ValueError:
                last_tick = None

        return cls(
            consecutive=ConsecutiveCounters.from_dict(data.get("consecutive")),
            requests=tuple(records),
            last_action=LastAction.from_dict(data.get("lastAction")),
            last_tick=last_tick,
        )


@dataclass(frozen=True)
class WithdrawalStatus:
    """Settlement queue status for one request id."""

    request_id: str
    is_finalized: bool
    is_claimed: bool


@dataclass(frozen=True)
class PoolSlot:
    """Pool asset identities and its instantaneous sqrt price (Q64.96)."""

    asset0: str
    asset1: str
    sqrt_price_x96: int


@dataclass(frozen=True)
class TxResult:
    """A mined transaction."""

    tx_hash: str


@dataclass(frozen=True)
class WithdrawalRequestResult:
    """A mined withdrawal request and the protocol-assigned request ids."""

    tx_hash: str
    request_ids: list[str]


def _non_negative_int(value: Any) -> int:
    try:
        return max(0, int(value))
    except (TypeError, ValueError, OverflowError):
        return 0


def _to_decimal(value: Any) -> Decimal:
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return Decimal("0")
