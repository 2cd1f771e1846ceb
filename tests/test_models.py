"""Tests for shared models: price percentages, ledger transitions, parsing."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from rebalancer.models import (
    ActionType,
    ConsecutiveCounters,
    LastAction,
    PriceSample,
    RequestStatus,
    StrategyState,
    format_timestamp,
    parse_timestamp,
)


class TestPriceSample:
    def test_discount_and_premium_are_mirror_images(self) -> None:
        sample = PriceSample(ratio=Decimal("0.996"))
        assert sample.discount_pct == Decimal("0.400")
        assert sample.premium_pct == Decimal("-0.400")

    def test_parity(self) -> None:
        sample = PriceSample(ratio=Decimal("1"))
        assert sample.discount_pct == 0
        assert sample.premium_pct == 0


class TestTimestamps:
    def test_parse_accepts_trailing_z(self) -> None:
        parsed = parse_timestamp("2025-06-01T12:00:00.000Z")
        assert parsed == datetime(2025, 6, 1, 12, tzinfo=timezone.utc)

    def test_naive_timestamps_are_utc(self) -> None:
        assert parse_timestamp("2025-06-01T12:00:00").tzinfo is not None

    def test_format_uses_z_suffix(self, now) -> None:
        assert format_timestamp(now) == "2025-06-01T12:00:00Z"


class TestLedger:
    """Ledger transitions: append-only, pending -> ready -> claimed."""

    def test_add_requests_ignores_known_ids(self, now) -> None:
        state = StrategyState().add_requests(["1", "2"], Decimal("2"), "0xa", now)
        again = state.add_requests(["2", "3"], Decimal("1"), "0xb", now)

        assert [r.request_id for r in again.requests] == ["1", "2", "3"]
        assert again.requests[1].tx_hash == "0xa"

    def test_add_requests_with_no_new_ids_returns_same_state(self, now) -> None:
        state = StrategyState().add_requests(["1"], Decimal("2"), "0xa", now)
        assert state.add_requests(["1"], Decimal("2"), "0xa", now) is state

    def test_ready_only_applies_to_pending(self, now) -> None:
        state = (
            StrategyState()
            .add_requests(["1", "2"], Decimal("1"), "0xa", now)
            .mark_requests(["2"], RequestStatus.CLAIMED, now)
            .mark_requests(["1", "2"], RequestStatus.READY, now)
        )
        assert [r.status for r in state.requests] == [
            RequestStatus.READY,
            RequestStatus.CLAIMED,
        ]

    def test_claimed_never_changes(self, now) -> None:
        later = now + timedelta(hours=1)
        state = (
            StrategyState()
            .add_requests(["1"], Decimal("1"), "0xa", now)
            .mark_requests(["1"], RequestStatus.CLAIMED, now)
            .mark_requests(["1"], RequestStatus.PENDING, later)
            .mark_requests(["1"], RequestStatus.CLAIMED, later)
        )
        record = state.requests[0]
        assert record.status == RequestStatus.CLAIMED
        assert record.claimed_at == now

    def test_pending_can_be_claimed_directly(self, now) -> None:
        state = (
            StrategyState()
            .add_requests(["1"], Decimal("1"), "0xa", now)
            .mark_requests(["1"], RequestStatus.CLAIMED, now)
        )
        assert state.requests[0].status == RequestStatus.CLAIMED

    def test_unknown_ids_are_ignored(self, now) -> None:
        state = StrategyState().add_requests(["1"], Decimal("1"), "0xa", now)
        assert state.mark_requests(["99"], RequestStatus.READY, now) == state

    def test_open_requests_excludes_claimed(self, now) -> None:
        state = (
            StrategyState()
            .add_requests(["1", "2", "3"], Decimal("1"), "0xa", now)
            .mark_requests(["2"], RequestStatus.READY, now)
            .mark_requests(["3"], RequestStatus.CLAIMED, now)
        )
        assert [r.request_id for r in state.open_requests()] == ["1", "2"]
        assert [
            r.request_id for r in state.requests_with_status(RequestStatus.READY)
        ] == ["2"]


class TestFromDict:
    """Tolerant parsing of persisted state."""

    def test_non_dict_yields_default(self) -> None:
        assert StrategyState.from_dict(["not", "a", "dict"]) == StrategyState()

    def test_malformed_records_are_dropped(self) -> None:
        state = StrategyState.from_dict(
            {
                "requests": [
                    "garbage",
                    {"amountSteth": "1"},
                    {"requestId": "1", "status": "lost", "createdAt": "2025-01-01T00:00:00Z"},
                    {"requestId": "2", "status": "pending", "createdAt": "2025-01-01T00:00:00Z"},
                ]
            }
        )
        assert [r.request_id for r in state.requests] == ["2"]

    def test_negative_or_bad_counters_clamp_to_zero(self) -> None:
        counters = ConsecutiveCounters.from_dict({"discount": -4, "premium": "x"})
        assert counters == ConsecutiveCounters()

    @pytest.mark.parametrize("value", [float("inf"), float("-inf"), float("nan")])
    def test_non_finite_counters_clamp_to_zero(self, value: float) -> None:
        counters = ConsecutiveCounters.from_dict({"discount": value, "premium": value})
        assert counters == ConsecutiveCounters()

    def test_unknown_last_action_type_is_dropped(self) -> None:
        assert LastAction.from_dict({"type": "swap", "timestamp": "2025-01-01T00:00:00Z"}) is None

    def test_last_tick_round_trips(self, now) -> None:
        state = StrategyState().with_last_action(ActionType.STAKE, now).with_last_tick(now)
        assert StrategyState.from_dict(state.to_dict()) == state
