"""Hysteresis-based decision engine: stake, withdraw, or do nothing.

One decision per tick, evaluated in a fixed order:

  1. COOLDOWN: any action within ``cooldown_minutes`` blocks everything.
  2. DISCOUNT: stETH below parity by more than the threshold -> stake.
  3. PREMIUM: stETH above parity by more than the threshold -> withdraw.
  4. Otherwise no signal.

Discount is ALWAYS checked before premium, so if both somehow exceed the
threshold (threshold 0, bad data) staking wins.

Anti-whipsaw: reversing the previous action (a "flip") is only allowed when
the previous action has been held for ``min_hold_hours`` OR the new signal
has been confirmed on ``confirmation_checks`` consecutive ticks. This is an
OR: either sustained time-in-position or a persistent signal authorizes the
flip, while a single noisy tick cannot.

CRITICAL: All percentages use Decimal. Never use float.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from enum import Enum

from rebalancer.config import StrategySettings
from rebalancer.models import ActionType, ConsecutiveCounters, LastAction, StrategyState


class Action(str, Enum):
    """What the engine decided to do this tick."""

    STAKE = "stake"
    WITHDRAW = "withdraw"
    NONE = "none"


class DecisionReason(str, Enum):
    """Why the engine decided what it did."""

    COOLDOWN_ACTIVE = "cooldown_active"
    DISCOUNT_THRESHOLD = "discount_threshold"
    PREMIUM_THRESHOLD = "premium_threshold"
    STAKE_WAITING_CONFIRMATION = "stake_waiting_confirmation"
    WITHDRAW_WAITING_CONFIRMATION = "withdraw_waiting_confirmation"
    NO_SIGNAL = "no_signal"


@dataclass(frozen=True)
class Decision:
    """Tagged decision: an action plus the reason code that produced it."""

    action: Action
    reason: DecisionReason

    @classmethod
    def stake(cls) -> Decision:
        return cls(Action.STAKE, DecisionReason.DISCOUNT_THRESHOLD)

    @classmethod
    def withdraw(cls) -> Decision:
        return cls(Action.WITHDRAW, DecisionReason.PREMIUM_THRESHOLD)

    @classmethod
    def none(cls, reason: DecisionReason) -> Decision:
        return cls(Action.NONE, reason)


class DecisionEngine:
    """Applies counter updates, cooldown, and flip gating to price signals.

    Args:
        settings: Threshold, cooldown, hold, and confirmation parameters.
    """

    def __init__(self, settings: StrategySettings) -> None:
        self._threshold = settings.threshold_pct
        self._cooldown = timedelta(minutes=settings.cooldown_minutes)
        self._min_hold = timedelta(hours=settings.min_hold_hours)
        self._confirmation_checks = settings.confirmation_checks

    @property
    def threshold_pct(self) -> Decimal:
        return self._threshold

    def update_counters(
        self,
        counters: ConsecutiveCounters,
        discount_pct: Decimal,
        premium_pct: Decimal,
    ) -> ConsecutiveCounters:
        """Increment each counter whose percentage exceeds the threshold, reset the other.

        The two counters are updated independently every tick, whether or
        not an action is taken.
        """
        discount = counters.discount + 1 if discount_pct > self._threshold else 0
        premium = counters.premium + 1 if premium_pct > self._threshold else 0
        return ConsecutiveCounters(discount=discount, premium=premium)

    def decide(
        self,
        state: StrategyState,
        discount_pct: Decimal,
        premium_pct: Decimal,
        now: datetime,
    ) -> Decision:
        """Pick one action for this tick.

        ``state.consecutive`` must already hold this tick's updated counters.
        """
        last_action = state.last_action

        if last_action is not None and now - last_action.timestamp < self._cooldown:
            return Decision.none(DecisionReason.COOLDOWN_ACTIVE)

        if discount_pct > self._threshold:
            if last_action is not None and last_action.type == ActionType.WITHDRAW:
                if not self.can_flip(last_action, state.consecutive.discount, now):
                    return Decision.none(DecisionReason.STAKE_WAITING_CONFIRMATION)
            return Decision.stake()

        if premium_pct > self._threshold:
            if last_action is not None and last_action.type == ActionType.STAKE:
                if not self.can_flip(last_action, state.consecutive.premium, now):
                    return Decision.none(DecisionReason.WITHDRAW_WAITING_CONFIRMATION)
            return Decision.withdraw()

        return Decision.none(DecisionReason.NO_SIGNAL)

    def can_flip(
        self, last_action: LastAction, confirmations: int, now: datetime
    ) -> bool:
        """True if the hold time has elapsed OR the signal is confirmed enough times."""
        hold_satisfied = now - last_action.timestamp >= self._min_hold
        confirmations_satisfied = confirmations >= self._confirmation_checks
        return hold_satisfied or confirmations_satisfied
