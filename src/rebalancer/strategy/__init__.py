"""Strategy layer: decision engine, action execution, and withdrawal lifecycle."""

from rebalancer.strategy.actions import ActionExecutor
from rebalancer.strategy.decision import Action, Decision, DecisionEngine, DecisionReason
from rebalancer.strategy.withdrawals import WithdrawalTracker

__all__ = [
    "Action",
    "ActionExecutor",
    "Decision",
    "DecisionEngine",
    "DecisionReason",
    "WithdrawalTracker",
]
