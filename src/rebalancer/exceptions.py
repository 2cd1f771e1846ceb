"""Custom exceptions for the stETH rebalancer.

Oracle, gateway, and configuration exceptions live here to avoid circular
imports between the strategy, oracle, and gateway layers.

Insufficient balance is NOT an exception: the action executor logs a
``*_skipped`` event and the tick continues.
"""


class RebalancerError(Exception):
    """Base exception for all rebalancer errors."""


class PriceUnavailable(RebalancerError):
    """Raised when the pool price cannot be read or is zero."""


class AssetMismatch(RebalancerError):
    """Raised when the pool's assets do not match the configured stETH/WETH pair."""


class GatewayError(RebalancerError):
    """Raised when any chain read or write fails.

    Carries the underlying transport or contract message. Revert reasons
    are not interpreted.
    """

    def __init__(self, operation: str, message: str) -> None:
        super().__init__(f"{operation} failed: {message}")
        self.operation = operation
        self.message = message


class InvalidConfiguration(RebalancerError):
    """Raised at startup when required settings are missing or inconsistent."""
