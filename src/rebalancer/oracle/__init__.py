"""Price oracle layer -- stETH/ETH ratio from the Uniswap V3 pool."""

from rebalancer.oracle.price_oracle import (
    PriceOracle,
    invert_ratio_x18,
    price_from_sqrt_x96_x18,
    x18_to_decimal,
)

__all__ = [
    "PriceOracle",
    "invert_ratio_x18",
    "price_from_sqrt_x96_x18",
    "x18_to_decimal",
]
