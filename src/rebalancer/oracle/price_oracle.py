"""stETH/ETH price ratio from a Uniswap V3 pool.

Reads the pool's ``slot0().sqrtPriceX96`` and converts it to an 18-decimal
fixed-point ratio using integer arithmetic only:

    price(asset1 per asset0) = sqrtPriceX96 ** 2 / 2 ** 192

If stETH is the pool's asset0, that price is already "ETH per stETH". If stETH
is asset1, the price is inverted with an integer reciprocal
(``10**18 * 10**18 // price``). Float division is never used; the fixed-point
value becomes a Decimal only at the very end.

ASSUMPTION: stETH and WETH both have 18 decimals, so no decimal-adjustment
factor is applied. Reusing this adapter for a pair with differing token
precision requires scaling by ``10 ** (decimals0 - decimals1)``.
"""

from decimal import Decimal

from rebalancer.exceptions import AssetMismatch, GatewayError, PriceUnavailable
from rebalancer.gateway.client import ChainGateway
from rebalancer.models import PriceSample, utc_now

Q192 = 2**192
ONE_X18 = 10**18


def price_from_sqrt_x96_x18(sqrt_price_x96: int) -> int:
    """Convert a Q64.96 sqrt price to an 18-decimal asset1-per-asset0 price."""
    return sqrt_price_x96 * sqrt_price_x96 * ONE_X18 // Q192


def invert_ratio_x18(ratio_x18: int) -> int:
    """Fixed-point reciprocal of an 18-decimal ratio.

    Raises:
        PriceUnavailable: If the ratio is zero.
    """
    if ratio_x18 == 0:
        raise PriceUnavailable("Cannot invert zero price")
    return ONE_X18 * ONE_X18 // ratio_x18


def x18_to_decimal(value_x18: int) -> Decimal:
    """Convert an 18-decimal fixed-point integer to Decimal."""
    return Decimal(value_x18) / Decimal(ONE_X18)


class PriceOracle:
    """Normalizes pool prices to "value of 1 stETH in ETH".

    Args:
        gateway: Chain gateway used to read the pool.
        pool_address: Uniswap V3 stETH/WETH pool.
        steth_address: Configured staked-asset token address.
        weth_address: Configured base-asset token address.
    """

    def __init__(
        self,
        gateway: ChainGateway,
        pool_address: str,
        steth_address: str,
        weth_address: str,
    ) -> None:
        self._gateway = gateway
        self._pool_address = pool_address
        self._steth = steth_address.lower()
        self._weth = weth_address.lower()

    async def get_ratio(self) -> Decimal:
        """Return the current stETH/ETH ratio (1.0 = parity).

        Raises:
            PriceUnavailable: If the pool read fails or reports a zero price.
            AssetMismatch: If the pool's assets are not {stETH, WETH}.
        """
        try:
            slot = await self._gateway.get_pool_ratio(self._pool_address)
        except GatewayError as exc:
            raise PriceUnavailable(str(exc)) from exc

        asset0 = slot.asset0.lower()
        asset1 = slot.asset1.lower()
        price_x18 = price_from_sqrt_x96_x18(slot.sqrt_price_x96)

        if asset0 == self._steth and asset1 == self._weth:
            if price_x18 == 0:
                raise PriceUnavailable("Pool reports zero price")
            return x18_to_decimal(price_x18)

        if asset0 == self._weth and asset1 == self._steth:
            return x18_to_decimal(invert_ratio_x18(price_x18))

        raise AssetMismatch(
            f"Pool assets {slot.asset0}/{slot.asset1} do not match stETH/WETH"
        )

    async def get_sample(self) -> PriceSample:
        """Return the current ratio stamped with the capture time."""
        ratio = await self.get_ratio()
        return PriceSample(ratio=ratio, captured_at=utc_now())
