"""Chain gateway layer -- Lido and Uniswap V3 access via web3."""

from rebalancer.gateway.client import ChainGateway
from rebalancer.gateway.lido_client import LidoGateway, from_wei, to_wei

__all__ = ["ChainGateway", "LidoGateway", "from_wei", "to_wei"]
