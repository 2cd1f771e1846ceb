"""stETH/ETH treasury rebalancer."""
