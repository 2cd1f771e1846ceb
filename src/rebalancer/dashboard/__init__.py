"""Read-only status API for the rebalancer."""
