"""Entry point for the stETH rebalancer.

Wires all components together, optionally embeds the FastAPI status API,
and starts the runner. When the status API is enabled (default), the bot and
the API share a single asyncio event loop via uvicorn's programmatic API and
FastAPI's lifespan context manager.

Handles SIGINT/SIGTERM for graceful shutdown.

Component wiring order (in _build_components):
1. LidoGateway (web3 RPC + signing key)
2. PriceOracle (Uniswap V3 stETH/WETH pool)
3. StateStore (JSON strategy state)
4. PriceHistory (JSON price points for the status API)
5. DecisionEngine (thresholds, cooldown, flip gating)
6. ActionExecutor (stake / withdraw)
7. WithdrawalTracker (pending -> ready -> claimed)
8. StrategyRunner (control loop)

Only one instance may run against a given state file and wallet.
"""

import asyncio
import signal
from contextlib import asynccontextmanager
from typing import Any

import uvicorn
from fastapi import FastAPI

from rebalancer.config import AppSettings, validate_settings
from rebalancer.gateway.lido_client import LidoGateway
from rebalancer.logging import get_logger, setup_logging
from rebalancer.oracle.price_oracle import PriceOracle
from rebalancer.runner import StrategyRunner
from rebalancer.state.price_history import PriceHistory
from rebalancer.state.store import StateStore
from rebalancer.strategy.actions import ActionExecutor
from rebalancer.strategy.decision import DecisionEngine
from rebalancer.strategy.withdrawals import WithdrawalTracker


def _build_components(settings: AppSettings) -> dict[str, Any]:
    """Build all bot components from settings.

    Does NOT connect the gateway -- that happens in the lifespan (status API
    mode) or run() (headless mode).

    Args:
        settings: Application-wide settings.

    Returns:
        Dict mapping component names to instances.
    """
    gateway = LidoGateway(settings.chain)

    oracle = PriceOracle(
        gateway=gateway,
        pool_address=settings.chain.pool_address,
        steth_address=settings.chain.steth_address,
        weth_address=settings.chain.weth_address,
    )

    store = StateStore(settings.storage.state_path)
    price_history = PriceHistory(
        settings.storage.price_history_path,
        limit=settings.storage.price_history_limit,
    )

    engine = DecisionEngine(settings.strategy)
    executor = ActionExecutor(gateway, store, settings.strategy)
    tracker = WithdrawalTracker(gateway, store)

    runner = StrategyRunner(
        settings=settings.loop,
        gateway=gateway,
        oracle=oracle,
        store=store,
        engine=engine,
        executor=executor,
        tracker=tracker,
        price_history=price_history,
    )

    return {
        "gateway": gateway,
        "oracle": oracle,
        "store": store,
        "price_history": price_history,
        "engine": engine,
        "executor": executor,
        "tracker": tracker,
        "runner": runner,
    }


def _setup_signal_handlers(runner: StrategyRunner) -> None:
    """Register SIGINT/SIGTERM to stop the runner gracefully.

    Must be called after the asyncio event loop is running.
    """
    logger = get_logger("rebalancer.main")
    loop = asyncio.get_running_loop()

    def _graceful_handler() -> None:
        logger.info("graceful_shutdown_signal")
        asyncio.create_task(runner.stop())

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, _graceful_handler)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage bot component lifecycle within the FastAPI application.

    On startup: exposes components on app.state, connects the gateway,
    starts the runner as a background task.

    On shutdown: stops and cancels the runner, closes the gateway.
    """
    logger = get_logger("rebalancer.main")
    components = app.state.components

    app.state.runner = components["runner"]
    app.state.gateway = components["gateway"]
    app.state.oracle = components["oracle"]
    app.state.store = components["store"]
    app.state.price_history = components["price_history"]

    await components["gateway"].connect()

    bot_task = asyncio.create_task(components["runner"].start())
    logger.info("lifespan_started")

    yield

    await components["runner"].stop()
    bot_task.cancel()
    try:
        await bot_task
    except asyncio.CancelledError:
        pass

    await components["gateway"].close()
    logger.info("rebalancer_stopped")


async def run() -> None:
    """Run the rebalancer, with or without the embedded status API."""
    settings = AppSettings()
    setup_logging(settings.log_level, settings.log_format)
    logger = get_logger("rebalancer.main")

    validate_settings(settings)
    components = _build_components(settings)

    if settings.dashboard.enabled:
        from rebalancer.dashboard.app import create_dashboard_app

        app = create_dashboard_app(lifespan=lifespan)
        app.state.settings = settings
        app.state.components = components

        logger.info(
            "starting_with_status_api",
            host=settings.dashboard.host,
            port=settings.dashboard.port,
        )

        config = uvicorn.Config(
            app,
            host=settings.dashboard.host,
            port=settings.dashboard.port,
            log_level="warning",
        )
        server = uvicorn.Server(config)
        await server.serve()
    else:
        runner = components["runner"]
        _setup_signal_handlers(runner)

        logger.info(
            "starting_without_status_api",
            threshold_pct=str(settings.strategy.threshold_pct),
            interval_seconds=settings.loop.interval_seconds,
        )

        try:
            await components["gateway"].connect()
            await runner.start()
        finally:
            await components["gateway"].close()
            logger.info("rebalancer_stopped")


def main() -> None:
    """Synchronous entry point."""
    asyncio.run(run())


if __name__ == "__main__":
    main()
