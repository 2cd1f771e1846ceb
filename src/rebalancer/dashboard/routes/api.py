"""JSON status endpoints: balances, withdrawal ledger, price, and price history.

Read-only by construction: nothing here writes the state file, so the
runner remains its single writer.
"""

from __future__ import annotations

import asyncio

import structlog
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from rebalancer.exceptions import RebalancerError
from rebalancer.models import Asset, RequestStatus, format_timestamp, utc_now

log = structlog.get_logger(__name__)

router = APIRouter()


def _error(exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=500, content={"error": str(exc)})


@router.get("/status")
async def get_status(request: Request) -> JSONResponse:
    """Wallet balances, open withdrawals, strategy config, and loop state."""
    gateway = request.app.state.gateway
    store = request.app.state.store
    runner = request.app.state.runner
    strategy = request.app.state.settings.strategy
    loop_settings = request.app.state.settings.loop

    try:
        eth_balance, steth_balance = await asyncio.gather(
            gateway.get_balance(Asset.ETH, gateway.address),
            gateway.get_balance(Asset.STETH, gateway.address),
        )
    except RebalancerError as exc:
        log.warning("status_balance_read_failed", error=str(exc))
        return _error(exc)

    state = store.load()
    return JSONResponse(
        content={
            "botAddress": gateway.address,
            "ethBalance": str(eth_balance),
            "stethBalance": str(steth_balance),
            "pendingWithdrawals": [
                r.to_dict() for r in state.requests_with_status(RequestStatus.PENDING)
            ],
            "readyToClaim": [
                r.to_dict() for r in state.requests_with_status(RequestStatus.READY)
            ],
            "config": {
                "thresholdPct": str(strategy.threshold_pct),
                "safetyBufferEth": str(strategy.safety_buffer_eth),
                "minTradeEth": str(strategy.min_trade_eth),
                "minTradeSteth": str(strategy.min_trade_steth),
                "cooldownMinutes": strategy.cooldown_minutes,
                "minHoldHours": strategy.min_hold_hours,
                "confirmationChecks": strategy.confirmation_checks,
                "loopSeconds": loop_settings.interval_seconds,
            },
            "serverTime": format_timestamp(utc_now()),
            "lastTick": (
                format_timestamp(state.last_tick) if state.last_tick else None
            ),
            "lastAction": (
                state.last_action.to_dict() if state.last_action else None
            ),
            "consecutive": state.consecutive.to_dict(),
            "running": runner.is_running,
        }
    )


@router.get("/price")
async def get_price(request: Request) -> JSONResponse:
    """Live stETH/ETH ratio with discount and premium percentages."""
    oracle = request.app.state.oracle
    try:
        sample = await oracle.get_sample()
    except RebalancerError as exc:
        log.warning("status_price_read_failed", error=str(exc))
        return _error(exc)
    return JSONResponse(content=sample.to_dict())


@router.get("/price/history")
async def get_price_history(request: Request) -> JSONResponse:
    """Price points recorded by the runner, oldest first."""
    history = request.app.state.price_history
    points = history.load() if history is not None else []
    return JSONResponse(content=points)


@router.get("/requests")
async def get_requests(request: Request) -> JSONResponse:
    """The full withdrawal ledger, including claimed records."""
    state = request.app.state.store.load()
    return JSONResponse(content=[r.to_dict() for r in state.requests])
