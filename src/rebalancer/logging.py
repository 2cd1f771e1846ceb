"""Structured logging for the rebalancer using structlog.

Every significant bot event is a single record whose ``event`` key names it
(``tick``, ``decision``, ``stake_sent``, ``withdraw_claimed``, ...) and whose
``timestamp`` key is ISO-8601 UTC. Event-specific fields ride along as
keyword arguments; the wallet address is bound once per run through
contextvars so every event carries it.
"""

import logging
from decimal import Decimal
from typing import Any

import structlog

_NOISY_LOGGERS = ("web3", "urllib3", "aiohttp")


def _decimals_to_str(
    logger: Any, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """Render Decimal amounts as plain strings (JSON has no decimal type)."""
    for key, value in event_dict.items():
        if isinstance(value, Decimal):
            event_dict[key] = str(value)
    return event_dict


def _renderer(log_format: str) -> structlog.types.Processor:
    if log_format.lower() == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer()


def setup_logging(log_level: str = "INFO", log_format: str = "console") -> None:
    """Configure structlog on top of stdlib logging.

    Args:
        log_level: Root level name (``DEBUG``, ``INFO``, ...).
        log_format: ``json`` for one JSON object per event (log shippers),
            anything else for human-readable console output.
    """
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            _decimals_to_str,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler()
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                _renderer(log_format),
            ],
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    # web3 and its HTTP stack are chatty at INFO
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def bind_wallet(address: str) -> None:
    """Attach the bot wallet address to every subsequent event in this context."""
    structlog.contextvars.bind_contextvars(wallet=address)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Return a bound structlog logger with the given name."""
    return structlog.get_logger(name)
