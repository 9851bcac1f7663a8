"""Logfire tracing for ledger operations."""

import functools
import inspect
import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any

import logfire

from .config import LedgerConfig, get_config

logger = logging.getLogger(__name__)


def configure_observability(config: LedgerConfig | None = None) -> None:
    """Configure logfire once at process start."""
    config = config or get_config()
    logfire.configure(
        service_name=config.service_name,
        send_to_logfire=config.send_traces,
        console=None if config.console_traces else False,
    )
    logger.debug(
        "Tracing configured (send=%s, console=%s)", config.send_traces, config.console_traces
    )


def traced(operation: str):
    """Wrap a ledger operation in a logfire span.

    String/number/bool arguments become span attributes; the span
    records whether the operation succeeded and, if not, the error code.
    """

    def decorator(func: Callable) -> Callable:
        signature = inspect.signature(func)

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            with logfire.span(f"ledger.{operation}", operation=operation) as span:
                start_time = datetime.now()
                arguments = signature.bind_partial(*args, **kwargs).arguments
                arguments.pop("self", None)
                _add_attributes(span, "input", arguments)

                try:
                    result = func(*args, **kwargs)
                except Exception as e:
                    span.set_attribute("ledger.success", False)
                    span.set_attribute("ledger.error", getattr(e, "code", type(e).__name__))
                    raise

                span.set_attribute("ledger.success", True)
                span.set_attribute(
                    "ledger.duration_ms", (datetime.now() - start_time).total_seconds() * 1000
                )
                _add_result_attributes(span, result)
                return result

        return wrapper

    return decorator


def _add_attributes(span, prefix: str, data: dict[str, Any]) -> None:
    for key, value in data.items():
        if isinstance(value, str | int | float | bool):
            span.set_attribute(f"{prefix}.{key}", value)


def _add_result_attributes(span, result: Any) -> None:
    if isinstance(result, int) and not isinstance(result, bool):
        span.set_attribute("result.count", result)
    elif isinstance(result, list):
        span.set_attribute("result.item_count", len(result))
    elif hasattr(result, "status"):
        span.set_attribute("result.status", str(result.status.value))
