"""Logfire observability for the Library Lending server."""

import logging
import os
from collections.abc import Generator
from contextlib import contextmanager
from typing import Any

import logfire
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class ObservabilityConfig(BaseModel):
    """Configuration for Logfire observability."""

    token: str = Field(default_factory=lambda: os.getenv("LOGFIRE_TOKEN", ""))
    service_name: str = "library-lending"
    environment: str = Field(default_factory=lambda: os.getenv("ENVIRONMENT", "development"))

    enabled: bool = Field(
        default_factory=lambda: os.getenv("LOGFIRE_ENABLED", "true").lower() == "true"
    )
    console_output: bool = Field(
        default_factory=lambda: os.getenv("LOGFIRE_CONSOLE", "false").lower() == "true"
    )
    send_to_logfire: bool = Field(
        default_factory=lambda: os.getenv("LOGFIRE_SEND", "false").lower() == "true"
    )


_config: ObservabilityConfig | None = None


def initialize_observability(config: ObservabilityConfig | None = None) -> None:
    """Configure logfire once at startup."""
    global _config  # noqa: PLW0603
    _config = config or ObservabilityConfig()

    if not _config.enabled:
        logger.debug("Observability disabled via configuration")
        return

    logfire.configure(
        token=_config.token or None,
        service_name=_config.service_name,
        environment=_config.environment,
        send_to_logfire=_config.send_to_logfire,
        console=None if _config.console_output else False,
    )
    logger.info("Observability initialized (environment=%s)", _config.environment)


# Lending business metrics
lending_events = logfire.metric_counter(
    "library.lending.events", description="Borrow/return/admin outcomes by operation and result"
)


@contextmanager
def trace_lending(operation: str, **attributes: Any) -> Generator[Any, None, None]:
    """Span around one coordinator operation."""
    span_attributes = {key: value for key, value in attributes.items() if value is not None}
    with logfire.span("lending.{operation}", operation=operation, **span_attributes) as span:
        yield span


def record_lending_event(operation: str, ok: bool, error_kind: str | None = None) -> None:
    """Count a finished coordinator operation."""
    lending_events.add(
        1,
        {
            "operation": operation,
            "result": "ok" if ok else "error",
            "error_kind": error_kind or "none",
        },
    )
