"""Observability wiring for taskmate.

Modules log through ``logging.getLogger(__name__)``. Once
``configure_logfire`` has run, the root logger hands every record to Logfire,
and service functions open spans with ``span("<service>.<operation>")``.
Request handlers that act on behalf of a signed-in user attach the user id
with ``log_with_user_context``.
"""

import logging

import logfire
from fastapi import FastAPI

from taskmate.core.config import settings


logger = logging.getLogger(__name__)


def configure_logfire() -> None:
    """Set up Logfire and install its handler on the root logger.

    Nothing leaves the process unless ``LOGFIRE_TOKEN`` is set.
    """
    logfire.configure(
        token=settings.logfire_token,
        service_name="taskmate",
        environment=settings.environment,
        send_to_logfire="if-token-present",
    )
    logging.basicConfig(handlers=[logfire.LogfireLoggingHandler()], level=settings.log_level.upper())
    logger.info("Logfire ready (environment=%s)", settings.environment)


def instrument_fastapi(app: FastAPI) -> None:
    """Trace every request handled by the API."""
    logfire.instrument_fastapi(app)
    logger.info("FastAPI tracing enabled")


def span(name: str) -> logfire.LogfireSpan:
    return logfire.span(name)


def log_with_user_context(
    logger: logging.Logger,
    level: str,
    message: str,
    user_id: str | None = None,
    **extra: object,
) -> None:
    """Emit ``message`` at ``level`` with the acting user and extra fields as record attributes.

    ``user_id`` is left out of the record when it is not known.
    """
    context = dict(extra)
    if user_id:
        context["user_id"] = user_id
    getattr(logger, level.lower())(message, extra=context)
