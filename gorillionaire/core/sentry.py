"""
Error tracking.

Sentry is optional: without SENTRY_DSN every helper here is a no-op, so
callers can report unconditionally.
"""

import logging

import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.logging import LoggingIntegration

from gorillionaire import __version__
from gorillionaire.core.config import settings
from gorillionaire.core.logger import Logger

logger = Logger("Sentry")

# Transient network noise that is not worth an event
IGNORED_ERROR_MARKERS = ("ECONNRESET", "ECONNREFUSED", "socket hang up", "Connection reset by peer")


def before_send(event, hint):
    if settings.ENVIRONMENT == "development" and not settings.SENTRY_DEBUG:
        return None

    exc_info = hint.get("exc_info") if hint else None
    if exc_info:
        message = str(exc_info[1])
        if any(marker in message for marker in IGNORED_ERROR_MARKERS):
            return None
    return event


def init_sentry() -> bool:
    """Initialize Sentry error tracking if a DSN is configured."""
    if not settings.SENTRY_DSN:
        logger.info("Sentry DSN not configured, skipping error tracking")
        return False

    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        integrations=[
            FastApiIntegration(),
            LoggingIntegration(level=logging.INFO, event_level=logging.ERROR),
        ],
        traces_sample_rate=0.1 if settings.ENVIRONMENT == "production" else 1.0,
        environment=settings.ENVIRONMENT,
        release=f"gorillionaire-signals@{__version__}",
        send_default_pii=False,
        before_send=before_send,
    )
    sentry_sdk.set_tag("component", "signals-server")
    logger.info("Sentry error tracking initialized")
    return True


def capture_exception(exc: BaseException, component: str, **extra):
    with sentry_sdk.new_scope() as scope:
        scope.set_tag("component", component)
        for key, value in extra.items():
            scope.set_extra(key, value)
        sentry_sdk.capture_exception(exc)


def flush(timeout: float = 2.0):
    sentry_sdk.flush(timeout=timeout)
