"""
Monitoring and error tracking setup
"""
import os
import logging
import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

logger = logging.getLogger(__name__)


def init_monitoring() -> bool:
    """
    Initialize Sentry monitoring when SENTRY_DSN is set.

    Returns:
        True if Sentry was initialized
    """
    sentry_dsn = os.getenv("SENTRY_DSN")
    environment = os.getenv("ENVIRONMENT", "development")

    if not sentry_dsn:
        logger.warning("Sentry DSN not configured, monitoring disabled")
        return False

    sentry_sdk.init(
        dsn=sentry_dsn,
        environment=environment,
        integrations=[
            FastApiIntegration(),
            SqlalchemyIntegration(),
        ],
        traces_sample_rate=1.0 if environment == "development" else 0.1,
        profiles_sample_rate=1.0 if environment == "development" else 0.1,
    )
    logger.info(f"Sentry monitoring initialized for {environment}")
    return True


def capture_exception(error: Exception, context: dict = None):
    """
    Report an exception with optional context (job ID, organization, phone).

    A no-op when Sentry is not initialized.
    """
    if context:
        sentry_sdk.set_context("donor_crm", context)

    sentry_sdk.capture_exception(error)


def capture_message(message: str, level: str = "info"):
    """
    Capture custom message

    Args:
        message: Message to capture
        level: Log level (info, warning, error)
    """
    sentry_sdk.capture_message(message, level=level)
