# coding: utf-8
"""
Sentry configuration for error monitoring
"""
from typing import Optional

import sentry_sdk
from sentry_sdk.integrations.asyncio import AsyncioIntegration
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration
from loguru import logger

from config.config import SENTRY_DSN, ENVIRONMENT

# Headers that must never leave the server
SENSITIVE_HEADERS = ("Authorization", "X-Admin-Token", "X-Webhook-Signature")


def init_sentry() -> None:
    """
    Initialize Sentry SDK (no-op when SENTRY_DSN is empty)
    """
    if not SENTRY_DSN:
        logger.warning("SENTRY_DSN not configured - error monitoring disabled")
        return

    try:
        sentry_sdk.init(
            dsn=SENTRY_DSN,
            environment=ENVIRONMENT,
            integrations=[
                AsyncioIntegration(),
                SqlalchemyIntegration(),
                FastApiIntegration(),
            ],
            traces_sample_rate=0.1 if ENVIRONMENT == "production" else 1.0,
            sample_rate=1.0,
            attach_stacktrace=True,
            send_default_pii=False,
            max_breadcrumbs=50,
            before_send=before_send_hook,
        )

        logger.info(f"Sentry initialized successfully (Environment: {ENVIRONMENT})")

    except Exception as e:
        logger.error(f"Failed to initialize Sentry: {e}")


def before_send_hook(event, hint):
    """
    Drop KeyboardInterrupt and strip auth headers before sending
    """
    if "exc_info" in hint:
        _, exc_value, _ = hint["exc_info"]
        if isinstance(exc_value, KeyboardInterrupt):
            return None

    request = event.get("request")
    if request:
        headers = request.get("headers", {})
        for header in SENSITIVE_HEADERS:
            if header in headers:
                headers[header] = "[Filtered]"

    return event


def set_user_context(telegram_id: int, username: Optional[str] = None) -> None:
    """
    Set user context for Sentry events

    Args:
        telegram_id: Telegram user ID
        username: Telegram username (optional)
    """
    sentry_sdk.set_user({
        "id": str(telegram_id),
        "username": username or f"user_{telegram_id}",
    })
