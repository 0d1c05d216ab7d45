"""
Sentry Error Tracking
=====================

Centralized error tracking for the API and the import script.

Related files:
- codboard/main.py: Initializes Sentry on app startup
- codboard/services/audit_service.py: reports swallowed audit failures
- codboard/services/ad_cost_allocation.py: reports per-campaign failures in bulk runs

Environment Variables:
- SENTRY_DSN: Sentry project DSN (Sentry stays off when unset)
- ENVIRONMENT: Environment name (production, staging, development)
"""

from __future__ import annotations

import os
import logging
from typing import Optional

import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration
from sentry_sdk.integrations.logging import LoggingIntegration

logger = logging.getLogger(__name__)

_initialized = False


def get_sentry_dsn() -> Optional[str]:
    return os.environ.get("SENTRY_DSN")


def init_sentry() -> bool:
    """
    Initialize Sentry SDK for FastAPI.

    Returns:
        True if Sentry was initialized, False when no DSN is configured or
        initialization failed.
    """
    global _initialized

    dsn = get_sentry_dsn()
    if not dsn:
        return False

    environment = os.environ.get("ENVIRONMENT", "development")

    try:
        sentry_sdk.init(
            dsn=dsn,
            environment=environment,
            integrations=[
                FastApiIntegration(transaction_style="endpoint"),
                SqlalchemyIntegration(),
                LoggingIntegration(
                    level=logging.INFO,        # INFO+ as breadcrumbs
                    event_level=logging.ERROR,  # ERROR+ as events
                ),
            ],
            traces_sample_rate=0.1,
            send_default_pii=False,
            release=os.environ.get("RELEASE_VERSION"),
        )
    except Exception as e:
        logger.error(f"[SENTRY] Failed to initialize: {e}")
        return False

    _initialized = True
    logger.debug(f"[SENTRY] Initialized for {environment} environment")
    return True


def set_user_context(user_id: str, email: Optional[str] = None, business_id: Optional[str] = None) -> None:
    """Attach the caller to subsequent Sentry events in this request."""
    if not _initialized:
        return
    sentry_sdk.set_user({"id": user_id, "email": email, "business_id": business_id})


def capture_exception(exception: Exception, extra: Optional[dict] = None) -> None:
    """
    Report an exception that was caught and handled.

    Example:
        except SQLAlchemyError as e:
            capture_exception(e, extra={"campaign_id": str(campaign.id)})
            errors.append(str(e))
    """
    if not _initialized:
        logger.debug(f"[SENTRY] Disabled, not reporting: {exception}")
        return

    with sentry_sdk.new_scope() as scope:
        for key, value in (extra or {}).items():
            scope.set_extra(key, value)
        sentry_sdk.capture_exception(exception)
