"""
Telemetry Module
================

Error tracking for the codboard API.

Usage:
    from codboard.telemetry import init_sentry

    init_sentry()  # once, during create_app()
"""

from codboard.telemetry.sentry import (
    init_sentry,
    set_user_context,
    capture_exception,
)

__all__ = [
    "init_sentry",
    "set_user_context",
    "capture_exception",
]
