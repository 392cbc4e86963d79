"""
Time utilities for the Portfolio Tracker application.

This module provides a single source of truth for time operations,
so every created_at/updated_at stamp comes from the same clock.
"""

from datetime import datetime, timezone


def utc_now() -> datetime:
    """
    Get current UTC time.
    Single source of truth for "now" throughout the application.

    Returns:
        timezone-aware datetime in UTC
    """
    return datetime.now(timezone.utc)
