"""
Utilities Module
================

Helper functions and utility classes.
"""

from app.utils.helpers import format_datetime, ms_to_datetime, utc_now

__all__ = ["format_datetime", "ms_to_datetime", "utc_now"]
