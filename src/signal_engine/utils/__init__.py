"""Shared helpers: logging setup, guarded arithmetic, UTC clock helpers."""

from .math_utils import safe_divide, clamp, mean_or_default
from .time_utils import utc_now, utc_day_key

__all__ = ["safe_divide", "clamp", "mean_or_default", "utc_now", "utc_day_key"]
