"""Utility functions.

Common helper functions and utilities used across the application.
"""

from src.utils.amount import calculate_platform_fee, quantize_money, split_order_amount
from src.utils.helpers import format_utc_datetime, utc_now

__all__ = [
    "calculate_platform_fee",
    "format_utc_datetime",
    "quantize_money",
    "split_order_amount",
    "utc_now",
]
