"""Shared utility functions."""

from .date_utils import days_until, parse_timestamp, to_ymd

__all__ = ["days_until", "parse_timestamp", "to_ymd"]
