"""
ID generators for records created without a caller-supplied id.
"""

from __future__ import annotations
import base64
import os

from .timestamps import epoch_ms


def generate_short_id(byte_length: int = 6) -> str:
    """
    Generate a short, URL-safe random ID.
    Default: 6 bytes -> 8 char string
    """
    return base64.urlsafe_b64encode(os.urandom(byte_length)).decode("utf-8").rstrip("=")


def generate_record_id(prefix: str = "item") -> str:
    """
    `item-<epoch-ms>-<short-id>`: sortable by creation time, and the random
    suffix keeps ids unique when two callers create in the same millisecond.
    """
    return f"{prefix}-{epoch_ms()}-{generate_short_id()}"
