"""
Utilities for the Chatroom Server

This module contains utility functions for validation and per-key
locking. The fan-out policy lives in ``chatroom.utils.broadcast``.
"""

from .locks import KeyedLocks
from .validation import validate_message_content, validate_name

__all__ = [
    "KeyedLocks",
    "validate_message_content",
    "validate_name",
]
