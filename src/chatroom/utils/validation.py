"""
Validation Utilities

Contains utility functions for validating message content and names.
"""

from typing import Tuple, Optional

# Message validation constants
MAX_MESSAGE_LENGTH = 5000
MAX_NAME_LENGTH = 64


def validate_message_content(content: str) -> Tuple[bool, Optional[str]]:
    """
    Validate message content.

    Args:
        content: The message content to validate

    Returns:
        tuple: (is_valid, error_message)
            - is_valid: True if content is valid, False otherwise
            - error_message: Error message if invalid, None if valid
    """
    if not isinstance(content, str) or not content.strip():
        return False, "Message content cannot be empty"

    if len(content) > MAX_MESSAGE_LENGTH:
        return (
            False,
            f"Message content too long (max {MAX_MESSAGE_LENGTH} characters)",
        )

    return True, None


def validate_name(value, field_name: str) -> Tuple[bool, Optional[str]]:
    """
    Validate a username or chatroom id.

    Returns:
        tuple: (is_valid, error_message)
    """
    if not isinstance(value, str) or not value.strip():
        return False, f"{field_name} must be a non-empty string"

    if len(value) > MAX_NAME_LENGTH:
        return (
            False,
            f"{field_name} too long (max {MAX_NAME_LENGTH} characters)",
        )

    return True, None
