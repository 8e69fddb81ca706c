"""
Response Schema Definitions

Contains functions for creating error responses sent to a single
connection.
"""

from typing import Any, Dict, Optional


def create_error_response(
    error_message: str,
    error_code: str,
    event: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Create an error response.

    Args:
        error_message: Error message text
        error_code: Machine readable error code
        event: Name of the client event that failed, if known

    Returns:
        dict: Error response data
    """
    response = {
        "error": error_message,
        "error_code": error_code,
    }
    if event:
        response["event"] = event
    return response
