"""
Data formatting utilities.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from app.utils.exceptions import LinkUnavailableError, StorageError


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """
    Return an aware UTC datetime.

    Some database backends hand back naive timestamps for timezone-aware
    columns; those are stored in UTC.
    """
    if dt is None:
        return None

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)

    return dt.astimezone(timezone.utc)


def format_error_response(error: Exception, status_code: int = 500) -> Dict[str, Any]:
    """
    Format error response for API.

    Args:
        error: Exception object
        status_code: HTTP status code

    Returns:
        Formatted error response dictionary
    """
    if isinstance(error, LinkUnavailableError):
        # One shape for every link failure, whatever the reason
        return {
            "error": "LinkUnavailable",
            "detail": LinkUnavailableError.public_message,
            "status_code": status_code,
        }

    response = {
        "error": error.__class__.__name__,
        "detail": getattr(error, "message", None) or str(error),
        "status_code": status_code,
    }

    if getattr(error, "field", None):
        response["field"] = error.field

    if isinstance(error, StorageError) and error.cleanup_complete is not None:
        response["cleanup_complete"] = error.cleanup_complete

    return response
