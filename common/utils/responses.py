"""
Standard API response helpers.

Provides consistent response formatting for success and error cases.

Example:
    from common.utils import success_response

    @router.get("/sessions")
    async def list_sessions(...):
        sessions = await get_sessions_pipeline(...)
        return success_response({"sessions": sessions})
"""

from typing import Any, Optional, Dict


def success_response(
    data: Any = None,
    message: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Create a standard success response.

    Args:
        data: The response data (can be dict, list, or any serializable type)
        message: Optional success message

    Returns:
        Dictionary with success=True and optional data/message
    """
    response: Dict[str, Any] = {"success": True}

    if data is not None:
        response["data"] = data

    if message:
        response["message"] = message

    return response


def error_response(
    message: str,
    status_code: int,
    code: Optional[str] = None,
    details: Optional[Any] = None,
) -> Dict[str, Any]:
    """
    Create a standard error response.

    An expired access token is flagged at the top level with
    ``tokenExpired`` so clients can refresh instead of re-authenticating.

    Args:
        message: Human-readable error message
        status_code: HTTP status code, repeated in the body
        code: Machine-readable error code (e.g., "USER_NOT_FOUND")
        details: Additional error details

    Returns:
        Dictionary with success=False and error info
    """
    response: Dict[str, Any] = {
        "success": False,
        "error": message,
        "statusCode": status_code,
    }

    if code:
        response["code"] = code

    if details is not None:
        response["details"] = details
        if isinstance(details, dict) and details.get("tokenExpired"):
            response["tokenExpired"] = True

    return response
