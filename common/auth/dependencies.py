"""
FastAPI authentication helpers.

Bearer extraction shared by the request gate and the refresh endpoint, and
a factory that turns any gate into a FastAPI dependency.

Example:
    require_gate = create_gate_dependency(lambda: gate)

    @router.get("/profile")
    async def get_profile(result = Depends(require_gate)):
        return result.user_data
"""

from typing import Any, Callable, Optional

from fastapi import Header

from common.utils.exceptions import UnauthorizedException, APIException


def extract_bearer_token(authorization: Optional[str], scheme: str = "Bearer") -> Optional[str]:
    """
    Extract the token from an Authorization header.

    Returns None when the header is missing, uses another scheme or is empty.
    """
    if not authorization:
        return None

    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != scheme.lower():
        return None

    return parts[1] or None


def create_gate_dependency(
    get_gate: Callable[[], Any],
    header_name: str = "Authorization",
):
    """
    Factory to create a FastAPI dependency from a request gate.

    The gate must expose ``async check(authorization_header)`` returning a
    result with ``success``, ``error``, ``status_code`` and ``token_expired``.

    Returns:
        A FastAPI dependency that yields the successful gate result
    """

    async def require_gate(
        authorization: Optional[str] = Header(None, alias=header_name),
    ):
        """
        Run the gate for the current request.

        Raises:
            APIException: The gate's status code and message
        """
        result = await get_gate().check(authorization)

        if result.success:
            return result

        details = {"tokenExpired": True} if result.token_expired else None

        if result.status_code == 401:
            raise UnauthorizedException(
                message=result.error,
                code=result.error_code or ("TOKEN_EXPIRED" if result.token_expired else "UNAUTHORIZED"),
                details=details,
            )

        raise APIException(
            status_code=result.status_code,
            message=result.error,
            code=result.error_code,
            details=details,
        )

    return require_gate
