"""
FastAPI router for AuthPin endpoints.
"""

from typing import Annotated

from fastapi import APIRouter, Depends

from aang.auth import pipelines
from aang.auth.dependencies import (
    get_auth_pin_service,
    get_identity_store,
    get_mail_sender,
    get_verification_policy,
    require_pre_check,
)
from aang.auth.types import PreCheckResult
from aang.schemas.auth_pin import (
    PinResetRequest,
    RemovePinRequest,
    ResetPinRequest,
    SetPinRequest,
    TogglePinRequest,
    UpdatePinRequest,
    VerifyPinRequest,
)
from common.utils import success_response


router = APIRouter(prefix="/auth-pin", tags=["auth-pin"])

Gate = Annotated[PreCheckResult, Depends(require_pre_check)]


@router.post("/set", status_code=201)
async def set_pin(body: SetPinRequest, gate: Gate):
    """Create the AuthPin for the current user."""
    result = await pipelines.set_pin_pipeline(get_auth_pin_service(), gate.user_data, body.pin, body.confirmPin)
    return success_response({"isEnabled": result["isEnabled"]}, result["message"])


@router.post("/verify")
async def verify_pin(body: VerifyPinRequest, gate: Gate):
    """
    Verify the AuthPin for an operation.

    Returns a short-lived operation token bound to the user and operation.
    """
    result = await pipelines.verify_pin_pipeline(get_auth_pin_service(), gate.user_data, body.pin, body.operation)
    return success_response(result, "PIN verified successfully")


@router.post("/update")
async def update_pin(body: UpdatePinRequest, gate: Gate):
    """Change the AuthPin using the current PIN."""
    result = await pipelines.update_pin_pipeline(
        get_auth_pin_service(),
        gate.user_data,
        current_pin=body.currentPin,
        new_pin=body.newPin,
        confirm_new_pin=body.confirmNewPin,
    )
    return success_response(message=result["message"])


@router.post("/reset/request")
async def request_pin_reset(body: PinResetRequest):
    """
    Request a PIN reset code.

    Always returns the same response to prevent email enumeration.
    """
    result = await pipelines.request_pin_reset_pipeline(
        identity_store=get_identity_store(),
        mail_sender=get_mail_sender(),
        verification_policy=get_verification_policy(),
        email=body.email,
    )
    return success_response(message=result["message"])


@router.post("/reset")
async def reset_pin(body: ResetPinRequest):
    """Reset the AuthPin with an emailed code. Clears any lockout."""
    result = await pipelines.reset_pin_pipeline(
        get_auth_pin_service(),
        email=body.email,
        code=body.token,
        new_pin=body.newPin,
        confirm_pin=body.confirmPin,
    )
    return success_response(message=result["message"])


@router.post("/toggle")
async def toggle_pin(body: TogglePinRequest, gate: Gate):
    """Enable or disable the AuthPin. Enabling requires the PIN."""
    result = await pipelines.toggle_pin_pipeline(get_auth_pin_service(), gate.user_data, body.enabled, body.pin)
    return success_response({"isEnabled": result["isEnabled"]}, result["message"])


@router.post("/remove")
async def remove_pin(body: RemovePinRequest, gate: Gate):
    """Remove the AuthPin, authorized by the PIN or the account password."""
    result = await pipelines.remove_pin_pipeline(
        get_auth_pin_service(), gate.user_data, pin=body.pin, password=body.password
    )
    return success_response({"user": result["user"]}, result["message"])
