# app/api/v1/routers/password.py
from fastapi import APIRouter, Depends

from app.api.v1.deps import get_services, rate_limit
from app.schemas.auth import EmailIn, ResetPasswordIn
from app.services.container import Services

router = APIRouter(prefix="/password", tags=["password"])

FORGOT_MESSAGE = "If an account with that email exists, a password reset link has been sent"


@router.post("/forgot", dependencies=[Depends(rate_limit("password:forgot", "rate_limit_password_reset"))])
async def forgot_password(body: EmailIn, services: Services = Depends(get_services)):
    """
    Start the password reset flow.

    Always answers with the same message so the endpoint cannot be used to
    find out which emails are registered.
    """
    await services.auth.forgot_password(body.email)
    return {"success": True, "data": {"message": FORGOT_MESSAGE}}


@router.get("/verify/{token}")
async def verify_reset_token(token: str, services: Services = Depends(get_services)):
    """
    Check a reset token before showing the new-password form.

    Returns:
        dict: data.email of the account the token belongs to

    Error codes:
        - INVALID_OR_EXPIRED_TOKEN (400)
    """
    email = await services.auth.verify_reset_token(token)
    return {"success": True, "data": {"valid": True, "email": email}}


@router.post("/reset/{token}", dependencies=[Depends(rate_limit("password:reset", "rate_limit_password_reset"))])
async def reset_password(token: str, body: ResetPasswordIn, services: Services = Depends(get_services)):
    """
    Set a new password with a reset token. The token is single-use, all
    sessions are revoked and any lockout is cleared.

    Error codes:
        - INVALID_OR_EXPIRED_TOKEN (400)
    """
    await services.auth.reset_password(token, body.password)
    return {"success": True, "data": {"message": "Password has been reset. Please log in."}}
