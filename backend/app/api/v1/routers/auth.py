# app/api/v1/routers/auth.py
import uuid

from fastapi import APIRouter, Depends, Request, Response, status

from app.api.v1.deps import (
    api_rate_limit,
    failed_attempts_limit,
    get_auth_context,
    get_request_meta,
    get_services,
    rate_limit,
)
from app.core.authorization import AuthContext
from app.core.errors import unauthorized
from app.models.token import Token
from app.schemas.auth import ChangePasswordIn, EmailIn, LoginIn, LogoutIn, RefreshIn, RegisterIn
from app.schemas.user import session_to_dict, user_to_dict
from app.services.auth_service import AuthResult
from app.services.container import Services
from app.services.gate import ACCESS_TOKEN_COOKIE, REFRESH_TOKEN_COOKIE
from app.services.request_meta import RequestMeta

router = APIRouter(prefix="/auth", tags=["auth"])

REFRESH_COOKIE_PATH = "/api/v1/auth"


def set_access_cookie(response: Response, settings, token: str) -> None:
    response.set_cookie(
        ACCESS_TOKEN_COOKIE, token, httponly=True, secure=settings.cookie_secure, samesite="lax",
        max_age=settings.access_token_expire_minutes * 60,
    )


def set_refresh_cookie(response: Response, settings, token: str) -> None:
    response.set_cookie(
        REFRESH_TOKEN_COOKIE, token, httponly=True, secure=settings.cookie_secure, samesite="lax",
        max_age=settings.refresh_token_expire_days * 24 * 3600, path=REFRESH_COOKIE_PATH,
    )


def clear_auth_cookies(response: Response) -> None:
    response.delete_cookie(ACCESS_TOKEN_COOKIE)
    response.delete_cookie(REFRESH_TOKEN_COOKIE, path=REFRESH_COOKIE_PATH)


def auth_result_payload(result: AuthResult, response: Response, settings) -> dict:
    """Set both cookies and build the login-result body shared by register, login and OAuth."""
    set_access_cookie(response, settings, result.tokens.access_token)
    set_refresh_cookie(response, settings, result.tokens.refresh_token)
    return {
        "user": user_to_dict(result.user),
        "accessToken": result.tokens.access_token,
        "refreshToken": result.tokens.refresh_token,
        "isNewUser": result.is_new_user,
    }


@router.post(
    "/register",
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(rate_limit("auth:register", "rate_limit_auth"))],
)
async def register(
    body: RegisterIn,
    response: Response,
    meta: RequestMeta = Depends(get_request_meta),
    services: Services = Depends(get_services),
):
    """
    Register a new user account.

    Creates a local account with the default "user" role, sends the email
    verification link and signs the new user in.

    Args:
        body: Request body containing firstName, lastName, email, password

    Returns:
        dict: Response containing:
            - success: bool
            - data: user, accessToken, refreshToken

    Error codes:
        - VALIDATION_ERROR: Malformed input or weak password
        - EMAIL_EXISTS: Email already registered
    """
    result = await services.auth.register(body.firstName, body.lastName, body.email, body.password, meta)
    return {"success": True, "data": auth_result_payload(result, response, services.settings)}


@router.post("/login", dependencies=[Depends(failed_attempts_limit("auth:login", "rate_limit_auth"))])
async def login(
    body: LoginIn,
    response: Response,
    meta: RequestMeta = Depends(get_request_meta),
    services: Services = Depends(get_services),
):
    """
    Authenticate with email and password.

    The access token is returned in the body and also set as the HttpOnly
    "accessToken" cookie; the refresh token likewise as "refreshToken".

    Error codes:
        - AUTH_INVALID_CREDENTIALS (401): Unknown email or wrong password
        - ACCOUNT_LOCKED (403): Too many failed attempts; details.lockUntil
          tells when the lock ends
        - ACCOUNT_INACTIVE (403): Account deactivated by an administrator
    """
    result = await services.auth.login(body.email, body.password, meta)
    return {"success": True, "data": auth_result_payload(result, response, services.settings)}


@router.post("/logout", dependencies=[Depends(api_rate_limit)])
async def logout(
    request: Request,
    response: Response,
    body: LogoutIn | None = None,
    ctx: AuthContext = Depends(get_auth_context),
    services: Services = Depends(get_services),
):
    """
    Log out by revoking the presented refresh token, or every session when
    `all` is true. The auth cookies are always cleared.

    Note:
        The access token stays valid until it expires; clients should drop it.
    """
    body = body or LogoutIn()
    refresh_token = body.refreshToken or request.cookies.get(REFRESH_TOKEN_COOKIE)
    revoked = await services.auth.logout(ctx.user, refresh_token, everywhere=body.all)
    clear_auth_cookies(response)
    return {"success": True, "data": {"revoked": revoked}}


@router.post("/refresh")
async def refresh(
    request: Request,
    response: Response,
    body: RefreshIn | None = None,
    meta: RequestMeta = Depends(get_request_meta),
    services: Services = Depends(get_services),
):
    """
    Exchange a refresh token (body or "refreshToken" cookie) for a new access token.

    Returns:
        dict: data.accessToken, plus data.refreshToken when rotation is enabled

    Error codes:
        - AUTH_REFRESH_EXPIRED / AUTH_REFRESH_REVOKED / AUTH_INVALID_REFRESH_TOKEN (401)
    """
    raw = (body.refreshToken if body else None) or request.cookies.get(REFRESH_TOKEN_COOKIE)
    if not raw:
        raise unauthorized("AUTH_REFRESH_TOKEN_REQUIRED", "Refresh token required")

    result = await services.auth.refresh(raw, meta)
    set_access_cookie(response, services.settings, result.access_token)
    data = {"accessToken": result.access_token}
    if result.refresh_token:
        set_refresh_cookie(response, services.settings, result.refresh_token)
        data["refreshToken"] = result.refresh_token
    return {"success": True, "data": data}


@router.post("/verify-email/{token}")
async def verify_email(token: str, services: Services = Depends(get_services)):
    """
    Confirm an email address with the token from the verification email.
    The token is single-use.

    Error codes:
        - INVALID_OR_EXPIRED_TOKEN (400)
    """
    user = await services.auth.verify_email(token)
    return {"success": True, "data": {"email": user.email, "isEmailVerified": True}}


@router.post(
    "/resend-verification",
    dependencies=[Depends(rate_limit("auth:verification", "rate_limit_password_reset"))],
)
async def resend_verification(body: EmailIn, services: Services = Depends(get_services)):
    """
    Send a new verification email. Unknown addresses get the same response.

    Error codes:
        - EMAIL_ALREADY_VERIFIED (409)
    """
    await services.auth.resend_verification(body.email)
    return {"success": True, "data": {"message": "If the account exists, a verification email has been sent"}}


@router.put("/change-password", dependencies=[Depends(api_rate_limit)])
async def change_password(
    body: ChangePasswordIn,
    response: Response,
    ctx: AuthContext = Depends(get_auth_context),
    services: Services = Depends(get_services),
):
    """
    Change the password of the signed-in user.

    Requires the current password. Every session is revoked and access tokens
    issued before the change stop working, so the client must log in again.

    Error codes:
        - INVALID_CURRENT_PASSWORD (401)
        - PASSWORD_UNCHANGED (400)
    """
    await services.auth.change_password(ctx.user, body.currentPassword, body.newPassword)
    clear_auth_cookies(response)
    return {"success": True, "data": {"message": "Password changed. Please log in again."}}


@router.get("/me", dependencies=[Depends(api_rate_limit)])
async def me(ctx: AuthContext = Depends(get_auth_context)):
    """
    Get current authenticated user information, including the role's permissions.
    """
    data = user_to_dict(ctx.user)
    data["permissions"] = ctx.permissions
    return {"success": True, "data": data}


@router.get("/sessions", dependencies=[Depends(api_rate_limit)])
async def list_sessions(
    request: Request,
    ctx: AuthContext = Depends(get_auth_context),
    services: Services = Depends(get_services),
):
    """
    List the caller's active sessions (non-revoked, unexpired refresh tokens),
    newest first. The session matching the refreshToken cookie is flagged
    as current.
    """
    sessions = await services.auth.list_sessions(ctx.user)
    current_id = None
    cookie = request.cookies.get(REFRESH_TOKEN_COOKIE)
    if cookie:
        current_hash = Token.hash_token(cookie)
        current_id = next((str(s.id) for s in sessions if s.token_hash == current_hash), None)
    return {"success": True, "data": {"sessions": [session_to_dict(s, current_id) for s in sessions]}}


@router.delete("/sessions/{session_id}", dependencies=[Depends(api_rate_limit)])
async def revoke_session(
    session_id: uuid.UUID,
    ctx: AuthContext = Depends(get_auth_context),
    services: Services = Depends(get_services),
):
    """
    Revoke one of the caller's sessions.

    Error codes:
        - SESSION_NOT_FOUND (404): No such session, or it belongs to someone else
    """
    await services.auth.revoke_session(ctx.user, session_id)
    return {"success": True, "data": {"revoked": str(session_id)}}
