# app/api/v1/routers/oauth.py
from typing import Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Query
from fastapi.responses import RedirectResponse

from app.api.v1.deps import (
    api_rate_limit,
    get_auth_context,
    get_optional_auth_context,
    get_request_meta,
    get_services,
)
from app.api.v1.routers.auth import auth_result_payload
from app.core.authorization import AuthContext
from app.core.errors import unauthorized
from app.schemas.oauth import link_to_dict
from app.services.container import Services
from app.services.request_meta import RequestMeta

router = APIRouter(prefix="/oauth", tags=["oauth"])


@router.get("/providers", dependencies=[Depends(api_rate_limit)])
async def list_providers(
    ctx: AuthContext = Depends(get_auth_context),
    services: Services = Depends(get_services),
):
    """
    Providers linked to the caller, and the providers this server can sign in with.
    """
    links = await services.oauth.list_links(ctx.user)
    return {
        "success": True,
        "data": {
            "providers": [link_to_dict(link) for link in links],
            "available": services.oauth.available_providers(),
        },
    }


@router.get("/{provider}")
async def start_oauth(
    provider: str,
    link: bool = Query(False, description="Link the provider to the signed-in account instead of signing in"),
    redirect: bool = Query(True, description="Redirect to the provider, or return the URL as JSON"),
    ctx: Optional[AuthContext] = Depends(get_optional_auth_context),
    services: Services = Depends(get_services),
):
    """
    Start the authorization-code flow for google, github or facebook.

    Error codes:
        - OAUTH_PROVIDER_UNAVAILABLE (400): Unknown or unconfigured provider
        - AUTH_REQUIRED (401): link=true without a signed-in user
    """
    if link and ctx is None:
        raise unauthorized("AUTH_REQUIRED", "Sign in to link a provider")
    url = services.oauth.authorization_url(provider, ctx.user if link else None)
    if redirect:
        return RedirectResponse(url, status_code=302)
    return {"success": True, "data": {"url": url}}


@router.get("/{provider}/callback")
async def oauth_callback(
    provider: str,
    code: str = Query(...),
    state: str = Query(...),
    meta: RequestMeta = Depends(get_request_meta),
    services: Services = Depends(get_services),
):
    """
    Provider redirect target. Signs the user in (creating or linking the
    account by email), sets the auth cookies and redirects to the frontend
    with the access token in the query string.
    """
    result = await services.oauth.handle_callback(provider, code, state, meta)
    settings = services.settings
    query = urlencode({"token": result.tokens.access_token, "new": int(result.is_new_user)})
    response = RedirectResponse(f"{settings.frontend_url.rstrip('/')}/oauth/success?{query}", status_code=302)
    auth_result_payload(result, response, settings)
    return response


@router.delete("/{provider}", dependencies=[Depends(api_rate_limit)])
async def unlink_provider(
    provider: str,
    ctx: AuthContext = Depends(get_auth_context),
    services: Services = Depends(get_services),
):
    """
    Unlink a provider from the caller's account.

    Error codes:
        - OAUTH_NOT_LINKED (404)
        - OAUTH_LAST_METHOD (422): It is the only way left to sign in
    """
    await services.oauth.unlink_provider(ctx.user, provider)
    return {"success": True, "data": {"message": f"{provider} unlinked"}}
