"""Okta sign-in: agent app (PKCE) and web app (client secret) flows."""

import logging
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse, RedirectResponse

from ..config import Settings
from ..deps import (
    AGENT_ID_TOKEN_COOKIE,
    WEB_ACCESS_TOKEN_COOKIE,
    WEB_ID_TOKEN_COOKIE,
    WEB_REFRESH_TOKEN_COOKIE,
    get_exchange_client,
    get_jwks_cache,
    get_pending_store,
    get_settings_dep,
    read_json,
)
from ..errors import TokenExchangeError
from ..pkce import PendingStore, code_challenge, generate_code_verifier, generate_state
from ..token_exchange import CrossAppAccessClient, TokenSet
from ..validators import okta_id_token_validator, web_id_token_validator

logger = logging.getLogger(__name__)

router = APIRouter()

LOGIN_KEY_PREFIX = "login:"
WEB_LOGIN_KEY_PREFIX = "web-login:"
REFRESH_COOKIE_MAX_AGE = 60 * 60 * 24 * 30


def _user_summary(claims: dict) -> dict:
    return {"sub": claims.get("sub"), "email": claims.get("email"), "name": claims.get("name")}


def set_web_cookies(response: JSONResponse, tokens: TokenSet, settings: Settings) -> None:
    """HTTP-only cookies so server routes can find the web session tokens."""
    options = {
        "httponly": True,
        "secure": settings.secure_cookies,
        "samesite": "lax",
        "path": "/",
    }
    if tokens.id_token:
        response.set_cookie(WEB_ID_TOKEN_COOKIE, tokens.id_token, max_age=tokens.expires_in, **options)
    if tokens.access_token:
        response.set_cookie(WEB_ACCESS_TOKEN_COOKIE, tokens.access_token, max_age=tokens.expires_in, **options)
    if tokens.refresh_token:
        response.set_cookie(
            WEB_REFRESH_TOKEN_COOKIE, tokens.refresh_token, max_age=REFRESH_COOKIE_MAX_AGE, **options
        )


@router.get("/auth/login")
async def login(
    settings: Settings = Depends(get_settings_dep),
    pending: PendingStore = Depends(get_pending_store),
):
    """Initiate the agent app login (Authorization Code + PKCE)"""
    okta = settings.okta
    code_verifier = generate_code_verifier()
    state = generate_state()
    nonce = generate_state()

    pending.put(
        LOGIN_KEY_PREFIX + state,
        code_verifier=code_verifier,
        nonce=nonce,
        redirect_uri=okta.redirect_uri,
    )

    params = {
        "client_id": okta.client_id,
        "response_type": "code",
        "scope": okta.scope,
        "redirect_uri": okta.redirect_uri,
        "state": state,
        "nonce": nonce,
        "code_challenge": code_challenge(code_verifier),
        "code_challenge_method": "S256",
    }
    return RedirectResponse(url=f"{okta.authorization_endpoint}?{urlencode(params)}")


@router.get("/auth/callback")
async def auth_callback(
    request: Request,
    code: str = None,
    state: str = None,
    error: str = None,
    settings: Settings = Depends(get_settings_dep),
    pending: PendingStore = Depends(get_pending_store),
    exchange: CrossAppAccessClient = Depends(get_exchange_client),
):
    """Handle the agent app callback: redeem the code, validate the ID token"""
    if error:
        raise HTTPException(status_code=400, detail=f"Okta auth error: {error}")
    if not code:
        raise HTTPException(status_code=400, detail="No authorization code received")

    session = pending.pop(LOGIN_KEY_PREFIX + state) if state else None
    if session is None:
        raise HTTPException(status_code=400, detail="Invalid or expired PKCE state")

    tokens = await exchange.exchange_authorization_code(code, session["redirect_uri"], session["code_verifier"])
    if not tokens.id_token:
        raise TokenExchangeError("Okta response did not contain an ID token")

    validator = okta_id_token_validator(settings, get_jwks_cache(request, settings.okta.jwks_uri))
    claims = await validator.validate(tokens.id_token, nonce=session["nonce"])
    logger.info("Agent login completed for %s", claims.get("email") or claims.get("sub"))

    response = JSONResponse({
        "message": "Successfully authenticated with Okta",
        **tokens.to_dict(),
        "user": _user_summary(claims),
    })
    response.set_cookie(
        AGENT_ID_TOKEN_COOKIE,
        tokens.id_token,
        max_age=tokens.expires_in,
        httponly=True,
        secure=settings.secure_cookies,
        samesite="lax",
        path="/",
    )
    return response


@router.post("/api/auth/callback")
async def api_auth_callback(request: Request, exchange: CrossAppAccessClient = Depends(get_exchange_client)):
    """Redeem a code for a client that generated and kept its own PKCE verifier"""
    body = await read_json(request)
    code = body.get("code")
    code_verifier = body.get("codeVerifier")
    redirect_uri = body.get("redirectUri")
    if not code or not code_verifier or not redirect_uri:
        raise HTTPException(status_code=400, detail="Missing required parameters")

    tokens = await exchange.exchange_authorization_code(code, redirect_uri, code_verifier)
    return tokens.to_dict()


@router.get("/auth/web-login")
async def web_login(
    settings: Settings = Depends(get_settings_dep),
    pending: PendingStore = Depends(get_pending_store),
):
    """Initiate the web app login (Authorization Code, confidential client)"""
    web = settings.okta_web
    state = generate_state()
    nonce = generate_state()
    pending.put(WEB_LOGIN_KEY_PREFIX + state, nonce=nonce, redirect_uri=web.redirect_uri)

    params = {
        "client_id": web.client_id,
        "response_type": "code",
        "scope": web.scope,
        "redirect_uri": web.redirect_uri,
        "state": state,
        "nonce": nonce,
    }
    return RedirectResponse(url=f"{web.authorization_endpoint}?{urlencode(params)}")


@router.get("/auth/web-callback")
async def web_callback(
    request: Request,
    code: str = None,
    state: str = None,
    error: str = None,
    settings: Settings = Depends(get_settings_dep),
    pending: PendingStore = Depends(get_pending_store),
    exchange: CrossAppAccessClient = Depends(get_exchange_client),
):
    if error:
        raise HTTPException(status_code=400, detail=f"Okta auth error: {error}")
    if not code:
        raise HTTPException(status_code=400, detail="No authorization code received")

    session = pending.pop(WEB_LOGIN_KEY_PREFIX + state) if state else None
    if session is None:
        raise HTTPException(status_code=400, detail="Invalid state parameter")

    tokens = await exchange.exchange_web_authorization_code(code, session["redirect_uri"])
    if not tokens.id_token:
        raise TokenExchangeError("Okta response did not contain an ID token")

    validator = web_id_token_validator(settings, get_jwks_cache(request, settings.okta_web.jwks_uri))
    claims = await validator.validate(tokens.id_token, nonce=session["nonce"])
    logger.info("Web login completed for %s", claims.get("email") or claims.get("sub"))

    response = JSONResponse({
        "message": "Successfully authenticated with Okta",
        **tokens.to_dict(),
        "user": _user_summary(claims),
    })
    set_web_cookies(response, tokens, settings)
    return response


@router.post("/api/auth/web-callback")
async def api_web_callback(
    request: Request,
    settings: Settings = Depends(get_settings_dep),
    exchange: CrossAppAccessClient = Depends(get_exchange_client),
):
    """Redeem a web app code for a client that checked ``state`` itself"""
    body = await read_json(request)
    code = body.get("code")
    redirect_uri = body.get("redirectUri")
    if not code or not redirect_uri:
        raise HTTPException(status_code=400, detail="Missing required parameters")

    logger.info("Web auth token exchange starting")
    tokens = await exchange.exchange_web_authorization_code(code, redirect_uri)
    response = JSONResponse(tokens.to_dict())
    set_web_cookies(response, tokens, settings)
    logger.info("Web session cookies set")
    return response
