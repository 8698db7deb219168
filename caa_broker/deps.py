"""Request-scoped accessors for the objects held on ``app.state``."""

import json
from typing import Any, Dict, Optional

import httpx
from fastapi import HTTPException, Request

from .config import Settings
from .connected_accounts import MyAccountClient
from .gateway import SalesforceGatewayFlow
from .pkce import PendingStore
from .token_exchange import CrossAppAccessClient
from .validators import JWKSCache

AGENT_ID_TOKEN_COOKIE = "okta_id_token"
WEB_ID_TOKEN_COOKIE = "web_okta_id_token"
WEB_ACCESS_TOKEN_COOKIE = "web_okta_access_token"
WEB_REFRESH_TOKEN_COOKIE = "web_okta_refresh_token"


def get_settings_dep(request: Request) -> Settings:
    return request.app.state.settings


def get_http_client(request: Request) -> httpx.AsyncClient:
    return request.app.state.http_client


def get_pending_store(request: Request) -> PendingStore:
    return request.app.state.pending


def get_exchange_client(request: Request) -> CrossAppAccessClient:
    return CrossAppAccessClient(get_settings_dep(request), get_http_client(request))


def get_my_account_client(request: Request) -> MyAccountClient:
    return MyAccountClient(get_settings_dep(request), get_http_client(request))


def get_gateway_flow(request: Request) -> SalesforceGatewayFlow:
    return SalesforceGatewayFlow(
        get_settings_dep(request),
        get_exchange_client(request),
        get_my_account_client(request),
        get_pending_store(request),
        get_http_client(request),
    )


def get_jwks_cache(request: Request, jwks_uri: str) -> JWKSCache:
    """One cache per JWKS endpoint for the lifetime of the app."""
    caches: Dict[str, JWKSCache] = request.app.state.jwks_caches
    cache = caches.get(jwks_uri)
    if cache is None:
        settings = get_settings_dep(request)
        cache = JWKSCache(jwks_uri, get_http_client(request), ttl_seconds=settings.jwks_cache_ttl)
        caches[jwks_uri] = cache
    return cache


async def read_json(request: Request) -> Dict[str, Any]:
    body = await request.body()
    if not body:
        return {}
    try:
        data = json.loads(body)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid JSON body")
    if not isinstance(data, dict):
        raise HTTPException(status_code=400, detail="JSON body must be an object")
    return data


def id_token_from(request: Request, body: Dict[str, Any], prefer_web: bool = False) -> Optional[str]:
    """``idToken`` from the body, else the ID token cookie set at login.

    ``prefer_web`` checks the web-app login cookie before the agent's.
    """
    cookies = (AGENT_ID_TOKEN_COOKIE, WEB_ID_TOKEN_COOKIE)
    if prefer_web:
        cookies = cookies[::-1]
    token = body.get("idToken")
    for name in cookies:
        token = token or request.cookies.get(name)
    return token


def connect_redirect_uri(request: Request) -> str:
    base_url = get_settings_dep(request).base_url or str(request.base_url)
    return f"{base_url.rstrip('/')}/agent/connect-callback"
