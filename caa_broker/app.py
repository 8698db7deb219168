"""
Okta Cross-App Access Broker

This FastAPI application demonstrates Okta Cross-App Access (CAA): an agent
signs the user in with Okta, trades the ID token for an Identity Assertion
JWT Authorization Grant (ID-JAG), and uses it to reach protected resources.

Key Features:
- Authorization Code Flow with PKCE for the agent app, client secret flow
  for the web app
- RFC 8693 token exchange for ID-JAGs, Okta PAM vaulted secrets and
  service accounts (private key JWT client authentication)
- RFC 7523 JWT-bearer exchange of an ID-JAG for Auth0 access tokens
- Resource APIs validating RS256 tokens against the issuer's JWKS
- Salesforce through the gateway, with Auth0 connected-account repair

Architecture:
1. Users authenticate with Okta (agent or web app)
2. The ID token is exchanged for an ID-JAG at the Okta org token endpoint
3. The ID-JAG is presented to the resource's authorization server (Okta
   custom AS or Auth0) for an access token
4. Resource APIs verify the access token's signature, issuer, audience and
   scope before returning data
"""

import logging
from typing import Optional

import httpx
from fastapi import FastAPI, Request
from fastapi.responses import HTMLResponse, JSONResponse

from . import __version__
from .config import Settings, get_settings, validate_okta_config
from .errors import BrokerError
from .pkce import PendingStore
from .routes import auth, gateway, resources, token_exchange

logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None, http_client: Optional[httpx.AsyncClient] = None) -> FastAPI:
    """
    Build the broker app.

    Args:
        settings: Broker settings; read from the environment when omitted
        http_client: Shared client for Okta, Auth0 and gateway calls; one is
            created (and closed on shutdown) when omitted
    """
    settings = settings or get_settings()
    app = FastAPI(title="Okta Cross-App Access Broker", version=__version__)

    owns_client = http_client is None
    app.state.settings = settings
    app.state.http_client = http_client or httpx.AsyncClient(timeout=settings.http_timeout)
    app.state.pending = PendingStore(ttl_seconds=settings.pending_session_ttl)
    app.state.jwks_caches = {}

    @app.on_event("startup")
    async def startup():
        """Validate configuration on startup"""
        logging.basicConfig(
            level=settings.log_level,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )
        try:
            validate_okta_config(settings)
        except BrokerError as e:
            logger.error("Failed to initialize broker: %s", e.message)
            raise
        logger.info("Okta configured for org %s", settings.okta.org_domain)
        logger.info("Authorization server: %s", settings.okta.auth_server_issuer)
        if settings.gateway.enabled:
            logger.info("Gateway mode enabled: %s", settings.gateway.url)

    @app.on_event("shutdown")
    async def shutdown():
        if owns_client:
            await app.state.http_client.aclose()

    @app.exception_handler(BrokerError)
    async def broker_error_handler(request: Request, exc: BrokerError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return JSONResponse(exc.to_dict(), status_code=exc.status_code)

    @app.exception_handler(httpx.HTTPError)
    async def upstream_error_handler(request: Request, exc: httpx.HTTPError):
        logger.error("%s %s upstream call failed: %s", request.method, request.url.path, exc)
        return JSONResponse(
            {"error": "Upstream request failed", "message": str(exc) or exc.__class__.__name__},
            status_code=502,
        )

    app.include_router(auth.router)
    app.include_router(token_exchange.router)
    app.include_router(resources.router)
    app.include_router(gateway.router)

    @app.get("/")
    async def home():
        """Home page with login links"""
        return HTMLResponse(f"""
    <!DOCTYPE html>
    <html>
    <head>
        <title>Okta Cross-App Access Broker</title>
        <style>
            body {{ font-family: Arial, sans-serif; margin: 40px; }}
            .container {{ max-width: 700px; margin: 0 auto; }}
            .button {{ background: #007cba; color: white; padding: 12px 24px; text-decoration: none; border-radius: 4px; }}
            .info {{ background: #f0f8ff; padding: 20px; border-radius: 4px; margin: 20px 0; }}
        </style>
    </head>
    <body>
        <div class="container">
            <h1>Okta Cross-App Access</h1>
            <div class="info">
                <p>Sign in with Okta, exchange the ID token for an <strong>ID-JAG</strong>,
                and use it to call APIs protected by Okta or Auth0.</p>
            </div>

            <div class="info">
                <h4>Agent app (PKCE)</h4>
                <a href="/auth/login" class="button">Login with Okta</a>
            </div>
            <div class="info">
                <h4>Web app</h4>
                <a href="/auth/web-login" class="button">Login with Okta (web)</a>
            </div>

            <h3>Available Endpoints:</h3>
            <ul>
                <li><code>POST /api/token-exchange</code> - ID token to ID-JAG</li>
                <li><code>POST /api/token-exchange/auth0</code> - ID token to ID-JAG to Auth0 token</li>
                <li><code>POST /api/token-exchange/vaulted-secret</code> - Okta PAM vaulted secret</li>
                <li><code>POST /api/token-exchange/service-account</code> - Okta PAM service account</li>
                <li><code>GET /api/resource/{{hr,kpi,financial,salesforce}}</code> - Protected data</li>
                <li><code>POST /api/gateway-test/run</code> - Salesforce through the gateway</li>
            </ul>

            <div class="info">
                <strong>Okta org:</strong> {settings.okta.org_domain}<br>
                <strong>Authorization server:</strong> {settings.okta.auth_server_issuer}<br>
                <strong>Gateway mode:</strong> {"enabled" if settings.gateway.enabled else "disabled"}
            </div>
        </div>
    </body>
    </html>
    """)

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "version": __version__,
            "flows": ["authorization_code_pkce", "id_jag", "jwt_bearer", "vaulted_secret", "service_account"],
            "gatewayMode": settings.gateway.enabled,
        }

    return app


app = create_app()
