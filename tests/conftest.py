"""Shared fixtures: a test RSA key, token factory, settings and mocked HTTP."""

import json
import time
from typing import Any, Callable, Dict

import httpx
import pytest
from joserfc import jwt
from joserfc.jwk import JWKRegistry

from caa_broker.config import (
    Auth0Settings,
    GatewaySettings,
    OktaSettings,
    OktaWebSettings,
    PamSettings,
    Settings,
)

TEST_KID = "test-kid"
ORG = "https://example.okta.com"
ISSUER = "https://example.okta.com/oauth2/aus123"
AUTH0_DOMAIN = "https://tenant.auth0.com"


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture(scope="session")
def rsa_key():
    return JWKRegistry.generate_key("RSA", 2048, private=True, auto_kid=False)


@pytest.fixture(scope="session")
def private_jwk(rsa_key) -> Dict[str, Any]:
    jwk = rsa_key.as_dict(private=True)
    jwk["kid"] = TEST_KID
    return jwk


@pytest.fixture(scope="session")
def public_jwks(rsa_key) -> Dict[str, Any]:
    pub = rsa_key.as_dict(private=False)
    pub.update({"kid": TEST_KID, "alg": "RS256", "use": "sig"})
    return {"keys": [pub]}


@pytest.fixture
def make_token(rsa_key) -> Callable[..., str]:
    """Sign claims with the test key; ``exp``/``iat`` default to a valid window."""

    def _make(claims: Dict[str, Any] = None, kid: str = TEST_KID, key=None, **overrides) -> str:
        now = int(time.time())
        payload = {"sub": "00u123", "iat": now, "exp": now + 300}
        payload.update(claims or {})
        payload.update(overrides)
        payload = {k: v for k, v in payload.items() if v is not None}
        header = {"alg": "RS256"}
        if kid:
            header["kid"] = kid
        return jwt.encode(header, payload, key or rsa_key)

    return _make


@pytest.fixture
def settings(private_jwk) -> Settings:
    return Settings(
        okta=OktaSettings(
            org_domain=ORG,
            auth_server_issuer=ISSUER,
            client_id="agent-client",
            client_secret="agent-secret",
            agent_principal_id="wlp123",
            private_key_jwk=json.dumps(private_jwk),
        ),
        okta_web=OktaWebSettings(
            org_domain=ORG,
            client_id="web-client",
            client_secret="web-secret",
            requesting_app_client_id="requesting-client",
            requesting_app_client_secret="requesting-secret",
        ),
        auth0=Auth0Settings(
            domain=AUTH0_DOMAIN,
            audience="https://tenant.auth0.com/",
            resource="https://api.finance.example",
            client_id="auth0-client",
            client_secret="auth0-secret",
            salesforce_resource="https://acme.my.salesforce.com",
        ),
        gateway=GatewaySettings(
            enabled=True,
            url="https://gateway.example",
            salesforce_domain="https://acme.my.salesforce.com",
        ),
        pam=PamSettings(
            github_pat_path="orn:okta:pam:github",
            servicenow_secret_path="orn:okta:pam:servicenow",
        ),
    )


@pytest.fixture
def mock_http() -> Callable[[Callable[[httpx.Request], httpx.Response]], httpx.AsyncClient]:
    """Build an AsyncClient whose requests are answered by ``handler``."""

    def _make(handler):
        return httpx.AsyncClient(transport=httpx.MockTransport(handler))

    return _make
