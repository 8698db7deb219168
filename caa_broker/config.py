"""
Broker configuration.

All values come from the process environment, with a local ``.env`` file
loaded through python-dotenv. Settings are grouped per collaborator:

- Okta agent app + custom authorization server (PKCE login, ID-JAG issuance,
  agent principal private key JWT)
- Okta web app and the Cross-App Access "requesting app"
- Auth0 (JWT-bearer grant, My Account API, resource audiences)
- Gateway (Salesforce calls proxied with an Auth0 access token)
- Okta PAM resources (vaulted secret / service account)
"""

import json
import os
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Tuple

from dotenv import load_dotenv

from .errors import ConfigurationError

load_dotenv()


def _env(name: str, default: str = "") -> str:
    return os.getenv(name, default).strip()


def _normalize_origin(value: str) -> str:
    """Strip trailing slashes and default to https when no scheme is given."""
    value = (value or "").strip().rstrip("/")
    if value and not value.startswith(("http://", "https://")):
        value = f"https://{value}"
    return value


def require(value: str, name: str) -> str:
    """Return ``value`` or raise a ConfigurationError naming the variable."""
    if not value:
        raise ConfigurationError(f"{name} environment variable not configured")
    return value


@dataclass(frozen=True)
class OktaSettings:
    """Agent app registered against a custom Okta authorization server."""

    org_domain: str = ""
    auth_server_issuer: str = ""
    client_id: str = ""
    client_secret: str = ""
    agent_principal_id: str = ""
    redirect_uri: str = "http://localhost:8081/auth/callback"
    scope: str = "openid profile email"
    token_exchange_scope: str = "mcp:read"
    private_key_jwk: str = ""
    private_key_path: str = "signer_keys.json"
    jwks_uri_override: str = ""

    @property
    def token_endpoint(self) -> str:
        return f"{self.org_domain}/oauth2/v1/token"

    @property
    def authorization_endpoint(self) -> str:
        return f"{self.auth_server_issuer}/v1/authorize"

    @property
    def login_token_endpoint(self) -> str:
        return f"{self.auth_server_issuer}/v1/token"

    @property
    def jwks_uri(self) -> str:
        return self.jwks_uri_override or f"{self.auth_server_issuer}/v1/keys"

    def load_private_jwk(self) -> Dict[str, Any]:
        """
        Load the agent principal's RSA private JWK.

        Accepts either a bare JWK or the ``{"private_jwk": ..., "kid": ...}``
        layout written by ``caa_broker.gen_keys``.

        Raises:
            ConfigurationError: If no key is configured or it has no kid
        """
        if self.private_key_jwk:
            try:
                data = json.loads(self.private_key_jwk)
            except ValueError as e:
                raise ConfigurationError(f"OKTA_PRIVATE_KEY_JWK is not valid JSON: {e}") from e
        else:
            path = Path(self.private_key_path)
            if not path.is_file():
                raise ConfigurationError(
                    f"Private key JWK not found at {path} "
                    "(set OKTA_PRIVATE_KEY_JWK or OKTA_PRIVATE_KEY_PATH)"
                )
            data = json.loads(path.read_text())

        if "private_jwk" in data:
            jwk = dict(data["private_jwk"])
            if data.get("kid"):
                jwk.setdefault("kid", data["kid"])
        else:
            jwk = dict(data)

        if not jwk.get("kid"):
            raise ConfigurationError("Private key JWK has no kid")
        return jwk

    @classmethod
    def from_env(cls) -> "OktaSettings":
        return cls(
            org_domain=_normalize_origin(_env("OKTA_ORG_DOMAIN")),
            auth_server_issuer=_env("OKTA_AUTH_SERVER_ISSUER").rstrip("/"),
            client_id=_env("OKTA_CLIENT_ID"),
            client_secret=_env("OKTA_CLIENT_SECRET"),
            agent_principal_id=_env("OKTA_AGENT_PRINCIPAL_ID"),
            redirect_uri=_env("OKTA_REDIRECT_URI", "http://localhost:8081/auth/callback"),
            scope=_env("OKTA_SCOPE", "openid profile email"),
            token_exchange_scope=_env("OKTA_TOKEN_EXCHANGE_SCOPE", "mcp:read"),
            private_key_jwk=_env("OKTA_PRIVATE_KEY_JWK"),
            private_key_path=_env("OKTA_PRIVATE_KEY_PATH", "signer_keys.json"),
            jwks_uri_override=_env("OKTA_JWKS_URI"),
        )


@dataclass(frozen=True)
class OktaWebSettings:
    """Okta web app (client_secret login) and the CAA requesting app."""

    org_domain: str = ""
    client_id: str = ""
    client_secret: str = ""
    redirect_uri: str = "http://localhost:8081/auth/web-callback"
    scope: str = "openid profile email"
    requesting_app_client_id: str = ""
    requesting_app_client_secret: str = ""

    @property
    def authorization_endpoint(self) -> str:
        return f"{self.org_domain}/oauth2/v1/authorize"

    @property
    def token_endpoint(self) -> str:
        return f"{self.org_domain}/oauth2/v1/token"

    @property
    def jwks_uri(self) -> str:
        return f"{self.org_domain}/oauth2/v1/keys"

    @classmethod
    def from_env(cls) -> "OktaWebSettings":
        return cls(
            org_domain=_normalize_origin(_env("OKTA_WEB_ORG_DOMAIN") or _env("OKTA_ORG_DOMAIN")),
            client_id=_env("OKTA_WEB_CLIENT_ID"),
            client_secret=_env("OKTA_WEB_CLIENT_SECRET"),
            redirect_uri=_env("OKTA_WEB_REDIRECT_URI", "http://localhost:8081/auth/web-callback"),
            scope=_env("OKTA_WEB_SCOPE", "openid profile email"),
            requesting_app_client_id=_env("OKTA_REQUESTING_APP_CLIENT_ID"),
            requesting_app_client_secret=_env("OKTA_REQUESTING_APP_CLIENT_SECRET"),
        )


@dataclass(frozen=True)
class Auth0Settings:
    domain: str = ""
    token_endpoint_override: str = ""
    audience: str = ""
    resource: str = ""
    client_id: str = ""
    client_secret: str = ""
    scope: str = "finance:read"
    salesforce_resource: str = ""
    salesforce_scope: str = "salesforce:read"
    me_scope: str = "create:me:connected_accounts"
    me_delete_scope: str = "delete:me:connected_accounts"

    @property
    def token_endpoint(self) -> str:
        return self.token_endpoint_override or f"{self.domain}/oauth/token"

    @property
    def jwks_uri(self) -> str:
        return f"{self.domain}/.well-known/jwks.json"

    @property
    def me_resource(self) -> str:
        return f"{self.domain}/me/"

    @property
    def connected_accounts_url(self) -> str:
        return f"{self.domain}/me/v1/connected-accounts"

    def profile(self, resource_type: str = None) -> Tuple[str, str]:
        """
        Map a resource type onto the (resource, scope) pair requested from Auth0.

        Raises:
            ValueError: For an unknown resource type
        """
        resource_type = (resource_type or "finance").lower()
        if resource_type in ("finance", "financial"):
            return self.resource, self.scope
        if resource_type == "salesforce":
            return self.salesforce_resource, self.salesforce_scope
        if resource_type == "me":
            return self.me_resource, self.me_scope
        raise ValueError(f"Unknown resource type: {resource_type}")

    @classmethod
    def from_env(cls) -> "Auth0Settings":
        return cls(
            domain=_normalize_origin(_env("AUTH0_DOMAIN")),
            token_endpoint_override=_env("AUTH0_TOKEN_ENDPOINT"),
            audience=_env("AUTH0_AUDIENCE"),
            resource=_env("AUTH0_RESOURCE"),
            client_id=_env("AUTH0_CLIENT_ID") or _env("AUTH0_REQUESTING_APP_CLIENT_ID"),
            client_secret=_env("AUTH0_CLIENT_SECRET") or _env("AUTH0_REQUESTING_APP_CLIENT_SECRET"),
            scope=_env("AUTH0_SCOPE", "finance:read"),
            salesforce_resource=_env("SALESFORCE_RESOURCE") or _env("SALESFORCE_DOMAIN"),
            salesforce_scope=_env("AUTH0_SALESFORCE_SCOPE", "salesforce:read"),
        )


@dataclass(frozen=True)
class GatewaySettings:
    enabled: bool = False
    url: str = ""
    salesforce_domain: str = ""
    salesforce_endpoint: str = "/services/data/v62.0/sobjects/Opportunity"
    connection: str = "Salesforce"

    @property
    def salesforce_hostname(self) -> str:
        host = self.salesforce_domain
        for prefix in ("https://", "http://"):
            if host.startswith(prefix):
                host = host[len(prefix):]
        return host.rstrip("/")

    @classmethod
    def from_env(cls) -> "GatewaySettings":
        return cls(
            enabled=_env("GATEWAY_MODE").lower() == "true",
            url=_env("GATEWAY_URL").rstrip("/"),
            salesforce_domain=_env("SALESFORCE_DOMAIN"),
            salesforce_endpoint=_env(
                "SALESFORCE_GATEWAY_ENDPOINT", "/services/data/v62.0/sobjects/Opportunity"
            ),
            connection=_env("CONNECTED_ACCOUNT_CONNECTION", "Salesforce"),
        )


@dataclass(frozen=True)
class PamSettings:
    """Okta Privileged Access resources fetched via token exchange."""

    github_pat_path: str = ""
    github_secret_key_name: str = "githubPAT"
    servicenow_secret_path: str = ""

    @classmethod
    def from_env(cls) -> "PamSettings":
        return cls(
            github_pat_path=_env("GITHUB_PAT_PATH"),
            github_secret_key_name=_env("GITHUB_SECRET_KEY_NAME", "githubPAT"),
            servicenow_secret_path=_env("SERVICENOW_SECRET_PATH"),
        )


@dataclass(frozen=True)
class Settings:
    okta: OktaSettings = field(default_factory=OktaSettings)
    okta_web: OktaWebSettings = field(default_factory=OktaWebSettings)
    auth0: Auth0Settings = field(default_factory=Auth0Settings)
    gateway: GatewaySettings = field(default_factory=GatewaySettings)
    pam: PamSettings = field(default_factory=PamSettings)
    environment: str = "development"
    log_level: str = "INFO"
    jwks_cache_ttl: float = 3600.0
    http_timeout: float = 30.0
    pending_session_ttl: float = 600.0
    # public URL of this broker; empty means the request's own base URL
    base_url: str = ""

    @property
    def secure_cookies(self) -> bool:
        return self.environment == "production"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            okta=OktaSettings.from_env(),
            okta_web=OktaWebSettings.from_env(),
            auth0=Auth0Settings.from_env(),
            gateway=GatewaySettings.from_env(),
            pam=PamSettings.from_env(),
            environment=_env("APP_ENV", "development"),
            log_level=_env("LOG_LEVEL", "INFO").upper(),
            jwks_cache_ttl=float(_env("JWKS_CACHE_TTL", "3600")),
            http_timeout=float(_env("HTTP_TIMEOUT", "30")),
            pending_session_ttl=float(_env("PENDING_SESSION_TTL", "600")),
            base_url=_env("APP_BASE_URL").rstrip("/"),
        )


@lru_cache()
def get_settings() -> Settings:
    """Settings are read from the environment once per process."""
    return Settings.from_env()


def validate_okta_config(settings: Settings) -> None:
    """Validate that the Okta values every flow depends on are present"""
    okta = settings.okta
    if not okta.org_domain:
        raise ConfigurationError("OKTA_ORG_DOMAIN environment variable is required")
    if not okta.auth_server_issuer:
        raise ConfigurationError("OKTA_AUTH_SERVER_ISSUER environment variable is required")
    if not okta.client_id:
        raise ConfigurationError("OKTA_CLIENT_ID environment variable is required")
