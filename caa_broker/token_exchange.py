"""
Cross-App Access token exchanges.

Each operation is one form POST to an Okta or Auth0 token endpoint; the
chained flows (ID token -> ID-JAG -> Auth0 access token) simply feed one
response into the next request:

- authorization_code (+PKCE) for the agent and web logins
- RFC 8693 token-exchange for ID-JAG, vaulted secrets and service accounts,
  authenticated either with a private key JWT client assertion or with the
  requesting app's client secret
- RFC 7523 JWT-bearer to trade an ID-JAG for an Auth0 access token

Subject tokens, client assertions, client secrets and vaulted values are
never written to the log.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx

from .client_assertion import CLIENT_ASSERTION_TYPE, create_client_assertion
from .config import Settings, require
from .errors import TokenExchangeError

logger = logging.getLogger(__name__)

TOKEN_EXCHANGE_GRANT = "urn:ietf:params:oauth:grant-type:token-exchange"
JWT_BEARER_GRANT = "urn:ietf:params:oauth:grant-type:jwt-bearer"
ID_TOKEN_TYPE = "urn:ietf:params:oauth:token-type:id_token"
ID_JAG_TOKEN_TYPE = "urn:ietf:params:oauth:token-type:id-jag"
VAULTED_SECRET_TOKEN_TYPE = "urn:okta:params:oauth:token-type:vaulted-secret"
SERVICE_ACCOUNT_TOKEN_TYPE = "urn:okta:params:oauth:token-type:service-account"


@dataclass
class TokenSet:
    access_token: str
    id_token: Optional[str] = None
    refresh_token: Optional[str] = None
    expires_in: Optional[int] = None
    token_type: Optional[str] = None
    scope: Optional[str] = None

    @classmethod
    def from_response(cls, data: Dict[str, Any]) -> "TokenSet":
        return cls(
            access_token=data.get("access_token"),
            id_token=data.get("id_token"),
            refresh_token=data.get("refresh_token"),
            expires_in=data.get("expires_in"),
            token_type=data.get("token_type"),
            scope=data.get("scope"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "accessToken": self.access_token,
            "idToken": self.id_token,
            "refreshToken": self.refresh_token,
            "expiresIn": self.expires_in,
        }


@dataclass
class ExchangeResult:
    access_token: str
    token_type: Optional[str] = None
    expires_in: Optional[int] = None
    scope: Optional[str] = None
    issued_token_type: Optional[str] = None
    id_jag: Optional[str] = None

    @classmethod
    def from_response(cls, data: Dict[str, Any]) -> "ExchangeResult":
        return cls(
            access_token=data.get("access_token"),
            token_type=data.get("token_type"),
            expires_in=data.get("expires_in"),
            scope=data.get("scope"),
            issued_token_type=data.get("issued_token_type"),
        )

    def to_dict(self) -> Dict[str, Any]:
        payload = {
            "accessToken": self.access_token,
            "tokenType": self.token_type,
            "expiresIn": self.expires_in,
            "scope": self.scope,
        }
        if self.id_jag is not None:
            payload["idJag"] = self.id_jag
        return payload


@dataclass
class VaultedSecret:
    secret: str = field(repr=False)
    token_type: Optional[str] = None
    expires_in: Optional[int] = None
    issued_token_type: Optional[str] = None


@dataclass
class ServiceAccountCredentials:
    username: str
    password: str = field(repr=False)
    token_type: Optional[str] = None
    expires_in: Optional[int] = None
    issued_token_type: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "username": self.username,
            "password": self.password,
            "tokenType": self.token_type,
            "expiresIn": self.expires_in,
            "issuedTokenType": self.issued_token_type,
        }


class CrossAppAccessClient:
    """Runs the Okta / Auth0 token requests over a shared httpx client."""

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient):
        self.settings = settings
        self.http = http_client

    async def _post_form(self, url: str, data: Dict[str, str], *, step: str, failure: str) -> Dict[str, Any]:
        logger.info("%s: POST %s", step, url)
        response = await self.http.post(url, data=data, headers={"Accept": "application/json"})
        logger.info("%s: response status %s", step, response.status_code)

        if not response.is_success:
            logger.error("%s failed (%s): %s", step, response.status_code, response.text)
            raise TokenExchangeError(
                failure, status_code=response.status_code, details=response.text, error=failure
            )

        try:
            return response.json()
        except ValueError as e:
            raise TokenExchangeError(
                f"{failure}: response was not JSON", details=response.text, error=failure
            ) from e

    async def exchange_authorization_code(self, code: str, redirect_uri: str, code_verifier: str) -> TokenSet:
        """Redeem an agent-app authorization code using its PKCE verifier."""
        okta = self.settings.okta
        data = await self._post_form(
            okta.login_token_endpoint,
            {
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": redirect_uri,
                "client_id": okta.client_id,
                "client_secret": okta.client_secret,
                "code_verifier": code_verifier,
            },
            step="Agent login code exchange",
            failure="Token exchange failed",
        )
        return TokenSet.from_response(data)

    async def exchange_web_authorization_code(self, code: str, redirect_uri: str) -> TokenSet:
        """Redeem a web-app authorization code (confidential client, no PKCE)."""
        web = self.settings.okta_web
        data = await self._post_form(
            web.token_endpoint,
            {
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": redirect_uri,
                "client_id": require(web.client_id, "OKTA_WEB_CLIENT_ID"),
                "client_secret": web.client_secret,
            },
            step="Web login code exchange",
            failure="Token exchange failed",
        )
        return TokenSet.from_response(data)

    async def exchange_id_token_for_id_jag(self, id_token: str) -> ExchangeResult:
        """
        Exchange an Okta ID token for an ID-JAG scoped to the custom
        authorization server, authenticating as the agent principal.

        Returns:
            ExchangeResult whose access_token is the ID-JAG

        Raises:
            TokenExchangeError: If Okta rejects the exchange
            ConfigurationError: If the agent principal or its key is missing
        """
        okta = self.settings.okta
        client_assertion = create_client_assertion(self.settings, okta.token_endpoint)
        logger.info(
            "Exchanging ID token for ID-JAG: audience=%s scope=%s",
            okta.auth_server_issuer,
            okta.token_exchange_scope,
        )
        data = await self._post_form(
            okta.token_endpoint,
            {
                "grant_type": TOKEN_EXCHANGE_GRANT,
                "requested_token_type": ID_JAG_TOKEN_TYPE,
                "subject_token": id_token,
                "subject_token_type": ID_TOKEN_TYPE,
                "client_assertion_type": CLIENT_ASSERTION_TYPE,
                "client_assertion": client_assertion,
                "audience": okta.auth_server_issuer,
                "scope": okta.token_exchange_scope,
            },
            step="ID-JAG exchange",
            failure="Token exchange failed",
        )
        return ExchangeResult.from_response(data)

    async def request_id_jag(self, id_token: str, resource: str, audience: str) -> str:
        """Request an ID-JAG for ``resource`` on behalf of the CAA requesting app."""
        web = self.settings.okta_web
        logger.info("Requesting ID-JAG: resource=%s audience=%s", resource, audience)
        data = await self._post_form(
            web.token_endpoint,
            {
                "grant_type": TOKEN_EXCHANGE_GRANT,
                "requested_token_type": ID_JAG_TOKEN_TYPE,
                "audience": audience,
                "resource": resource,
                "subject_token": id_token,
                "subject_token_type": ID_TOKEN_TYPE,
                "client_id": require(web.requesting_app_client_id, "OKTA_REQUESTING_APP_CLIENT_ID"),
                "client_secret": web.requesting_app_client_secret,
            },
            step="ID-JAG request",
            failure="ID-JAG exchange failed",
        )
        id_jag = data.get("access_token")
        if not id_jag:
            raise TokenExchangeError("Okta response did not contain an ID-JAG", details=data)
        return id_jag

    async def exchange_id_jag_for_auth0_token(self, id_jag: str, resource_type: str = None) -> ExchangeResult:
        """Trade an ID-JAG for an Auth0 access token with the JWT-bearer grant."""
        auth0 = self.settings.auth0
        _, scope = auth0.profile(resource_type)
        logger.info("Exchanging ID-JAG at Auth0: endpoint=%s scope=%s", auth0.token_endpoint, scope)
        data = await self._post_form(
            auth0.token_endpoint,
            {
                "grant_type": JWT_BEARER_GRANT,
                "client_id": require(auth0.client_id, "AUTH0_CLIENT_ID"),
                "client_secret": auth0.client_secret,
                "scope": scope,
                "assertion": id_jag,
            },
            step="Auth0 JWT-bearer exchange",
            failure="Auth0 token exchange failed",
        )
        return ExchangeResult.from_response(data)

    async def exchange_for_auth0_token(self, id_token: str, resource_type: str = None) -> ExchangeResult:
        """
        Run the two-step chain: Okta ID token -> ID-JAG -> Auth0 access token.

        The returned result keeps the intermediate ID-JAG so callers can show
        both tokens.
        """
        auth0 = self.settings.auth0
        resource, _ = auth0.profile(resource_type)
        audience = require(auth0.audience, "AUTH0_AUDIENCE")

        logger.info("Step 1: requesting ID-JAG for Auth0 (%s)", resource_type or "finance")
        id_jag = await self.request_id_jag(id_token, resource, audience)

        logger.info("Step 2: exchanging ID-JAG for Auth0 access token")
        result = await self.exchange_id_jag_for_auth0_token(id_jag, resource_type)
        result.id_jag = id_jag
        return result

    async def exchange_for_me_delete_token(self, id_jag: str) -> str:
        auth0 = self.settings.auth0
        data = await self._post_form(
            auth0.token_endpoint,
            {
                "grant_type": TOKEN_EXCHANGE_GRANT,
                "subject_token": id_jag,
                "subject_token_type": ID_TOKEN_TYPE,
                "client_id": require(auth0.client_id, "AUTH0_CLIENT_ID"),
                "client_secret": auth0.client_secret,
                "audience": require(auth0.audience, "AUTH0_AUDIENCE"),
                "scope": auth0.me_delete_scope,
            },
            step="ME delete token exchange",
            failure="Auth0 token exchange failed",
        )
        access_token = data.get("access_token")
        if not access_token:
            raise TokenExchangeError("Auth0 response did not contain an access token", details=data)
        return access_token

    async def _exchange_pam_resource(self, id_token: str, resource: str, token_type: str, step: str) -> Dict[str, Any]:
        okta = self.settings.okta
        client_assertion = create_client_assertion(self.settings, okta.token_endpoint)
        logger.info(
            "%s: requested_token_type=%s subject_token_type=%s resource=%s",
            step,
            token_type,
            ID_TOKEN_TYPE,
            resource,
        )
        data = await self._post_form(
            okta.token_endpoint,
            {
                "grant_type": TOKEN_EXCHANGE_GRANT,
                "requested_token_type": token_type,
                "subject_token": id_token,
                "subject_token_type": ID_TOKEN_TYPE,
                "resource": resource,
                "client_assertion_type": CLIENT_ASSERTION_TYPE,
                "client_assertion": client_assertion,
            },
            step=step,
            failure=f"{step} failed",
        )

        if data.get("issued_token_type") != token_type:
            logger.error("%s: unexpected issued_token_type %s", step, data.get("issued_token_type"))
            raise TokenExchangeError(
                "issued_token_type mismatch",
                status_code=500,
                details="issued_token_type mismatch",
                error="Invalid token response",
            )

        logger.info(
            "%s successful: token_type=%s expires_in=%s",
            step,
            data.get("token_type"),
            data.get("expires_in"),
        )
        return data

    async def exchange_vaulted_secret(self, id_token: str, resource: str, secret_key: str) -> VaultedSecret:
        """
        Fetch one value of an Okta PAM vaulted secret.

        Raises:
            TokenExchangeError: If the exchange fails, the issued token type is
                not a vaulted secret, or ``secret_key`` is not in the secret
        """
        data = await self._exchange_pam_resource(
            id_token, resource, VAULTED_SECRET_TOKEN_TYPE, "Vaulted secret exchange"
        )
        vaulted = data.get("vaulted_secret") or {}
        secret = vaulted.get(secret_key)
        if not secret:
            available: List[str] = list(vaulted)
            logger.error("Vaulted secret key %s not found; available keys: %s", secret_key, available)
            raise TokenExchangeError(
                f"Secret key '{secret_key}' not found in vaulted secret",
                status_code=500,
                details=f"Expected key '{secret_key}' not found. Available keys: {', '.join(available)}",
                error="Secret not found in vaulted secret",
            )
        return VaultedSecret(
            secret=secret,
            token_type=data.get("token_type"),
            expires_in=data.get("expires_in"),
            issued_token_type=data.get("issued_token_type"),
        )

    async def exchange_service_account(self, id_token: str, resource: str) -> ServiceAccountCredentials:
        data = await self._exchange_pam_resource(
            id_token, resource, SERVICE_ACCOUNT_TOKEN_TYPE, "Service account exchange"
        )
        account = data.get("service_account") or {}
        if not account.get("username") or not account.get("password"):
            raise TokenExchangeError(
                "Service account credentials not found",
                status_code=500,
                details="Missing username or password",
                error="Service account credentials not found",
            )
        logger.info("Service account username: %s", account["username"])
        return ServiceAccountCredentials(
            username=account["username"],
            password=account["password"],
            token_type=data.get("token_type"),
            expires_in=data.get("expires_in"),
            issued_token_type=data.get("issued_token_type"),
        )
