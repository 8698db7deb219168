"""
Access token and ID token validation.

Signing keys are fetched from the issuer's JWKS endpoint and cached for a
fixed TTL; an unknown ``kid`` forces one refresh so key rotation does not
have to wait for the cache to expire. Signature (RS256), expiry, issuer,
audience, issued-at skew and nonce are checked with PyJWT.
"""

import logging
import time
from typing import Any, Callable, Dict, List, Optional

import httpx
import jwt

from .config import Settings
from .errors import InsufficientScopeError, JWKSFetchError, TokenValidationError

logger = logging.getLogger(__name__)

DEFAULT_JWKS_TTL = 3600.0
MAX_FUTURE_IAT = 60


class JWKSCache:
    """JSON Web Key Set for one issuer, refreshed after ``ttl_seconds``."""

    def __init__(
        self,
        jwks_uri: str,
        http_client: httpx.AsyncClient,
        ttl_seconds: float = DEFAULT_JWKS_TTL,
        clock: Callable[[], float] = time.time,
    ):
        self.jwks_uri = jwks_uri
        self.http = http_client
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._jwks: Optional[Dict[str, Any]] = None
        self._fetched_at = 0.0

    async def get_jwks(self, force_refresh: bool = False) -> Dict[str, Any]:
        now = self._clock()
        if not force_refresh and self._jwks is not None and now - self._fetched_at < self.ttl_seconds:
            return self._jwks

        logger.info("Fetching JWKS from %s", self.jwks_uri)
        try:
            response = await self.http.get(self.jwks_uri, headers={"Accept": "application/json"})
        except httpx.HTTPError as e:
            logger.error("JWKS request to %s failed: %s", self.jwks_uri, e)
            raise JWKSFetchError("Failed to fetch JWKS") from e

        if response.status_code != 200:
            logger.error("JWKS request to %s returned %s", self.jwks_uri, response.status_code)
            raise JWKSFetchError("Failed to fetch JWKS", details=response.text)

        try:
            jwks = response.json()
        except ValueError as e:
            raise JWKSFetchError("Failed to fetch JWKS", details="JWKS response was not JSON") from e

        self._jwks = jwks
        self._fetched_at = now
        return jwks

    async def get_signing_key(self, kid: str) -> jwt.PyJWK:
        jwks = await self.get_jwks()
        key = _find_key(jwks, kid)
        if key is None:
            # Key not found: the issuer may have rotated keys, refresh once
            jwks = await self.get_jwks(force_refresh=True)
            key = _find_key(jwks, kid)
        if key is None:
            logger.warning("No key with kid %s; available: %s", kid, [k.get("kid") for k in jwks.get("keys", [])])
            raise TokenValidationError("No matching key found in JWKS")
        try:
            return jwt.PyJWK(key)
        except jwt.PyJWKError as e:
            raise TokenValidationError(f"Unusable signing key: {e}") from e


def _find_key(jwks: Dict[str, Any], kid: str) -> Optional[Dict[str, Any]]:
    for key in jwks.get("keys", []):
        if key.get("kid") == kid:
            return key
    return None


class TokenValidator:
    """
    Validates RS256 JWTs issued by one authorization server.

    Args:
        jwks: Key cache for the issuer
        issuer: Expected ``iss``; not checked when None
        audience: Default expected audience; not checked when None
        max_future_iat: Seconds an ``iat`` may lie in the future
        clock: Time source for the ``iat`` check
    """

    def __init__(
        self,
        jwks: JWKSCache,
        issuer: Optional[str] = None,
        audience: Optional[str] = None,
        max_future_iat: int = MAX_FUTURE_IAT,
        clock: Callable[[], float] = time.time,
    ):
        self.jwks = jwks
        self.issuer = issuer
        self.audience = audience
        self.max_future_iat = max_future_iat
        self._clock = clock

    async def validate(self, token: str, audience: Optional[str] = None, nonce: Optional[str] = None) -> Dict[str, Any]:
        """
        Verify ``token`` and return its claims.

        Raises:
            TokenValidationError: With a short reason such as "Token expired"
                or "Invalid audience"
        """
        try:
            header = jwt.get_unverified_header(token)
        except jwt.DecodeError as e:
            raise TokenValidationError("Invalid JWT format") from e

        kid = header.get("kid")
        if not kid:
            raise TokenValidationError("Token header has no kid")
        logger.debug("Validating token with kid %s", kid)

        signing_key = await self.jwks.get_signing_key(kid)
        expected_audience = audience or self.audience

        try:
            claims = jwt.decode(
                token,
                signing_key.key,
                algorithms=["RS256"],
                audience=expected_audience,
                issuer=self.issuer,
                options={
                    "require": ["exp"],
                    "verify_aud": expected_audience is not None,
                    "verify_iss": self.issuer is not None,
                    "verify_iat": False,
                },
            )
        except jwt.ExpiredSignatureError as e:
            raise TokenValidationError("Token expired") from e
        except jwt.InvalidAudienceError as e:
            raise TokenValidationError("Invalid audience") from e
        except jwt.InvalidIssuerError as e:
            raise TokenValidationError("Invalid issuer") from e
        except jwt.InvalidSignatureError as e:
            raise TokenValidationError("Invalid signature") from e
        except jwt.MissingRequiredClaimError as e:
            raise TokenValidationError(f"Token missing required claim: {e.claim}") from e
        except jwt.DecodeError as e:
            raise TokenValidationError("Invalid JWT format") from e
        except jwt.InvalidTokenError as e:
            raise TokenValidationError(f"Token validation failed: {e}") from e

        iat = claims.get("iat")
        if isinstance(iat, (int, float)) and iat > self._clock() + self.max_future_iat:
            raise TokenValidationError("Token issued in future")

        if nonce is not None and claims.get("nonce") != nonce:
            raise TokenValidationError("Invalid nonce")

        return claims


def okta_access_token_validator(settings: Settings, jwks: JWKSCache) -> TokenValidator:
    """Tokens minted by the org token endpoint for the custom authorization server."""
    return TokenValidator(jwks, issuer=settings.okta.org_domain, audience=settings.okta.auth_server_issuer)


def okta_id_token_validator(settings: Settings, jwks: JWKSCache) -> TokenValidator:
    return TokenValidator(jwks, issuer=settings.okta.auth_server_issuer, audience=settings.okta.client_id)


def web_id_token_validator(settings: Settings, jwks: JWKSCache) -> TokenValidator:
    return TokenValidator(jwks, issuer=settings.okta_web.org_domain, audience=settings.okta_web.client_id)


def auth0_token_validator(settings: Settings, jwks: JWKSCache) -> TokenValidator:
    # Audience differs per resource API and is passed to validate()
    return TokenValidator(jwks)


def extract_bearer_token(authorization: Optional[str]) -> str:
    if not authorization or not authorization.startswith("Bearer "):
        raise TokenValidationError("Missing or invalid authorization header")
    token = authorization[len("Bearer "):].strip()
    if not token:
        raise TokenValidationError("Missing or invalid authorization header")
    return token


def token_scopes(claims: Dict[str, Any]) -> List[str]:
    """Scopes from a space separated ``scope`` claim or an Okta ``scp`` list."""
    scope = claims.get("scope")
    if isinstance(scope, str):
        return scope.split()
    if isinstance(scope, list):
        return [str(s) for s in scope]
    scp = claims.get("scp")
    if isinstance(scp, list):
        return [str(s) for s in scp]
    if isinstance(scp, str):
        return scp.split()
    return []


def require_scope(claims: Dict[str, Any], scope: str) -> List[str]:
    scopes = token_scopes(claims)
    if scope not in scopes:
        raise InsufficientScopeError(f"Insufficient permissions. Required scope: {scope}")
    return scopes
