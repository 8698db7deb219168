"""Private key JWT client authentication for the agent principal (RFC 7523)."""

import logging
import time
import uuid
from typing import Optional

from joserfc import jwt
from joserfc.jwk import RSAKey

from .config import Settings, require

logger = logging.getLogger(__name__)

CLIENT_ASSERTION_TYPE = "urn:ietf:params:oauth:client-assertion-type:jwt-bearer"
ASSERTION_LIFETIME = 60


def create_client_assertion(
    settings: Settings, audience: Optional[str] = None, now: Optional[int] = None
) -> str:
    """
    Create a signed client assertion for the Okta org token endpoint.

    ``iss`` and ``sub`` are the agent principal id, ``aud`` is the token
    endpoint, and the assertion is valid for one minute.

    Args:
        settings: Broker settings holding the agent principal and its key
        audience: Token endpoint the assertion is presented to
        now: Issued-at override in epoch seconds

    Returns:
        Compact RS256 JWT
    """
    okta = settings.okta
    principal_id = require(okta.agent_principal_id, "OKTA_AGENT_PRINCIPAL_ID")
    private_jwk = okta.load_private_jwk()
    key = RSAKey.import_key(private_jwk)

    issued_at = int(time.time()) if now is None else int(now)
    header = {"alg": "RS256", "kid": private_jwk["kid"]}
    claims = {
        "iss": principal_id,
        "sub": principal_id,
        "aud": audience or okta.token_endpoint,
        "iat": issued_at,
        "exp": issued_at + ASSERTION_LIFETIME,
        "jti": str(uuid.uuid4()),
    }

    logger.debug("Creating client assertion: kid=%s iss=%s aud=%s", header["kid"], principal_id, claims["aud"])
    return jwt.encode(header, claims, key)
