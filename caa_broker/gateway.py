"""
Salesforce-through-gateway flow and its connected-account repair.

The gateway accepts an Auth0 access token and forwards the call to the host
named in ``X-GATEWAY-Host``. When Auth0 holds no federated refresh token for
the user's Salesforce connection, the gateway answers with
``federated_connection_refresh_token_not_found``; the flow then obtains a
My Account API token and starts a connected-account link that the user
finishes in the browser (see ``complete``).
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import httpx

from .config import Settings, require
from .connected_accounts import MyAccountClient, authorization_url
from .errors import BrokerError
from .pkce import PendingStore, code_challenge, generate_code_verifier, generate_state
from .token_exchange import CrossAppAccessClient

logger = logging.getLogger(__name__)

FEDERATED_CONNECTION_MISSING = "federated_connection_refresh_token_not_found"
CONNECT_KEY_PREFIX = "connect:"


def preview(token: Optional[str], length: int = 50) -> str:
    if not token:
        return ""
    return f"{token[:length]}..."


async def call_gateway(
    http: httpx.AsyncClient, settings: Settings, access_token: str, endpoint: Optional[str] = None
) -> Tuple[int, Any]:
    """
    GET ``endpoint`` through the gateway with an Auth0 access token.

    Returns:
        (status code, parsed JSON body or ``{"raw": text}``)
    """
    gateway = settings.gateway
    url = f"{require(gateway.url, 'GATEWAY_URL')}{endpoint or gateway.salesforce_endpoint}"
    hostname = gateway.salesforce_hostname

    logger.info("Gateway request: GET %s (X-GATEWAY-Host: %s)", url, hostname)
    response = await http.get(
        url,
        headers={
            "Authorization": f"Bearer {access_token}",
            "X-GATEWAY-Host": hostname,
            "Content-Type": "application/json",
            "Accept": "application/json",
        },
    )
    logger.info("Gateway response: %s", response.status_code)

    try:
        data = response.json()
    except ValueError:
        logger.info("Gateway response is not JSON, returning as text")
        data = {"raw": response.text}
    return response.status_code, data


@dataclass
class GatewayFlowResult:
    success: bool
    tokens: Dict[str, str] = field(default_factory=dict)
    logs: List[str] = field(default_factory=list)
    data: Any = None
    error: Optional[str] = None
    connect_uri: Optional[str] = None
    auth_session: Optional[str] = None
    session_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "success": self.success,
            "tokens": self.tokens,
            "logs": self.logs,
        }
        optional = {
            "data": self.data,
            "error": self.error,
            "connectUri": self.connect_uri,
            "authSession": self.auth_session,
            "sessionId": self.session_id,
        }
        payload.update({key: value for key, value in optional.items() if value is not None})
        return payload


class SalesforceGatewayFlow:
    """Orchestrates ID token -> ID-JAG -> Auth0 token -> gateway, with repair."""

    def __init__(
        self,
        settings: Settings,
        exchange: CrossAppAccessClient,
        my_account: MyAccountClient,
        pending: PendingStore,
        http: httpx.AsyncClient,
    ):
        self.settings = settings
        self.exchange = exchange
        self.my_account = my_account
        self.pending = pending
        self.http = http

    def _me_audience(self) -> str:
        auth0 = self.settings.auth0
        return auth0.audience or require(auth0.domain, "AUTH0_DOMAIN")

    async def me_id_jag(self, id_token: str) -> str:
        auth0 = self.settings.auth0
        require(auth0.domain, "AUTH0_DOMAIN")
        return await self.exchange.request_id_jag(id_token, auth0.me_resource, self._me_audience())

    async def start_connection(self, me_access_token: str, redirect_uri: str) -> Dict[str, Any]:
        """
        Initiate a connected account and remember what ``complete`` needs.

        The PKCE verifier and the ME token stay server side, keyed by the
        connect ``state``.
        """
        state = generate_state()
        code_verifier = generate_code_verifier()
        data = await self.my_account.connect(
            me_access_token,
            redirect_uri,
            state=state,
            code_challenge=code_challenge(code_verifier),
        )
        self.pending.put(
            CONNECT_KEY_PREFIX + state,
            auth_session=data.get("auth_session"),
            me_token=me_access_token,
            code_verifier=data.get("code_verifier") or code_verifier,
            redirect_uri=redirect_uri,
        )
        data = dict(data)
        data.pop("code_verifier", None)
        data["state"] = state
        data["authorizationUrl"] = authorization_url(data)
        return data

    async def run(self, id_token: str, redirect_uri: str) -> GatewayFlowResult:
        result = GatewayFlowResult(success=False)
        logs = result.logs

        def step(message: str) -> None:
            logs.append(message)
            logger.info(message)

        try:
            step("=== Starting Salesforce Gateway Test Flow ===")
            result.tokens["idToken"] = id_token
            step(f"Step 1: Web ID Token retrieved ({preview(id_token)})")

            gateway = self.settings.gateway
            salesforce_domain = require(gateway.salesforce_domain, "SALESFORCE_DOMAIN")
            audience = require(self.settings.auth0.audience, "AUTH0_AUDIENCE")

            step("Step 2: Exchanging Web ID Token for Salesforce ID-JAG")
            id_jag = await self.exchange.request_id_jag(id_token, salesforce_domain, audience)
            result.tokens["idJagToken"] = id_jag
            step(f"✓ Salesforce ID-JAG received: {preview(id_jag)}")

            step("Step 3: Exchanging ID-JAG for Auth0 Access Token")
            auth0_token = await self.exchange.exchange_id_jag_for_auth0_token(id_jag, "salesforce")
            result.tokens["auth0AccessToken"] = auth0_token.access_token
            step(f"✓ Auth0 Access Token received: {preview(auth0_token.access_token)}")

            if not gateway.enabled or not gateway.url:
                step(f"✗ Gateway configuration: GATEWAY_MODE={gateway.enabled} GATEWAY_URL={gateway.url or 'not set'}")
                raise BrokerError("Gateway mode is not enabled. Please set GATEWAY_MODE=true and GATEWAY_URL")

            step(f"Step 4: Calling Gateway API {gateway.url}{gateway.salesforce_endpoint}")
            step(f"  X-GATEWAY-Host: {gateway.salesforce_hostname}")
            status, data = await call_gateway(self.http, self.settings, auth0_token.access_token)
            step(f"  Gateway Response Status: {status}")

            if isinstance(data, dict) and data.get("error") == FEDERATED_CONNECTION_MISSING:
                step("⚠ Federated connection not found - initiating connected account flow")
                return await self._repair(result, id_token, redirect_uri, step)

            if status < 200 or status >= 300:
                step(f"✗ Gateway request failed with status {status}")
                step(f"  Response Data: {json.dumps(data)}")
                result.data = data
                result.error = f"Gateway request failed with status {status}"
                step("=== Gateway Test Flow Failed ===")
                return result

            result.success = True
            result.data = data
            step("✓ Gateway API call successful")
            step("=== Gateway Test Flow Completed Successfully ===")
            return result
        except BrokerError as e:
            return self._fail(result, e.message, step)
        except httpx.HTTPError as e:
            return self._fail(result, f"HTTP error: {e}", step)
        except Exception as e:
            logger.exception("Gateway test flow error")
            return self._fail(result, str(e) or e.__class__.__name__, step)

    async def _repair(self, result: GatewayFlowResult, id_token: str, redirect_uri: str, step) -> GatewayFlowResult:
        step("Step 5: Creating ME access token for connected accounts")
        me_id_jag = await self.me_id_jag(id_token)
        result.tokens["meIdJagToken"] = me_id_jag
        step("✓ ME ID-JAG received")

        me_token = await self.exchange.exchange_id_jag_for_auth0_token(me_id_jag, "me")
        result.tokens["meAuth0AccessToken"] = me_token.access_token
        step(f"✓ ME Auth0 Access Token received: {preview(me_token.access_token)}")

        step("Step 6: Initiating Salesforce connected account flow")
        connect = await self.start_connection(me_token.access_token, redirect_uri)
        step(f"✓ Connected account flow initiated (auth session {connect.get('auth_session')})")
        step(f"  Authorization URL: {connect['authorizationUrl']}")
        step("=== Gateway Test Flow - Awaiting Connected Account Setup ===")

        result.error = FEDERATED_CONNECTION_MISSING
        result.connect_uri = connect["authorizationUrl"]
        result.auth_session = connect.get("auth_session")
        result.session_id = connect["state"]
        return result

    @staticmethod
    def _fail(result: GatewayFlowResult, message: str, step) -> GatewayFlowResult:
        step(f"✗ Flow failed: {message}")
        step("=== Gateway Test Flow Failed ===")
        result.success = False
        result.error = message
        return result

    async def complete(self, state: str, connect_code: str) -> Dict[str, Any]:
        """
        Finish a pending connected account after the user's browser returns.

        Raises:
            BrokerError: 400 when ``state`` is unknown or has expired
        """
        pending = self.pending.pop(CONNECT_KEY_PREFIX + state)
        if pending is None:
            raise BrokerError(
                "Unknown or expired connected account session",
                status_code=400,
                error="Invalid connect state",
            )
        return await self.my_account.complete(
            pending["me_token"],
            pending["auth_session"],
            connect_code,
            pending["redirect_uri"],
            pending.get("code_verifier"),
        )

    async def delete_connection(self, id_token: str, connection_id: Optional[str] = None) -> Dict[str, Any]:
        """ME ID-JAG -> ME delete token -> DELETE the connected account."""
        connection_id = connection_id or self.settings.gateway.connection
        me_id_jag = await self.me_id_jag(id_token)
        delete_token = await self.exchange.exchange_for_me_delete_token(me_id_jag)
        await self.my_account.delete(delete_token, connection_id)
        return {"success": True, "message": "Connected account deleted successfully"}
