"""Auth0 My Account API: connected accounts (connect / complete / delete)."""

import logging
from typing import Any, Dict, Iterable, Optional
from urllib.parse import quote, urlencode

import httpx

from .config import Settings, require
from .errors import UpstreamError

logger = logging.getLogger(__name__)

DEFAULT_CONNECT_SCOPES = ("openid", "profile")


def authorization_url(connect_data: Dict[str, Any]) -> str:
    """Browser URL for a connect response: ``connect_uri?ticket=...``."""
    ticket = (connect_data.get("connect_params") or {}).get("ticket")
    connect_uri = connect_data.get("connect_uri", "")
    if not ticket:
        return connect_uri
    return f"{connect_uri}?{urlencode({'ticket': ticket})}"


class MyAccountClient:
    def __init__(self, settings: Settings, http_client: httpx.AsyncClient):
        self.settings = settings
        self.http = http_client

    @property
    def base_url(self) -> str:
        require(self.settings.auth0.domain, "AUTH0_DOMAIN")
        return self.settings.auth0.connected_accounts_url

    @staticmethod
    def _headers(me_access_token: str) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {me_access_token}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    @staticmethod
    def _json(response: httpx.Response, failure: str) -> Dict[str, Any]:
        try:
            data = response.json()
        except ValueError as e:
            raise UpstreamError(
                f"{failure}: response was not JSON",
                status_code=502,
                details=response.text,
                error="Connected account request failed",
            ) from e
        if not isinstance(data, dict):
            raise UpstreamError(
                f"{failure}: unexpected response",
                status_code=502,
                details=data,
                error="Connected account request failed",
            )
        return data

    async def connect(
        self,
        me_access_token: str,
        redirect_uri: str,
        state: str,
        code_challenge: Optional[str] = None,
        connection: Optional[str] = None,
        scopes: Iterable[str] = DEFAULT_CONNECT_SCOPES,
    ) -> Dict[str, Any]:
        """
        Start linking a federated account to the Auth0 user.

        Returns:
            Auth0 response with ``auth_session``, ``connect_uri``,
            ``connect_params.ticket`` and ``expires_in``

        Raises:
            UpstreamError: If Auth0 rejects the request
        """
        url = f"{self.base_url}/connect"
        body: Dict[str, Any] = {
            "connection": connection or self.settings.gateway.connection,
            "redirect_uri": redirect_uri,
            "state": state,
            "scopes": list(scopes),
        }
        if code_challenge:
            body["code_challenge"] = code_challenge
            body["code_challenge_method"] = "S256"

        logger.info("Initiating connected account: url=%s redirect_uri=%s", url, redirect_uri)
        response = await self.http.post(url, json=body, headers=self._headers(me_access_token))
        logger.info("Connect account response: %s", response.status_code)

        if not response.is_success:
            raise UpstreamError(
                f"Failed to initiate connected account: {response.text}",
                status_code=response.status_code,
                error="Connected account request failed",
            )

        data = self._json(response, "Failed to initiate connected account")
        logger.info("Connected account initiated: auth_session=%s", data.get("auth_session"))
        return data

    async def complete(
        self,
        me_access_token: str,
        auth_session: str,
        connect_code: str,
        redirect_uri: str,
        code_verifier: Optional[str] = None,
    ) -> Dict[str, Any]:
        url = f"{self.base_url}/complete"
        body = {
            "auth_session": auth_session,
            "connect_code": connect_code,
            "redirect_uri": redirect_uri,
        }
        if code_verifier:
            body["code_verifier"] = code_verifier

        logger.info("Completing connected account: auth_session=%s", auth_session)
        response = await self.http.post(url, json=body, headers=self._headers(me_access_token))

        if not response.is_success:
            logger.error("Failed to complete connected account: %s", response.text)
            raise UpstreamError(
                f"Failed to complete connected account: {response.status_code} {response.text}",
                status_code=response.status_code,
                error="Connected account request failed",
            )

        logger.info("Connected account completed")
        return self._json(response, "Failed to complete connected account") if response.content else {}

    async def delete(self, me_access_token: str, connection_id: str) -> None:
        url = f"{self.base_url}/{quote(connection_id, safe='')}"
        logger.info("Deleting connected account %s", connection_id)
        response = await self.http.delete(url, headers=self._headers(me_access_token))

        if not response.is_success:
            logger.error("Failed to delete connected account: %s", response.text)
            raise UpstreamError(
                f"Failed to delete connected account: {response.text}",
                status_code=response.status_code,
                error="Connected account request failed",
            )
        logger.info("Connected account %s deleted", connection_id)
