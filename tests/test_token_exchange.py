from dataclasses import replace
from urllib.parse import parse_qsl

import httpx
import jwt
import pytest

from caa_broker.errors import ConfigurationError, TokenExchangeError
from caa_broker.token_exchange import (
    ID_JAG_TOKEN_TYPE,
    ID_TOKEN_TYPE,
    JWT_BEARER_GRANT,
    SERVICE_ACCOUNT_TOKEN_TYPE,
    TOKEN_EXCHANGE_GRANT,
    VAULTED_SECRET_TOKEN_TYPE,
    CrossAppAccessClient,
)

ORG_TOKEN_URL = "https://example.okta.com/oauth2/v1/token"
AUTH0_TOKEN_URL = "https://tenant.auth0.com/oauth/token"


def form(request: httpx.Request) -> dict:
    return dict(parse_qsl(request.content.decode()))


class Recorder:
    """Answers each POST with the response registered for its URL."""

    def __init__(self, responses):
        self.responses = responses
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.responses[str(request.url)]


@pytest.mark.anyio
async def test_id_token_for_id_jag(settings, mock_http):
    recorder = Recorder({
        ORG_TOKEN_URL: httpx.Response(200, json={
            "access_token": "id-jag",
            "token_type": "N_A",
            "expires_in": 300,
            "scope": "mcp:read",
            "issued_token_type": ID_JAG_TOKEN_TYPE,
        })
    })
    client = CrossAppAccessClient(settings, mock_http(recorder))

    result = await client.exchange_id_token_for_id_jag("id-token")

    assert result.to_dict() == {"accessToken": "id-jag", "tokenType": "N_A", "expiresIn": 300, "scope": "mcp:read"}
    sent = form(recorder.requests[0])
    assert sent["grant_type"] == TOKEN_EXCHANGE_GRANT
    assert sent["requested_token_type"] == ID_JAG_TOKEN_TYPE
    assert sent["subject_token"] == "id-token"
    assert sent["subject_token_type"] == ID_TOKEN_TYPE
    assert sent["audience"] == "https://example.okta.com/oauth2/aus123"
    assert sent["scope"] == "mcp:read"
    assert sent["client_assertion_type"] == "urn:ietf:params:oauth:client-assertion-type:jwt-bearer"
    assertion = jwt.decode(sent["client_assertion"], options={"verify_signature": False})
    assert assertion["aud"] == ORG_TOKEN_URL
    assert assertion["iss"] == "wlp123"


@pytest.mark.anyio
async def test_upstream_failure_keeps_status_and_body(settings, mock_http):
    recorder = Recorder({ORG_TOKEN_URL: httpx.Response(400, text='{"error":"invalid_grant"}')})
    client = CrossAppAccessClient(settings, mock_http(recorder))

    with pytest.raises(TokenExchangeError) as exc_info:
        await client.exchange_id_token_for_id_jag("id-token")

    assert exc_info.value.status_code == 400
    assert exc_info.value.details == '{"error":"invalid_grant"}'
    assert exc_info.value.to_dict()["error"] == "Token exchange failed"


@pytest.mark.anyio
async def test_non_json_response(settings, mock_http):
    recorder = Recorder({ORG_TOKEN_URL: httpx.Response(200, text="<html>")})
    client = CrossAppAccessClient(settings, mock_http(recorder))

    with pytest.raises(TokenExchangeError, match="not JSON"):
        await client.exchange_id_token_for_id_jag("id-token")


@pytest.mark.anyio
async def test_authorization_code_with_pkce(settings, mock_http):
    recorder = Recorder({
        "https://example.okta.com/oauth2/aus123/v1/token": httpx.Response(200, json={
            "access_token": "at", "id_token": "it", "expires_in": 3600,
        })
    })
    client = CrossAppAccessClient(settings, mock_http(recorder))

    tokens = await client.exchange_authorization_code("code-1", "http://localhost:8081/auth/callback", "verifier")

    assert tokens.to_dict() == {"accessToken": "at", "idToken": "it", "refreshToken": None, "expiresIn": 3600}
    sent = form(recorder.requests[0])
    assert sent["grant_type"] == "authorization_code"
    assert sent["code_verifier"] == "verifier"
    assert sent["client_id"] == "agent-client"


@pytest.mark.anyio
async def test_request_id_jag_uses_requesting_app(settings, mock_http):
    recorder = Recorder({ORG_TOKEN_URL: httpx.Response(200, json={"access_token": "sf-jag"})})
    client = CrossAppAccessClient(settings, mock_http(recorder))

    id_jag = await client.request_id_jag("id-token", "https://acme.my.salesforce.com", "https://tenant.auth0.com/")

    assert id_jag == "sf-jag"
    sent = form(recorder.requests[0])
    assert sent["client_id"] == "requesting-client"
    assert sent["client_secret"] == "requesting-secret"
    assert sent["resource"] == "https://acme.my.salesforce.com"
    assert sent["audience"] == "https://tenant.auth0.com/"
    assert "client_assertion" not in sent


@pytest.mark.anyio
async def test_request_id_jag_without_token(settings, mock_http):
    recorder = Recorder({ORG_TOKEN_URL: httpx.Response(200, json={"token_type": "N_A"})})
    client = CrossAppAccessClient(settings, mock_http(recorder))

    with pytest.raises(TokenExchangeError, match="did not contain an ID-JAG"):
        await client.request_id_jag("id-token", "r", "a")


@pytest.mark.anyio
async def test_chain_to_auth0(settings, mock_http):
    recorder = Recorder({
        ORG_TOKEN_URL: httpx.Response(200, json={"access_token": "fin-jag"}),
        AUTH0_TOKEN_URL: httpx.Response(200, json={
            "access_token": "auth0-at", "token_type": "Bearer", "expires_in": 86400, "scope": "finance:read",
        }),
    })
    client = CrossAppAccessClient(settings, mock_http(recorder))

    result = await client.exchange_for_auth0_token("id-token")

    assert result.to_dict() == {
        "accessToken": "auth0-at",
        "tokenType": "Bearer",
        "expiresIn": 86400,
        "scope": "finance:read",
        "idJag": "fin-jag",
    }
    id_jag_request, auth0_request = (form(r) for r in recorder.requests)
    assert id_jag_request["resource"] == "https://api.finance.example"
    assert auth0_request["grant_type"] == JWT_BEARER_GRANT
    assert auth0_request["assertion"] == "fin-jag"
    assert auth0_request["scope"] == "finance:read"


@pytest.mark.anyio
async def test_auth0_salesforce_profile(settings, mock_http):
    recorder = Recorder({AUTH0_TOKEN_URL: httpx.Response(200, json={"access_token": "sf-at"})})
    client = CrossAppAccessClient(settings, mock_http(recorder))

    await client.exchange_id_jag_for_auth0_token("sf-jag", "salesforce")

    assert form(recorder.requests[0])["scope"] == "salesforce:read"


@pytest.mark.anyio
async def test_chain_requires_audience(settings, mock_http):
    no_audience = replace(settings, auth0=replace(settings.auth0, audience=""))
    client = CrossAppAccessClient(no_audience, mock_http(Recorder({})))

    with pytest.raises(ConfigurationError, match="AUTH0_AUDIENCE"):
        await client.exchange_for_auth0_token("id-token")


@pytest.mark.anyio
async def test_me_delete_token(settings, mock_http):
    recorder = Recorder({AUTH0_TOKEN_URL: httpx.Response(200, json={"access_token": "delete-at"})})
    client = CrossAppAccessClient(settings, mock_http(recorder))

    assert await client.exchange_for_me_delete_token("me-jag") == "delete-at"
    sent = form(recorder.requests[0])
    assert sent["grant_type"] == TOKEN_EXCHANGE_GRANT
    assert sent["subject_token"] == "me-jag"
    assert sent["scope"] == "delete:me:connected_accounts"


@pytest.mark.anyio
async def test_vaulted_secret(settings, mock_http):
    recorder = Recorder({
        ORG_TOKEN_URL: httpx.Response(200, json={
            "issued_token_type": VAULTED_SECRET_TOKEN_TYPE,
            "token_type": "N_A",
            "expires_in": 60,
            "vaulted_secret": {"githubPAT": "ghp_secret"},
        })
    })
    client = CrossAppAccessClient(settings, mock_http(recorder))

    vaulted = await client.exchange_vaulted_secret("id-token", "orn:okta:pam:github", "githubPAT")

    assert vaulted.secret == "ghp_secret"
    assert "ghp_secret" not in repr(vaulted)
    sent = form(recorder.requests[0])
    assert sent["requested_token_type"] == VAULTED_SECRET_TOKEN_TYPE
    assert sent["resource"] == "orn:okta:pam:github"


@pytest.mark.anyio
async def test_vaulted_secret_missing_key(settings, mock_http):
    recorder = Recorder({
        ORG_TOKEN_URL: httpx.Response(200, json={
            "issued_token_type": VAULTED_SECRET_TOKEN_TYPE,
            "vaulted_secret": {"other": "x"},
        })
    })
    client = CrossAppAccessClient(settings, mock_http(recorder))

    with pytest.raises(TokenExchangeError) as exc_info:
        await client.exchange_vaulted_secret("id-token", "orn", "githubPAT")

    assert exc_info.value.status_code == 500
    assert "Available keys: other" in exc_info.value.details


@pytest.mark.anyio
async def test_issued_token_type_mismatch(settings, mock_http):
    recorder = Recorder({
        ORG_TOKEN_URL: httpx.Response(200, json={
            "issued_token_type": ID_JAG_TOKEN_TYPE,
            "service_account": {"username": "u", "password": "p"},
        })
    })
    client = CrossAppAccessClient(settings, mock_http(recorder))

    with pytest.raises(TokenExchangeError) as exc_info:
        await client.exchange_service_account("id-token", "orn")

    assert exc_info.value.status_code == 500
    assert exc_info.value.error == "Invalid token response"


@pytest.mark.anyio
async def test_service_account(settings, mock_http):
    recorder = Recorder({
        ORG_TOKEN_URL: httpx.Response(200, json={
            "issued_token_type": SERVICE_ACCOUNT_TOKEN_TYPE,
            "token_type": "N_A",
            "expires_in": 60,
            "service_account": {"username": "svc-user", "password": "s3cret"},
        })
    })
    client = CrossAppAccessClient(settings, mock_http(recorder))

    credentials = await client.exchange_service_account("id-token", "orn:okta:pam:servicenow")

    assert credentials.to_dict() == {
        "username": "svc-user",
        "password": "s3cret",
        "tokenType": "N_A",
        "expiresIn": 60,
        "issuedTokenType": SERVICE_ACCOUNT_TOKEN_TYPE,
    }
    assert "s3cret" not in repr(credentials)


@pytest.mark.anyio
async def test_service_account_without_password(settings, mock_http):
    recorder = Recorder({
        ORG_TOKEN_URL: httpx.Response(200, json={
            "issued_token_type": SERVICE_ACCOUNT_TOKEN_TYPE,
            "service_account": {"username": "svc-user"},
        })
    })
    client = CrossAppAccessClient(settings, mock_http(recorder))

    with pytest.raises(TokenExchangeError, match="Service account credentials not found"):
        await client.exchange_service_account("id-token", "orn")
