import json

import pytest

from caa_broker.config import (
    Auth0Settings,
    GatewaySettings,
    OktaSettings,
    Settings,
    require,
    validate_okta_config,
)
from caa_broker.errors import ConfigurationError


def test_okta_settings_from_env(monkeypatch):
    monkeypatch.setenv("OKTA_ORG_DOMAIN", "example.okta.com/")
    monkeypatch.setenv("OKTA_AUTH_SERVER_ISSUER", "https://example.okta.com/oauth2/aus123/")
    monkeypatch.setenv("OKTA_CLIENT_ID", "agent-client")
    monkeypatch.delenv("OKTA_TOKEN_EXCHANGE_SCOPE", raising=False)

    okta = OktaSettings.from_env()

    assert okta.org_domain == "https://example.okta.com"
    assert okta.auth_server_issuer == "https://example.okta.com/oauth2/aus123"
    assert okta.token_endpoint == "https://example.okta.com/oauth2/v1/token"
    assert okta.authorization_endpoint == "https://example.okta.com/oauth2/aus123/v1/authorize"
    assert okta.jwks_uri == "https://example.okta.com/oauth2/aus123/v1/keys"
    assert okta.token_exchange_scope == "mcp:read"


def test_jwks_uri_override():
    okta = OktaSettings(auth_server_issuer="https://x/oauth2/aus1", jwks_uri_override="https://keys.example/jwks")
    assert okta.jwks_uri == "https://keys.example/jwks"


def test_auth0_client_falls_back_to_requesting_app(monkeypatch):
    monkeypatch.delenv("AUTH0_CLIENT_ID", raising=False)
    monkeypatch.setenv("AUTH0_REQUESTING_APP_CLIENT_ID", "fallback-client")
    monkeypatch.setenv("AUTH0_DOMAIN", "tenant.auth0.com")

    auth0 = Auth0Settings.from_env()

    assert auth0.client_id == "fallback-client"
    assert auth0.token_endpoint == "https://tenant.auth0.com/oauth/token"
    assert auth0.me_resource == "https://tenant.auth0.com/me/"


def test_auth0_profiles():
    auth0 = Auth0Settings(
        domain="https://tenant.auth0.com",
        resource="https://api.finance.example",
        salesforce_resource="https://acme.my.salesforce.com",
    )

    assert auth0.profile() == ("https://api.finance.example", "finance:read")
    assert auth0.profile("financial") == ("https://api.finance.example", "finance:read")
    assert auth0.profile("salesforce") == ("https://acme.my.salesforce.com", "salesforce:read")
    assert auth0.profile("me") == ("https://tenant.auth0.com/me/", "create:me:connected_accounts")
    with pytest.raises(ValueError):
        auth0.profile("crm")


def test_gateway_hostname_strips_scheme():
    gateway = GatewaySettings(salesforce_domain="https://acme.my.salesforce.com/")
    assert gateway.salesforce_hostname == "acme.my.salesforce.com"


def test_gateway_mode_flag(monkeypatch):
    monkeypatch.setenv("GATEWAY_MODE", "TRUE")
    assert GatewaySettings.from_env().enabled is True
    monkeypatch.setenv("GATEWAY_MODE", "yes")
    assert GatewaySettings.from_env().enabled is False


def test_secure_cookies_only_in_production():
    assert Settings(environment="production").secure_cookies is True
    assert Settings().secure_cookies is False


def test_require():
    assert require("value", "NAME") == "value"
    with pytest.raises(ConfigurationError, match="AUTH0_AUDIENCE environment variable not configured"):
        require("", "AUTH0_AUDIENCE")


def test_validate_okta_config(settings):
    validate_okta_config(settings)
    with pytest.raises(ConfigurationError, match="OKTA_ORG_DOMAIN"):
        validate_okta_config(Settings())


def test_load_private_jwk_from_gen_keys_layout(tmp_path, private_jwk):
    jwk = {k: v for k, v in private_jwk.items() if k != "kid"}
    path = tmp_path / "signer_keys.json"
    path.write_text(json.dumps({"private_jwk": jwk, "kid": "file-kid"}))

    loaded = OktaSettings(private_key_path=str(path)).load_private_jwk()

    assert loaded["kid"] == "file-kid"
    assert loaded["kty"] == "RSA"


def test_load_private_jwk_errors(tmp_path):
    with pytest.raises(ConfigurationError, match="not found"):
        OktaSettings(private_key_path=str(tmp_path / "missing.json")).load_private_jwk()
    with pytest.raises(ConfigurationError, match="not valid JSON"):
        OktaSettings(private_key_jwk="{nope").load_private_jwk()
    with pytest.raises(ConfigurationError, match="no kid"):
        OktaSettings(private_key_jwk=json.dumps({"kty": "RSA"})).load_private_jwk()


def test_app_base_url_from_env(monkeypatch):
    monkeypatch.setenv("APP_BASE_URL", "https://broker.example.com/")
    assert Settings.from_env().base_url == "https://broker.example.com"

    monkeypatch.delenv("APP_BASE_URL")
    assert Settings.from_env().base_url == ""
