from dataclasses import replace
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from gatepass.federation import FederationClient, FederationConfig, FederationError, TokenSet

from .conftest import ISSUER


def test_config_requires_issuer_and_client_id():
    assert FederationConfig.from_settings(None) is None
    assert FederationConfig.from_settings({"ISSUER_URL": ISSUER}) is None
    assert FederationConfig.from_settings({"CLIENT_ID": "gatepass"}) is None


def test_config_from_settings():
    config = FederationConfig.from_settings({
        "ISSUER_URL": f"{ISSUER}/", "CLIENT_ID": "gatepass", "DISCOVERY_CACHE_TTL": 60,
    })
    assert config.issuer_url == ISSUER
    assert config.discovery_cache_ttl == 60.0
    assert config.scopes == "openid email profile offline_access"


class TestDiscovery:

    def test_is_cached(self, federation, provider):
        federation.authorization_url("s1", "n1")
        federation.authorization_url("s2", "n2")
        assert provider.paths().count("/.well-known/openid-configuration") == 1

    def test_refetched_after_ttl(self, federation, provider):
        client = FederationClient(replace(federation.config, discovery_cache_ttl=0),
                                  transport=httpx.MockTransport(provider))
        client.discovery()
        client.discovery()
        assert provider.paths().count("/.well-known/openid-configuration") == 2

    def test_unreachable_provider(self, federation):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = FederationClient(federation.config, transport=httpx.MockTransport(refuse))
        with pytest.raises(FederationError):
            client.discovery()

    @pytest.mark.parametrize("endpoint, call", [
        ("authorization_endpoint", lambda client: client.authorization_url("s", "n")),
        ("token_endpoint", lambda client: client.exchange_code("abc")),
        ("token_endpoint", lambda client: client.refresh("rt-1")),
        ("userinfo_endpoint", lambda client: client.userinfo("at-2")),
    ])
    def test_missing_endpoint(self, federation, provider, endpoint, call):
        del provider.document[endpoint]
        with pytest.raises(FederationError, match=f"lacks {endpoint}"):
            call(federation)


class TestFlows:

    def test_authorization_url(self, federation):
        url = urlparse(federation.authorization_url("the-state", "the-nonce"))
        query = parse_qs(url.query)
        assert f"{url.scheme}://{url.netloc}{url.path}" == f"{ISSUER}/authorize"
        assert query["state"] == ["the-state"]
        assert query["client_id"] == ["gatepass"]
        assert query["response_type"] == ["code"]

    def test_exchange_code(self, federation, provider):
        tokens = federation.exchange_code("abc")
        assert tokens.access_token == "at-2"
        assert tokens.refresh_token == "rt-2"
        sent = parse_qs(provider.requests[-1].content.decode())
        assert sent["grant_type"] == ["authorization_code"]
        assert sent["code"] == ["abc"]
        assert sent["client_secret"] == ["s3cret"]

    def test_refresh_keeps_previous_refresh_token(self, federation, provider):
        provider.token_payload = {"access_token": "at-3", "expires_in": 60}
        tokens = federation.refresh("rt-1")
        assert tokens.access_token == "at-3"
        assert tokens.refresh_token == "rt-1"

    def test_refresh_requires_token(self, federation):
        with pytest.raises(FederationError):
            federation.refresh("")

    def test_rejected_grant(self, federation, provider):
        provider.token_status = 400
        with pytest.raises(FederationError):
            federation.refresh("rt-1")

    def test_userinfo(self, federation):
        assert federation.userinfo("at-2")["sub"] == "idp|42"

    def test_userinfo_without_subject(self, federation, provider):
        provider.userinfo_payload = {"email": "nobody@example.test"}
        with pytest.raises(FederationError):
            federation.userinfo("at-2")

    def test_end_session_url(self, federation):
        url = federation.end_session_url("http://testserver/")
        assert url.startswith(f"{ISSUER}/logout?")


def test_token_set_defaults_expiry(monkeypatch):
    monkeypatch.setattr("gatepass.federation.time.time", lambda: 1000)
    tokens = TokenSet.from_response({"access_token": "a"})
    assert tokens.expires_at == 1000 + 3600
    assert tokens.refresh_token == ""


def test_token_set_requires_access_token():
    with pytest.raises(FederationError):
        TokenSet.from_response({"refresh_token": "r"})
