"""Shared fixtures: users per role, authenticated API clients, a mock provider."""

import httpx
import pytest
from django.apps import apps
from rest_framework.test import APIClient

from gatepass.authentication import mint_bearer_token
from gatepass.federation import FederationClient, FederationConfig
from gatepass.lifecycle import CredentialLifecycle
from gatepass.models import User
from gatepass.store import CredentialStore

ISSUER = "https://idp.example.test"


@pytest.fixture(autouse=True)
def gatepass_settings(settings):
    settings.PASSWORD_HASHERS = ["django.contrib.auth.hashers.MD5PasswordHasher"]
    settings.GATEPASS = {
        **settings.GATEPASS,
        "CREDENTIAL_RETRY_BACKOFF": 0,
        "ADMIN_BOOTSTRAP_PASSWORD": "bootstrap-secret",
    }
    return settings


@pytest.fixture
def store():
    return CredentialStore()


@pytest.fixture
def lifecycle(store):
    return CredentialLifecycle(store)


@pytest.fixture
def resident(db, store):
    return store.create_local_user("maria", "resident-pass", User.RESIDENT,
                                   first_name="María", last_name="López")


@pytest.fixture
def guard(db, store):
    return store.create_local_user("pedro", "guard-pass", User.GUARD,
                                   first_name="Pedro", last_name="Gómez")


@pytest.fixture
def admin_user(db, store):
    return store.create_local_user("admin", "admin-pass", User.ADMINISTRATOR,
                                   first_name="Ada", last_name="Admin")


def bearer_client(user):
    client = APIClient()
    client.credentials(HTTP_AUTHORIZATION=f"Bearer {mint_bearer_token(user)}")
    return client


@pytest.fixture
def anon_client():
    return APIClient()


@pytest.fixture
def resident_client(resident):
    return bearer_client(resident)


@pytest.fixture
def guard_client(guard):
    return bearer_client(guard)


@pytest.fixture
def admin_client(admin_user):
    return bearer_client(admin_user)


@pytest.fixture
def credential(lifecycle, resident):
    return lifecycle.issue(resident, "Ana Ruiz", "guest", "Dinner guest")


# -----------------------------------------------------------------------------
# Identity provider
# -----------------------------------------------------------------------------

class FakeProvider:
    """Answers discovery, token and userinfo requests; records what it saw."""

    def __init__(self):
        self.requests = []
        self.document = {
            "issuer": ISSUER,
            "authorization_endpoint": f"{ISSUER}/authorize",
            "token_endpoint": f"{ISSUER}/token",
            "userinfo_endpoint": f"{ISSUER}/userinfo",
            "end_session_endpoint": f"{ISSUER}/logout",
        }
        self.token_status = 200
        self.token_payload = {"access_token": "at-2", "refresh_token": "rt-2", "expires_in": 3600}
        self.userinfo_payload = {
            "sub": "idp|42", "email": "lucia@example.test",
            "given_name": "Lucía", "family_name": "Fernández",
        }

    def __call__(self, request):
        self.requests.append(request)
        path = request.url.path
        if path == "/.well-known/openid-configuration":
            return httpx.Response(200, json=self.document)
        if path == "/token":
            return httpx.Response(self.token_status, json=self.token_payload)
        if path == "/userinfo":
            return httpx.Response(200, json=self.userinfo_payload)
        return httpx.Response(404)

    def paths(self):
        return [r.url.path for r in self.requests]


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def federation(provider, monkeypatch):
    config = FederationConfig(
        issuer_url=ISSUER, client_id="gatepass", client_secret="s3cret",
        redirect_uri="http://testserver/api/auth/oidc/callback/",
    )
    client = FederationClient(config, transport=httpx.MockTransport(provider))
    monkeypatch.setattr(apps.get_app_config("gatepass"), "federation", client)
    return client
