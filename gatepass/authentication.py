"""
=============================================================================
GATEPASS — authentication.py
=============================================================================
Dual-path identity resolution for every API request.

    Authorization: Bearer <jwt>   → BearerIdentity   (stateless, 7-day token)
    session cookie                → SessionIdentity  (federated or local)
    neither                       → UNRESOLVED

A bearer header is a definitive attempt: a bad or expired token fails the
request with 401 even if a valid session cookie is also present.

Session records look like
    {"user_id", "handle", "role", "kind": "local"}
    {"user_id", "handle", "role", "kind": "federated",
     "access_token", "refresh_token", "expires_at"}
Records without "expires_at" are accepted as-is. Federated records past
"expires_at" are refreshed against the provider in place; a failed refresh
drops the session and fails with 401.
=============================================================================
"""

import logging
import time
from dataclasses import dataclass, field

from django.apps import apps
from django.contrib.auth import SESSION_KEY as DJANGO_AUTH_SESSION_KEY
from django.contrib.auth import get_user as get_django_session_user
from rest_framework.authentication import SessionAuthentication, get_authorization_header
from rest_framework_simplejwt.exceptions import TokenError
from rest_framework_simplejwt.tokens import AccessToken

from .exceptions import Unauthorized
from .federation import FederationError
from .store import CredentialStore

logger = logging.getLogger(__name__)

IDENTITY_SESSION_KEY = "gatepass_identity"
BEARER_KEYWORD = b"bearer"


# =============================================================================
# IDENTITY UNION
# =============================================================================

@dataclass(frozen=True)
class BearerIdentity:
    claims: dict = field(default_factory=dict)

    @property
    def user_id(self):
        return self.claims.get("user_id")

    @property
    def handle(self):
        return self.claims.get("handle")

    @property
    def role(self):
        return self.claims.get("role")

    kind = "bearer"


@dataclass(frozen=True)
class SessionIdentity:
    record: dict = field(default_factory=dict)

    @property
    def user_id(self):
        return self.record.get("user_id")

    @property
    def handle(self):
        return self.record.get("handle")

    @property
    def role(self):
        return self.record.get("role")

    @property
    def federated(self):
        return "expires_at" in self.record

    kind = "session"


class _Unresolved:
    kind = "unresolved"
    role = None

    def __repr__(self):
        return "UNRESOLVED"


UNRESOLVED = _Unresolved()


# =============================================================================
# BEARER TOKENS
# =============================================================================

def mint_bearer_token(user):
    """Signed access token carrying id, handle and role. Lifetime from SIMPLE_JWT."""
    token = AccessToken.for_user(user)
    token["handle"] = user.username
    token["role"] = user.role
    return token


def read_bearer_token(raw):
    try:
        token = AccessToken(raw)
    except TokenError as exc:
        logger.info("Rejected bearer token: %s", exc)
        raise Unauthorized() from exc
    claims = dict(token.payload)
    if not claims.get("user_id") or not claims.get("role"):
        raise Unauthorized()
    return BearerIdentity(claims)


def _bearer_credentials(request):
    """Raw token if the request carries a bearer header, else None."""
    parts = get_authorization_header(request).split()
    if not parts or parts[0].lower() != BEARER_KEYWORD:
        return None
    if len(parts) != 2:
        raise Unauthorized()
    try:
        return parts[1].decode()
    except UnicodeError as exc:
        raise Unauthorized() from exc


# =============================================================================
# SESSIONS
# =============================================================================

def session_record(user, tokens=None):
    record = {
        "user_id": str(user.id),
        "handle": user.username,
        "role": user.role,
        "kind": "federated" if tokens else "local",
    }
    if tokens is not None:
        record.update({
            "access_token": tokens.access_token,
            "refresh_token": tokens.refresh_token,
            "expires_at": tokens.expires_at,
        })
    return record


def establish_session(request, user, tokens=None):
    request.session.cycle_key()
    request.session[IDENTITY_SESSION_KEY] = session_record(user, tokens)


def update_session_role(request, role):
    record = request.session.get(IDENTITY_SESSION_KEY)
    if record:
        record["role"] = role
        request.session[IDENTITY_SESSION_KEY] = record


def end_session(request):
    request.session.flush()


def federation_client():
    return apps.get_app_config("gatepass").federation


def _refresh_federated(request, record):
    client = federation_client()
    if client is None:
        raise FederationError("Federation is not configured")
    tokens = client.refresh(record.get("refresh_token"))
    record.update({
        "access_token": tokens.access_token,
        "refresh_token": tokens.refresh_token,
        "expires_at": tokens.expires_at,
    })
    request.session[IDENTITY_SESSION_KEY] = record
    logger.info("Refreshed federated session for %s", record.get("user_id"))
    return record


def _session_identity(request):
    session = getattr(request, "session", None)
    if session is None:
        return UNRESOLVED

    record = session.get(IDENTITY_SESSION_KEY)
    if record is None:
        # Staff signed in through the Django admin get a local session.
        if DJANGO_AUTH_SESSION_KEY not in session:
            return UNRESOLVED
        user = get_django_session_user(request._request)
        if not user.is_authenticated:
            return UNRESOLVED
        return SessionIdentity(session_record(user))

    if "expires_at" not in record:
        return SessionIdentity(record)

    if int(time.time()) <= int(record["expires_at"]):
        return SessionIdentity(record)

    try:
        record = _refresh_federated(request, dict(record))
    except FederationError as exc:
        logger.info("Federated session refresh failed for %s: %s", record.get("user_id"), exc)
        end_session(request)
        raise Unauthorized() from exc
    return SessionIdentity(record)


def resolve_identity(request):
    raw = _bearer_credentials(request)
    if raw is not None:
        return read_bearer_token(raw)
    return _session_identity(request)


# =============================================================================
# DRF AUTHENTICATION CLASS
# =============================================================================

class DualModeAuthentication(SessionAuthentication):
    """
    Bearer token first, session cookie second.

    request.user  → gatepass.models.User
    request.auth  → BearerIdentity | SessionIdentity (role lives here)
    """

    store_class = CredentialStore

    def authenticate(self, request):
        identity = resolve_identity(request)

        if isinstance(identity, BearerIdentity):
            pass
        elif isinstance(identity, SessionIdentity):
            self.enforce_csrf(request)
        elif identity is UNRESOLVED:
            return None
        else:
            raise TypeError(f"Unknown identity {identity!r}")

        user = self.store_class().get_user_by_id(identity.user_id)
        if user is None or not user.is_active:
            raise Unauthorized()
        return user, identity

    def authenticate_header(self, request):
        return 'Bearer realm="api"'
