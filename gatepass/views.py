"""
=============================================================================
GATEPASS — views.py  (Function-Based Views)
=============================================================================
Every endpoint is a plain @api_view FBV using DRF.

Identity comes from gatepass.authentication.DualModeAuthentication
(bearer token or session cookie); role checks come from the capability
classes in gatepass.permissions and run before any view body.

Return format (all endpoints):
    Success → {"success": True, "data": {...}, "message": "..."}
    Error   → {"success": False, "error": "...", "details": {...}}
Errors raised as GatePassError subclasses are rendered in the same envelope
by gatepass.exceptions.api_exception_handler.

Validation outcomes (not found / expired / already used) are normal 200
responses with data.valid == False; only confirm turns them into errors.
=============================================================================
"""

import logging
import secrets
from datetime import datetime
from datetime import timezone as dt_timezone

from django.conf import settings
from django.contrib.auth.hashers import make_password
from django.http import HttpResponseRedirect
from django.utils import timezone
from rest_framework import status
from rest_framework.decorators import api_view, authentication_classes, permission_classes
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response

from .authentication import (
    SessionIdentity,
    end_session,
    establish_session,
    federation_client,
    mint_bearer_token,
    update_session_role,
)
from .exceptions import ProviderUnavailable, Unauthorized, UniqueConstraint, ValidationError
from .federation import FederationError
from .lifecycle import CredentialLifecycle
from .models import AuditLog, User
from .permissions import (
    AccessEventAccess,
    CanListAllCredentials,
    CanManageUsers,
    CanValidateCredentials,
    CanViewDashboard,
    CredentialAccess,
    UserProvisioning,
)
from .store import CredentialStore
from .validation import ValidationProtocol

logger = logging.getLogger(__name__)

OIDC_STATE_SESSION_KEY = "gatepass_oidc_state"
MIN_PASSWORD_LENGTH = 8
ROLES = dict(User.ROLE_CHOICES)


# =============================================================================
# HELPERS
# =============================================================================

def ok(data=None, message="Success", status_code=status.HTTP_200_OK):
    return Response({"success": True, "message": message, "data": data}, status=status_code)


def err(error, details=None, status_code=status.HTTP_400_BAD_REQUEST):
    return Response({"success": False, "error": error, "details": details}, status=status_code)


def paginate(items, request, to_dict, per_page=20):
    """Simple page-number pagination via ?page= and ?per_page=."""
    try:
        page = max(1, int(request.GET.get("page", 1)))
        per_page = max(1, min(100, int(request.GET.get("per_page", per_page))))
    except ValueError:
        page, per_page = 1, 20
    start = (page - 1) * per_page
    end = start + per_page
    total = len(items)
    return {
        "results": [to_dict(item) for item in items[start:end]],
        "pagination": {
            "total": total,
            "page": page,
            "per_page": per_page,
            "pages": (total + per_page - 1) // per_page,
            "has_next": end < total,
            "has_prev": page > 1,
        },
    }


def log_action(user, action, model_name, object_id, description, request=None):
    """Write to immutable AuditLog."""
    AuditLog.objects.create(
        user=user if user is not None and user.is_authenticated else None,
        action=action,
        model_name=model_name,
        object_id=str(object_id),
        description=description,
        ip_address=request.META.get("REMOTE_ADDR") if request else None,
        user_agent=request.META.get("HTTP_USER_AGENT", "")[:500] if request else "",
    )


# =============================================================================
# Inline serialiser helpers (lightweight dicts – no separate serializers.py needed)
# =============================================================================

def _user_dict(u):
    if not u:
        return None
    return {
        "id": str(u.id), "username": u.username,
        "first_name": u.first_name, "last_name": u.last_name,
        "full_name": u.get_full_name(), "email": u.email,
        "role": u.role, "role_selected": u.role_selected,
        "profile_image_url": u.profile_image_url or None,
        "created_at": u.created_at,
    }


def _person_dict(u):
    if not u:
        return None
    return {"first_name": u.first_name, "last_name": u.last_name}


def _credential_dict(c, secrets_included=False):
    d = {
        "id": str(c.id),
        "visitor_name": c.visitor_name,
        "visitor_type": c.visitor_type,
        "note": c.note,
        "state": c.effective_state(),
        "created_at": c.created_at,
        "expires_at": c.expires_at,
        "consumed_at": c.consumed_at,
    }
    if secrets_included:
        d["password"] = c.password
        d["token"] = c.token
    return d


def _admin_credential_dict(c):
    d = _credential_dict(c)
    d["issuer"] = _person_dict(c.issuer)
    return d


def _event_dict(e):
    c = e.credential
    return {
        "id": str(e.id),
        "accessed_at": e.created_at,
        "entry_mode": e.entry_mode,
        "vehicle_plates": e.vehicle_plates,
        "note": e.note,
        "credential": {
            "id": str(c.id),
            "visitor_name": c.visitor_name,
            "visitor_type": c.visitor_type,
            "note": c.note,
            "issuer": _person_dict(c.issuer),
        },
        "guard": _person_dict(e.guard),
    }


# =============================================================================
# 1. SYSTEM
# =============================================================================

@api_view(["GET"])
@authentication_classes([])
@permission_classes([AllowAny])
def health_check(request):
    """GET /api/health/ — basic liveness probe."""
    return ok({"status": "ok", "timestamp": timezone.now()}, message="GatePass API is running.")


# =============================================================================
# 2. AUTHENTICATION
# =============================================================================

@api_view(["POST"])
@authentication_classes([])
@permission_classes([AllowAny])
def login_view(request):
    """
    POST /api/auth/login/
    Body: { "username": "...", "password": "..." }
    Returns: a 7-day bearer token + user profile. No server-side session.
    Unknown handle and wrong password answer identically.
    """
    username = str(request.data.get("username", "")).strip()
    password = str(request.data.get("password", ""))

    if not username or not password:
        return err("Username and password are required.")

    user = CredentialStore().get_user_by_handle(username)
    if user is None:
        # Burn a hash so response time does not reveal unknown handles.
        make_password(password)
        logger.info("Local login failed")
        return err("Invalid credentials.", status_code=status.HTTP_401_UNAUTHORIZED)

    if not user.has_usable_password() or not user.check_password(password) or not user.is_active:
        logger.info("Local login failed")
        return err("Invalid credentials.", status_code=status.HTTP_401_UNAUTHORIZED)

    token = mint_bearer_token(user)
    log_action(user, "LOGIN", "User", user.id, f"Local login from {request.META.get('REMOTE_ADDR')}", request)

    return ok({
        "token": str(token),
        "token_type": "Bearer",
        "expires_at": datetime.fromtimestamp(token["exp"], tz=dt_timezone.utc),
        "user": _user_dict(user),
    }, message="Login successful.")


@api_view(["GET"])
@authentication_classes([])
@permission_classes([AllowAny])
def oidc_login_view(request):
    """
    GET /api/auth/oidc/login/
    Redirects the browser to the identity provider.
    """
    client = federation_client()
    if client is None:
        raise ProviderUnavailable()

    state = secrets.token_urlsafe(24)
    nonce = secrets.token_urlsafe(24)
    request.session[OIDC_STATE_SESSION_KEY] = state
    try:
        url = client.authorization_url(state, nonce)
    except FederationError:
        raise ProviderUnavailable("Identity provider is unreachable.")
    return HttpResponseRedirect(url)


@api_view(["GET"])
@authentication_classes([])
@permission_classes([AllowAny])
def oidc_callback_view(request):
    """
    GET /api/auth/oidc/callback/?code=&state=
    Exchanges the code, upserts the user from provider claims and starts a
    cookie session. Redirects to role selection until a role is chosen.
    """
    client = federation_client()
    if client is None:
        raise ProviderUnavailable()

    expected_state = request.session.pop(OIDC_STATE_SESSION_KEY, None)
    state = request.GET.get("state")
    code = request.GET.get("code")
    if not expected_state or not state or not secrets.compare_digest(state, expected_state):
        logger.warning("OIDC callback with mismatched state")
        raise Unauthorized()
    if not code:
        raise Unauthorized()

    try:
        tokens = client.exchange_code(code)
        claims = client.userinfo(tokens.access_token)
    except FederationError as exc:
        logger.warning("OIDC callback failed: %s", exc)
        raise Unauthorized()

    user = CredentialStore().upsert_user(claims["sub"], claims)
    establish_session(request, user, tokens)
    log_action(user, "LOGIN", "User", user.id, "Federated login", request)

    conf = client.config
    return HttpResponseRedirect(conf.home_redirect if user.role_selected else conf.login_redirect)


@api_view(["POST"])
@permission_classes([IsAuthenticated])
def logout_view(request):
    """
    POST /api/auth/logout/
    Ends the cookie session. Bearer tokens cannot be revoked server-side;
    clients drop them and they lapse at their expiry.
    """
    identity = request.auth
    end_session_url = None
    if isinstance(identity, SessionIdentity) and identity.federated:
        client = federation_client()
        if client is not None:
            end_session_url = client.end_session_url(request.build_absolute_uri("/"))
    end_session(request)
    log_action(request.user, "LOGOUT", "User", request.user.id, "User logged out", request)
    return ok({"end_session_url": end_session_url}, message="Logged out successfully.")


@api_view(["GET"])
@permission_classes([IsAuthenticated])
def me_view(request):
    """GET /api/auth/me/ — current user profile."""
    data = _user_dict(request.user)
    data["auth"] = request.auth.kind
    return ok(data)


@api_view(["POST"])
@permission_classes([IsAuthenticated])
def set_role_view(request):
    """
    POST /api/auth/role/
    Body: { "role": "resident" | "guard" | "administrator" }
    One-shot self-service role selection after first federated login.
    """
    role = str(request.data.get("role", "")).strip().lower()
    if role not in ROLES:
        return err("Invalid role.", details={"allowed": list(ROLES)})

    changed = CredentialStore().set_user_role(request.user.id, role)
    if not changed:
        return err("Role has already been selected.", status_code=status.HTTP_409_CONFLICT)

    update_session_role(request, role)
    request.user.refresh_from_db()
    log_action(request.user, "ROLE_SELECTED", "User", request.user.id, f"Role set to {role}", request)
    return ok(_user_dict(request.user), message="Role updated.")


# =============================================================================
# 3. ACCESS CREDENTIALS
# =============================================================================

@api_view(["GET", "POST"])
@permission_classes([CredentialAccess])
def credential_list_create(request):
    """
    GET  /api/credentials/   → my credentials, newest first (no secrets)
    POST /api/credentials/   → issue a credential
         Body: { "visitor_name", "visitor_type", "note" }
         Returns the credential with its plaintext password and token.
    """
    lifecycle = CredentialLifecycle()
    if request.method == "GET":
        data = [_credential_dict(c) for c in lifecycle.list_for_issuer(request.user.id)]
        return ok(data)

    # POST
    credential = lifecycle.issue(
        request.user,
        request.data.get("visitor_name"),
        request.data.get("visitor_type"),
        request.data.get("note", ""),
    )
    log_action(request.user, "CREATE", "AccessCredential", credential.id,
               f"Credential issued for {credential.visitor_name}", request)
    return ok(_credential_dict(credential, secrets_included=True),
              message="Credential created.", status_code=status.HTTP_201_CREATED)


@api_view(["GET"])
@permission_classes([CanListAllCredentials])
def credential_list_all(request):
    """GET /api/credentials/all/?page=&per_page= — every credential (administrators)."""
    items = CredentialLifecycle().list_all()
    return ok(paginate(items, request, _admin_credential_dict))


@api_view(["POST"])
@permission_classes([CanValidateCredentials])
def credential_validate(request):
    """
    POST /api/credentials/validate/
    Body: { "password": "ABCD-1234" }  or  { "token": "<qr payload>" }
    Read-only: tells the guard whether the credential may be used.
    """
    result = ValidationProtocol().validate(
        request.user,
        password=request.data.get("password"),
        token=request.data.get("token"),
    )
    return ok(result.as_dict(), message=result.message)


# =============================================================================
# 4. ACCESS EVENTS
# =============================================================================

@api_view(["GET", "POST"])
@permission_classes([AccessEventAccess])
def access_event_list_create(request):
    """
    GET  /api/access-events/?days=&page=&per_page=   → recent entries (administrators)
    POST /api/access-events/                          → confirm entry (guards)
         Body: { "credential_id", "entry_mode", "vehicle_plates", "note" }
    """
    store = CredentialStore()
    if request.method == "GET":
        try:
            days = int(request.GET.get("days", settings.GATEPASS["ACCESS_EVENT_WINDOW_DAYS"]))
        except ValueError:
            raise ValidationError("days must be an integer.")
        if days < 1:
            raise ValidationError("days must be at least 1.")
        events = store.list_recent_access_events(days)
        return ok(paginate(events, request, _event_dict, per_page=50))

    # POST
    credential_id = request.data.get("credential_id")
    if not credential_id:
        return err("credential_id is required.")

    event = ValidationProtocol(store).confirm(
        request.user,
        credential_id,
        request.data.get("entry_mode"),
        plates=request.data.get("vehicle_plates"),
        note=request.data.get("note"),
    )
    log_action(request.user, "CHECKIN", "AccessCredential", credential_id,
               f"Entry confirmed for {event.credential.visitor_name} ({event.entry_mode})", request)
    return ok(_event_dict(event), message="Access confirmed.", status_code=status.HTTP_201_CREATED)


# =============================================================================
# 5. DASHBOARD
# =============================================================================

@api_view(["GET"])
@permission_classes([CanViewDashboard])
def dashboard_stats(request):
    """GET /api/dashboard/ — counters for the administrator home screen."""
    return ok(CredentialStore().compute_dashboard_counters(timezone.now()))


# =============================================================================
# 6. USER MANAGEMENT
# =============================================================================

@api_view(["GET", "POST"])
@permission_classes([UserProvisioning])
def user_list_create(request):
    """
    GET  /api/users/   → all users (administrators)
    POST /api/users/   → provision a local user
         Body: { "username", "first_name", "last_name", "password", "role",
                 "admin_password" (only without an administrator identity) }
    """
    store = CredentialStore()
    if request.method == "GET":
        return ok(paginate(store.list_users(), request, _user_dict, per_page=50))

    # POST
    required = ["username", "first_name", "last_name", "password", "role"]
    for f in required:
        if not str(request.data.get(f, "")).strip():
            return err(f"Field '{f}' is required.")

    role = str(request.data["role"]).strip().lower()
    if role not in ROLES:
        return err("Invalid role.", details={"allowed": list(ROLES)})
    password = str(request.data["password"])
    if len(password) < MIN_PASSWORD_LENGTH:
        return err(f"Password must be at least {MIN_PASSWORD_LENGTH} characters.")

    username = str(request.data["username"]).strip()
    if store.get_user_by_handle(username):
        return err("Username already exists.")
    try:
        user = store.create_local_user(
            username, password, role,
            first_name=str(request.data["first_name"]).strip(),
            last_name=str(request.data["last_name"]).strip(),
        )
    except UniqueConstraint:
        return err("Username already exists.")

    log_action(request.user, "CREATE", "User", user.id, f"Local user {username} ({role})", request)
    return ok(_user_dict(user), message="User created.", status_code=status.HTTP_201_CREATED)


@api_view(["POST"])
@permission_classes([CanManageUsers])
def user_reset_password(request, user_id):
    """
    POST /api/users/<id>/reset-password/
    Body: { "new_password" }
    """
    new_password = str(request.data.get("new_password", ""))
    if not new_password:
        return err("New password is required.")
    if len(new_password) < MIN_PASSWORD_LENGTH:
        return err(f"Password must be at least {MIN_PASSWORD_LENGTH} characters.")

    user = CredentialStore().reset_password(user_id, new_password)
    if user is None:
        return err("User not found.", status_code=status.HTTP_404_NOT_FOUND)
    log_action(request.user, "PASSWORD_RESET", "User", user.id, "Password reset by administrator", request)
    return ok(_user_dict(user), message="Password reset successfully.")
