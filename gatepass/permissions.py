"""
Role → capability lattice and the DRF permission classes built on it.

    administrator ⊇ guard ∪ resident
    guard and resident are incomparable

Both authentication paths hand over a role; nothing here cares which path
produced it.
"""

from django.conf import settings
from django.utils.crypto import constant_time_compare
from rest_framework.permissions import BasePermission

from .models import User

ISSUE_CREDENTIAL = "issue_credential"
LIST_OWN_CREDENTIALS = "list_own_credentials"
VALIDATE_CREDENTIAL = "validate_credential"
CONFIRM_ACCESS = "confirm_access"
LIST_ACCESS_EVENTS = "list_access_events"
VIEW_DASHBOARD = "view_dashboard"
MANAGE_USERS = "manage_users"
LIST_ALL_CREDENTIALS = "list_all_credentials"

RESIDENT_CAPABILITIES = frozenset({ISSUE_CREDENTIAL, LIST_OWN_CREDENTIALS})
GUARD_CAPABILITIES = frozenset({VALIDATE_CREDENTIAL, CONFIRM_ACCESS})
ADMIN_ONLY_CAPABILITIES = frozenset({
    LIST_ACCESS_EVENTS, VIEW_DASHBOARD, MANAGE_USERS, LIST_ALL_CREDENTIALS,
})

CAPABILITIES = {
    User.RESIDENT: RESIDENT_CAPABILITIES,
    User.GUARD: GUARD_CAPABILITIES,
    User.ADMINISTRATOR: RESIDENT_CAPABILITIES | GUARD_CAPABILITIES | ADMIN_ONLY_CAPABILITIES,
}


def has_capability(role, capability):
    return capability in CAPABILITIES.get(role, frozenset())


class RequiresCapability(BasePermission):
    """
    Grants access when the resolved identity's role carries ``capability``.
    Subclasses only set the capability.
    """
    capability = None
    message = "Forbidden: insufficient role."

    def required_capability(self, request):
        return self.capability

    def has_permission(self, request, view):
        user = request.user
        if not user or not user.is_authenticated:
            return False
        return has_capability(getattr(request.auth, "role", None), self.required_capability(request))


class ByMethod(RequiresCapability):
    """For list_create views: a different capability per HTTP method."""
    method_capabilities = {}

    def required_capability(self, request):
        return self.method_capabilities.get(request.method)


class CanValidateCredentials(RequiresCapability):
    capability = VALIDATE_CREDENTIAL
    message = "Forbidden: guard or administrator access required."


class CanViewDashboard(RequiresCapability):
    capability = VIEW_DASHBOARD
    message = "Forbidden: administrator access required."


class CanManageUsers(RequiresCapability):
    capability = MANAGE_USERS
    message = "Forbidden: administrator access required."


class CanListAllCredentials(RequiresCapability):
    capability = LIST_ALL_CREDENTIALS
    message = "Forbidden: administrator access required."


class CredentialAccess(ByMethod):
    method_capabilities = {"GET": LIST_OWN_CREDENTIALS, "POST": ISSUE_CREDENTIAL}
    message = "Forbidden: resident or administrator access required."


class AccessEventAccess(ByMethod):
    method_capabilities = {"GET": LIST_ACCESS_EVENTS, "POST": CONFIRM_ACCESS}

    def has_permission(self, request, view):
        self.message = (
            "Forbidden: guard or administrator access required."
            if request.method == "POST"
            else "Forbidden: administrator access required."
        )
        return super().has_permission(request, view)


class UserProvisioning(CanManageUsers):
    """
    Administrators manage users. POST also accepts the bootstrap password
    from GATEPASS["ADMIN_BOOTSTRAP_PASSWORD"] when one is configured, so the
    first administrator can be provisioned.
    """

    def has_permission(self, request, view):
        if request.method == "POST" and bootstrap_password_matches(request.data.get("admin_password")):
            return True
        return super().has_permission(request, view)


def bootstrap_password_matches(candidate):
    expected = settings.GATEPASS.get("ADMIN_BOOTSTRAP_PASSWORD")
    if not expected or not candidate:
        return False
    return constant_time_compare(str(candidate), expected)
