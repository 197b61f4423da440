"""
=============================================================================
GATEPASS — store.py
=============================================================================
Persistence facade over the Django ORM.

The engine never touches querysets directly; everything it needs from the
database goes through CredentialStore so the transactional guarantees live
in one place:
  - create_credential() raises UniqueConstraint on password/token collision
  - compare_and_set_credential_state() is a single conditional UPDATE and
    returns the affected row count (0 means a lost race, not an error)
  - any other database failure surfaces as StoreUnavailable and is never
    retried here

Statement and connect timeouts are configured on the connection itself
(see DATABASES in gatepass_site/settings.py).
=============================================================================
"""

import functools
import logging
from datetime import timedelta

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import DatabaseError, IntegrityError, transaction
from django.db.models import Q
from django.utils import timezone

from .exceptions import StoreUnavailable, UniqueConstraint
from .models import AccessCredential, AccessEvent, User

logger = logging.getLogger(__name__)


def _guarded(method):
    """Translate driver failures into StoreUnavailable."""

    @functools.wraps(method)
    def wrapper(*args, **kwargs):
        try:
            return method(*args, **kwargs)
        except IntegrityError:
            raise
        except DatabaseError as exc:
            logger.error("Store call %s failed: %s", method.__name__, exc)
            raise StoreUnavailable() from exc

    return wrapper


class CredentialStore:

    # -------------------------------------------------------------------------
    # Users
    # -------------------------------------------------------------------------

    @_guarded
    def get_user_by_id(self, user_id):
        try:
            return User.objects.filter(pk=user_id).first()
        except (ValueError, DjangoValidationError):
            return None

    @_guarded
    def get_user_by_handle(self, handle):
        if not handle:
            return None
        return User.objects.filter(username=handle).first()

    @_guarded
    def upsert_user(self, subject, claims):
        """
        Create or refresh a federated user from provider claims.
        Role and role_selected are only set on first sight.
        """
        profile = {
            "email": claims.get("email") or "",
            "first_name": claims.get("first_name") or claims.get("given_name") or "",
            "last_name": claims.get("last_name") or claims.get("family_name") or "",
            "profile_image_url": claims.get("profile_image_url") or claims.get("picture") or "",
        }
        with transaction.atomic():
            user = User.objects.select_for_update().filter(subject=subject).first()
            if user is None:
                user = User(subject=subject, role=User.RESIDENT, **profile)
                user.set_unusable_password()
                user.save()
                logger.info("Provisioned federated user %s", user.id)
                return user
            for field, value in profile.items():
                setattr(user, field, value)
            user.save(update_fields=list(profile) + ["updated_at"])
        return user

    @_guarded
    def set_user_role(self, user_id, role):
        """One-shot role selection. Returns affected rows (0 = already selected)."""
        return User.objects.filter(pk=user_id, role_selected=False).update(
            role=role, role_selected=True, updated_at=timezone.now()
        )

    @_guarded
    def create_local_user(self, handle, password, role, first_name="", last_name=""):
        user = User(
            username=handle, first_name=first_name, last_name=last_name,
            role=role, role_selected=True,
        )
        user.set_password(password)
        try:
            with transaction.atomic():
                user.save()
        except IntegrityError as exc:
            raise UniqueConstraint(f"Handle '{handle}' already exists.") from exc
        return user

    @_guarded
    def reset_password(self, user_id, new_password):
        user = User.objects.filter(pk=user_id).first()
        if user is None:
            return None
        user.set_password(new_password)
        user.save(update_fields=["password", "updated_at"])
        return user

    @_guarded
    def list_users(self):
        return list(User.objects.order_by("-created_at"))

    # -------------------------------------------------------------------------
    # Credentials
    # -------------------------------------------------------------------------

    @_guarded
    def create_credential(self, **fields):
        try:
            with transaction.atomic():
                return AccessCredential.objects.create(**fields)
        except IntegrityError as exc:
            raise UniqueConstraint(str(exc)) from exc

    @_guarded
    def get_credential(self, credential_id):
        try:
            return (
                AccessCredential.objects.select_related("issuer")
                .filter(pk=credential_id).first()
            )
        except (ValueError, DjangoValidationError):
            return None

    @_guarded
    def get_credential_by_password(self, password):
        return (
            AccessCredential.objects.select_related("issuer")
            .filter(password=password).first()
        )

    @_guarded
    def get_credential_by_token(self, token):
        return (
            AccessCredential.objects.select_related("issuer")
            .filter(token=token).first()
        )

    @_guarded
    def list_credentials_by_issuer(self, user_id):
        return list(
            AccessCredential.objects.filter(issuer_id=user_id).order_by("-created_at")
        )

    @_guarded
    def list_all_credentials(self):
        return list(
            AccessCredential.objects.select_related("issuer").order_by("-created_at")
        )

    @_guarded
    def compare_and_set_credential_state(self, credential_id, expected, new, timestamp,
                                         live_at=None, overdue_at=None):
        """
        UPDATE ... SET state=new WHERE id=credential_id AND state=expected.

        ``live_at`` additionally requires the deadline not to have passed at
        that instant, ``overdue_at`` requires it to have passed. Returns the
        number of rows changed.
        """
        qs = AccessCredential.objects.filter(pk=credential_id, state=expected)
        if live_at is not None:
            qs = qs.filter(expires_at__gte=live_at)
        if overdue_at is not None:
            qs = qs.filter(expires_at__lt=overdue_at)
        changes = {"state": new, "updated_at": timestamp}
        if new == AccessCredential.USED:
            changes["consumed_at"] = timestamp
        return qs.update(**changes)

    # -------------------------------------------------------------------------
    # Access events
    # -------------------------------------------------------------------------

    @_guarded
    def append_access_event(self, **fields):
        return AccessEvent.objects.create(**fields)

    @_guarded
    def list_recent_access_events(self, window_days):
        since = timezone.now() - timedelta(days=window_days)
        return list(
            AccessEvent.objects.select_related("credential", "credential__issuer", "guard")
            .filter(created_at__gte=since)
            .order_by("-created_at")
        )

    @_guarded
    def compute_dashboard_counters(self, as_of=None):
        now = as_of or timezone.now()
        start_of_day = timezone.localtime(now).replace(hour=0, minute=0, second=0, microsecond=0)
        week_ago = now - timedelta(days=7)
        return {
            "accesses_today": AccessEvent.objects.filter(
                created_at__gte=start_of_day, created_at__lte=now
            ).count(),
            "active_codes": AccessCredential.objects.filter(
                state=AccessCredential.UNUSED, expires_at__gte=now
            ).count(),
            "codes_used_this_week": AccessCredential.objects.filter(
                Q(state=AccessCredential.USED) & Q(consumed_at__gte=week_ago)
            ).count(),
            "total_accesses": AccessEvent.objects.count(),
        }
