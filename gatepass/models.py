"""
=============================================================================
GATEPASS - DJANGO MODELS
Gated Community Visitor Access
=============================================================================

ARCHITECTURE OVERVIEW:
  Core Modules:
    1.  Users (residents, guards, administrators)
    2.  Access Credentials (single-use visitor passes)
    3.  Access Events (one per confirmed entry)
    4.  Audit Trail

State of an AccessCredential only ever moves forward:
    unused -> used       (guard confirms entry)
    unused -> expired    (deadline passed, detected on validation)
Both "used" and "expired" are terminal. Rows are never deleted.
=============================================================================
"""

import uuid
from datetime import timedelta

from django.conf import settings
from django.contrib.auth.models import AbstractUser
from django.db import models
from django.utils import timezone


# ---------------------------------------------------------------------------
# UTILITY MIXINS
# ---------------------------------------------------------------------------

class TimeStampedModel(models.Model):
    """Abstract base with created/updated timestamps."""
    created_at = models.DateTimeField(default=timezone.now, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


class UUIDModel(models.Model):
    """Abstract base using UUID primary key for external-safe IDs."""
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    class Meta:
        abstract = True


# ---------------------------------------------------------------------------
# 1. USERS
# ---------------------------------------------------------------------------

class User(AbstractUser):
    """
    Resident, guard or administrator.

    Local users are provisioned with a login handle (``username``) and a
    password hash. Federated users are created on first provider login, keyed
    by the provider's ``subject``, and carry neither handle nor usable password.
    """
    RESIDENT = "resident"
    GUARD = "guard"
    ADMINISTRATOR = "administrator"
    ROLE_CHOICES = [
        (RESIDENT, "Resident"),
        (GUARD, "Guard"),
        (ADMINISTRATOR, "Administrator"),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    username = models.CharField(
        max_length=150, unique=True, null=True, blank=True,
        help_text="Login handle. Empty for federated users.",
    )
    subject = models.CharField(
        max_length=255, unique=True, null=True, blank=True,
        help_text="Identity provider subject claim (federated users only)",
    )
    role = models.CharField(max_length=20, choices=ROLE_CHOICES, default=RESIDENT)
    role_selected = models.BooleanField(
        default=False, help_text="Role has been fixed (self-service selection is one-shot)"
    )
    profile_image_url = models.URLField(max_length=500, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["last_name", "first_name"]

    def __str__(self):
        return f"{self.display_name} ({self.role})"

    @property
    def display_name(self):
        return self.get_full_name() or self.username or self.email or str(self.id)

    @property
    def is_federated(self):
        return bool(self.subject)


# ---------------------------------------------------------------------------
# 2. ACCESS CREDENTIALS
# ---------------------------------------------------------------------------

def default_expiry():
    hours = settings.GATEPASS["CREDENTIAL_TTL_HOURS"]
    return timezone.now() + timedelta(hours=hours)


class AccessCredential(UUIDModel, TimeStampedModel):
    """
    A time-boxed, single-use visitor pass issued by a resident.

    ``token`` is the payload encoded into the QR image, ``password`` is the
    short code the visitor can read out to the guard instead.
    """
    UNUSED = "unused"
    USED = "used"
    EXPIRED = "expired"
    STATE_CHOICES = [
        (UNUSED, "Unused"),
        (USED, "Used"),
        (EXPIRED, "Expired"),
    ]
    TERMINAL_STATES = (USED, EXPIRED)

    GUEST = "guest"
    SUPPLIER = "supplier"
    SERVICE_PROVIDER = "service_provider"
    VISITOR_TYPE_CHOICES = [
        (GUEST, "Guest"),
        (SUPPLIER, "Supplier"),
        (SERVICE_PROVIDER, "Service provider"),
    ]

    token = models.CharField(max_length=64, unique=True)
    password = models.CharField(max_length=9, unique=True)
    visitor_name = models.CharField(max_length=200)
    visitor_type = models.CharField(max_length=20, choices=VISITOR_TYPE_CHOICES)
    note = models.TextField(blank=True)
    issuer = models.ForeignKey(
        User, on_delete=models.PROTECT, related_name="issued_credentials"
    )
    expires_at = models.DateTimeField(default=default_expiry)
    state = models.CharField(max_length=10, choices=STATE_CHOICES, default=UNUSED)
    consumed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["issuer", "created_at"], name="gatepass_ac_issuer__1d6c2b_idx"),
            models.Index(fields=["state", "expires_at"], name="gatepass_ac_state_4f0a9e_idx"),
        ]

    def __str__(self):
        return f"{self.visitor_name} [{self.password}] {self.state}"

    def is_past_deadline(self, now=None):
        return (now or timezone.now()) > self.expires_at

    def effective_state(self, now=None):
        """State as a reader should see it; overdue unused passes read as expired."""
        if self.state == self.UNUSED and self.is_past_deadline(now):
            return self.EXPIRED
        return self.state


# ---------------------------------------------------------------------------
# 3. ACCESS EVENTS
# ---------------------------------------------------------------------------

class AccessEvent(UUIDModel, TimeStampedModel):
    """
    One confirmed entry through the gate.
    Written in the same transaction that marks its credential used.
    Immutable after creation.
    """
    ON_FOOT = "on_foot"
    VEHICLE = "vehicle"
    ENTRY_MODE_CHOICES = [
        (ON_FOOT, "On foot"),
        (VEHICLE, "Vehicle"),
    ]

    credential = models.OneToOneField(
        AccessCredential, on_delete=models.PROTECT, related_name="access_event"
    )
    guard = models.ForeignKey(User, on_delete=models.PROTECT, related_name="access_events")
    entry_mode = models.CharField(max_length=10, choices=ENTRY_MODE_CHOICES)
    vehicle_plates = models.CharField(max_length=20, null=True, blank=True)
    note = models.TextField(blank=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self):
        return f"{self.entry_mode} @ {self.created_at} ({self.credential.visitor_name})"


# ---------------------------------------------------------------------------
# 4. AUDIT TRAIL
# ---------------------------------------------------------------------------

class AuditLog(UUIDModel, TimeStampedModel):
    """
    Immutable log of every significant action in the system.
    Used for accountability at the gate.
    """
    ACTION_TYPES = [
        ("CREATE", "Created"),
        ("UPDATE", "Updated"),
        ("LOGIN", "Login"),
        ("LOGOUT", "Logout"),
        ("CHECKIN", "Checked In"),
        ("ROLE_SELECTED", "Role Selected"),
        ("PASSWORD_RESET", "Password Reset"),
    ]

    user = models.ForeignKey(User, on_delete=models.SET_NULL, null=True)
    action = models.CharField(max_length=30, choices=ACTION_TYPES)
    model_name = models.CharField(max_length=100, help_text="Django model name")
    object_id = models.CharField(max_length=100, blank=True)
    description = models.TextField()
    ip_address = models.GenericIPAddressField(null=True, blank=True)
    user_agent = models.TextField(blank=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [models.Index(fields=["model_name", "object_id"], name="gatepass_au_model_n_8b3e51_idx")]

    def __str__(self):
        return f"{self.action} by {self.user} on {self.model_name}:{self.object_id}"
