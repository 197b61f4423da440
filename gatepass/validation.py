"""
=============================================================================
GATEPASS — validation.py
=============================================================================
The two-step protocol guards run at the gate:

    validate  → read-only lookup, tells the guard who the visitor is
    confirm   → consumes the credential and logs the entry

Between the two calls another guard may confirm the same credential, so
confirm never trusts what validate saw. It issues a single conditional
UPDATE (state=unused AND deadline not passed → used) and only appends the
AccessEvent when that UPDATE changed a row, both inside one transaction.
The loser of a race sees zero rows and gets AlreadyConsumed.

Lookup order for validate:
    password given → normalized password, then the raw input as a token
    token given    → token only
=============================================================================
"""

import logging
from dataclasses import dataclass

from django.db import transaction
from django.utils import timezone

from .exceptions import AlreadyConsumed, Expired, MissingInput, NotFound, ValidationError
from .lifecycle import CredentialLifecycle
from .models import AccessCredential, AccessEvent
from .store import CredentialStore

logger = logging.getLogger(__name__)

NOT_FOUND = "not_found"
EXPIRED = "expired"
ALREADY_CONSUMED = "already_consumed"

MESSAGES = {
    NOT_FOUND: "Password or code not found.",
    EXPIRED: "This code has expired (its validity window has passed).",
    "used": "This access has already been used.",
    "expired_before": "This code has expired.",
}

ENTRY_MODES = dict(AccessEvent.ENTRY_MODE_CHOICES)
ENTRY_MODE_ALIASES = {
    "on-foot": AccessEvent.ON_FOOT,
    "pie": AccessEvent.ON_FOOT,
    "vehiculo": AccessEvent.VEHICLE,
}
PLATES_MAX = AccessEvent._meta.get_field("vehicle_plates").max_length


@dataclass
class ValidationResult:
    valid: bool
    reason: str = None
    message: str = ""
    credential: AccessCredential = None
    issuer: object = None

    def as_dict(self):
        data = {"valid": self.valid, "message": self.message}
        if not self.valid:
            data["reason"] = self.reason
            return data
        c = self.credential
        data["credential"] = {
            "id": str(c.id),
            "visitor_name": c.visitor_name,
            "visitor_type": c.visitor_type,
            "note": c.note,
            "created_at": c.created_at,
            "expires_at": c.expires_at,
            "issuer": {
                "first_name": self.issuer.first_name,
                "last_name": self.issuer.last_name,
            },
        }
        return data


def normalize_entry_mode(value):
    key = str(value or "").strip().lower()
    key = ENTRY_MODE_ALIASES.get(key, key)
    if key not in ENTRY_MODES:
        raise ValidationError(f"entry_mode must be one of: {', '.join(ENTRY_MODES)}.")
    return key


def _clean(value):
    if value is None:
        return ""
    return str(value).strip()


class ValidationProtocol:

    def __init__(self, store=None, lifecycle=None):
        self.store = store or CredentialStore()
        self.lifecycle = lifecycle or CredentialLifecycle(self.store)

    def _lookup(self, password, token):
        if password:
            credential = self.store.get_credential_by_password(password.upper())
            if credential is None:
                # Tokens are case-sensitive; retry with the input as typed.
                credential = self.store.get_credential_by_token(password)
            return credential
        return self.store.get_credential_by_token(token)

    def validate(self, guard, password=None, token=None, now=None):
        password, token = _clean(password), _clean(token)
        if not password and not token:
            raise MissingInput()

        credential = self._lookup(password, token)
        if credential is None:
            logger.info("Validation by %s: no match", guard.id)
            return ValidationResult(False, NOT_FOUND, MESSAGES[NOT_FOUND])

        now = now or timezone.now()
        if credential.state == AccessCredential.UNUSED and credential.is_past_deadline(now):
            self.lifecycle.mark_expired(credential.id, now=now)
            logger.info("Validation by %s: credential %s expired", guard.id, credential.id)
            return ValidationResult(False, EXPIRED, MESSAGES[EXPIRED])

        if credential.state != AccessCredential.UNUSED:
            logger.info(
                "Validation by %s: credential %s already %s", guard.id, credential.id, credential.state
            )
            key = "used" if credential.state == AccessCredential.USED else "expired_before"
            return ValidationResult(False, ALREADY_CONSUMED, MESSAGES[key])

        logger.info("Validation by %s: credential %s valid", guard.id, credential.id)
        return ValidationResult(
            True, message="Valid access.", credential=credential, issuer=credential.issuer
        )

    def confirm(self, guard, credential_id, entry_mode, plates=None, note=None, now=None):
        """
        Consume the credential and record the entry.

        Raises NotFound, Expired or AlreadyConsumed; never succeeds twice
        for the same credential.
        """
        mode = normalize_entry_mode(entry_mode)
        plates = _clean(plates).upper() or None
        if plates and len(plates) > PLATES_MAX:
            raise ValidationError(f"vehicle_plates must be at most {PLATES_MAX} characters.")

        credential = self.store.get_credential(credential_id)
        if credential is None:
            raise NotFound()

        now = now or timezone.now()
        with transaction.atomic():
            changed = self.store.compare_and_set_credential_state(
                credential.id, AccessCredential.UNUSED, AccessCredential.USED, now,
                live_at=now,
            )
            if changed:
                event = self.store.append_access_event(
                    credential=credential,
                    guard=guard,
                    entry_mode=mode,
                    vehicle_plates=plates,
                    note=_clean(note),
                    created_at=now,
                )
                logger.info("Credential %s consumed by %s (%s)", credential.id, guard.id, mode)
                return event

        # Lost the race, or the credential was never consumable.
        current = self.store.get_credential(credential.id)
        if current.state == AccessCredential.UNUSED and current.is_past_deadline(now):
            self.lifecycle.mark_expired(current.id, now=now)
            logger.info("Confirm by %s: credential %s expired", guard.id, current.id)
            raise Expired()
        if current.state == AccessCredential.EXPIRED:
            raise Expired()
        logger.warning("Confirm by %s: credential %s already consumed", guard.id, current.id)
        raise AlreadyConsumed()
