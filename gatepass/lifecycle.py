"""
=============================================================================
GATEPASS — lifecycle.py
=============================================================================
Issuing and expiring visitor credentials.

Passwords and tokens are random; uniqueness is enforced by the database.
On a collision the pair is regenerated and the insert retried a bounded
number of times before giving up with Conflict.

Expiry is passive: nothing sweeps the table. A credential whose deadline has
passed stays "unused" in storage until the next validation attempt touches
it, at which point mark_expired() moves it to "expired".
=============================================================================
"""

import logging
import time
from datetime import timedelta

from django.conf import settings
from django.utils import timezone

from .exceptions import Conflict, UniqueConstraint, ValidationError
from .generators import gen_password, gen_token
from .models import AccessCredential
from .store import CredentialStore

logger = logging.getLogger(__name__)

VISITOR_TYPES = dict(AccessCredential.VISITOR_TYPE_CHOICES)
VISITOR_TYPE_ALIASES = {
    "service-provider": AccessCredential.SERVICE_PROVIDER,
    "visita": AccessCredential.GUEST,
    "proveedor": AccessCredential.SUPPLIER,
    "prestador": AccessCredential.SERVICE_PROVIDER,
}
VISITOR_NAME_MAX = AccessCredential._meta.get_field("visitor_name").max_length


def credential_ttl():
    return timedelta(hours=settings.GATEPASS["CREDENTIAL_TTL_HOURS"])


def normalize_visitor_type(value):
    key = str(value or "").strip().lower()
    key = VISITOR_TYPE_ALIASES.get(key, key)
    if key not in VISITOR_TYPES:
        raise ValidationError(
            f"visitor_type must be one of: {', '.join(VISITOR_TYPES)}.",
        )
    return key


class CredentialLifecycle:
    """Creates credentials and records their passive expiry."""

    def __init__(self, store=None):
        self.store = store or CredentialStore()

    def issue(self, issuer, visitor_name, visitor_type, note=""):
        """
        Persist a new "unused" credential for ``visitor_name``.

        The returned instance carries the plaintext password; this is the
        only response that hands it to the issuer.
        """
        name = str(visitor_name or "").strip()
        if not name:
            raise ValidationError("visitor_name is required.")
        if len(name) > VISITOR_NAME_MAX:
            raise ValidationError(f"visitor_name must be at most {VISITOR_NAME_MAX} characters.")
        kind = normalize_visitor_type(visitor_type)

        conf = settings.GATEPASS
        attempts = conf["CREDENTIAL_GENERATION_ATTEMPTS"]
        backoff = conf["CREDENTIAL_RETRY_BACKOFF"]

        for attempt in range(1, attempts + 1):
            now = timezone.now()
            try:
                credential = self.store.create_credential(
                    token=gen_token(),
                    password=gen_password(),
                    visitor_name=name,
                    visitor_type=kind,
                    note=str(note or "").strip(),
                    issuer=issuer,
                    created_at=now,
                    expires_at=now + credential_ttl(),
                    state=AccessCredential.UNUSED,
                )
            except UniqueConstraint:
                logger.warning("Credential collision on attempt %d/%d", attempt, attempts)
                if attempt < attempts and backoff:
                    time.sleep(backoff)
                continue
            logger.info(
                "Credential %s issued by %s for %s (expires %s)",
                credential.id, issuer.id, kind, credential.expires_at.isoformat(),
            )
            return credential

        logger.error("Credential generation exhausted %d attempts", attempts)
        raise Conflict()

    def list_for_issuer(self, user_id):
        return self.store.list_credentials_by_issuer(user_id)

    def list_all(self):
        return self.store.list_all_credentials()

    def mark_expired(self, credential_id, now=None):
        """
        unused -> expired, only if the deadline has passed.
        Terminal or not-yet-due credentials are left alone (returns False).
        """
        now = now or timezone.now()
        changed = self.store.compare_and_set_credential_state(
            credential_id, AccessCredential.UNUSED, AccessCredential.EXPIRED, now,
            overdue_at=now,
        )
        if changed:
            logger.info("Credential %s marked expired", credential_id)
        return bool(changed)
