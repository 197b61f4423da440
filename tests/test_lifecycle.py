from datetime import timedelta
from unittest import mock

import pytest
from django.utils import timezone

from gatepass.exceptions import Conflict, UniqueConstraint, ValidationError
from gatepass.lifecycle import CredentialLifecycle, normalize_visitor_type
from gatepass.models import AccessCredential


@pytest.mark.django_db
class TestIssue:

    def test_new_credential_is_unused_with_twelve_hour_deadline(self, lifecycle, resident):
        before = timezone.now()
        c = lifecycle.issue(resident, "Ana Ruiz", "guest")
        assert c.state == AccessCredential.UNUSED
        assert c.issuer_id == resident.id
        assert c.expires_at - c.created_at == timedelta(hours=12)
        assert c.created_at >= before
        assert c.consumed_at is None

    def test_name_and_note_are_trimmed(self, lifecycle, resident):
        c = lifecycle.issue(resident, "  Ana Ruiz ", "guest", "  gate B ")
        assert c.visitor_name == "Ana Ruiz"
        assert c.note == "gate B"

    def test_ttl_is_configurable(self, lifecycle, resident, settings):
        settings.GATEPASS = {**settings.GATEPASS, "CREDENTIAL_TTL_HOURS": 2}
        c = lifecycle.issue(resident, "Ana Ruiz", "guest")
        assert c.expires_at - c.created_at == timedelta(hours=2)

    @pytest.mark.parametrize("given, stored", [
        ("guest", "guest"),
        ("SUPPLIER", "supplier"),
        ("service-provider", "service_provider"),
        ("visita", "guest"),
        ("proveedor", "supplier"),
        ("prestador", "service_provider"),
    ])
    def test_visitor_type_spellings(self, given, stored):
        assert normalize_visitor_type(given) == stored

    @pytest.mark.parametrize("name", ["", "   ", None, "x" * 201])
    def test_rejects_bad_visitor_name(self, lifecycle, resident, name):
        with pytest.raises(ValidationError):
            lifecycle.issue(resident, name, "guest")

    def test_rejects_unknown_visitor_type(self, lifecycle, resident):
        with pytest.raises(ValidationError):
            lifecycle.issue(resident, "Ana Ruiz", "courier")
        assert AccessCredential.objects.count() == 0


@pytest.mark.django_db
class TestCollisionRetry:

    def test_retries_on_password_collision(self, lifecycle, resident):
        taken = lifecycle.issue(resident, "First", "guest")
        with mock.patch("gatepass.lifecycle.gen_password",
                        side_effect=[taken.password, taken.password, "ZZZZ-0001"]):
            c = lifecycle.issue(resident, "Second", "guest")
        assert c.password == "ZZZZ-0001"
        assert AccessCredential.objects.count() == 2

    def test_gives_up_with_conflict(self, resident, settings):
        settings.GATEPASS = {**settings.GATEPASS, "CREDENTIAL_GENERATION_ATTEMPTS": 3}
        store = mock.Mock()
        store.create_credential.side_effect = UniqueConstraint("duplicate")
        with pytest.raises(Conflict):
            CredentialLifecycle(store).issue(resident, "Ana Ruiz", "guest")
        assert store.create_credential.call_count == 3

    def test_token_collision_is_retried(self, lifecycle, resident):
        taken = lifecycle.issue(resident, "First", "guest")
        with mock.patch("gatepass.lifecycle.gen_token", side_effect=[taken.token, "fresh-token"]):
            c = lifecycle.issue(resident, "Second", "guest")
        assert c.token == "fresh-token"
        assert AccessCredential.objects.filter(pk=c.pk).exists()


@pytest.mark.django_db
class TestMarkExpired:

    def test_overdue_unused_becomes_expired(self, lifecycle, credential):
        later = credential.expires_at + timedelta(seconds=1)
        assert lifecycle.mark_expired(credential.id, now=later) is True
        credential.refresh_from_db()
        assert credential.state == AccessCredential.EXPIRED
        assert credential.consumed_at is None

    def test_not_yet_due_is_left_alone(self, lifecycle, credential):
        assert lifecycle.mark_expired(credential.id, now=credential.expires_at) is False
        credential.refresh_from_db()
        assert credential.state == AccessCredential.UNUSED

    def test_used_is_terminal(self, lifecycle, store, credential):
        store.compare_and_set_credential_state(
            credential.id, AccessCredential.UNUSED, AccessCredential.USED, timezone.now()
        )
        later = credential.expires_at + timedelta(days=1)
        assert lifecycle.mark_expired(credential.id, now=later) is False
        credential.refresh_from_db()
        assert credential.state == AccessCredential.USED


@pytest.mark.django_db
class TestListing:

    def test_list_for_issuer_newest_first(self, lifecycle, resident, admin_user):
        first = lifecycle.issue(resident, "First", "guest")
        second = lifecycle.issue(resident, "Second", "supplier")
        lifecycle.issue(admin_user, "Someone else", "guest")
        assert [c.id for c in lifecycle.list_for_issuer(resident.id)] == [second.id, first.id]

    def test_list_all(self, lifecycle, resident, admin_user):
        lifecycle.issue(resident, "First", "guest")
        lifecycle.issue(admin_user, "Second", "guest")
        assert len(lifecycle.list_all()) == 2
