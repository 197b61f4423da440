import threading
from datetime import timedelta

import pytest
from django.db import connection

from gatepass.exceptions import AlreadyConsumed, Expired, MissingInput, NotFound, ValidationError
from gatepass.models import AccessCredential, AccessEvent
from gatepass.validation import ALREADY_CONSUMED, EXPIRED, NOT_FOUND, ValidationProtocol


@pytest.fixture
def protocol(store, lifecycle):
    return ValidationProtocol(store, lifecycle)


@pytest.mark.django_db
class TestValidate:

    def test_by_password(self, protocol, guard, credential):
        result = protocol.validate(guard, password=credential.password)
        assert result.valid is True
        assert result.credential.visitor_name == "Ana Ruiz"
        data = result.as_dict()
        assert data["credential"]["issuer"] == {"first_name": "María", "last_name": "López"}
        assert "password" not in data["credential"]
        assert "token" not in data["credential"]

    def test_password_is_normalized(self, protocol, guard, credential):
        typed = f"  {credential.password.lower()} "
        assert protocol.validate(guard, password=typed).valid is True

    def test_by_token(self, protocol, guard, credential):
        assert protocol.validate(guard, token=credential.token).valid is True

    def test_password_field_falls_back_to_token(self, protocol, guard, credential):
        assert protocol.validate(guard, password=credential.token).valid is True

    def test_token_is_case_sensitive(self, protocol, guard, credential):
        result = protocol.validate(guard, token=credential.token.upper())
        assert result.valid is False
        assert result.reason == NOT_FOUND

    def test_unknown_code(self, protocol, guard, credential):
        result = protocol.validate(guard, password="NOPE-0000")
        assert result.valid is False
        assert result.reason == NOT_FOUND
        assert "credential" not in result.as_dict()

    @pytest.mark.parametrize("password, token", [(None, None), ("", ""), ("  ", None)])
    def test_missing_input(self, protocol, guard, password, token):
        with pytest.raises(MissingInput):
            protocol.validate(guard, password=password, token=token)

    def test_is_read_only_and_idempotent(self, protocol, guard, credential):
        first = protocol.validate(guard, password=credential.password).as_dict()
        second = protocol.validate(guard, password=credential.password).as_dict()
        assert first == second
        credential.refresh_from_db()
        assert credential.state == AccessCredential.UNUSED
        assert AccessEvent.objects.count() == 0

    def test_one_second_before_deadline_is_valid(self, protocol, guard, credential):
        now = credential.expires_at - timedelta(seconds=1)
        assert protocol.validate(guard, password=credential.password, now=now).valid is True

    def test_exactly_at_deadline_is_valid(self, protocol, guard, credential):
        assert protocol.validate(guard, password=credential.password,
                                 now=credential.expires_at).valid is True

    def test_one_second_after_deadline_expires(self, protocol, guard, credential):
        now = credential.expires_at + timedelta(seconds=1)
        result = protocol.validate(guard, password=credential.password, now=now)
        assert result.valid is False
        assert result.reason == EXPIRED
        credential.refresh_from_db()
        assert credential.state == AccessCredential.EXPIRED

    def test_used_credential(self, protocol, guard, credential):
        protocol.confirm(guard, credential.id, "on_foot")
        result = protocol.validate(guard, password=credential.password)
        assert result.valid is False
        assert result.reason == ALREADY_CONSUMED
        assert result.message == "This access has already been used."

    def test_expired_credential_stays_expired(self, protocol, guard, credential):
        later = credential.expires_at + timedelta(hours=1)
        protocol.validate(guard, password=credential.password, now=later)
        result = protocol.validate(guard, password=credential.password)
        assert result.valid is False
        assert result.reason == ALREADY_CONSUMED
        assert result.message == "This code has expired."


@pytest.mark.django_db
class TestConfirm:

    def test_consumes_and_logs(self, protocol, guard, credential):
        event = protocol.confirm(guard, credential.id, "vehicle", plates=" abc-123 ", note="white van")
        assert event.guard_id == guard.id
        assert event.entry_mode == AccessEvent.VEHICLE
        assert event.vehicle_plates == "ABC-123"
        assert event.note == "white van"
        credential.refresh_from_db()
        assert credential.state == AccessCredential.USED
        assert credential.consumed_at == event.created_at

    @pytest.mark.parametrize("given, stored", [
        ("on-foot", "on_foot"), ("pie", "on_foot"), ("vehiculo", "vehicle"), ("VEHICLE", "vehicle"),
    ])
    def test_entry_mode_spellings(self, protocol, guard, credential, given, stored):
        assert protocol.confirm(guard, credential.id, given).entry_mode == stored

    def test_blank_plates_are_null(self, protocol, guard, credential):
        assert protocol.confirm(guard, credential.id, "on_foot", plates="   ").vehicle_plates is None

    def test_rejects_unknown_entry_mode(self, protocol, guard, credential):
        with pytest.raises(ValidationError):
            protocol.confirm(guard, credential.id, "helicopter")
        credential.refresh_from_db()
        assert credential.state == AccessCredential.UNUSED

    def test_rejects_long_plates(self, protocol, guard, credential):
        with pytest.raises(ValidationError):
            protocol.confirm(guard, credential.id, "vehicle", plates="X" * 21)

    def test_unknown_id(self, protocol, guard, db):
        with pytest.raises(NotFound):
            protocol.confirm(guard, "00000000-0000-4000-8000-000000000000", "on_foot")

    def test_malformed_id(self, protocol, guard, db):
        with pytest.raises(NotFound):
            protocol.confirm(guard, "not-a-uuid", "on_foot")

    def test_second_confirm_is_already_consumed(self, protocol, guard, credential):
        protocol.confirm(guard, credential.id, "on_foot")
        with pytest.raises(AlreadyConsumed):
            protocol.confirm(guard, credential.id, "on_foot")
        assert AccessEvent.objects.filter(credential=credential).count() == 1

    def test_past_deadline_expires(self, protocol, guard, credential):
        later = credential.expires_at + timedelta(seconds=1)
        with pytest.raises(Expired):
            protocol.confirm(guard, credential.id, "on_foot", now=later)
        credential.refresh_from_db()
        assert credential.state == AccessCredential.EXPIRED
        assert AccessEvent.objects.count() == 0

    def test_already_expired(self, protocol, lifecycle, guard, credential):
        lifecycle.mark_expired(credential.id, now=credential.expires_at + timedelta(seconds=1))
        with pytest.raises(Expired):
            protocol.confirm(guard, credential.id, "on_foot")


@pytest.mark.django_db
class TestRace:
    """Two guards validate the same pass, then both try to confirm it."""

    def test_loser_of_race_gets_already_consumed(self, protocol, store, two_guards, credential):
        first_guard, second_guard = two_guards
        assert protocol.validate(first_guard, password=credential.password).valid
        assert protocol.validate(second_guard, password=credential.password).valid

        event = ValidationProtocol(store).confirm(second_guard, credential.id, "on_foot")
        with pytest.raises(AlreadyConsumed):
            protocol.confirm(first_guard, credential.id, "on_foot")

        assert AccessEvent.objects.get(credential=credential).id == event.id
        assert AccessEvent.objects.get().guard_id == second_guard.id

    def test_cas_reports_lost_race(self, store, credential):
        now = credential.created_at
        won = store.compare_and_set_credential_state(
            credential.id, AccessCredential.UNUSED, AccessCredential.USED, now)
        lost = store.compare_and_set_credential_state(
            credential.id, AccessCredential.UNUSED, AccessCredential.USED, now)
        assert (won, lost) == (1, 0)

    @pytest.mark.parametrize("terminal", [AccessCredential.USED, AccessCredential.EXPIRED])
    def test_terminal_states_never_move(self, store, credential, terminal):
        now = credential.created_at
        store.compare_and_set_credential_state(credential.id, AccessCredential.UNUSED, terminal, now)
        for target in (AccessCredential.UNUSED, AccessCredential.USED, AccessCredential.EXPIRED):
            assert store.compare_and_set_credential_state(
                credential.id, AccessCredential.UNUSED, target, now) == 0
        credential.refresh_from_db()
        assert credential.state == terminal


@pytest.mark.django_db(transaction=True)
class TestConcurrentConfirm:
    """Guards confirm the same pass from separate threads and connections."""

    THREADS = 8

    def test_exactly_one_confirm_wins(self, guard, credential):
        barrier = threading.Barrier(self.THREADS)
        outcomes = []
        lock = threading.Lock()

        def attempt():
            try:
                barrier.wait(timeout=10)
                try:
                    ValidationProtocol().confirm(guard, credential.id, "on_foot")
                    outcome = "ok"
                except AlreadyConsumed:
                    outcome = "consumed"
                with lock:
                    outcomes.append(outcome)
            finally:
                connection.close()

        workers = [threading.Thread(target=attempt) for _ in range(self.THREADS)]
        for worker in workers:
            worker.start()
        for worker in workers:
            worker.join(timeout=30)

        assert sorted(outcomes) == ["consumed"] * (self.THREADS - 1) + ["ok"]
        assert AccessEvent.objects.filter(credential_id=credential.id).count() == 1
        credential.refresh_from_db()
        assert credential.state == AccessCredential.USED


@pytest.mark.django_db
class TestAnaRuizWalkthrough:

    def test_issue_validate_confirm_reconfirm(self, lifecycle, protocol, resident, guard):
        credential = lifecycle.issue(resident, "Ana Ruiz", "guest")

        result = protocol.validate(guard, password=credential.password)
        assert result.valid is True
        assert result.credential.visitor_name == "Ana Ruiz"

        event = protocol.confirm(guard, result.credential.id, "on-foot")
        assert event.entry_mode == AccessEvent.ON_FOOT

        with pytest.raises(AlreadyConsumed):
            protocol.confirm(guard, result.credential.id, "on-foot")


@pytest.fixture
def two_guards(guard, store):
    other = store.create_local_user("lucas", "guard-pass-2", "guard",
                                    first_name="Lucas", last_name="Vega")
    return guard, other
