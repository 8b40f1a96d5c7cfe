import pytest
from django.contrib.auth import get_user_model
from django.core.management import call_command
from django.db import DatabaseError

from req_core.common import events
from req_core.common.api.exceptions import api_exception_handler
from req_core.common.errors import (
    MAY_HAVE_APPLIED,
    NOT_APPLIED,
    ConflictError,
    NotificationError,
    PersistenceError,
    ValidationError,
)
from req_core.iam.models import UserProfile
from req_core.requisitions import events as requisition_events
from req_core.requisitions.store import atomic_write, retry_on_conflict


def test_errors_carry_an_outcome():
    assert ValidationError("bad").outcome == NOT_APPLIED
    assert ConflictError().status_code == 409
    assert PersistenceError(partial=False).outcome == NOT_APPLIED
    assert PersistenceError(partial=True).outcome == MAY_HAVE_APPLIED
    assert "may have partially applied" in PersistenceError(partial=True).message


def test_subscribe_registers_a_handler_once():
    seen = []

    def handler(payload):
        seen.append(payload["n"])

    events.subscribe("test.once")(handler)
    events.subscribe("test.once")(handler)
    events.publish("test.once", {"n": 1})

    assert seen == [1]
    assert events.subscribers("test.once") == [handler]


def test_emit_logs_delivery_failures_and_keeps_going():
    delivered = []

    @events.subscribe("test.notify_fails")
    def relay_down(payload):
        raise NotificationError("relay down")

    @events.subscribe("test.notify_fails")
    def lookup_fails(payload):
        raise DatabaseError("recipient lookup failed")

    @events.subscribe("test.notify_fails")
    def still_runs(payload):
        delivered.append(payload["requisition_id"])

    requisition_events.emit("test.notify_fails", {"requisition_id": "REQ-000001"})
    assert delivered == ["REQ-000001"]


def test_emit_lets_programming_errors_through():
    @events.subscribe("test.bug")
    def buggy(payload):
        raise KeyError("oops")

    with pytest.raises(KeyError):
        requisition_events.emit("test.bug", {})


def test_unhandled_error_cannot_claim_nothing_was_applied():
    res = api_exception_handler(RuntimeError("boom"), {"request": None})

    assert res.status_code == 500
    assert res.data["error"]["code"] == "server_error"
    assert res.data["error"]["details"]["outcome"] == MAY_HAVE_APPLIED


@pytest.mark.django_db
def test_atomic_write_rolls_back_on_database_error():
    User = get_user_model()

    def write():
        User.objects.create_user(username="ghost", password="x")
        raise DatabaseError("boom")

    with pytest.raises(PersistenceError) as exc:
        atomic_write(write)

    assert exc.value.partial is False
    assert not User.objects.filter(username="ghost").exists()


def test_retry_on_conflict_retries_then_gives_up():
    calls = []

    def flaky():
        calls.append(1)
        if len(calls) < 3:
            raise ConflictError()
        return "ok"

    assert retry_on_conflict(flaky, attempts=3) == "ok"

    calls.clear()

    def always_conflicts():
        calls.append(1)
        raise ConflictError()

    with pytest.raises(ConflictError):
        retry_on_conflict(always_conflicts, attempts=2)
    assert len(calls) == 2


@pytest.mark.django_db
def test_request_id_is_echoed_in_the_error_envelope(client_for, auditor):
    res = client_for(auditor).get("/api/v1/requisitions/REQ-000404/", HTTP_X_REQUEST_ID="trace-123")

    assert res.status_code == 404
    assert res.data["error"]["request_id"] == "trace-123"
    assert res["X-Request-Id"] == "trace-123"


@pytest.mark.django_db
def test_anonymous_requests_are_refused(client):
    res = client.get("/api/v1/requisitions/")
    assert res.status_code == 401
    assert res.json()["error"]["code"] == "not_authenticated"


@pytest.mark.django_db
def test_ensure_profiles_is_idempotent():
    User = get_user_model()
    User.objects.create_user(username="nurse", password="x", first_name="Ngozi", last_name="Obi")
    User.objects.create_superuser(username="root", password="x", email="root@example.com")

    call_command("ensure_profiles")
    call_command("ensure_profiles")

    assert UserProfile.objects.count() == 2
    assert UserProfile.objects.get(user__username="nurse").display_name == "Ngozi Obi"
    assert UserProfile.objects.get(user__username="root").role == "ADMIN"
