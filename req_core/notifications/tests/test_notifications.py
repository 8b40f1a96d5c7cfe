import pytest
from django.db import DatabaseError

from req_core.common.errors import NotFoundError, NotificationError
from req_core.notifications.models import Notification, Severity
from req_core.notifications.services import InAppNotifier, NotificationService, notify_many
from req_core.notifications.subscribers import approver_ids
from req_core.requisitions.models import Stage

pytestmark = pytest.mark.django_db


class RecordingNotifier:
    def __init__(self, fail_for=()):
        self.sent = []
        self.fail_for = set(fail_for)

    def notify(self, recipient_id, title, body, related_id="", severity=Severity.INFO):
        if recipient_id in self.fail_for:
            raise NotificationError("unreachable")
        self.sent.append((recipient_id, title))


def test_notify_many_dedupes_recipients(auditor, chairman):
    notifier = RecordingNotifier()

    delivered = notify_many([auditor.pk, chairman.pk, auditor.pk], title="Hello", body="", notifier=notifier)

    assert delivered == 2
    assert notifier.sent == [(auditor.pk, "Hello"), (chairman.pk, "Hello")]


def test_one_failed_delivery_does_not_stop_the_rest(auditor, chairman):
    notifier = RecordingNotifier(fail_for={auditor.pk})

    with pytest.raises(NotificationError):
        notify_many([auditor.pk, chairman.pk], title="Hello", body="", notifier=notifier)

    assert notifier.sent == [(chairman.pk, "Hello")]


def test_in_app_notifier_writes_a_row(auditor):
    InAppNotifier().notify(auditor.pk, "Approval Required", "REQ-000001 awaits you.", related_id="REQ-000001")

    n = Notification.objects.get(recipient=auditor)
    assert (n.title, n.severity, n.related_requisition_id, n.is_read) == (
        "Approval Required",
        Severity.INFO,
        "REQ-000001",
        False,
    )


def test_in_app_notifier_reports_a_failed_write(monkeypatch, auditor):
    def broken_create(**kwargs):
        raise DatabaseError("table locked")

    monkeypatch.setattr(Notification.objects, "create", broken_create)

    with pytest.raises(NotificationError):
        InAppNotifier().notify(auditor.pk, "Approval Required", "")


def test_approver_ids_follow_stage_ownership(auditor, auditor2, chairman, finance):
    assert approver_ids(Stage.AUDIT_1) == [auditor.pk]
    assert approver_ids(Stage.AUDIT_2) == [auditor2.pk]
    assert approver_ids(Stage.FINAL_APPROVAL) == [chairman.pk]
    assert approver_ids(Stage.FINANCE_APPROVAL) == [finance.pk]
    assert approver_ids(Stage.RETURNED) == []


def test_mark_read_and_mark_all_read(auditor, chairman):
    for title in ("a", "b", "c"):
        Notification.objects.create(recipient=auditor, title=title)
    other = Notification.objects.create(recipient=chairman, title="theirs")
    first = Notification.objects.filter(recipient=auditor).order_by("id").first()

    marked = NotificationService.mark_read(user_id=auditor.pk, notification_id=first.pk)
    assert marked.is_read and marked.read_at is not None

    with pytest.raises(NotFoundError):
        NotificationService.mark_read(user_id=auditor.pk, notification_id=other.pk)

    assert NotificationService.mark_all_read(user_id=auditor.pk) == 2
    assert not Notification.objects.filter(recipient=auditor, is_read=False).exists()
    other.refresh_from_db()
    assert other.is_read is False


def test_notification_endpoints(client_for, auditor, chairman):
    Notification.objects.create(recipient=auditor, title="one", related_requisition_id="REQ-000001")
    Notification.objects.create(recipient=auditor, title="two", related_requisition_id="REQ-000002")
    Notification.objects.create(recipient=chairman, title="not mine")
    client = client_for(auditor)

    res = client.get("/api/v1/notifications/")
    assert res.status_code == 200
    assert [n["title"] for n in res.data["results"]] == ["two", "one"]

    assert client.get("/api/v1/notifications/unread-count/").data == {"unread": 2}

    target = res.data["results"][0]["id"]
    res = client.post(f"/api/v1/notifications/{target}/mark-read/")
    assert res.status_code == 200
    assert res.data["is_read"] is True

    assert client.get("/api/v1/notifications/", {"is_read": "false"}).data["count"] == 1
    assert client.get("/api/v1/notifications/", {"requisition_id": "REQ-000001"}).data["count"] == 1

    client.post("/api/v1/notifications/mark-all-read/")
    assert client.get("/api/v1/notifications/unread-count/").data == {"unread": 0}
