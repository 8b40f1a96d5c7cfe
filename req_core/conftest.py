# req_core/conftest.py
import pytest
from django.contrib.auth import get_user_model
from rest_framework.test import APIClient

from req_core.common.permissions import (
    ROLE_ACCOUNTS,
    ROLE_AUDITOR,
    ROLE_CHAIRMAN,
    ROLE_FINANCE,
    ROLE_LAB,
    ROLE_PHARMACY,
)
from req_core.iam.identity import actor_for_user_id
from req_core.iam.signatures import DRAWN, SignatureArtifact

# Smallest PNG header repeated; long enough to pass the drawn-signature length check.
DRAWN_DATA = "data:image/png;base64," + "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNk" * 2


@pytest.fixture
def make_user(db):
    """
    Create a user with a requisition profile.
    make_user("auditor1", ROLE_AUDITOR, display_name="Ada Audit")
    """
    from req_core.iam.models import UserProfile

    User = get_user_model()

    def _make(username: str, role: str, *, display_name: str | None = None, department: str = "", password: str = "testpass"):
        user = User.objects.create_user(username=username, password=password, is_active=True)
        UserProfile.objects.create(
            user=user,
            display_name=display_name or username.title(),
            role=role,
            department=department,
        )
        return User.objects.select_related("req_profile").get(pk=user.pk)

    return _make


@pytest.fixture
def lab_user(make_user):
    return make_user("labtech", ROLE_LAB, display_name="Lab Tech", department="Laboratory")


@pytest.fixture
def pharmacy_user(make_user):
    return make_user("pharmacist", ROLE_PHARMACY, display_name="Store Keeper", department="Pharmacy")


@pytest.fixture
def auditor(make_user):
    return make_user("auditor1", ROLE_AUDITOR, display_name="Audit One")


@pytest.fixture
def auditor2(make_user, settings):
    settings.REQUISITION_WORKFLOW = {**settings.REQUISITION_WORKFLOW, "SECOND_AUDITOR_USERNAME": "auditor2"}
    return make_user("auditor2", ROLE_AUDITOR, display_name="Audit Two")


@pytest.fixture
def chairman(make_user):
    return make_user("chairman", ROLE_CHAIRMAN, display_name="The Chairman")


@pytest.fixture
def finance(make_user):
    return make_user("hof", ROLE_FINANCE, display_name="Head of Finance")


@pytest.fixture
def accounts(make_user):
    return make_user("accounts", ROLE_ACCOUNTS, display_name="Accounts Officer")


@pytest.fixture
def actor():
    """actor(user) -> Actor, re-read from the database."""
    return lambda user: actor_for_user_id(user.pk)


@pytest.fixture
def drawn_signature():
    return SignatureArtifact(kind=DRAWN, data=DRAWN_DATA)


@pytest.fixture
def workflow(db):
    from req_core.requisitions.services import WorkflowService

    return WorkflowService()


@pytest.fixture
def run_action(workflow, actor, drawn_signature):
    """
    Begin and confirm in one go:
    run_action(user, requisition_id, action, comment="...", items=[...])
    """
    from req_core.requisitions.services import Command

    def _run(user, requisition_id, action, **payload):
        a = actor(user)
        pending = workflow.begin_action(a, Command(requisition_id=requisition_id, action=action, payload=payload))
        return workflow.confirm_signature(a, pending.id, drawn_signature)

    return _run


@pytest.fixture
def create_requisition(workflow, actor, drawn_signature):
    """create_requisition(user, type=..., title=..., items=[...]) -> CommittedResult"""

    def _create(user, **draft):
        a = actor(user)
        pending = workflow.begin_create(a, draft)
        return workflow.confirm_signature(a, pending.id, drawn_signature)

    return _create


@pytest.fixture
def client_for():
    def _client(user):
        c = APIClient()
        c.force_authenticate(user=user)
        return c

    return _client
