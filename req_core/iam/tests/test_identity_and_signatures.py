import pytest
from django.contrib.auth import get_user_model

from req_core.common.errors import AuthorizationError, ValidationError
from req_core.common.permissions import ROLE_ADMIN, ROLE_AUDITOR, ROLE_READONLY
from req_core.conftest import DRAWN_DATA
from req_core.iam.identity import Actor, actor_for_user, user_ids_for_role
from req_core.iam.signatures import (
    DRAWN,
    STAMP,
    SignatureArtifact,
    mint_stamp,
    read_stamp,
    stamp_text,
    verify_artifact,
)

pytestmark = pytest.mark.django_db


def test_actor_comes_from_the_profile(auditor, auditor2):
    a1 = actor_for_user(auditor)
    a2 = actor_for_user(auditor2)

    assert (a1.role, a1.display_name, a1.is_second_auditor) == (ROLE_AUDITOR, "Audit One", False)
    assert a2.is_second_auditor is True


def test_user_without_profile(db):
    User = get_user_model()
    plain = User.objects.create_user(username="visitor", password="x")
    boss = User.objects.create_superuser(username="boss", password="x", email="boss@example.com")

    assert actor_for_user(plain).role == ROLE_READONLY
    assert actor_for_user(boss).role == ROLE_ADMIN


def test_inactive_profile_cannot_act(auditor):
    auditor.req_profile.is_active = False
    auditor.req_profile.save()

    with pytest.raises(AuthorizationError):
        actor_for_user(get_user_model().objects.select_related("req_profile").get(pk=auditor.pk))
    assert user_ids_for_role(ROLE_AUDITOR) == []


def test_stamp_needs_the_right_password(auditor):
    with pytest.raises(AuthorizationError):
        mint_stamp(auditor, "wrong")
    with pytest.raises(AuthorizationError):
        mint_stamp(auditor, "")


def test_stamp_is_bound_to_its_user(auditor, chairman):
    stamp = mint_stamp(auditor, "testpass")

    assert stamp.kind == STAMP
    assert read_stamp(stamp)["uid"] == auditor.pk
    assert verify_artifact(stamp, actor=actor_for_user(auditor)) == stamp
    with pytest.raises(AuthorizationError):
        verify_artifact(stamp, actor=actor_for_user(chairman))
    assert stamp_text(stamp).startswith("Digitally signed by Audit One (AUDITOR)")


def test_tampered_stamp_is_refused(auditor):
    stamp = mint_stamp(auditor, "testpass")
    forged = SignatureArtifact(kind=STAMP, data=stamp.data[:-2] + "xx")

    with pytest.raises(ValidationError):
        verify_artifact(forged, actor=actor_for_user(auditor))


@pytest.mark.parametrize(
    "artifact",
    [
        None,
        SignatureArtifact(kind=DRAWN, data=""),
        SignatureArtifact(kind=DRAWN, data="data:image/png;base64,AAAA"),
        SignatureArtifact(kind=DRAWN, data="http://example.com/sig.png" + "x" * 80),
        SignatureArtifact(kind="INITIALS", data="AO"),
    ],
)
def test_bad_artifacts_are_refused(artifact):
    actor = Actor(user_id=1, username="a", display_name="A", role=ROLE_AUDITOR)
    with pytest.raises(ValidationError):
        verify_artifact(artifact, actor=actor)


def test_drawn_signature_is_accepted():
    actor = Actor(user_id=1, username="a", display_name="A", role=ROLE_AUDITOR)
    artifact = SignatureArtifact(kind=DRAWN, data=DRAWN_DATA)
    assert verify_artifact(artifact, actor=actor) is artifact


def test_stamp_endpoint(client_for, auditor):
    client = client_for(auditor)

    res = client.post("/api/v1/signatures/stamp/", {"password": "wrong"}, format="json")
    assert res.status_code == 403
    assert res.data["error"]["code"] == "authorization_error"

    res = client.post("/api/v1/signatures/stamp/", {"password": "testpass"}, format="json")
    assert res.status_code == 201
    assert res.data["kind"] == STAMP


def test_me_endpoint(client_for, auditor2):
    res = client_for(auditor2).get("/api/v1/me/")

    assert res.status_code == 200
    assert res.data["username"] == "auditor2"
    assert res.data["role"] == ROLE_AUDITOR
    assert res.data["is_second_auditor"] is True


def test_login_sets_cookies_that_authenticate(client, auditor):
    res = client.post(
        "/api/v1/auth/login/",
        {"username": "auditor1", "password": "testpass"},
        content_type="application/json",
    )
    assert res.status_code == 200
    assert "mr_access" in res.cookies

    me = client.get("/api/v1/me/")
    assert me.status_code == 200
    assert me.json()["username"] == "auditor1"

    client.post("/api/v1/auth/logout/")
    assert client.cookies["mr_access"].value == ""
