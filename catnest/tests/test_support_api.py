import pytest

from catnest.domains.notifications.models import Notification
from catnest.domains.support.models import SupportMessage, SupportSession
from catnest.extensions import db

pytestmark = pytest.mark.integration


def _open_session(client, headers):
    resp = client.post("/api/v1/support/sessions", json={}, headers=headers)
    assert resp.status_code in (200, 201)
    return resp.get_json()["data"]


def test_open_session_is_get_or_create(client, user, auth_headers):
    headers = auth_headers(user)
    first = client.post("/api/v1/support/sessions", json={}, headers=headers)
    second = client.post("/api/v1/support/sessions", json={}, headers=headers)

    assert first.status_code == 201
    assert first.get_json()["is_new"] is True
    assert second.status_code == 200
    assert second.get_json()["data"]["id"] == first.get_json()["data"]["id"]


def test_send_message_echoes_record_and_publishes(app, client, user, auth_headers):
    headers = auth_headers(user)
    session = _open_session(client, headers)
    published = []
    app.extensions["change_feed"].subscribe(
        "support_message", lambda e: published.append(e.record), column="session_id", value=session["id"]
    )

    resp = client.post(
        f"/api/v1/support/sessions/{session['id']}/messages",
        json={"content": "  Is Mochi still available?  "},
        headers=headers,
    )

    assert resp.status_code == 201
    record = resp.get_json()["data"]
    assert record["content"] == "Is Mochi still available?"
    assert record["sender_id"] == user.id
    assert record["session_id"] == session["id"]
    assert record["is_read"] is False
    assert published == [record]
    assert db.session.get(SupportSession, session["id"]).unread_count == 1


def test_list_messages_returns_latest_oldest_first(client, user, auth_headers):
    headers = auth_headers(user)
    session = _open_session(client, headers)
    for n in range(4):
        client.post(
            f"/api/v1/support/sessions/{session['id']}/messages",
            json={"content": f"msg {n}"},
            headers=headers,
        )

    resp = client.get(f"/api/v1/support/sessions/{session['id']}/messages?limit=3", headers=headers)
    assert resp.status_code == 200
    assert [m["content"] for m in resp.get_json()["data"]] == ["msg 1", "msg 2", "msg 3"]

    bad = client.get(f"/api/v1/support/sessions/{session['id']}/messages?limit=0", headers=headers)
    assert bad.status_code == 400


def test_validation_and_access(client, user, make_user, auth_headers):
    headers = auth_headers(user)
    session = _open_session(client, headers)
    stranger = make_user("device-stranger-01")

    empty = client.post(
        f"/api/v1/support/sessions/{session['id']}/messages", json={"content": ""}, headers=headers
    )
    assert empty.status_code == 400
    assert empty.get_json()["error"] == "validation_error"

    foreign = client.get(
        f"/api/v1/support/sessions/{session['id']}/messages", headers=auth_headers(stranger)
    )
    assert foreign.status_code == 404

    assert client.get("/api/v1/support/admin/sessions", headers=headers).status_code == 403


def test_admin_reply_notifies_owner_and_read_resets_counter(client, user, admin, auth_headers):
    owner_headers = auth_headers(user)
    admin_headers = auth_headers(admin)
    session = _open_session(client, owner_headers)
    client.post(
        f"/api/v1/support/sessions/{session['id']}/messages", json={"content": "hello"}, headers=owner_headers
    )

    listed = client.get("/api/v1/support/admin/sessions", headers=admin_headers)
    assert session["id"] in [s["id"] for s in listed.get_json()["data"]]

    reply = client.post(
        f"/api/v1/support/sessions/{session['id']}/messages",
        json={"content": "Yes, Mochi is waiting for you!"},
        headers=admin_headers,
    )
    assert reply.status_code == 201

    notes = Notification.query.filter_by(user_id=user.id).all()
    assert [n.type for n in notes] == ["support_reply"]
    assert notes[0].related_id == str(session["id"])

    read = client.patch(f"/api/v1/support/sessions/{session['id']}/read", headers=owner_headers)
    assert read.status_code == 200
    assert read.get_json()["updated"] == 1
    assert db.session.get(SupportSession, session["id"]).unread_count == 0
    unread_from_owner = SupportMessage.query.filter_by(session_id=session["id"], sender_id=user.id).one()
    assert unread_from_owner.is_read is False
