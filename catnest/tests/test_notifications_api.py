import pytest

from catnest.domains.notifications.services import create_notification

pytestmark = pytest.mark.integration


def _seed(user, count=3):
    return [
        create_notification(user_id=user.id, type_="system", title=f"Notice {n}", content="hi")
        for n in range(count)
    ]


def test_list_newest_first_and_unread_count(client, user, auth_headers):
    _seed(user)
    headers = auth_headers(user)

    listed = client.get("/api/v1/notifications", headers=headers).get_json()["data"]
    assert [n["title"] for n in listed] == ["Notice 2", "Notice 1", "Notice 0"]

    count = client.get("/api/v1/notifications/unread-count", headers=headers)
    assert count.get_json()["data"]["count"] == 3


def test_mark_read_is_scoped_to_owner(client, user, make_user, auth_headers):
    notes = _seed(user, 2)
    other = make_user("device-other-0001")

    assert client.post(f"/api/v1/notifications/{notes[0].id}/read", headers=auth_headers(other)).status_code == 404
    assert client.post(f"/api/v1/notifications/{notes[0].id}/read", headers=auth_headers(user)).status_code == 200

    count = client.get("/api/v1/notifications/unread-count", headers=auth_headers(user))
    assert count.get_json()["data"]["count"] == 1

    read_all = client.post("/api/v1/notifications/read-all", headers=auth_headers(user))
    assert read_all.get_json()["updated"] == 1
    count = client.get("/api/v1/notifications/unread-count", headers=auth_headers(user))
    assert count.get_json()["data"]["count"] == 0


def test_create_notification_validates_and_publishes(app, user):
    seen = []
    app.extensions["change_feed"].subscribe("notification", lambda e: seen.append(e.record), column="user_id", value=user.id)

    note = create_notification(user_id=user.id, type_="application", title="Application received")
    assert seen[0]["id"] == note.id
    assert seen[0]["is_read"] is False

    with pytest.raises(ValueError, match="invalid_notification_type"):
        create_notification(user_id=user.id, type_="spam", title="x")
    with pytest.raises(ValueError, match="invalid_title"):
        create_notification(user_id=user.id, type_="system", title="  ")
