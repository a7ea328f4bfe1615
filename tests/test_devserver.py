import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from gigsync.devserver.auth_service import AttemptLimiter
from gigsync.devserver.main import create_app

client = TestClient(create_app())


def login(c, email):
    response = c.post("/auth/login", json={"email": email, "password": "password123"})
    assert response.status_code == 200
    return response.json()["token"]


def auth(token):
    return {"Authorization": f"Bearer {token}"}


def test_login_and_me():
    token = login(client, "freelancer@gigsync.dev")

    response = client.get("/auth/me", headers=auth(token))
    assert response.status_code == 200
    body = response.json()
    assert body["id"] == "1"
    assert body["role"] == "FREELANCER"
    assert body["hourlyRate"] == 60


def test_wrong_password_is_401():
    response = client.post("/auth/login", json={"email": "client@gigsync.dev", "password": "nope"})
    assert response.status_code == 401


def test_logout_revokes_token():
    token = login(client, "client@gigsync.dev")
    assert client.post("/auth/logout", headers=auth(token)).status_code == 200
    assert client.get("/auth/me", headers=auth(token)).status_code == 401


def test_send_and_read_conversation():
    freelancer = login(client, "freelancer@gigsync.dev")
    job_poster = login(client, "client@gigsync.dev")

    sent = client.post("/messages/2", json={"content": "Hi, about the job"}, headers=auth(freelancer))
    assert sent.status_code == 201
    message = sent.json()
    assert message["senderId"] == "1"
    assert message["recipientId"] == "2"

    history = client.get("/messages/1", headers=auth(job_poster)).json()
    assert message["id"] in [m["id"] for m in history]

    conversations = client.get("/messages/conversations", headers=auth(job_poster)).json()
    assert conversations[0]["recipientId"] == "1"
    assert conversations[0]["unreadCount"] >= 1

    assert client.put("/messages/read/1", headers=auth(job_poster)).status_code == 200
    conversations = client.get("/messages/conversations", headers=auth(job_poster)).json()
    assert conversations[0]["unreadCount"] == 0

    # 받은 사람은 삭제할 수 없음
    assert client.delete(f"/messages/{message['id']}", headers=auth(job_poster)).status_code == 403
    assert client.delete(f"/messages/{message['id']}", headers=auth(freelancer)).status_code == 204


def test_notifications_flow():
    freelancer = login(client, "freelancer@gigsync.dev")
    job_poster = login(client, "client@gigsync.dev")
    client.post("/messages/2", json={"content": "ping"}, headers=auth(freelancer))

    items = client.get("/notifications", headers=auth(job_poster)).json()
    assert items[0]["type"] == "CHAT"
    assert items[0]["senderId"] == "1"

    count = client.get("/notifications/unread/count", headers=auth(job_poster)).json()["count"]
    assert count >= 1

    assert client.put(f"/notifications/{items[0]['id']}/read", headers=auth(job_poster)).json()["read"] is True
    assert client.put("/notifications/read/all", headers=auth(job_poster)).status_code == 200
    assert client.get("/notifications/unread/count", headers=auth(job_poster)).json() == {"count": 0}
    assert client.put("/notifications/unknown/read", headers=auth(job_poster)).status_code == 404


def test_unauthenticated_requests_are_401():
    assert client.get("/messages/conversations").status_code == 401
    assert client.get("/notifications", headers=auth("garbage")).status_code == 401


def test_admin_login_is_rate_limited():
    c = TestClient(create_app())
    for _ in range(5):
        response = c.post("/auth/admin/login", json={"email": "admin@gigsync.dev", "password": "wrong"})
        assert response.status_code == 401

    response = c.post("/auth/admin/login", json={"email": "admin@gigsync.dev", "password": "password123"})
    assert response.status_code == 429
    assert int(response.headers["Retry-After"]) > 0


def test_admin_login_wraps_payload_and_requires_admin():
    c = TestClient(create_app())
    response = c.post("/auth/admin/login", json={"email": "admin@gigsync.dev", "password": "password123"})
    assert response.status_code == 200
    assert response.json()["data"]["user"]["role"] == "ADMIN"

    response = c.post("/auth/admin/login", json={"email": "client@gigsync.dev", "password": "password123"})
    assert response.status_code == 403


def test_attempt_limiter_window_slides():
    now = [0.0]
    limiter = AttemptLimiter(2, 60, clock=lambda: now[0])
    assert limiter.hit("ip") is None
    assert limiter.hit("ip") is None
    assert limiter.hit("ip") == 61
    now[0] = 60.0
    assert limiter.hit("ip") is None


def test_websocket_rejects_bad_token():
    with pytest.raises(WebSocketDisconnect) as exc_info:
        with client.websocket_connect("/ws?token=garbage") as ws:
            ws.receive_json()
    assert exc_info.value.code == 1008


def test_websocket_ping_and_chat_delivery():
    app = create_app()
    with TestClient(app) as c:
        freelancer = login(c, "freelancer@gigsync.dev")
        job_poster = login(c, "client@gigsync.dev")

        with c.websocket_connect(f"/ws?token={freelancer}") as sender, \
                c.websocket_connect(f"/ws?token={job_poster}") as recipient:
            sender.send_json({"type": "PING"})
            assert sender.receive_json() == {"type": "PONG"}

            sender.send_json({"type": "CHAT_MESSAGE", "recipientId": "2", "content": "hello"})

            pushed = recipient.receive_json()
            assert pushed["type"] == "CHAT_MESSAGE"
            assert pushed["message"]["content"] == "hello"

            echo = sender.receive_json()
            assert echo["type"] == "MESSAGE_SENT"
            assert echo["recipientOnline"] is True
            assert echo["message"]["id"] == pushed["message"]["id"]

            notification = recipient.receive_json()
            assert notification["type"] == "NOTIFICATION"

            sender.send_json({"type": "SOMETHING_ELSE"})
            assert sender.receive_json()["type"] == "ERROR"
