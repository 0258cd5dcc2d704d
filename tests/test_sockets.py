from types import SimpleNamespace

import pytest

from neigh import create_app
from neigh.extensions import socketio
from neigh.models.user import User
from neigh.security import issue_socket_token
from neigh.services import chat

from .conftest import ConfigForTests


@pytest.fixture
def room(app, people):
    with app.app_context():
        alice = User.query.get(people.client.id)
        bob = User.query.get(people.contractor.id)
        conv = chat.get_or_create_conversation(alice, bob)
        return SimpleNamespace(
            conversation_id=conv.id,
            alice=issue_socket_token(alice.id),
            bob=issue_socket_token(bob.id),
            eve=issue_socket_token(people.outsider.id),
        )


def _events(sio, name):
    return [r["args"][0] for r in sio.get_received() if r["name"] == name]


def test_connect_requires_credentials(app):
    sio = socketio.test_client(app)
    assert not sio.is_connected()

    bad = socketio.test_client(app, auth={"token": "not-a-token"})
    assert not bad.is_connected()


def test_connect_with_session_cookie(app, client, login, people):
    login(people.client)
    sio = socketio.test_client(app, flask_test_client=client)
    assert sio.is_connected()
    sio.disconnect()


def test_socket_token_endpoint(app, client, login, people):
    login(people.client)
    data = client.get("/api/auth/socket-token").get_json()
    sio = socketio.test_client(app, auth={"token": data["token"]})
    assert sio.is_connected()


def test_message_reaches_room(app, room):
    alice = socketio.test_client(app, auth={"token": room.alice})
    bob = socketio.test_client(app, auth={"token": room.bob})

    ack = bob.emit("join-conversation", {"conversation_id": room.conversation_id}, callback=True)
    assert ack == {"ok": True, "conversation_id": room.conversation_id}
    bob.get_received()

    ack = alice.emit("send-message", {"conversationId": room.conversation_id, "content": "On my way"},
                     callback=True)
    assert ack["ok"] is True
    assert ack["message"]["content"] == "On my way"

    received = _events(bob, "new-message")
    assert [m["content"] for m in received] == ["On my way"]


def test_mark_read_over_socket(app, room):
    alice = socketio.test_client(app, auth={"token": room.alice})
    bob = socketio.test_client(app, auth={"token": room.bob})
    alice.emit("join-conversation", {"conversation_id": room.conversation_id}, callback=True)
    bob.emit("send-message", {"conversation_id": room.conversation_id, "content": "Done"}, callback=True)
    alice.get_received()

    ack = alice.emit("mark-read", {"conversation_id": room.conversation_id}, callback=True)
    assert ack == {"ok": True, "count": 1}
    reads = _events(alice, "messages-read")
    assert reads[0]["reader_id"] is not None
    assert reads[0]["count"] == 1


def test_outsider_cannot_join(app, room):
    eve = socketio.test_client(app, auth={"token": room.eve})
    ack = eve.emit("join-conversation", {"conversation_id": room.conversation_id}, callback=True)
    assert ack["ok"] is False
    assert _events(eve, "error")[0]["error"] == "You are not a participant of this conversation"


def test_unknown_conversation(app, room):
    alice = socketio.test_client(app, auth={"token": room.alice})
    ack = alice.emit("send-message", {"conversation_id": 424242, "content": "hello?"}, callback=True)
    assert ack["ok"] is False
    assert ack["error"] == "Conversation not found"


def test_every_app_gets_the_handlers(app, tmp_path):
    class OtherConfig(ConfigForTests):
        UPLOAD_FOLDER = str(tmp_path / "other-uploads")

    other = create_app(OtherConfig)
    sio = socketio.test_client(other)
    assert not sio.is_connected()
    assert {name for name, _handler, _ns in socketio.handlers} >= {
        "connect", "join-conversation", "send-message", "mark-read",
    }
