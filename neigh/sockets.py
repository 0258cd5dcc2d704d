# neigh/sockets.py
"""Socket.IO events for live chat.

Clients authenticate on connect (session cookie, or ``auth={"token": ...}``
from ``/api/auth/socket-token``), then join the rooms of the conversations
they have open. Messages are written to the database first and fanned out
second; a client that misses a broadcast catches up on its next fetch.
"""
import logging

from flask import request, session
from flask_login import current_user
from flask_socketio import ConnectionRefusedError, emit, join_room, leave_room

from .extensions import socketio
from .models.user import User
from .security import verify_socket_token
from .services import chat
from .services.errors import PermissionDenied, ServiceError

log = logging.getLogger(__name__)


def _conversation_id(data):
    if isinstance(data, dict):
        data = data.get("conversation_id") or data.get("conversationId")
    try:
        return int(data)
    except (TypeError, ValueError):
        return None


def _socket_user():
    uid = session.get("socket_user_id")
    return User.query.get(uid) if uid else None


def _fail(e: ServiceError):
    emit("error", e.to_dict())
    return {"ok": False, **e.to_dict()}


@socketio.on("connect")
def on_connect(auth=None):
    user = None
    if current_user.is_authenticated:
        user = current_user._get_current_object()
    else:
        token = (auth or {}).get("token") if isinstance(auth, dict) else None
        uid = verify_socket_token(token or request.args.get("token", ""))
        user = User.query.get(uid) if uid else None
    if user is None or not user.is_active:
        log.info("socket %s refused: unauthenticated", request.sid)
        raise ConnectionRefusedError("unauthorized")

    session["socket_user_id"] = user.id
    join_room(f"user:{user.id}")
    log.debug("socket %s connected as user %s", request.sid, user.id)


@socketio.on("disconnect")
def on_disconnect(*args):
    log.debug("socket %s disconnected (user %s)", request.sid, session.get("socket_user_id"))


@socketio.on("join-conversation")
def on_join(data):
    user = _socket_user()
    try:
        conv = chat.get_conversation(user, _conversation_id(data))
        if not conv.has_participant(user):
            raise PermissionDenied("You are not a participant of this conversation")
    except ServiceError as e:
        return _fail(e)
    join_room(conv.room)
    return {"ok": True, "conversation_id": conv.id}


@socketio.on("leave-conversation")
def on_leave(data):
    cid = _conversation_id(data)
    if cid:
        leave_room(f"conversation:{cid}")
    return {"ok": True, "conversation_id": cid}


@socketio.on("send-message")
def on_send(data):
    user = _socket_user()
    data = data if isinstance(data, dict) else {}
    try:
        conv = chat.get_conversation(user, _conversation_id(data))
        msg = chat.send_message(user, conv, data.get("content"), data.get("image_url") or data.get("imageUrl"))
    except ServiceError as e:
        return _fail(e)
    return {"ok": True, "message": msg.to_dict()}


@socketio.on("mark-read")
def on_mark_read(data):
    user = _socket_user()
    try:
        conv = chat.get_conversation(user, _conversation_id(data))
        count = chat.mark_conversation_read(user, conv)
    except ServiceError as e:
        return _fail(e)
    return {"ok": True, "count": count}
