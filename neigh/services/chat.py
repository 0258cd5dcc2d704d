# neigh/services/chat.py
from __future__ import annotations

import logging
from datetime import datetime

from flask_babel import gettext as _
from sqlalchemy import func

from ..extensions import db, socketio
from ..models.chat import Conversation, ConversationParticipant, Message
from ..models.task import Task
from ..models.user import User
from .errors import NotFound, PermissionDenied, ValidationFailed

log = logging.getLogger(__name__)

MAX_MESSAGE_LENGTH = 5000

# System message event types
EVENT_STATUS_UPDATE = "status-update"
EVENT_INVOICE_CREATED = "invoice-created"
EVENT_REVIEW_SUBMITTED = "review-submitted"
EVENT_PAYMENT_RECEIVED = "payment-received"
EVENT_TASK_ARCHIVED = "task-archived"
EVENT_TASK_ASSIGNED = "task-assigned"


# -----------------
# Broadcast (best-effort)
# -----------------

def broadcast(event: str, payload: dict, room: str) -> bool:
    """Emit to a socket room. The database write has already happened, so a
    failed emit is only logged; clients recover on their next fetch."""
    try:
        socketio.emit(event, payload, to=room)
        return True
    except Exception as e:
        log.warning("socket emit %s -> %s failed: %s", event, room, e)
        return False


# -----------------
# Conversations
# -----------------

def _find_conversation(user_ids: set[int], task_id: int | None) -> Conversation | None:
    qry = Conversation.query.filter(Conversation.task_id == task_id) if task_id \
        else Conversation.query.filter(Conversation.task_id.is_(None))
    candidates = (
        qry.join(ConversationParticipant)
        .filter(ConversationParticipant.user_id.in_(user_ids))
        .distinct()
        .all()
    )
    for conv in candidates:
        if set(conv.participant_ids) == user_ids:
            return conv
    return None


def _new_conversation(user_ids: set[int], task_id: int | None) -> Conversation:
    conv = Conversation(task_id=task_id)
    for uid in sorted(user_ids):
        conv.participants.append(ConversationParticipant(user_id=uid))
    db.session.add(conv)
    db.session.commit()
    log.info("conversation %s created (task=%s, users=%s)", conv.id, task_id, sorted(user_ids))
    return conv


def get_or_create_conversation(user: User, other: User, task: Task | None = None) -> Conversation:
    if other is None:
        raise NotFound(_("User not found"))
    if other.id == user.id:
        raise ValidationFailed(_("Cannot create a conversation with yourself"))
    ids = {user.id, other.id}
    task_id = task.id if task else None
    return _find_conversation(ids, task_id) or _new_conversation(ids, task_id)


def create_conversation(user: User, participant_ids, task_id: int | None = None) -> Conversation:
    """Start (or reuse) a conversation; the caller is always a participant."""
    ids = {int(x) for x in (participant_ids or [])}
    ids.add(user.id)
    if len(ids) < 2:
        raise ValidationFailed(_("Cannot create a conversation with yourself"))

    found = User.query.filter(User.id.in_(ids)).count()
    if found != len(ids):
        raise NotFound(_("User not found"))
    if task_id is not None and not Task.query.get(task_id):
        raise NotFound(_("Task not found"))

    return _find_conversation(ids, task_id) or _new_conversation(ids, task_id)


def get_conversation(user: User, conversation_id: int) -> Conversation:
    conv = Conversation.query.get(conversation_id) if conversation_id else None
    if not conv:
        raise NotFound(_("Conversation not found"))
    if not conv.has_participant(user) and not getattr(user, "is_admin", False):
        raise PermissionDenied(_("You are not a participant of this conversation"))
    return conv


def _unread_filter(user_id: int):
    return (Message.sender_id != user_id, Message.read_at.is_(None))


def conversations_for_user(user: User, task_id: int | None = None) -> list[dict]:
    qry = (
        Conversation.query
        .join(ConversationParticipant)
        .filter(ConversationParticipant.user_id == user.id)
    )
    if task_id is not None:
        qry = qry.filter(Conversation.task_id == task_id)
    convs = qry.order_by(Conversation.updated_at.desc()).all()
    if not convs:
        return []

    ids = [c.id for c in convs]
    unread = dict(
        db.session.query(Message.conversation_id, func.count(Message.id))
        .filter(Message.conversation_id.in_(ids), *_unread_filter(user.id))
        .group_by(Message.conversation_id)
        .all()
    )

    out = []
    for conv in convs:
        last = conv.messages.order_by(None).order_by(Message.created_at.desc(), Message.id.desc()).first()
        data = conv.to_dict()
        data["last_message"] = last.to_dict() if last else None
        data["unread_count"] = int(unread.get(conv.id, 0))
        out.append(data)
    return out


# -----------------
# Messages
# -----------------

def _touch(conv: Conversation, when: datetime | None = None):
    conv.updated_at = when or datetime.utcnow()


def send_message(user: User, conversation: Conversation, content: str | None = None,
                 image_url: str | None = None) -> Message:
    """Persist first, then fan out ``new-message`` to the conversation room."""
    if not conversation.has_participant(user):
        raise PermissionDenied(_("You are not a participant of this conversation"))

    content = (content or "").strip()
    image_url = (image_url or "").strip() or None
    if not content and not image_url:
        raise ValidationFailed(_("Message content or image is required"))
    if len(content) > MAX_MESSAGE_LENGTH:
        raise ValidationFailed(_("Message is too long"))

    msg = Message(
        conversation_id=conversation.id,
        sender_id=user.id,
        content=content or None,
        image_url=image_url,
    )
    db.session.add(msg)
    _touch(conversation)
    db.session.commit()

    broadcast("new-message", msg.to_dict(), conversation.room)
    return msg


def messages_for_conversation(user: User, conversation: Conversation,
                              before: int | None = None, limit: int = 50) -> list[Message]:
    if not conversation.has_participant(user) and not getattr(user, "is_admin", False):
        raise PermissionDenied(_("You are not a participant of this conversation"))
    limit = max(1, min(int(limit or 50), 200))
    qry = Message.query.filter(Message.conversation_id == conversation.id)
    if before:
        qry = qry.filter(Message.id < before)
    rows = qry.order_by(Message.id.desc()).limit(limit).all()
    return list(reversed(rows))


def mark_message_read(user: User, message: Message) -> bool:
    """Set ``read_at`` only if it is still NULL.

    The guard lives in the UPDATE itself, so concurrent tabs marking the same
    message keep the first timestamp. Returns True when this call set it.
    """
    conv = message.conversation
    if not conv.has_participant(user):
        raise PermissionDenied(_("You are not a participant of this conversation"))
    if message.sender_id == user.id:
        return False

    now = datetime.utcnow()
    updated = (
        Message.query
        .filter(Message.id == message.id, Message.read_at.is_(None))
        .update({Message.read_at: now}, synchronize_session=False)
    )
    db.session.commit()
    db.session.refresh(message)

    if updated:
        broadcast("messages-read", {
            "conversation_id": conv.id,
            "reader_id": user.id,
            "message_ids": [message.id],
            "read_at": now.isoformat(),
        }, conv.room)
    return bool(updated)


def mark_conversation_read(user: User, conversation: Conversation) -> int:
    if not conversation.has_participant(user):
        raise PermissionDenied(_("You are not a participant of this conversation"))

    now = datetime.utcnow()
    count = (
        Message.query
        .filter(Message.conversation_id == conversation.id, *_unread_filter(user.id))
        .update({Message.read_at: now}, synchronize_session=False)
    )
    db.session.commit()

    if count:
        broadcast("messages-read", {
            "conversation_id": conversation.id,
            "reader_id": user.id,
            "count": count,
            "read_at": now.isoformat(),
        }, conversation.room)
    return count


def unread_count(user: User) -> int:
    return (
        Message.query
        .join(ConversationParticipant,
              ConversationParticipant.conversation_id == Message.conversation_id)
        .filter(ConversationParticipant.user_id == user.id, *_unread_filter(user.id))
        .count()
    )


# -----------------
# System notifications
# -----------------

def _post_system(actor: User, conv: Conversation, content: str, event_type: str,
                 metadata: dict | None) -> Message:
    msg = Message(
        conversation_id=conv.id,
        sender_id=actor.id,
        content=content,
        is_system_message=True,
        meta={"type": event_type, **(metadata or {})},
    )
    db.session.add(msg)
    _touch(conv)
    db.session.commit()
    broadcast("new-message", msg.to_dict(), conv.room)
    return msg


def post_system_message(actor: User, assignment, content: str, event_type: str,
                        metadata: dict | None = None) -> Message | None:
    """Inject a notification into the client/contractor thread for an assignment.

    Best-effort: callers have already committed their own change.
    """
    try:
        conv = get_or_create_conversation(assignment.client, assignment.contractor, assignment.task)
        return _post_system(actor, conv, content, event_type, {
            "assignment_id": assignment.id, **(metadata or {}),
        })
    except Exception as e:
        db.session.rollback()
        log.exception("system message (%s) for assignment %s failed: %s", event_type, assignment.id, e)
        return None


def post_task_notice(actor: User, task: Task, content: str, event_type: str) -> int:
    """Notify every conversation attached to a task. Returns how many got it."""
    sent = 0
    for conv in task.conversations.all():
        try:
            _post_system(actor, conv, content, event_type, {"task_id": task.id})
            sent += 1
        except Exception as e:
            db.session.rollback()
            log.exception("task notice (%s) to conversation %s failed: %s", event_type, conv.id, e)
    return sent
