# neigh/blueprints/messages/routes.py
from flask import jsonify, request, send_file, url_for
from flask_login import login_required, current_user

from ...models.chat import Message
from ...services import chat
from ...services.errors import NotFound, ValidationFailed
from ...services.storage_service import save_image, resolve
from . import messages_bp
from .forms import ConversationForm, MessageForm, ReadForm


# -----------------
# Conversations
# -----------------

@messages_bp.get("/conversations")
@login_required
def conversations():
    task_id = request.args.get("taskId", type=int)
    return jsonify({"items": chat.conversations_for_user(current_user, task_id)})


@messages_bp.post("/conversations")
@login_required
def create_conversation():
    form = ConversationForm().validate_or_raise()
    conv = chat.create_conversation(current_user, form.participant_ids.data, form.task_id.data)
    return jsonify({"conversation": conv.to_dict()}), 201


@messages_bp.get("/conversations/<int:conversation_id>")
@login_required
def conversation_detail(conversation_id):
    conv = chat.get_conversation(current_user, conversation_id)
    return jsonify({"conversation": conv.to_dict()})


# -----------------
# Messages
# -----------------

@messages_bp.get("/messages")
@login_required
def list_messages():
    conversation_id = request.args.get("conversationId", type=int)
    if not conversation_id:
        raise ValidationFailed("conversationId is required")
    conv = chat.get_conversation(current_user, conversation_id)
    rows = chat.messages_for_conversation(
        current_user, conv,
        before=request.args.get("before", type=int),
        limit=request.args.get("limit", 50, type=int),
    )
    return jsonify({"items": [m.to_dict() for m in rows]})


@messages_bp.post("/messages")
@login_required
def send():
    form = MessageForm().validate_or_raise()
    conv = chat.get_conversation(current_user, form.conversation_id.data)
    msg = chat.send_message(current_user, conv, form.content.data, form.image_url.data)
    return jsonify({"message": msg.to_dict()}), 201


@messages_bp.post("/messages/read")
@login_required
def read_conversation():
    form = ReadForm().validate_or_raise()
    conv = chat.get_conversation(current_user, form.conversation_id.data)
    count = chat.mark_conversation_read(current_user, conv)
    return jsonify({"count": count})


@messages_bp.post("/messages/<int:message_id>/read")
@login_required
def read_message(message_id):
    msg = Message.query.get(message_id)
    if not msg:
        raise NotFound("Message not found")
    changed = chat.mark_message_read(current_user, msg)
    return jsonify({"message": msg.to_dict(), "changed": changed})


@messages_bp.get("/messages/unread")
@login_required
def unread():
    return jsonify({"count": chat.unread_count(current_user)})


# -----------------
# Image attachments
# -----------------

@messages_bp.post("/messages/upload")
@login_required
def upload_image():
    f = request.files.get("file")
    if not f:
        raise ValidationFailed("No file uploaded")
    rel = save_image(f, subdir=f"chat/{current_user.id}")
    return jsonify({"path": rel, "url": url_for("messages.uploaded_file", relpath=rel)}), 201


@messages_bp.get("/uploads/<path:relpath>")
@login_required
def uploaded_file(relpath):
    return send_file(resolve(relpath))
