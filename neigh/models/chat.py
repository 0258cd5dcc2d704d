# neigh/models/chat.py
from datetime import datetime
from ..extensions import db


class Conversation(db.Model):
    __tablename__ = "conversation"

    id = db.Column(db.Integer, primary_key=True)
    task_id = db.Column(db.Integer, db.ForeignKey("task.id"), index=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    # bumped on every message so inbox ordering follows activity
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)

    task = db.relationship("Task", backref=db.backref("conversations", lazy="dynamic"))
    participants = db.relationship(
        "ConversationParticipant",
        back_populates="conversation",
        lazy="selectin",
        cascade="all, delete-orphan",
    )
    messages = db.relationship(
        "Message",
        back_populates="conversation",
        lazy="dynamic",
        cascade="all, delete-orphan",
        order_by="Message.created_at",
    )

    @property
    def participant_ids(self) -> list[int]:
        return [p.user_id for p in self.participants]

    def has_participant(self, user) -> bool:
        return getattr(user, "id", None) in self.participant_ids

    @property
    def room(self) -> str:
        return f"conversation:{self.id}"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "task_id": self.task_id,
            "task_name": self.task.name if self.task else None,
            "participants": [p.user.to_dict() for p in self.participants if p.user],
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class ConversationParticipant(db.Model):
    __tablename__ = "conversation_participant"
    __table_args__ = (
        db.UniqueConstraint("user_id", "conversation_id", name="uq_participant_user_conversation"),
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=False, index=True)
    conversation_id = db.Column(db.Integer, db.ForeignKey("conversation.id"), nullable=False, index=True)
    joined_at = db.Column(db.DateTime, default=datetime.utcnow)

    user = db.relationship("User")
    conversation = db.relationship("Conversation", back_populates="participants")


class Message(db.Model):
    __tablename__ = "message"

    id = db.Column(db.Integer, primary_key=True)
    conversation_id = db.Column(db.Integer, db.ForeignKey("conversation.id"), nullable=False, index=True)
    sender_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=False, index=True)

    content = db.Column(db.Text)
    image_url = db.Column(db.String(500))

    # Unread == read_at IS NULL; never stored as a counter
    read_at = db.Column(db.DateTime, index=True)

    is_system_message = db.Column(db.Boolean, default=False, nullable=False)
    meta = db.Column("metadata", db.JSON)  # event type etc. for system messages

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)

    conversation = db.relationship("Conversation", back_populates="messages")
    sender = db.relationship("User")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "conversation_id": self.conversation_id,
            "sender_id": self.sender_id,
            "sender": self.sender.to_dict() if self.sender else None,
            "content": self.content,
            "image_url": self.image_url,
            "read_at": self.read_at.isoformat() if self.read_at else None,
            "is_system_message": bool(self.is_system_message),
            "metadata": self.meta,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
