# neigh/models/task.py
from datetime import datetime
from ..extensions import db


class Task(db.Model):
    __tablename__ = "task"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False, index=True)
    description = db.Column(db.Text, nullable=False)
    price = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    images = db.Column(db.JSON, default=list)

    category_id = db.Column(db.Integer, db.ForeignKey("category.id"), nullable=False, index=True)
    created_by = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=False, index=True)

    # Tasks are never hard-deleted, only archived
    is_archived = db.Column(db.Boolean, default=False, nullable=False, index=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    category = db.relationship("Category", backref=db.backref("tasks", lazy="dynamic"))
    owner = db.relationship("User", foreign_keys=[created_by],
                            backref=db.backref("tasks", lazy="dynamic"))

    assignments = db.relationship(
        "TaskAssignment",
        back_populates="task",
        lazy="selectin",
        cascade="all, delete-orphan",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "price": str(self.price),
            "images": list(self.images or []),
            "category": self.category.to_dict() if self.category else None,
            "created_by": self.created_by,
            "owner": self.owner.to_dict() if self.owner else None,
            "is_archived": bool(self.is_archived),
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
