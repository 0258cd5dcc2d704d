from datetime import datetime
from ..extensions import db

# Seeded lookup rows; "order" drives the linear workflow
STATUS_NEW = "NEW"
STATUS_IN_PROGRESS = "IN_PROGRESS"
STATUS_COMPLETED = "COMPLETED"
STATUS_ACCEPTED = "ACCEPTED"

DEFAULT_STATUSES = [
    # (name, description, color, order)
    (STATUS_NEW, "Task assigned, not started yet", "#3b82f6", 1),
    (STATUS_IN_PROGRESS, "Contractor is working on the task", "#f59e0b", 2),
    (STATUS_COMPLETED, "Contractor marked the task as done", "#10b981", 3),
    (STATUS_ACCEPTED, "Client accepted the completed work", "#6366f1", 4),
]


class TaskAssignmentStatus(db.Model):
    __tablename__ = "task_assignment_status"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(50), unique=True, nullable=False)
    description = db.Column(db.String(255))
    color = db.Column(db.String(20))
    order = db.Column(db.Integer, nullable=False, default=0, index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "color": self.color,
            "order": self.order,
        }


class TaskAssignment(db.Model):
    __tablename__ = "task_assignment"
    __table_args__ = (
        db.UniqueConstraint("task_id", "contractor_id", name="uq_assignment_task_contractor"),
    )

    id = db.Column(db.Integer, primary_key=True)
    task_id = db.Column(db.Integer, db.ForeignKey("task.id"), nullable=False, index=True)
    client_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=False, index=True)
    contractor_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=False, index=True)
    status_id = db.Column(db.Integer, db.ForeignKey("task_assignment_status.id"), nullable=False, index=True)

    # client reviewed contractor / contractor reviewed client
    client_reviewed = db.Column(db.Boolean, default=False, nullable=False)
    contractor_reviewed = db.Column(db.Boolean, default=False, nullable=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    started_at = db.Column(db.DateTime)
    completed_at = db.Column(db.DateTime)
    accepted_at = db.Column(db.DateTime)

    task = db.relationship("Task", back_populates="assignments")
    status = db.relationship("TaskAssignmentStatus", lazy="joined")
    client = db.relationship("User", foreign_keys=[client_id],
                             backref=db.backref("client_assignments", lazy="dynamic"))
    contractor = db.relationship("User", foreign_keys=[contractor_id],
                                 backref=db.backref("contractor_assignments", lazy="dynamic"))

    @property
    def status_name(self) -> str | None:
        return self.status.name if self.status else None

    def is_party(self, user) -> bool:
        uid = getattr(user, "id", None)
        return uid is not None and uid in (self.client_id, self.contractor_id)

    def to_dict(self) -> dict:
        def _iso(d):
            return d.isoformat() if d else None
        return {
            "id": self.id,
            "task": self.task.to_dict() if self.task else None,
            "client": self.client.to_dict() if self.client else None,
            "contractor": self.contractor.to_dict() if self.contractor else None,
            "status": self.status.to_dict() if self.status else None,
            "client_reviewed": bool(self.client_reviewed),
            "contractor_reviewed": bool(self.contractor_reviewed),
            "created_at": _iso(self.created_at),
            "started_at": _iso(self.started_at),
            "completed_at": _iso(self.completed_at),
            "accepted_at": _iso(self.accepted_at),
        }
