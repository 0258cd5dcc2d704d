from datetime import datetime
from ..extensions import db

OF_CONTRACTOR = "of_contractor"  # written by the client
OF_CLIENT = "of_client"          # written by the contractor


class Review(db.Model):
    __tablename__ = "review"
    __table_args__ = (
        db.UniqueConstraint("assignment_id", "direction", name="uq_review_assignment_direction"),
        db.CheckConstraint("rating BETWEEN 1 AND 5", name="ck_review_rating_range"),
    )

    id = db.Column(db.Integer, primary_key=True)
    assignment_id = db.Column(db.Integer, db.ForeignKey("task_assignment.id"), nullable=False, index=True)
    reviewer_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=False, index=True)
    reviewee_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=False, index=True)
    direction = db.Column(db.String(20), nullable=False)

    rating = db.Column(db.Integer, nullable=False)
    feedback = db.Column(db.Text)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    assignment = db.relationship("TaskAssignment", backref=db.backref("reviews", lazy="selectin"))
    reviewer = db.relationship("User", foreign_keys=[reviewer_id])
    reviewee = db.relationship("User", foreign_keys=[reviewee_id],
                               backref=db.backref("reviews_received", lazy="dynamic"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "assignment_id": self.assignment_id,
            "direction": self.direction,
            "rating": self.rating,
            "feedback": self.feedback,
            "reviewer": self.reviewer.to_dict() if self.reviewer else None,
            "reviewee_id": self.reviewee_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
