# neigh/services/reviews.py
from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation

from flask_babel import gettext as _
from sqlalchemy import func

from ..extensions import db
from ..models.assignment import TaskAssignment, STATUS_ACCEPTED
from ..models.review import Review, OF_CLIENT, OF_CONTRACTOR
from ..models.user import User
from . import chat
from .errors import NotFound, PermissionDenied, ValidationFailed
from .workflow import CLIENT, CONTRACTOR, party_of

log = logging.getLogger(__name__)

MAX_FEEDBACK = 2000


def _direction_for(user: User, assignment: TaskAssignment) -> str:
    party = party_of(user, assignment)
    if party == CLIENT:
        return OF_CONTRACTOR
    if party == CONTRACTOR:
        return OF_CLIENT
    raise PermissionDenied(_("Only the client or the contractor can review this task"))


def _recompute_ratings(user_id: int):
    user = User.query.get(user_id)
    rows = dict(
        (direction, (avg, cnt)) for direction, avg, cnt in
        db.session.query(Review.direction, func.avg(Review.rating), func.count(Review.id))
        .filter(Review.reviewee_id == user_id)
        .group_by(Review.direction)
        .all()
    )
    user.contractor_rating = round(float(rows.get(OF_CONTRACTOR, (0.0, 0))[0] or 0.0), 2)
    user.client_rating = round(float(rows.get(OF_CLIENT, (0.0, 0))[0] or 0.0), 2)
    user.num_reviews = sum(int(cnt) for _avg, cnt in rows.values())


def submit_review(user: User, assignment: TaskAssignment, rating, feedback: str | None = None) -> Review:
    """Create or edit the caller's review for an accepted assignment.

    Each direction holds exactly one review; resubmitting edits it.
    """
    direction = _direction_for(user, assignment)
    if assignment.status_name != STATUS_ACCEPTED:
        raise ValidationFailed(_("Reviews can only be left once the task is accepted"))

    try:
        value = Decimal(str(rating))
        rating = int(value) if value.is_finite() and value == value.to_integral_value() else 0
    except (InvalidOperation, TypeError, ValueError):
        rating = 0
    if rating < 1 or rating > 5:
        raise ValidationFailed(_("Rating must be between 1 and 5"))
    feedback = (feedback or "").strip()
    if len(feedback) > MAX_FEEDBACK:
        raise ValidationFailed(_("Feedback is too long"))

    reviewee_id = assignment.contractor_id if direction == OF_CONTRACTOR else assignment.client_id
    review = Review.query.filter_by(assignment_id=assignment.id, direction=direction).first()
    created = review is None
    if created:
        review = Review(
            assignment_id=assignment.id,
            reviewer_id=user.id,
            reviewee_id=reviewee_id,
            direction=direction,
        )
        db.session.add(review)
    review.rating = rating
    review.feedback = feedback or None

    if direction == OF_CONTRACTOR:
        assignment.client_reviewed = True
    else:
        assignment.contractor_reviewed = True

    db.session.flush()
    _recompute_ratings(reviewee_id)
    db.session.commit()
    log.info("review %s %s for assignment %s (rating=%s)",
             review.id, "created" if created else "updated", assignment.id, rating)

    chat.post_system_message(
        user, assignment,
        _("%(name)s left a %(rating)s-star review", name=user.name, rating=rating),
        chat.EVENT_REVIEW_SUBMITTED,
        {"rating": rating, "direction": direction, "review_id": review.id},
    )
    return review


def get_review(user: User, assignment: TaskAssignment, direction: str | None = None) -> Review | None:
    """``direction`` defaults to the review the caller writes."""
    if not assignment.is_party(user) and not getattr(user, "is_admin", False):
        raise PermissionDenied(_("You are not part of this assignment"))
    direction = direction or _direction_for(user, assignment)
    if direction not in (OF_CLIENT, OF_CONTRACTOR):
        raise ValidationFailed(_("Unknown review direction"))
    return Review.query.filter_by(assignment_id=assignment.id, direction=direction).first()


def reviews_for_user(user_id: int, direction: str | None = None) -> list[Review]:
    if not User.query.get(user_id):
        raise NotFound(_("User not found"))
    qry = Review.query.filter_by(reviewee_id=user_id)
    if direction:
        qry = qry.filter_by(direction=direction)
    return qry.order_by(Review.created_at.desc()).all()
