# neigh/blueprints/assignments/routes.py
from flask import jsonify, request
from flask_login import login_required, current_user

from ...models.user import User
from ...services import invoicing, reviews, workflow
from ...services import tasks as task_service
from ...services.errors import ValidationFailed
from . import assignments_bp
from .forms import AssignForm, StatusForm, ReviewForm


def _assignment(assignment_id: int):
    return workflow.get_assignment(current_user, assignment_id)


# -----------------
# Listing / lookup
# -----------------

@assignments_bp.get("/task-statuses")
def statuses():
    return jsonify({"items": [s.to_dict() for s in workflow.list_statuses()]})


@assignments_bp.get("/task-assignments")
@login_required
def index():
    role = (request.args.get("role") or "").lower()
    if role == "contractor":
        rows = workflow.assignments_for_contractor(current_user)
    elif role == "client":
        rows = workflow.assignments_for_client(current_user)
    elif role:
        raise ValidationFailed("role must be 'client' or 'contractor'")
    else:
        rows = sorted(
            workflow.assignments_for_client(current_user) + workflow.assignments_for_contractor(current_user),
            key=lambda a: a.created_at, reverse=True,
        )
    return jsonify({"items": [a.to_dict() for a in rows]})


@assignments_bp.get("/task-assignments/<int:assignment_id>")
@login_required
def detail(assignment_id):
    return jsonify({"assignment": _assignment(assignment_id).to_dict()})


@assignments_bp.get("/task-assignments/by-invoice")
@login_required
def by_invoice():
    invoice_id = request.args.get("invoiceId", type=int)
    if not invoice_id:
        raise ValidationFailed("invoiceId is required")
    return jsonify({"assignment": invoicing.assignment_for_invoice(current_user, invoice_id).to_dict()})


# -----------------
# Assign
# -----------------

@assignments_bp.post("/task-assignments")
@login_required
def assign():
    form = AssignForm().validate_or_raise()
    task = task_service.get_task(form.task_id.data)
    contractor = User.query.get(form.contractor_id.data)
    a = workflow.assign_task(current_user, task, contractor)
    return jsonify({"assignment": a.to_dict()}), 201


# -----------------
# Transitions (one code path: workflow.update_status)
# -----------------

@assignments_bp.patch("/task-assignments/<int:assignment_id>")
@login_required
def patch_status(assignment_id):
    form = StatusForm().validate_or_raise()
    a = workflow.update_status(current_user, _assignment(assignment_id), form.status.data)
    return jsonify({"assignment": a.to_dict()})


@assignments_bp.post("/task-assignments/<int:assignment_id>/start")
@login_required
def start(assignment_id):
    a = workflow.start_assignment(current_user, _assignment(assignment_id))
    return jsonify({"assignment": a.to_dict()})


@assignments_bp.post("/task-assignments/<int:assignment_id>/complete")
@login_required
def complete(assignment_id):
    a = workflow.complete_assignment(current_user, _assignment(assignment_id))
    return jsonify({"assignment": a.to_dict()})


@assignments_bp.post("/task-assignments/<int:assignment_id>/accept")
@login_required
def accept(assignment_id):
    a = workflow.accept_assignment(current_user, _assignment(assignment_id))
    return jsonify({"assignment": a.to_dict()})


# -----------------
# Reviews
# -----------------

@assignments_bp.post("/task-assignments/<int:assignment_id>/review")
@login_required
def submit_review(assignment_id):
    form = ReviewForm().validate_or_raise()
    review = reviews.submit_review(current_user, _assignment(assignment_id),
                                   form.rating.data, form.feedback.data)
    return jsonify({"review": review.to_dict()})


@assignments_bp.get("/task-assignments/<int:assignment_id>/review")
@login_required
def get_review(assignment_id):
    review = reviews.get_review(current_user, _assignment(assignment_id), request.args.get("direction"))
    return jsonify({"review": review.to_dict() if review else None})


@assignments_bp.get("/users/<int:user_id>/reviews")
def user_reviews(user_id):
    rows = reviews.reviews_for_user(user_id, request.args.get("direction"))
    return jsonify({"items": [r.to_dict() for r in rows]})
