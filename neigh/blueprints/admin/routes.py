# neigh/blueprints/admin/routes.py
from datetime import datetime

from flask import jsonify, request
from flask_login import login_required, current_user
from sqlalchemy import func

from ...extensions import db
from ...models.assignment import TaskAssignment, TaskAssignmentStatus
from ...models.cart import Cart
from ...models.chat import ConversationParticipant, Message
from ...models.invoice import Invoice
from ...models.payment import Payment
from ...models.review import Review
from ...models.task import Task
from ...models.user import User
from ...security import roles_required
from ...services import payments as payment_service
from ...services import tasks as task_service
from ...services.errors import ValidationFailed
from ..utils import json_body, log_action, page_arg, paginated
from . import admin_bp

ROLES = ("user", "admin")


def _history(user: User) -> list[str]:
    """Records that reference the user and must outlive the account."""
    checks = {
        "tasks": Task.query.filter_by(created_by=user.id),
        "assignments": TaskAssignment.query.filter(
            (TaskAssignment.client_id == user.id) | (TaskAssignment.contractor_id == user.id)),
        "invoices": Invoice.query.filter((Invoice.client_id == user.id) | (Invoice.contractor_id == user.id)),
        "payments": Payment.query.filter_by(user_id=user.id),
        "reviews": Review.query.filter((Review.reviewer_id == user.id) | (Review.reviewee_id == user.id)),
        "messages": Message.query.filter_by(sender_id=user.id),
    }
    return [name for name, qry in checks.items() if qry.first() is not None]


@admin_bp.get("/overview")
@login_required
@roles_required("admin")
def overview():
    by_status = dict(
        db.session.query(TaskAssignmentStatus.name, func.count(TaskAssignment.id))
        .outerjoin(TaskAssignment, TaskAssignment.status_id == TaskAssignmentStatus.id)
        .group_by(TaskAssignmentStatus.name)
        .all()
    )
    sales = payment_service.sales_summary()
    return jsonify({
        "users": User.query.filter(User.deleted_at.is_(None)).count(),
        "tasks": Task.query.filter(Task.is_archived.is_(False)).count(),
        "archived_tasks": Task.query.filter(Task.is_archived.is_(True)).count(),
        "assignments": {k: int(v) for k, v in by_status.items()},
        "payments": Payment.query.count(),
        "revenue": sales["total_amount"],
        "sales": sales["monthly"],
        "latest_payments": sales["latest_payments"],
    })


@admin_bp.get("/users")
@login_required
@roles_required("admin")
def users_list():
    q = (request.args.get("q") or "").strip()
    qry = User.query
    if request.args.get("deleted") not in ("1", "true"):
        qry = qry.filter(User.deleted_at.is_(None))
    if q:
        like = f"%{q}%"
        qry = qry.filter(User.name.ilike(like) | User.email.ilike(like))
    page = qry.order_by(User.created_at.desc(), User.id.desc()).paginate(page=page_arg(), per_page=25, error_out=False)
    return paginated(page, lambda u: u.to_dict(private=True))


@admin_bp.patch("/users/<int:user_id>/role")
@login_required
@roles_required("admin")
def users_set_role(user_id):
    user = User.query.get_or_404(user_id)
    role = (json_body().get("role") or "").strip().lower()
    if role not in ROLES:
        raise ValidationFailed("Role must be one of: " + ", ".join(ROLES))
    if user.id == current_user.id and role != "admin":
        raise ValidationFailed("You cannot remove your own admin role")
    user.role = role
    db.session.commit()
    log_action("admin.set_role", actor=current_user.id, user=user.id, role=role)
    return jsonify({"user": user.to_dict(private=True)})


@admin_bp.delete("/users/<int:user_id>")
@login_required
@roles_required("admin")
def users_delete(user_id):
    user = User.query.get_or_404(user_id)
    if user.id == current_user.id:
        raise ValidationFailed("You cannot delete your own account")
    history = _history(user)
    if history:
        # history rows reference the user: soft delete only
        if user.deleted_at is None:
            user.deleted_at = datetime.utcnow()
            db.session.commit()
        log_action("admin.close_user", actor=current_user.id, user=user.id, history=",".join(history))
        return jsonify({"deleted": user.id, "soft": True, "history": history})

    ConversationParticipant.query.filter_by(user_id=user.id).delete(synchronize_session=False)
    cart = Cart.query.filter_by(user_id=user.id).first()
    if cart is not None:
        db.session.delete(cart)
    db.session.delete(user)
    db.session.commit()
    log_action("admin.delete_user", actor=current_user.id, user=user_id)
    return jsonify({"deleted": user_id, "soft": False})


@admin_bp.get("/tasks")
@login_required
@roles_required("admin")
def tasks_list():
    page = task_service.search_tasks(
        query=request.args.get("q"),
        category=request.args.get("category"),
        sort=request.args.get("sort", "newest"),
        page=page_arg(),
        include_archived=True,
    )
    return paginated(page)


@admin_bp.get("/payments")
@login_required
@roles_required("admin")
def payments_list():
    return paginated(payment_service.all_payments(page_arg(), request.args.get("status")))
