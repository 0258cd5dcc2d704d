# neigh/services/tasks.py
from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation

from flask import current_app
from flask_babel import gettext as _
from sqlalchemy import func

from ..extensions import db
from ..models.category import Category
from ..models.task import Task
from ..models.user import User
from . import chat
from .errors import NotFound, PermissionDenied, ValidationFailed

log = logging.getLogger(__name__)

SORTS = {
    "newest": Task.created_at.desc(),
    "lowest": Task.price.asc(),
    "highest": Task.price.desc(),
}


def _can_manage(user: User, task: Task) -> bool:
    return task.created_by == user.id or getattr(user, "is_admin", False)


def get_task(task_id: int) -> Task:
    task = Task.query.get(task_id)
    if not task:
        raise NotFound(_("Task not found"))
    return task


def _category(category_id) -> Category:
    cat = Category.query.get(category_id) if category_id else None
    if not cat:
        raise ValidationFailed(_("Category not found"), details={"category_id": [_("Unknown category")]})
    return cat


def create_task(user: User, *, name: str, description: str, price, category_id: int,
                images: list[str] | None = None) -> Task:
    task = Task(
        name=name.strip(),
        description=description.strip(),
        price=Decimal(str(price)).quantize(Decimal("0.01")),
        category=_category(category_id),
        created_by=user.id,
        images=list(images or []),
    )
    db.session.add(task)
    db.session.commit()
    log.info("task %s created by user %s", task.id, user.id)
    return task


def update_task(user: User, task: Task, **fields) -> Task:
    if not _can_manage(user, task):
        raise PermissionDenied(_("Only the task owner can edit this task"))
    if task.is_archived:
        raise ValidationFailed(_("Archived tasks cannot be edited"))

    if fields.get("name") is not None:
        task.name = fields["name"].strip()
    if fields.get("description") is not None:
        task.description = fields["description"].strip()
    if fields.get("price") is not None:
        task.price = Decimal(str(fields["price"])).quantize(Decimal("0.01"))
    if fields.get("category_id") is not None:
        task.category = _category(fields["category_id"])
    if fields.get("images") is not None:
        task.images = list(fields["images"])
    db.session.commit()
    return task


def archive_task(user: User, task: Task) -> Task:
    """Soft delete. Conversations about the task are told about it."""
    if not _can_manage(user, task):
        raise PermissionDenied(_("Only the task owner can archive this task"))
    if task.is_archived:
        return task
    task.is_archived = True
    db.session.commit()
    log.info("task %s archived by user %s", task.id, user.id)

    chat.post_task_notice(user, task, _("Task \"%(name)s\" was archived", name=task.name),
                          chat.EVENT_TASK_ARCHIVED)
    return task


def _price_range(raw: str | None):
    """'10-50' -> (Decimal('10'), Decimal('50')); '10-' and '-50' are open ended."""
    if not raw or "-" not in raw:
        return None, None
    lo, hi = raw.split("-", 1)
    try:
        return (Decimal(lo) if lo.strip() else None, Decimal(hi) if hi.strip() else None)
    except InvalidOperation:
        raise ValidationFailed(_("Invalid price range"))


def search_tasks(*, query: str | None = None, category: str | None = None,
                 price: str | None = None, sort: str = "newest", page: int = 1,
                 per_page: int | None = None, include_archived: bool = False):
    qry = Task.query
    if not include_archived:
        qry = qry.filter(Task.is_archived.is_(False))
    if query:
        like = f"%{query.strip()}%"
        qry = qry.filter(Task.name.ilike(like) | Task.description.ilike(like))
    if category and category != "all":
        qry = qry.join(Category).filter(
            (Category.name == category) | (Category.id == (int(category) if str(category).isdigit() else -1))
        )
    lo, hi = _price_range(price)
    if lo is not None:
        qry = qry.filter(Task.price >= lo)
    if hi is not None:
        qry = qry.filter(Task.price <= hi)

    order = SORTS.get(sort or "newest", SORTS["newest"])
    per_page = per_page or current_app.config.get("PAGE_SIZE", 20)
    return qry.order_by(order, Task.id.desc()).paginate(page=max(int(page or 1), 1),
                                                       per_page=per_page, error_out=False)


def latest_tasks(limit: int = 6) -> list[Task]:
    return (Task.query.filter(Task.is_archived.is_(False))
            .order_by(Task.created_at.desc(), Task.id.desc()).limit(limit).all())


def tasks_for_client(user: User) -> list[Task]:
    return Task.query.filter_by(created_by=user.id).order_by(Task.created_at.desc()).all()


def list_categories() -> list[dict]:
    counts = dict(
        db.session.query(Task.category_id, func.count(Task.id))
        .filter(Task.is_archived.is_(False))
        .group_by(Task.category_id)
        .all()
    )
    return [
        {**c.to_dict(), "task_count": int(counts.get(c.id, 0))}
        for c in Category.query.order_by(Category.name).all()
    ]
