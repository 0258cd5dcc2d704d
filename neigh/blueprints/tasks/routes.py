# neigh/blueprints/tasks/routes.py
from flask import jsonify, request, abort
from flask_login import login_required, current_user

from ...services import tasks as task_service
from ...services import workflow
from ..utils import page_arg, paginated
from . import tasks_bp
from .forms import TaskForm, TaskUpdateForm


def _visible_task(task_id: int):
    task = task_service.get_task(task_id)
    if task.is_archived and task.created_by != current_user.id and not current_user.is_admin:
        abort(404)
    return task


# -----------------
# Catalogue
# -----------------

@tasks_bp.get("/tasks")
def search():
    page = task_service.search_tasks(
        query=request.args.get("q"),
        category=request.args.get("category"),
        price=request.args.get("price"),
        sort=request.args.get("sort", "newest"),
        page=page_arg(),
    )
    return paginated(page)


@tasks_bp.get("/tasks/latest")
def latest():
    limit = min(request.args.get("limit", 6, type=int) or 6, 50)
    return jsonify({"items": [t.to_dict() for t in task_service.latest_tasks(limit)]})


@tasks_bp.get("/categories")
def categories():
    return jsonify({"items": task_service.list_categories()})


@tasks_bp.get("/tasks/<int:task_id>")
@login_required
def detail(task_id):
    return jsonify({"task": _visible_task(task_id).to_dict()})


# -----------------
# Owner actions
# -----------------

@tasks_bp.get("/tasks/mine")
@login_required
def mine():
    return jsonify({"items": [t.to_dict() for t in task_service.tasks_for_client(current_user)]})


@tasks_bp.post("/tasks")
@login_required
def create():
    form = TaskForm().validate_or_raise()
    task = task_service.create_task(
        current_user,
        name=form.name.data,
        description=form.description.data,
        price=form.price.data,
        category_id=form.category_id.data,
        images=form.images.data,
    )
    return jsonify({"task": task.to_dict()}), 201


@tasks_bp.put("/tasks/<int:task_id>")
@login_required
def update(task_id):
    task = task_service.get_task(task_id)
    form = TaskUpdateForm().validate_or_raise()
    fields = {
        name: getattr(form, name).data
        for name in ("name", "description", "price", "category_id", "images")
        if getattr(form, name).raw_data
    }
    task = task_service.update_task(current_user, task, **fields)
    return jsonify({"task": task.to_dict()})


@tasks_bp.post("/tasks/<int:task_id>/archive")
@login_required
def archive(task_id):
    task = task_service.archive_task(current_user, task_service.get_task(task_id))
    return jsonify({"task": task.to_dict()})


@tasks_bp.get("/tasks/<int:task_id>/assignments")
@login_required
def task_assignments(task_id):
    task = task_service.get_task(task_id)
    return jsonify({"items": [a.to_dict() for a in workflow.assignments_for_task(current_user, task)]})
