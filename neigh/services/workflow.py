# neigh/services/workflow.py
"""Task assignment lifecycle.

    NEW -> IN_PROGRESS -> COMPLETED -> ACCEPTED

The contractor drives the first two steps, the client the last. Every
transition (from the PATCH endpoint or an action endpoint) goes through
:func:`update_status`, which only ever moves one step forward.
"""
from __future__ import annotations

import logging
from datetime import datetime

from flask_babel import gettext as _

from ..extensions import db
from ..models.assignment import (
    TaskAssignment,
    TaskAssignmentStatus,
    STATUS_NEW,
    STATUS_IN_PROGRESS,
    STATUS_COMPLETED,
    STATUS_ACCEPTED,
)
from ..models.task import Task
from ..models.user import User
from . import chat
from .errors import InvalidTransition, NotFound, PermissionDenied, ValidationFailed

log = logging.getLogger(__name__)

CLIENT = "client"
CONTRACTOR = "contractor"

# target status -> (required current status, party allowed to move it, timestamp field)
TRANSITIONS = {
    STATUS_IN_PROGRESS: (STATUS_NEW, CONTRACTOR, "started_at"),
    STATUS_COMPLETED: (STATUS_IN_PROGRESS, CONTRACTOR, "completed_at"),
    STATUS_ACCEPTED: (STATUS_COMPLETED, CLIENT, "accepted_at"),
}

DENIED = {
    STATUS_IN_PROGRESS: "Only the assigned contractor can start this task",
    STATUS_COMPLETED: "Only the assigned contractor can mark a task as completed",
    STATUS_ACCEPTED: "Only the client can accept this task",
}

OUT_OF_ORDER = {
    STATUS_IN_PROGRESS: "Only new tasks can be started",
    STATUS_COMPLETED: "Only tasks in progress can be marked as completed",
    STATUS_ACCEPTED: "Only completed tasks can be accepted",
}


def get_status(name: str) -> TaskAssignmentStatus:
    status = TaskAssignmentStatus.query.filter_by(name=(name or "").upper()).first()
    if not status:
        raise ValidationFailed(_("Unknown status: %(name)s", name=name))
    return status


def list_statuses() -> list[TaskAssignmentStatus]:
    return TaskAssignmentStatus.query.order_by(TaskAssignmentStatus.order).all()


def party_of(user: User, assignment: TaskAssignment) -> str | None:
    if user.id == assignment.contractor_id:
        return CONTRACTOR
    if user.id == assignment.client_id:
        return CLIENT
    return None


# -----------------
# Lookup
# -----------------

def get_assignment(user: User, assignment_id: int) -> TaskAssignment:
    a = TaskAssignment.query.get(assignment_id)
    if not a:
        raise NotFound(_("Task assignment not found"))
    if not a.is_party(user) and not getattr(user, "is_admin", False):
        raise PermissionDenied(_("You are not part of this assignment"))
    return a


def assignments_for_contractor(user: User) -> list[TaskAssignment]:
    return (TaskAssignment.query.filter_by(contractor_id=user.id)
            .order_by(TaskAssignment.created_at.desc()).all())


def assignments_for_client(user: User) -> list[TaskAssignment]:
    return (TaskAssignment.query.filter_by(client_id=user.id)
            .order_by(TaskAssignment.created_at.desc()).all())


def assignments_for_task(user: User, task: Task) -> list[TaskAssignment]:
    if task.created_by != user.id and not getattr(user, "is_admin", False):
        raise PermissionDenied(_("Only the task owner can view its assignments"))
    return list(task.assignments)


# -----------------
# Assign
# -----------------

def assign_task(client: User, task: Task, contractor: User | None) -> TaskAssignment:
    if contractor is None or not contractor.is_active:
        raise NotFound(_("Contractor not found"))
    if task.created_by != client.id:
        raise PermissionDenied(_("Only the task owner can assign a contractor"))
    if task.is_archived:
        raise ValidationFailed(_("Archived tasks cannot be assigned"))
    if contractor.id == client.id:
        raise ValidationFailed(_("You cannot assign your own task to yourself"))

    exists = TaskAssignment.query.filter_by(task_id=task.id, contractor_id=contractor.id).first()
    if exists:
        raise ValidationFailed(_("This contractor is already assigned to the task"))

    a = TaskAssignment(
        task_id=task.id,
        client_id=client.id,
        contractor_id=contractor.id,
        status=get_status(STATUS_NEW),
    )
    db.session.add(a)
    db.session.commit()
    log.info("task %s assigned to user %s (assignment %s)", task.id, contractor.id, a.id)

    chat.post_system_message(
        client, a,
        _("%(client)s assigned \"%(task)s\" to %(contractor)s",
          client=client.name, task=task.name, contractor=contractor.name),
        chat.EVENT_TASK_ASSIGNED,
        {"status": STATUS_NEW},
    )
    return a


# -----------------
# Transitions
# -----------------

def update_status(user: User, assignment: TaskAssignment, target: str) -> TaskAssignment:
    target_status = get_status(target)
    rule = TRANSITIONS.get(target_status.name)
    if rule is None:
        # NEW is only ever the initial status
        raise InvalidTransition(_("Status cannot be changed to %(name)s", name=target_status.name))

    required, allowed_party, stamp = rule
    if party_of(user, assignment) != allowed_party:
        raise PermissionDenied(_(DENIED[target_status.name]))

    current = assignment.status_name
    if current != required:
        raise InvalidTransition(_(OUT_OF_ORDER[target_status.name]),
                                details={"current": current, "requested": target_status.name})

    previous = current
    # compare-and-swap on the status row: a concurrent transition wins, we lose
    updated = (
        TaskAssignment.query
        .filter(TaskAssignment.id == assignment.id,
                TaskAssignment.status_id == assignment.status_id)
        .update({TaskAssignment.status_id: target_status.id,
                 getattr(TaskAssignment, stamp): datetime.utcnow()},
                synchronize_session=False)
    )
    if not updated:
        db.session.rollback()
        raise InvalidTransition(_("The task status changed meanwhile, reload and try again"))
    db.session.commit()
    db.session.refresh(assignment)
    log.info("assignment %s: %s -> %s by user %s", assignment.id, previous, target_status.name, user.id)

    chat.post_system_message(
        user, assignment,
        _("Status changed from %(old)s to %(new)s", old=previous, new=target_status.name),
        chat.EVENT_STATUS_UPDATE,
        {"from": previous, "to": target_status.name},
    )
    return assignment


def start_assignment(user: User, assignment: TaskAssignment) -> TaskAssignment:
    return update_status(user, assignment, STATUS_IN_PROGRESS)


def complete_assignment(user: User, assignment: TaskAssignment) -> TaskAssignment:
    return update_status(user, assignment, STATUS_COMPLETED)


def accept_assignment(user: User, assignment: TaskAssignment) -> TaskAssignment:
    return update_status(user, assignment, STATUS_ACCEPTED)
