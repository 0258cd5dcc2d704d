import pytest
from sqlalchemy.orm import Session

from neigh.extensions import db
from neigh.models.assignment import STATUS_NEW, STATUS_IN_PROGRESS, STATUS_COMPLETED, STATUS_ACCEPTED, TaskAssignment
from neigh.models.chat import Message
from neigh.services import workflow
from neigh.services.errors import InvalidTransition, NotFound, PermissionDenied, ValidationFailed


@pytest.fixture
def assignment(parties):
    return workflow.assign_task(parties.client, parties.task, parties.contractor)


def test_statuses_are_seeded_in_order(ctx):
    assert [s.name for s in workflow.list_statuses()] == [
        STATUS_NEW, STATUS_IN_PROGRESS, STATUS_COMPLETED, STATUS_ACCEPTED,
    ]


def test_assign_starts_as_new(parties, assignment):
    assert assignment.status_name == STATUS_NEW
    assert assignment.client_id == parties.client.id
    assert assignment.contractor_id == parties.contractor.id
    assert workflow.assignments_for_contractor(parties.contractor) == [assignment]
    assert workflow.assignments_for_client(parties.client) == [assignment]


def test_assign_posts_system_message(assignment):
    msg = Message.query.filter_by(is_system_message=True).one()
    assert msg.meta["type"] == "task-assigned"
    assert msg.meta["assignment_id"] == assignment.id


def test_only_owner_can_assign(parties):
    with pytest.raises(PermissionDenied):
        workflow.assign_task(parties.outsider, parties.task, parties.contractor)


def test_cannot_assign_to_self(parties):
    with pytest.raises(ValidationFailed):
        workflow.assign_task(parties.client, parties.task, parties.client)


def test_cannot_assign_twice(parties, assignment):
    with pytest.raises(ValidationFailed):
        workflow.assign_task(parties.client, parties.task, parties.contractor)


def test_cannot_assign_archived_task(parties):
    parties.task.is_archived = True
    db.session.commit()
    with pytest.raises(ValidationFailed):
        workflow.assign_task(parties.client, parties.task, parties.contractor)


def test_unknown_contractor(parties):
    with pytest.raises(NotFound):
        workflow.assign_task(parties.client, parties.task, None)


def test_full_lifecycle(parties, assignment):
    workflow.start_assignment(parties.contractor, assignment)
    assert assignment.status_name == STATUS_IN_PROGRESS
    assert assignment.started_at is not None

    workflow.complete_assignment(parties.contractor, assignment)
    assert assignment.status_name == STATUS_COMPLETED
    assert assignment.completed_at is not None

    workflow.accept_assignment(parties.client, assignment)
    assert assignment.status_name == STATUS_ACCEPTED
    assert assignment.accepted_at is not None

    events = [
        m.meta for m in Message.query.filter_by(is_system_message=True).order_by(Message.id).all()
        if m.meta["type"] == "status-update"
    ]
    assert [(e["from"], e["to"]) for e in events] == [
        (STATUS_NEW, STATUS_IN_PROGRESS),
        (STATUS_IN_PROGRESS, STATUS_COMPLETED),
        (STATUS_COMPLETED, STATUS_ACCEPTED),
    ]


def test_update_status_accepts_lowercase_names(parties, assignment):
    workflow.update_status(parties.contractor, assignment, "in_progress")
    assert assignment.status_name == STATUS_IN_PROGRESS


def test_client_cannot_complete(parties, assignment):
    workflow.start_assignment(parties.contractor, assignment)
    with pytest.raises(PermissionDenied) as exc:
        workflow.complete_assignment(parties.client, assignment)
    assert exc.value.message == "Only the assigned contractor can mark a task as completed"
    assert assignment.status_name == STATUS_IN_PROGRESS


def test_contractor_cannot_accept(parties, assignment):
    workflow.start_assignment(parties.contractor, assignment)
    workflow.complete_assignment(parties.contractor, assignment)
    with pytest.raises(PermissionDenied) as exc:
        workflow.accept_assignment(parties.contractor, assignment)
    assert exc.value.message == "Only the client can accept this task"


def test_accept_requires_completed(parties, assignment):
    workflow.start_assignment(parties.contractor, assignment)
    with pytest.raises(InvalidTransition) as exc:
        workflow.accept_assignment(parties.client, assignment)
    assert exc.value.message == "Only completed tasks can be accepted"
    assert exc.value.details == {"current": STATUS_IN_PROGRESS, "requested": STATUS_ACCEPTED}


def test_cannot_skip_a_step(parties, assignment):
    with pytest.raises(InvalidTransition):
        workflow.complete_assignment(parties.contractor, assignment)
    assert assignment.status_name == STATUS_NEW


def test_cannot_move_back_to_new(parties, assignment):
    workflow.start_assignment(parties.contractor, assignment)
    with pytest.raises(InvalidTransition):
        workflow.update_status(parties.contractor, assignment, STATUS_NEW)


def test_unknown_status(parties, assignment):
    with pytest.raises(ValidationFailed):
        workflow.update_status(parties.contractor, assignment, "DONE")


def test_outsider_cannot_move_or_view(parties, assignment):
    with pytest.raises(PermissionDenied):
        workflow.start_assignment(parties.outsider, assignment)
    with pytest.raises(PermissionDenied):
        workflow.get_assignment(parties.outsider, assignment.id)


def test_repeated_start_is_rejected(parties, assignment):
    workflow.start_assignment(parties.contractor, assignment)
    with pytest.raises(InvalidTransition):
        workflow.start_assignment(parties.contractor, assignment)


def test_assignments_for_task_is_owner_only(parties, assignment):
    assert workflow.assignments_for_task(parties.client, parties.task) == [assignment]
    with pytest.raises(PermissionDenied):
        workflow.assignments_for_task(parties.contractor, parties.task)


def test_concurrent_transition_wins(parties, assignment):
    # load the row, then let another session move it on underneath us
    assert assignment.status_name == STATUS_NEW
    in_progress = workflow.get_status(STATUS_IN_PROGRESS).id
    with Session(db.engine) as other:
        other.get(TaskAssignment, assignment.id).status_id = in_progress
        other.commit()

    with pytest.raises(InvalidTransition) as exc:
        workflow.update_status(parties.contractor, assignment, STATUS_IN_PROGRESS)
    assert exc.value.message == "The task status changed meanwhile, reload and try again"

    assert assignment.status_name == STATUS_IN_PROGRESS
    updates = [m for m in Message.query.filter_by(is_system_message=True) if m.meta["type"] == "status-update"]
    assert updates == []
