import pytest

from neigh.models.review import Review, OF_CLIENT, OF_CONTRACTOR
from neigh.services import reviews, workflow
from neigh.services.errors import PermissionDenied, ValidationFailed


@pytest.fixture
def accepted(parties):
    a = workflow.assign_task(parties.client, parties.task, parties.contractor)
    workflow.start_assignment(parties.contractor, a)
    workflow.complete_assignment(parties.contractor, a)
    workflow.accept_assignment(parties.client, a)
    return a


def test_review_before_acceptance_is_rejected(parties):
    a = workflow.assign_task(parties.client, parties.task, parties.contractor)
    with pytest.raises(ValidationFailed):
        reviews.submit_review(parties.client, a, 5)


def test_client_reviews_contractor(parties, accepted):
    review = reviews.submit_review(parties.client, accepted, 4, "Tidy work")
    assert review.direction == OF_CONTRACTOR
    assert review.reviewee_id == parties.contractor.id
    assert accepted.client_reviewed is True
    assert accepted.contractor_reviewed is False
    assert parties.contractor.contractor_rating == 4.0
    assert parties.contractor.num_reviews == 1


def test_each_side_reviews_once(parties, accepted):
    reviews.submit_review(parties.client, accepted, 5)
    reviews.submit_review(parties.contractor, accepted, 3, "Paid late")
    assert Review.query.filter_by(assignment_id=accepted.id).count() == 2
    assert parties.client.client_rating == 3.0
    assert accepted.client_reviewed and accepted.contractor_reviewed


def test_resubmitting_edits_the_review(parties, accepted):
    first = reviews.submit_review(parties.client, accepted, 2)
    second = reviews.submit_review(parties.client, accepted, 5, "Changed my mind")
    assert first.id == second.id
    assert Review.query.filter_by(assignment_id=accepted.id, direction=OF_CONTRACTOR).count() == 1
    assert parties.contractor.contractor_rating == 5.0
    assert parties.contractor.num_reviews == 1


@pytest.mark.parametrize("rating", [0, 6, "x", None, 4.7, "3.5", "NaN"])
def test_rating_bounds(parties, accepted, rating):
    with pytest.raises(ValidationFailed):
        reviews.submit_review(parties.client, accepted, rating)


def test_whole_number_ratings_accepted(parties, accepted):
    assert reviews.submit_review(parties.client, accepted, "4").rating == 4
    assert reviews.submit_review(parties.client, accepted, 5.0).rating == 5


def test_feedback_length(parties, accepted):
    with pytest.raises(ValidationFailed):
        reviews.submit_review(parties.client, accepted, 5, "x" * 2001)


def test_outsider_cannot_review(parties, accepted):
    with pytest.raises(PermissionDenied):
        reviews.submit_review(parties.outsider, accepted, 5)


def test_get_review_defaults_to_own_direction(parties, accepted):
    reviews.submit_review(parties.contractor, accepted, 4)
    assert reviews.get_review(parties.client, accepted) is None
    assert reviews.get_review(parties.contractor, accepted).rating == 4
    assert reviews.get_review(parties.client, accepted, OF_CLIENT).rating == 4


def test_reviews_for_user(parties, accepted):
    reviews.submit_review(parties.client, accepted, 5)
    rows = reviews.reviews_for_user(parties.contractor.id)
    assert [r.rating for r in rows] == [5]
    assert reviews.reviews_for_user(parties.contractor.id, OF_CLIENT) == []
