# neigh/seed.py
import logging
from .extensions import db
from .models.assignment import TaskAssignmentStatus, DEFAULT_STATUSES
from .models.category import Category

log = logging.getLogger(__name__)

DEFAULT_CATEGORIES = [
    ("Home Repair", "Fixes, assembly and small renovations"),
    ("Garden", "Mowing, weeding, planting and yard work"),
    ("Tutoring", "Lessons and homework help"),
    ("Cleaning", "Home and office cleaning"),
    ("Moving", "Packing, lifting and transport"),
]


def seed_statuses() -> int:
    added = 0
    for name, description, color, order in DEFAULT_STATUSES:
        row = TaskAssignmentStatus.query.filter_by(name=name).first()
        if row is None:
            db.session.add(TaskAssignmentStatus(name=name, description=description, color=color, order=order))
            added += 1
        else:
            row.order = order
    db.session.commit()
    return added


def seed_categories() -> int:
    added = 0
    for name, description in DEFAULT_CATEGORIES:
        if not Category.query.filter_by(name=name).first():
            db.session.add(Category(name=name, description=description))
            added += 1
    db.session.commit()
    return added


def seed_all() -> dict:
    result = {"statuses": seed_statuses(), "categories": seed_categories()}
    log.info("seed: %s", result)
    return result
