import logging

from sqlalchemy.exc import IntegrityError

from coursework import db
from coursework.errors import BadInput, NotFound
from coursework.models import Badge, Student, utcnow

logger = logging.getLogger(__name__)

EARLY_BIRD = "EarlyBird"
PERFECTIONIST = "Perfectionist"
COLLABORATOR = "Collaborator"
SYSTEM_BADGES = (EARLY_BIRD, PERFECTIONIST, COLLABORATOR)


def _existing_badge(student_id, name):
    return Badge.query.filter_by(student_id=student_id, name=name).first()


def award_if_absent(student_id, name, now=None):
    """Insert a ``(student_id, name)`` badge unless one already exists.

    Returns ``(badge, created)``. The unique constraint on the badge table is
    what actually guarantees a single row; the lookup only avoids a needless
    insert. A concurrent insert that wins the race surfaces here as an
    ``IntegrityError`` and is reported as ``created=False``.
    """
    existing = _existing_badge(student_id, name)
    if existing:
        return existing, False

    badge = Badge(student=db.session.get(Student, student_id), name=name, awarded_date=now or utcnow())
    db.session.add(badge)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        logger.info("Badge %s for student %s was awarded concurrently", name, student_id)
        return Badge.query.filter_by(student_id=student_id, name=name).first(), False

    logger.info("Awarded %s badge to student %s", name, student_id)
    return badge, True


def _get_student(student_id):
    student = db.session.get(Student, student_id)
    if student is None:
        raise NotFound("Student not found")
    return student


def award_badge(student_id, name):
    if not student_id or not name:
        raise BadInput("Student ID and badge name are required")
    student = _get_student(student_id)
    badge, created = award_if_absent(student.id, name)
    if not created:
        raise BadInput(f"Student already has the {name} badge")
    return badge


def award_collaborator(student_id):
    if not student_id:
        raise BadInput("Student ID is required")
    return award_badge(student_id, COLLABORATOR)


def badges_for(student):
    return Badge.query.filter_by(student_id=student.id).order_by(Badge.awarded_date).all()
