import math
import logging

from sqlalchemy.exc import IntegrityError

from coursework import db
from coursework import ai_evaluator
from coursework.auth import owned_submission
from coursework.badges import award_if_absent, EARLY_BIRD, PERFECTIONIST
from coursework.errors import BadInput, NotFoundOrForbidden, GradingServiceUnavailable
from coursework.models import Assignment, Submission, utcnow
from coursework.penalty import calculate_penalty, apply_penalty, is_early

logger = logging.getLogger(__name__)

DEFAULT_RUBRIC = "Grade based on correctness, completeness, and clarity."
MAX_RAW_GRADE = 100000


def _existing_submission(student_id, assignment_id):
    return Submission.query.filter_by(assignment_id=assignment_id, student_id=student_id).first()


def create_submission(student, assignment_id, content, now=None):
    if not assignment_id or not content:
        raise BadInput("Assignment ID and content are required")

    assignment = db.session.get(Assignment, assignment_id)
    if assignment is None:
        raise NotFoundOrForbidden("Assignment not found")

    if _existing_submission(student.id, assignment.id):
        raise BadInput("You have already submitted this assignment")

    now = now or utcnow()
    submission = Submission(
        student=student,
        assignment=assignment,
        content=content,
        penalty=calculate_penalty(now, assignment.due_date),
        submitted_at=now,
    )
    db.session.add(submission)
    try:
        db.session.commit()
    except IntegrityError:
        # Lost the race against a parallel request for the same pair
        db.session.rollback()
        logger.info("Duplicate submission by student %s for assignment %s", student.id, assignment.id)
        raise BadInput("You have already submitted this assignment")

    logger.info("Student %s submitted assignment %s (penalty %s%%)", student.id, assignment.id, submission.penalty)

    if is_early(now, assignment.due_date):
        award_if_absent(student.id, EARLY_BIRD, now)

    return submission


def _parse_grade(value):
    if value is None or isinstance(value, bool):
        raise BadInput("Grade is required")
    try:
        grade = float(value)
    except (TypeError, ValueError):
        raise BadInput("Grade must be a number")
    if not math.isfinite(grade):
        raise BadInput("Grade must be a number")
    if abs(grade) > MAX_RAW_GRADE:
        raise BadInput("Grade is out of range")
    return grade


def _store_grade(submission, raw_grade, **fields):
    final_grade = apply_penalty(raw_grade, submission.penalty)
    submission.raw_grade = raw_grade
    submission.grade = final_grade
    for key, value in fields.items():
        setattr(submission, key, value)
    db.session.commit()

    if final_grade >= submission.assignment.max_points:
        award_if_absent(submission.student_id, PERFECTIONIST)
    return submission


def grade_manually(professor, submission_id, raw_grade, remarks=None, feedback=None):
    raw_grade = _parse_grade(raw_grade)
    submission = owned_submission(professor, submission_id)

    fields = {}
    if remarks is not None:
        fields["remarks"] = remarks
    if feedback is not None:
        fields["feedback"] = feedback
    _store_grade(submission, raw_grade, **fields)
    logger.info("Submission %s graded %s (raw %s, penalty %s%%)",
                submission.id, submission.grade, raw_grade, submission.penalty)
    return submission


def grade_with_ai(professor, submission_id, client=None):
    submission = owned_submission(professor, submission_id)
    assignment = submission.assignment

    result = ai_evaluator.grade_submission(
        submission.content or "",
        assignment.rubrics or DEFAULT_RUBRIC,
        assignment.max_points,
        client=client,
    )
    if isinstance(result, ai_evaluator.ParseFailure):
        raise GradingServiceUnavailable(f"Failed to grade submission with AI: {result.reason}")

    _store_grade(submission, result.grade, feedback=result.feedback)
    logger.info("Submission %s AI-graded %s (raw %s, penalty %s%%)",
                submission.id, submission.grade, result.grade, submission.penalty)
    return submission
