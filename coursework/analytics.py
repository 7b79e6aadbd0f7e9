"""Read-only aggregate views.

Each query returns a list of small typed rows. Numeric conversion happens
once, in the ``from_row`` constructors: counts become ``int``, averages
``float`` and grade extrema ``int`` or ``None``. Nothing here writes to the
database, and every query returns an empty list when there is nothing to
aggregate.
"""
from dataclasses import dataclass, asdict
from datetime import datetime
from typing import Optional

from sqlalchemy import func, case, and_, exists

from coursework import db
from coursework.auth import owned_assignment, owned_project
from coursework.errors import BadInput
from coursework.models import (User, Student, Project, Assignment, Submission, Badge,
                               PROFESSOR, STUDENT, isoformat, utcnow)
from coursework.penalty import apply_penalty, percentage_score, days_until_due

SORT_COLUMNS = ("submittedAt", "grade", "studentName")
SORT_ORDERS = ("asc", "desc")


def _camel(name):
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


class _Row:
    def to_dict(self):
        data = {}
        for key, value in asdict(self).items():
            data[_camel(key)] = isoformat(value) if isinstance(value, datetime) else value
        return data


def _int(value):
    return int(value) if value is not None else None


@dataclass
class AssignmentGradeStats(_Row):
    assignment_id: int
    assignment_name: str
    submission_count: int
    graded_count: int
    average_grade: float
    highest_grade: Optional[int]
    lowest_grade: Optional[int]

    @classmethod
    def from_row(cls, row):
        return cls(
            assignment_id=row.assignment_id,
            assignment_name=row.assignment_name,
            submission_count=int(row.submission_count or 0),
            graded_count=int(row.graded_count or 0),
            average_grade=float(row.average_grade or 0),
            highest_grade=_int(row.highest_grade),
            lowest_grade=_int(row.lowest_grade),
        )


@dataclass
class MissingSubmission(_Row):
    user_id: int
    student_id: int
    student_name: Optional[str]
    student_email: str


@dataclass
class LeaderboardEntry(_Row):
    user_id: int
    student_id: int
    student_name: Optional[str]
    average_grade: float
    submission_count: int

    @classmethod
    def from_row(cls, row):
        return cls(
            user_id=row.user_id,
            student_id=row.student_id,
            student_name=row.student_name,
            average_grade=float(row.average_grade or 0),
            submission_count=int(row.submission_count or 0),
        )


@dataclass
class FilteredSubmission(_Row):
    submission_id: int
    submitted_at: datetime
    raw_grade: Optional[float]
    grade: Optional[int]
    penalty: int
    remarks: Optional[str]
    assignment_id: int
    assignment_name: str
    due_date: datetime
    max_points: int
    student_id: int
    user_id: int
    student_name: Optional[str]
    student_email: str
    project_id: int
    project_name: str
    is_late: bool
    final_grade: Optional[int]
    percentage_score: Optional[float]

    @classmethod
    def from_row(cls, row):
        if row.raw_grade is not None:
            final_grade = apply_penalty(row.raw_grade, row.penalty)
        else:
            # Graded before raw grades were recorded; the stored grade is already final
            final_grade = _int(row.grade)
        return cls(
            submission_id=row.submission_id,
            submitted_at=row.submitted_at,
            raw_grade=row.raw_grade,
            grade=_int(row.grade),
            penalty=int(row.penalty or 0),
            remarks=row.remarks,
            assignment_id=row.assignment_id,
            assignment_name=row.assignment_name,
            due_date=row.due_date,
            max_points=int(row.max_points),
            student_id=row.student_id,
            user_id=row.user_id,
            student_name=row.student_name,
            student_email=row.student_email,
            project_id=row.project_id,
            project_name=row.project_name,
            is_late=bool(row.is_late),
            final_grade=final_grade,
            percentage_score=percentage_score(final_grade, row.max_points),
        )


@dataclass
class ProjectSubmissionCount(_Row):
    project_id: int
    project_name: str
    count: int


# --- AVERAGE GRADES ---
def _grade_stats_query():
    return (db.session.query(
        Assignment.id.label("assignment_id"),
        Assignment.name.label("assignment_name"),
        func.count(Submission.id).label("submission_count"),
        func.count(Submission.grade).label("graded_count"),
        func.coalesce(func.avg(Submission.grade), 0).label("average_grade"),
        func.max(Submission.grade).label("highest_grade"),
        func.min(Submission.grade).label("lowest_grade"),
    ).outerjoin(Submission, Submission.assignment_id == Assignment.id)
        .group_by(Assignment.id, Assignment.name))


def average_grades(professor, assignment_id=None, project_id=None):
    if assignment_id:
        assignment = owned_assignment(professor, assignment_id)
        rows = _grade_stats_query().filter(Assignment.id == assignment.id).all()
    elif project_id:
        project = owned_project(professor, project_id)
        rows = (_grade_stats_query().filter(Assignment.project_id == project.id)
                .order_by(Assignment.due_date).all())
    else:
        raise BadInput("Either assignmentId or projectId is required")
    return [AssignmentGradeStats.from_row(row) for row in rows]


# --- MISSING SUBMISSIONS ---
def missing_submissions(professor, assignment_id):
    assignment = owned_assignment(professor, assignment_id)
    submitted = exists().where(and_(Submission.student_id == Student.id,
                                    Submission.assignment_id == assignment.id))
    rows = (db.session.query(User.id, Student.id, User.name, User.email)
            .join(Student, Student.user_id == User.id)
            .filter(User.role == STUDENT, ~submitted)
            .order_by(User.name)
            .all())
    return [MissingSubmission(user_id=u_id, student_id=s_id, student_name=name, student_email=email)
            for u_id, s_id, name, email in rows]


# --- LEADERBOARD ---
def leaderboard(limit=5):
    """Top students by average grade across every submission in the system."""
    average = func.coalesce(func.avg(Submission.grade), 0)
    count = func.count(func.distinct(Submission.id))
    rows = (db.session.query(
        User.id.label("user_id"),
        Student.id.label("student_id"),
        User.name.label("student_name"),
        average.label("average_grade"),
        count.label("submission_count"),
    ).select_from(Student)
        .join(User, Student.user_id == User.id)
        .outerjoin(Submission, Submission.student_id == Student.id)
        .group_by(User.id, Student.id, User.name)
        .order_by(average.desc(), count.desc(), User.name)
        .limit(limit)
        .all())
    return [LeaderboardEntry.from_row(row) for row in rows]


# --- FILTERED SEARCH ---
def _as_bool(value):
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        return value
    lowered = str(value).lower()
    if lowered == "true":
        return True
    if lowered == "false":
        return False
    raise BadInput(f"Expected 'true' or 'false', got {value!r}")


def _as_int(value, name):
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise BadInput(f"{name} must be an integer")


def filter_submissions(user, assignment_id=None, project_id=None, min_grade=None, max_grade=None,
                       is_graded=None, is_late=None, sort_by="submittedAt", sort_order="desc"):
    assignment_id = _as_int(assignment_id, "assignmentId")
    project_id = _as_int(project_id, "projectId")
    min_grade = _as_int(min_grade, "minGrade")
    max_grade = _as_int(max_grade, "maxGrade")
    is_graded = _as_bool(is_graded)
    is_late = _as_bool(is_late)

    late = Submission.submitted_at > Assignment.due_date
    query = (db.session.query(
        Submission.id.label("submission_id"),
        Submission.submitted_at,
        Submission.raw_grade,
        Submission.grade,
        Submission.penalty,
        Submission.remarks,
        Assignment.id.label("assignment_id"),
        Assignment.name.label("assignment_name"),
        Assignment.due_date,
        Assignment.max_points,
        Student.id.label("student_id"),
        User.id.label("user_id"),
        User.name.label("student_name"),
        User.email.label("student_email"),
        Project.id.label("project_id"),
        Project.name.label("project_name"),
        case((late, True), else_=False).label("is_late"),
    ).select_from(Submission)
        .join(Assignment, Submission.assignment_id == Assignment.id)
        .join(Student, Submission.student_id == Student.id)
        .join(User, Student.user_id == User.id)
        .join(Project, Assignment.project_id == Project.id))

    if user.role == PROFESSOR and user.professor:
        query = query.filter(Project.professor_id == user.professor.id)
    elif user.role == STUDENT and user.student:
        query = query.filter(Submission.student_id == user.student.id)
    else:
        return []

    if assignment_id is not None:
        query = query.filter(Assignment.id == assignment_id)
    if project_id is not None:
        query = query.filter(Project.id == project_id)
    if min_grade is not None:
        query = query.filter(Submission.grade >= min_grade)
    if max_grade is not None:
        query = query.filter(Submission.grade <= max_grade)
    if is_graded is True:
        query = query.filter(Submission.grade.isnot(None))
    elif is_graded is False:
        query = query.filter(Submission.grade.is_(None))
    if is_late is True:
        query = query.filter(late)
    elif is_late is False:
        query = query.filter(~late)

    sort_by = sort_by if sort_by in SORT_COLUMNS else "submittedAt"
    sort_order = sort_order.lower() if sort_order and sort_order.lower() in SORT_ORDERS else "desc"
    column = {"submittedAt": Submission.submitted_at,
              "grade": Submission.grade,
              "studentName": User.name}[sort_by]
    query = query.order_by(column.asc() if sort_order == "asc" else column.desc(), Submission.id)

    return [FilteredSubmission.from_row(row) for row in query.all()]


# --- SUBMISSION COUNTS / DASHBOARD ---
def submission_counts(professor):
    rows = (db.session.query(Project.id, Project.name, func.count(Submission.id))
            .outerjoin(Assignment, Assignment.project_id == Project.id)
            .outerjoin(Submission, Submission.assignment_id == Assignment.id)
            .filter(Project.professor_id == professor.id)
            .group_by(Project.id, Project.name)
            .order_by(Project.name)
            .all())
    return [ProjectSubmissionCount(project_id=p_id, project_name=name, count=int(count))
            for p_id, name, count in rows]


def _recent(query):
    return [{
        "id": s.id,
        "student": s.student.user.name,
        "assignment": s.assignment.name,
        "project": s.assignment.project.name,
        "submittedAt": isoformat(s.submitted_at),
        "status": s.status,
        "grade": s.grade,
    } for s in query.order_by(Submission.submitted_at.desc()).limit(5).all()]


def dashboard(user, now=None):
    now = now or utcnow()

    if user.role == PROFESSOR and user.professor:
        own = Submission.query.join(Assignment).join(Project).filter(Project.professor_id == user.professor.id)
        return {
            "stats": {
                "projectsCount": Project.query.filter_by(professor_id=user.professor.id).count(),
                "studentsCount": Student.query.count(),
                "pendingEvaluationsCount": own.filter(Submission.grade.is_(None)).count(),
                "completedAssignmentsCount": own.filter(Submission.grade.isnot(None)).count(),
            },
            "recentSubmissions": _recent(own),
        }

    if user.role == STUDENT and user.student:
        submitted = exists().where(and_(Submission.assignment_id == Assignment.id,
                                        Submission.student_id == user.student.id))
        upcoming = Assignment.query.filter(Assignment.due_date > now, ~submitted)
        mine = Submission.query.filter_by(student_id=user.student.id)
        return {
            "stats": {
                "enrolledProjectsCount": Project.query.count(),
                "pendingAssignmentsCount": upcoming.count(),
                "submittedAssignmentsCount": mine.count(),
                "badgesCount": Badge.query.filter_by(student_id=user.student.id).count(),
            },
            "upcomingAssignments": [{
                "id": a.id,
                "name": a.name,
                "project": a.project.name,
                "dueDate": isoformat(a.due_date),
                "daysLeft": days_until_due(now, a.due_date),
            } for a in upcoming.order_by(Assignment.due_date).limit(5).all()],
            "recentSubmissions": _recent(mine),
        }

    return {}
