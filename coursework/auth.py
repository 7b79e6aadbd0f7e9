"""Identity & authorization guard.

Every protected route resolves the caller through ``current_user`` and then
checks ownership through one of the ``owned_*`` lookups. Ownership failures
raise ``NotFoundOrForbidden`` so that callers cannot probe for other
professors' rows.
"""
import logging
from functools import wraps

from flask import session
from werkzeug.security import generate_password_hash, check_password_hash

from coursework import db
from coursework.errors import BadInput, Forbidden, NotFound, NotFoundOrForbidden, Unauthenticated
from coursework.models import User, Professor, Student, Project, Assignment, Submission, PROFESSOR, STUDENT, ROLES

logger = logging.getLogger(__name__)


def get_principal():
    if 'email' not in session:
        return None
    return {"id": session.get('user_id'), "email": session['email'], "role": session.get('role')}


def current_user():
    principal = get_principal()
    if principal is None:
        raise Unauthenticated()
    user = User.query.filter_by(email=principal['email']).first()
    if user is None:
        # Session and store can drift apart (deleted account, reset database)
        raise NotFound("User not found")
    return user


def require_professor(message="Only professors can perform this action"):
    user = current_user()
    if user.role != PROFESSOR or user.professor is None:
        raise Forbidden(message)
    return user, user.professor


def require_student(message="Only students can perform this action"):
    user = current_user()
    if user.role != STUDENT or user.student is None:
        raise Forbidden(message)
    return user, user.student


def login_required(f):
    """Reject the request with 401 before the view runs when nobody is logged in."""

    @wraps(f)
    def decorated_function(*args, **kwargs):
        if get_principal() is None:
            raise Unauthenticated()
        return f(*args, **kwargs)

    return decorated_function


# --- OWNERSHIP LOOKUPS ---
def owned_project(professor, project_id):
    project = Project.query.filter_by(id=project_id, professor_id=professor.id).first()
    if project is None:
        raise NotFoundOrForbidden("Project not found or not authorized")
    return project


def owned_assignment(professor, assignment_id):
    assignment = (Assignment.query.join(Project)
                  .filter(Assignment.id == assignment_id, Project.professor_id == professor.id)
                  .first())
    if assignment is None:
        raise NotFoundOrForbidden("Assignment not found or not authorized")
    return assignment


def owned_submission(professor, submission_id):
    submission = (Submission.query.join(Assignment).join(Project)
                  .filter(Submission.id == submission_id, Project.professor_id == professor.id)
                  .first())
    if submission is None:
        raise NotFoundOrForbidden("Submission not found or not authorized")
    return submission


def student_submission(student, submission_id):
    submission = Submission.query.filter_by(id=submission_id, student_id=student.id).first()
    if submission is None:
        raise NotFoundOrForbidden("Submission not found or not authorized")
    return submission


def visible_submission(user, submission_id):
    if user.role == PROFESSOR and user.professor:
        return owned_submission(user.professor, submission_id)
    if user.role == STUDENT and user.student:
        return student_submission(user.student, submission_id)
    raise Forbidden()


# --- ACCOUNTS ---
def register_user(name, email, password, role):
    if not email or not password:
        raise BadInput("Email and password are required")
    if role not in ROLES:
        raise BadInput("Invalid role")
    if User.query.filter_by(email=email).first():
        raise BadInput("Email already registered")

    user = User(name=name, email=email, password_hash=generate_password_hash(password), role=role)
    if role == PROFESSOR:
        user.professor = Professor()
    else:
        user.student = Student()
    db.session.add(user)
    db.session.commit()
    logger.info("Registered %s %s", role, email)
    return user


def authenticate(email, password):
    if not email or not password:
        raise BadInput("Email and password are required")
    user = User.query.filter_by(email=email).first()
    if user is None or not check_password_hash(user.password_hash, password):
        raise Unauthenticated("Invalid credentials")
    return user


def login_user(user):
    session.clear()
    session['user_id'] = user.id
    session['email'] = user.email
    session['role'] = user.role
