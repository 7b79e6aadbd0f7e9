import logging
from datetime import datetime, timezone

from flask import Blueprint, request, jsonify, session

from coursework import db
from coursework import analytics
from coursework.auth import (current_user, require_professor, require_student, login_required, login_user,
                             register_user, authenticate, owned_project, owned_assignment, visible_submission)
from coursework.badges import award_badge, award_collaborator, badges_for
from coursework.errors import BadInput, Forbidden, NotFound
from coursework.grading import create_submission, grade_manually, grade_with_ai
from coursework.models import Project, Assignment, Submission, Student, PROFESSOR, STUDENT

logger = logging.getLogger(__name__)

routes = Blueprint('routes', __name__)


# --- HELPERS ---
def _body():
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _to_int(value, name):
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise BadInput(f"{name} must be an integer")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise BadInput(f"{name} must be an integer")


def _parse_datetime(value, name="dueDate"):
    """Accept ISO-8601 with or without offset / trailing Z; store naive UTC."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        raise BadInput(f"{name} must be an ISO-8601 date")
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def _max_points(value):
    points = _to_int(value, "maxPoints")
    if points is None:
        return 100
    if points <= 0:
        raise BadInput("maxPoints must be positive")
    return points


# --- AUTH ROUTES ---
@routes.route('/auth/register', methods=['POST'])
def register():
    data = _body()
    user = register_user(data.get('name'), data.get('email'), data.get('password'), data.get('role'))
    login_user(user)
    return jsonify(user.to_dict()), 201


@routes.route('/auth/login', methods=['POST'])
def login():
    data = _body()
    user = authenticate(data.get('email'), data.get('password'))
    login_user(user)
    logger.info("User %s logged in", user.email)
    return jsonify(user.to_dict())


@routes.route('/auth/logout', methods=['POST'])
def logout():
    session.clear()
    return jsonify({"message": "Logged out"})


@routes.route('/auth/me')
def me():
    return jsonify(current_user().to_dict())


# --- PROJECT ROUTES ---
@routes.route('/projects', methods=['GET'])
def list_projects():
    user = current_user()
    if user.role == PROFESSOR and user.professor:
        projects = Project.query.filter_by(professor_id=user.professor.id).order_by(Project.created_at).all()
    else:
        # No enrollment model: students see every project
        projects = Project.query.order_by(Project.created_at).all()
    return jsonify([p.to_dict(with_assignments=True) for p in projects])


@routes.route('/projects', methods=['POST'])
def create_project():
    _, professor = require_professor("Only professors can create projects")
    data = _body()
    if not data.get('name'):
        raise BadInput("Project name is required")
    project = Project(name=data['name'], description=data.get('description'), professor=professor)
    db.session.add(project)
    db.session.commit()
    return jsonify(project.to_dict()), 201


@routes.route('/projects/<int:id>', methods=['GET'])
def get_project(id):
    user = current_user()
    if user.role == PROFESSOR and user.professor:
        project = owned_project(user.professor, id)
    else:
        project = db.session.get(Project, id)
        if project is None:
            raise NotFound("Project not found")
    return jsonify(project.to_dict(with_assignments=True))


@routes.route('/projects/<int:id>', methods=['PUT'])
def update_project(id):
    _, professor = require_professor("Only professors can update projects")
    project = owned_project(professor, id)
    data = _body()
    if not data.get('name'):
        raise BadInput("Project name is required")
    project.name = data['name']
    project.description = data.get('description')
    db.session.commit()
    return jsonify(project.to_dict())


@routes.route('/projects/<int:id>', methods=['DELETE'])
def delete_project(id):
    _, professor = require_professor("Only professors can delete projects")
    db.session.delete(owned_project(professor, id))
    db.session.commit()
    return jsonify({"message": "Project deleted successfully"})


# --- ASSIGNMENT ROUTES ---
def _student_view(assignment, student):
    submission = Submission.query.filter_by(assignment_id=assignment.id, student_id=student.id).first()
    data = assignment.to_dict()
    data["submitted"] = submission is not None
    data["submissionId"] = submission.id if submission else None
    data["grade"] = submission.grade if submission else None
    if submission is None:
        data["status"] = "pending"
    else:
        data["status"] = "graded" if submission.grade is not None else "submitted"
    return data


@routes.route('/assignments', methods=['GET'])
def list_assignments():
    user = current_user()
    project_id = _to_int(request.args.get('projectId'), "projectId")
    query = Assignment.query

    if user.role == PROFESSOR and user.professor:
        if project_id:
            owned_project(user.professor, project_id)
            query = query.filter_by(project_id=project_id)
        else:
            query = query.join(Project).filter(Project.professor_id == user.professor.id)
    elif project_id:
        query = query.filter_by(project_id=project_id)

    assignments = query.order_by(Assignment.due_date).all()
    if user.role == STUDENT and user.student:
        return jsonify([_student_view(a, user.student) for a in assignments])
    return jsonify([a.to_dict() for a in assignments])


@routes.route('/assignments', methods=['POST'])
def create_assignment():
    _, professor = require_professor("Only professors can create assignments")
    data = _body()
    if not data.get('name') or not data.get('dueDate') or not data.get('projectId'):
        raise BadInput("Name, due date, and project ID are required")
    project = owned_project(professor, _to_int(data['projectId'], "projectId"))

    assignment = Assignment(
        name=data['name'],
        description=data.get('description'),
        rubrics=data.get('rubrics'),
        due_date=_parse_datetime(data['dueDate']),
        max_points=_max_points(data.get('maxPoints')),
        project=project,
    )
    db.session.add(assignment)
    db.session.commit()
    return jsonify(assignment.to_dict()), 201


@routes.route('/assignments/<int:id>', methods=['GET'])
def get_assignment(id):
    user = current_user()
    if user.role == PROFESSOR and user.professor:
        return jsonify(owned_assignment(user.professor, id).to_dict())

    assignment = db.session.get(Assignment, id)
    if assignment is None:
        raise NotFound("Assignment not found")
    if user.role == STUDENT and user.student:
        data = _student_view(assignment, user.student)
        submission = Submission.query.filter_by(assignment_id=id, student_id=user.student.id).first()
        data["submission"] = submission.to_dict() if submission else None
        return jsonify(data)
    return jsonify(assignment.to_dict())


@routes.route('/assignments/<int:id>', methods=['PUT'])
def update_assignment(id):
    _, professor = require_professor("Only professors can update assignments")
    assignment = owned_assignment(professor, id)
    data = _body()
    if not data.get('name') or not data.get('dueDate'):
        raise BadInput("Name and due date are required")

    assignment.name = data['name']
    assignment.description = data.get('description')
    assignment.rubrics = data.get('rubrics')
    assignment.due_date = _parse_datetime(data['dueDate'])
    assignment.max_points = _max_points(data.get('maxPoints'))
    db.session.commit()
    return jsonify(assignment.to_dict())


@routes.route('/assignments/<int:id>', methods=['DELETE'])
def delete_assignment(id):
    _, professor = require_professor("Only professors can delete assignments")
    db.session.delete(owned_assignment(professor, id))
    db.session.commit()
    return jsonify({"message": "Assignment deleted successfully"})


# --- SUBMISSION ROUTES ---
@routes.route('/submissions', methods=['GET'])
def list_submissions():
    user = current_user()
    assignment_id = _to_int(request.args.get('assignmentId'), "assignmentId")
    student_id = _to_int(request.args.get('studentId'), "studentId")
    query = Submission.query

    if user.role == PROFESSOR and user.professor:
        if assignment_id:
            owned_assignment(user.professor, assignment_id)
            query = query.filter(Submission.assignment_id == assignment_id)
        else:
            query = query.join(Assignment).join(Project).filter(Project.professor_id == user.professor.id)
        if student_id:
            query = query.filter(Submission.student_id == student_id)
    elif user.role == STUDENT and user.student:
        query = query.filter(Submission.student_id == user.student.id)
        if assignment_id:
            query = query.filter(Submission.assignment_id == assignment_id)
    else:
        raise Forbidden()

    submissions = query.order_by(Submission.submitted_at.desc()).all()
    return jsonify([{
        **s.to_dict(),
        "student": s.student.user.name,
        "assignment": s.assignment.name,
        "project": s.assignment.project.name,
    } for s in submissions])


@routes.route('/submissions', methods=['POST'])
def submit():
    _, student = require_student("Only students can submit assignments")
    data = _body()
    submission = create_submission(student, _to_int(data.get('assignmentId'), "assignmentId"), data.get('content'))
    return jsonify(submission.to_dict()), 201


@routes.route('/submissions/filter')
@login_required
def filter_submissions():
    user = current_user()
    args = request.args
    rows = analytics.filter_submissions(
        user,
        assignment_id=args.get('assignmentId'),
        project_id=args.get('projectId'),
        min_grade=args.get('minGrade'),
        max_grade=args.get('maxGrade'),
        is_graded=args.get('isGraded'),
        is_late=args.get('isLate'),
        sort_by=args.get('sortBy', 'submittedAt'),
        sort_order=args.get('sortOrder', 'desc'),
    )
    return jsonify([row.to_dict() for row in rows])


@routes.route('/submissions/counts')
def submission_counts():
    _, professor = require_professor("Only professors can access submission counts")
    return jsonify([row.to_dict() for row in analytics.submission_counts(professor)])


@routes.route('/submissions/<int:id>', methods=['GET'])
def get_submission(id):
    user = current_user()
    return jsonify(visible_submission(user, id).to_dict(detailed=True))


@routes.route('/submissions/<int:id>', methods=['PUT'])
def grade_submission(id):
    _, professor = require_professor("Only professors can grade submissions")
    data = _body()
    if 'grade' not in data:
        raise BadInput("Grade is required")
    submission = grade_manually(professor, id, data['grade'], remarks=data.get('remarks'),
                                feedback=data.get('feedback'))
    return jsonify(submission.to_dict(detailed=True))


@routes.route('/submissions/<int:id>/grade-ai', methods=['POST'])
def grade_submission_ai(id):
    _, professor = require_professor("Only professors can grade submissions")
    submission = grade_with_ai(professor, id)
    return jsonify(submission.to_dict(detailed=True))


# --- ANALYTICS ROUTES ---
@routes.route('/analytics/assignments')
def assignment_analytics():
    _, professor = require_professor("Only professors can access analytics")
    assignment_id = _to_int(request.args.get('assignmentId'), "assignmentId")
    project_id = _to_int(request.args.get('projectId'), "projectId")
    kind = request.args.get('type') or 'averageGrades'

    if not assignment_id and not project_id:
        raise BadInput("Either assignmentId or projectId is required")

    if kind == 'averageGrades':
        rows = analytics.average_grades(professor, assignment_id=assignment_id, project_id=project_id)
    elif kind == 'missingSubmissions':
        if not assignment_id:
            raise BadInput("assignmentId is required for missing submissions")
        rows = analytics.missing_submissions(professor, assignment_id)
    else:
        raise BadInput("Invalid analytics type")
    return jsonify([row.to_dict() for row in rows])


@routes.route('/leaderboard')
@login_required
def leaderboard():
    return jsonify([row.to_dict() for row in analytics.leaderboard()])


@routes.route('/dashboard')
def dashboard():
    return jsonify(analytics.dashboard(current_user()))


# --- BADGE ROUTES ---
@routes.route('/badges', methods=['GET'])
def list_badges():
    _, student = require_student("Only students can have badges")
    return jsonify([b.to_dict() for b in badges_for(student)])


@routes.route('/badges', methods=['POST'])
def create_badge():
    require_professor("Only professors can award badges")
    data = _body()
    badge = award_badge(_to_int(data.get('studentId'), "studentId"), data.get('name'))
    return jsonify(badge.to_dict()), 201


@routes.route('/badges/collaborator', methods=['POST'])
def create_collaborator_badge():
    require_professor("Only professors can award badges")
    badge = award_collaborator(_to_int(_body().get('studentId'), "studentId"))
    return jsonify(badge.to_dict()), 201


# --- STUDENT ROUTES ---
@routes.route('/students')
@login_required
def list_students():
    students = Student.query.all()
    return jsonify([s.to_dict() for s in students])
