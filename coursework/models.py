from coursework import db
from datetime import datetime, timezone


PROFESSOR = "Professor"
STUDENT = "Student"
ROLES = (PROFESSOR, STUDENT)


def utcnow():
    # Stored as naive UTC; SQLite drops tzinfo anyway.
    return datetime.now(timezone.utc).replace(tzinfo=None)


def isoformat(value):
    return value.isoformat() + "Z" if value else None


class User(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120))
    email = db.Column(db.String(120), unique=True, nullable=False)
    password_hash = db.Column(db.String(256), nullable=False)
    role = db.Column(db.String(10), nullable=False)  # 'Professor' or 'Student'

    professor = db.relationship('Professor', backref='user', uselist=False, cascade="all, delete-orphan")
    student = db.relationship('Student', backref='user', uselist=False, cascade="all, delete-orphan")

    def to_dict(self):
        return {"id": self.id, "name": self.name, "email": self.email, "role": self.role}


class Professor(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), unique=True, nullable=False)

    projects = db.relationship('Project', backref='professor', lazy=True, cascade="all, delete-orphan")


class Student(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), unique=True, nullable=False)

    submissions = db.relationship('Submission', backref='student', lazy=True, cascade="all, delete-orphan")
    badges = db.relationship('Badge', backref='student', lazy=True, cascade="all, delete-orphan")

    def to_dict(self):
        return {"id": self.id, "userId": self.user_id, "name": self.user.name, "email": self.user.email}


class Project(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(150), nullable=False)
    description = db.Column(db.Text)
    professor_id = db.Column(db.Integer, db.ForeignKey('professor.id'), nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    assignments = db.relationship('Assignment', backref='project', lazy=True, cascade="all, delete-orphan",
                                  order_by='Assignment.due_date')

    def to_dict(self, with_assignments=False):
        data = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "professorId": self.professor_id,
            "createdAt": isoformat(self.created_at),
            "updatedAt": isoformat(self.updated_at),
        }
        if with_assignments:
            data["assignments"] = [
                {"id": a.id, "name": a.name, "dueDate": isoformat(a.due_date),
                 "submissionCount": len(a.submissions)}
                for a in self.assignments
            ]
        return data


class Assignment(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(150), nullable=False)
    description = db.Column(db.Text)
    rubrics = db.Column(db.Text)
    due_date = db.Column(db.DateTime, nullable=False)
    max_points = db.Column(db.Integer, nullable=False, default=100)
    project_id = db.Column(db.Integer, db.ForeignKey('project.id'), nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    submissions = db.relationship('Submission', backref='assignment', lazy=True, cascade="all, delete-orphan")

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "rubrics": self.rubrics,
            "dueDate": isoformat(self.due_date),
            "maxPoints": self.max_points,
            "projectId": self.project_id,
            "project": {"id": self.project.id, "name": self.project.name},
            "submissionCount": len(self.submissions),
            "createdAt": isoformat(self.created_at),
            "updatedAt": isoformat(self.updated_at),
        }


class Submission(db.Model):
    __table_args__ = (
        db.UniqueConstraint('student_id', 'assignment_id', name='uq_submission_student_assignment'),
    )

    id = db.Column(db.Integer, primary_key=True)
    student_id = db.Column(db.Integer, db.ForeignKey('student.id'), nullable=False)
    assignment_id = db.Column(db.Integer, db.ForeignKey('assignment.id'), nullable=False)
    content = db.Column(db.Text, nullable=False)
    raw_grade = db.Column(db.Float)
    grade = db.Column(db.Integer)  # post-penalty
    feedback = db.Column(db.Text)
    remarks = db.Column(db.Text)
    # Frozen at creation time
    penalty = db.Column(db.Integer, nullable=False, default=0)
    submitted_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    @property
    def status(self):
        return "pending" if self.grade is None else "graded"

    def to_dict(self, detailed=False):
        data = {
            "id": self.id,
            "studentId": self.student_id,
            "assignmentId": self.assignment_id,
            "content": self.content,
            "rawGrade": self.raw_grade,
            "grade": self.grade,
            "feedback": self.feedback,
            "remarks": self.remarks,
            "penalty": self.penalty,
            "status": self.status,
            "submittedAt": isoformat(self.submitted_at),
            "updatedAt": isoformat(self.updated_at),
        }
        if detailed:
            data["student"] = self.student.to_dict()
            data["assignment"] = self.assignment.to_dict()
        return data


class Badge(db.Model):
    __table_args__ = (
        db.UniqueConstraint('student_id', 'name', name='uq_badge_student_name'),
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(50), nullable=False)
    student_id = db.Column(db.Integer, db.ForeignKey('student.id'), nullable=False)
    awarded_date = db.Column(db.DateTime, default=utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "studentId": self.student_id,
            "awardedDate": isoformat(self.awarded_date),
        }
