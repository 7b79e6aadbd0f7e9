"""
Shared fixtures: a fresh in-memory SQLite app per test, a small seeded
course (two professors, two students, one project, one assignment) and a
fake Groq client. Zero network calls.
"""
from datetime import timedelta
from types import SimpleNamespace

import pytest

from coursework import create_app, db
from coursework.auth import register_user
from coursework.models import Project, Assignment, PROFESSOR, STUDENT, utcnow

PASSWORD = "secret"


@pytest.fixture
def app():
    app = create_app({
        "TESTING": True,
        "SECRET_KEY": "test",
        "SQLALCHEMY_DATABASE_URI": "sqlite://",
        "GROQ_API_KEY": None,
    })
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def ctx(app):
    """Push an app context for tests that call services directly."""
    with app.app_context():
        yield


@pytest.fixture
def seed(app):
    with app.app_context():
        ada = register_user("Ada Prof", "ada@uni.edu", PASSWORD, PROFESSOR)
        bob = register_user("Bob Prof", "bob@uni.edu", PASSWORD, PROFESSOR)
        alice = register_user("Alice", "alice@uni.edu", PASSWORD, STUDENT)
        carol = register_user("Carol", "carol@uni.edu", PASSWORD, STUDENT)

        project = Project(name="Compilers", description="Build a compiler", professor=ada.professor)
        db.session.add(project)
        db.session.commit()
        assignment = Assignment(name="Lexer", rubrics="Tokens are correct", max_points=100,
                                due_date=utcnow() + timedelta(days=3), project=project)
        db.session.add(assignment)
        db.session.commit()

        return SimpleNamespace(
            ada_email=ada.email, ada_id=ada.professor.id,
            bob_email=bob.email, bob_id=bob.professor.id,
            alice_email=alice.email, alice_id=alice.student.id,
            carol_email=carol.email, carol_id=carol.student.id,
            project_id=project.id, assignment_id=assignment.id,
        )


@pytest.fixture
def login(client):
    def _login(email):
        resp = client.post("/auth/login", json={"email": email, "password": PASSWORD})
        assert resp.status_code == 200
        return resp.get_json()
    return _login


class FakeGroq:
    """Stands in for ``groq.Groq``: only ``chat.completions.create`` is used."""

    def __init__(self, text=None, error=None):
        self.text = text
        self.error = error
        self.calls = []
        self.chat = SimpleNamespace(completions=SimpleNamespace(create=self._create))

    def _create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error:
            raise self.error
        message = SimpleNamespace(content=self.text)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


@pytest.fixture
def fake_groq(monkeypatch):
    """Route every AI call through a FakeGroq; set ``.text`` or ``.error`` per test."""
    import coursework.ai_evaluator as ai_evaluator

    fake = FakeGroq(text='{"grade": 80, "feedback": "Solid work"}')
    monkeypatch.setattr(ai_evaluator, "get_groq_client", lambda: fake)
    return fake
