from datetime import datetime

import pytest

from coursework import db, analytics
from coursework.auth import register_user
from coursework.errors import BadInput, NotFoundOrForbidden
from coursework.grading import create_submission, grade_manually
from coursework.models import Assignment, Professor, Student, User, STUDENT


@pytest.fixture
def course(seed, ctx):
    assignment = db.session.get(Assignment, seed.assignment_id)
    assignment.due_date = datetime(2024, 1, 10)
    db.session.commit()
    return {
        "ada": db.session.get(Professor, seed.ada_id),
        "bob": db.session.get(Professor, seed.bob_id),
        "alice": db.session.get(Student, seed.alice_id),
        "carol": db.session.get(Student, seed.carol_id),
        "assignment": assignment,
        "ada_user": User.query.filter_by(email=seed.ada_email).first(),
        "bob_user": User.query.filter_by(email=seed.bob_email).first(),
        "alice_user": User.query.filter_by(email=seed.alice_email).first(),
    }


def _submit(course, who, when, grade=None):
    sub = create_submission(course[who], course["assignment"].id, f"{who}'s work", now=when)
    if grade is not None:
        grade_manually(course["ada"], sub.id, grade)
    return sub


class TestAverageGrades:
    def test_no_graded_submissions(self, course):
        _submit(course, "alice", datetime(2024, 1, 9))
        [stats] = analytics.average_grades(course["ada"], assignment_id=course["assignment"].id)

        assert stats.submission_count == 1
        assert stats.graded_count == 0
        assert stats.average_grade == 0
        assert stats.highest_grade is None
        assert stats.lowest_grade is None

    def test_aggregates_only_graded(self, course):
        _submit(course, "alice", datetime(2024, 1, 9), grade=80)
        _submit(course, "carol", datetime(2024, 1, 9), grade=91)
        [stats] = analytics.average_grades(course["ada"], assignment_id=course["assignment"].id)

        assert stats.to_dict() == {
            "assignmentId": course["assignment"].id,
            "assignmentName": "Lexer",
            "submissionCount": 2,
            "gradedCount": 2,
            "averageGrade": 85.5,
            "highestGrade": 91,
            "lowestGrade": 80,
        }
        assert isinstance(stats.average_grade, float)

    def test_project_rows_follow_due_date(self, course):
        earlier = Assignment(name="Warmup", due_date=datetime(2023, 12, 1), max_points=10,
                             project=course["assignment"].project)
        db.session.add(earlier)
        db.session.commit()

        rows = analytics.average_grades(course["ada"], project_id=course["assignment"].project_id)
        assert [r.assignment_name for r in rows] == ["Warmup", "Lexer"]
        assert all(r.submission_count == 0 for r in rows)

    def test_other_professor_is_refused(self, course):
        with pytest.raises(NotFoundOrForbidden):
            analytics.average_grades(course["bob"], assignment_id=course["assignment"].id)

    def test_requires_a_scope(self, course):
        with pytest.raises(BadInput):
            analytics.average_grades(course["ada"])


class TestMissingSubmissions:
    def test_lists_students_without_submission_by_name(self, course):
        assert [m.student_name for m in analytics.missing_submissions(course["ada"], course["assignment"].id)] \
            == ["Alice", "Carol"]

        _submit(course, "alice", datetime(2024, 1, 9))
        [missing] = analytics.missing_submissions(course["ada"], course["assignment"].id)
        assert missing.to_dict()["studentEmail"] == "carol@uni.edu"

    def test_everyone_submitted(self, course):
        _submit(course, "alice", datetime(2024, 1, 9))
        _submit(course, "carol", datetime(2024, 1, 9))
        assert analytics.missing_submissions(course["ada"], course["assignment"].id) == []


class TestLeaderboard:
    def test_fewer_than_five_students_all_ranked(self, course):
        _submit(course, "alice", datetime(2024, 1, 9), grade=80)
        board = analytics.leaderboard()

        assert [(e.student_name, e.average_grade, e.submission_count) for e in board] == [
            ("Alice", 80.0, 1),
            ("Carol", 0.0, 0),
        ]

    def test_top_five_only(self, course):
        for i in range(5):
            register_user(f"Student {i}", f"s{i}@uni.edu", "pw", STUDENT)
        assert len(analytics.leaderboard()) == 5

    def test_empty_system(self, ctx):
        assert analytics.leaderboard() == []


class TestFilterSubmissions:
    def test_rows_carry_computed_fields(self, course):
        _submit(course, "alice", datetime(2024, 1, 13), grade=90)
        [row] = analytics.filter_submissions(course["ada_user"])

        assert row.is_late is True
        assert row.penalty == 15
        assert row.grade == 77
        assert row.final_grade == 77
        assert row.percentage_score == 77.0
        assert row.to_dict()["studentName"] == "Alice"

    def test_filters_and_sorting(self, course):
        _submit(course, "alice", datetime(2024, 1, 13), grade=90)
        _submit(course, "carol", datetime(2024, 1, 9))
        ada = course["ada_user"]

        assert [r.student_name for r in analytics.filter_submissions(ada, is_late="true")] == ["Alice"]
        assert [r.student_name for r in analytics.filter_submissions(ada, is_late="false")] == ["Carol"]
        assert [r.student_name for r in analytics.filter_submissions(ada, is_graded="false")] == ["Carol"]
        assert [r.student_name for r in analytics.filter_submissions(ada, min_grade="70", max_grade="80")] == ["Alice"]
        assert analytics.filter_submissions(ada, min_grade="78") == []
        names = [r.student_name for r in analytics.filter_submissions(ada, sort_by="studentName", sort_order="asc")]
        assert names == ["Alice", "Carol"]
        names = [r.student_name for r in analytics.filter_submissions(ada, sort_by="bogus", sort_order="bogus")]
        assert names == ["Alice", "Carol"]  # submittedAt desc

    def test_scoped_to_caller(self, course):
        _submit(course, "alice", datetime(2024, 1, 9))
        _submit(course, "carol", datetime(2024, 1, 9))

        assert analytics.filter_submissions(course["bob_user"]) == []
        assert [r.student_name for r in analytics.filter_submissions(course["alice_user"])] == ["Alice"]

    def test_bad_boolean(self, course):
        with pytest.raises(BadInput):
            analytics.filter_submissions(course["ada_user"], is_late="maybe")


def test_submission_counts_include_empty_projects(course):
    _submit(course, "alice", datetime(2024, 1, 9))
    [row] = analytics.submission_counts(course["ada"])
    assert row.to_dict() == {"projectId": course["assignment"].project_id, "projectName": "Compilers", "count": 1}
    assert analytics.submission_counts(course["bob"]) == []
