import pytest

from coursework import db, badges
from coursework.badges import award_if_absent, award_badge, award_collaborator, badges_for, COLLABORATOR, EARLY_BIRD
from coursework.errors import BadInput, NotFound
from coursework.models import Badge, Student


def test_award_if_absent_inserts_once(seed, ctx):
    badge, created = award_if_absent(seed.alice_id, EARLY_BIRD)
    again, created_again = award_if_absent(seed.alice_id, EARLY_BIRD)

    assert created is True
    assert created_again is False
    assert again.id == badge.id
    assert Badge.query.filter_by(student_id=seed.alice_id).count() == 1


def test_unique_constraint_backs_up_the_lookup(seed, ctx, monkeypatch):
    first, _ = award_if_absent(seed.alice_id, EARLY_BIRD)
    monkeypatch.setattr(badges, "_existing_badge", lambda student_id, name: None)

    badge, created = award_if_absent(seed.alice_id, EARLY_BIRD)

    assert created is False
    assert badge.id == first.id
    assert Badge.query.filter_by(student_id=seed.alice_id, name=EARLY_BIRD).count() == 1


def test_same_badge_for_different_students(seed, ctx):
    award_if_absent(seed.alice_id, EARLY_BIRD)
    award_if_absent(seed.carol_id, EARLY_BIRD)
    assert Badge.query.filter_by(name=EARLY_BIRD).count() == 2


def test_award_collaborator_twice_is_rejected(seed, ctx):
    award_collaborator(seed.alice_id)
    with pytest.raises(BadInput, match="already has the Collaborator badge"):
        award_collaborator(seed.alice_id)


def test_award_badge_validation(seed, ctx):
    with pytest.raises(BadInput):
        award_badge(seed.alice_id, None)
    with pytest.raises(BadInput):
        award_badge(None, COLLABORATOR)
    with pytest.raises(NotFound):
        award_badge(9999, COLLABORATOR)


def test_badges_for_lists_only_own(seed, ctx):
    award_if_absent(seed.alice_id, EARLY_BIRD)
    award_if_absent(seed.carol_id, COLLABORATOR)
    alice = db.session.get(Student, seed.alice_id)
    assert [b.name for b in badges_for(alice)] == [EARLY_BIRD]
