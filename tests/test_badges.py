"""Tests for the badge rule engine."""

import pytest

from badges import BADGE_DEFINITIONS, BADGE_RULES, BadgeRule, BadgeRuleEngine, build_rules
from conftest import START
from models import Badge, Progress


@pytest.fixture
def engine():
    return BadgeRuleEngine()


def snapshot(**fields):
    xp = fields.get("xp", 0)
    return Progress(user_id="u1", level=xp // 100 + 1, **fields)


def test_rule_table_order():
    assert [r.id for r in BADGE_RULES] == [
        "first_quiz", "quiz_10", "quiz_50", "xp_100", "xp_500", "streak_7", "streak_30"
    ]


def test_nothing_unlocked_for_zero_state(engine):
    badges, newly = engine.evaluate(snapshot(), (), START)
    assert badges == ()
    assert newly == ()


def test_first_quiz_unlocks(engine):
    badges, newly = engine.evaluate(snapshot(completed_quizzes=1), (), START)
    assert [b.id for b in newly] == ["first_quiz"]
    assert badges == newly
    assert newly[0].unlocked_at == START
    assert newly[0].title == "First Steps"


def test_multiple_unlocks_follow_rule_order(engine):
    snap = snapshot(completed_quizzes=10, xp=510, streak=7)
    _, newly = engine.evaluate(snap, (), START)
    assert [b.id for b in newly] == ["first_quiz", "quiz_10", "xp_100", "xp_500", "streak_7"]


def test_reevaluation_is_idempotent(engine):
    snap = snapshot(completed_quizzes=12, xp=150)
    badges, newly = engine.evaluate(snap, (), START)
    again, newly_again = engine.evaluate(snap, badges, START + 1000)
    assert newly_again == ()
    assert again == badges
    assert len({b.id for b in again}) == len(again)


def test_existing_badges_keep_position_and_timestamp(engine):
    held = (Badge(id="xp_100", title="Rising Star", unlocked_at=42),)
    badges, newly = engine.evaluate(snapshot(completed_quizzes=1, xp=120), held, START)
    assert badges[0] == held[0]
    assert badges[0].unlocked_at == 42
    assert [b.id for b in newly] == ["first_quiz"]
    assert [b.id for b in badges] == ["xp_100", "first_quiz"]


def test_badge_is_kept_when_metric_drops(engine):
    # Streak broke after the badge was earned; the badge stays
    held = (Badge(id="streak_7", unlocked_at=1),)
    badges, newly = engine.evaluate(snapshot(streak=1), held, START)
    assert badges == held
    assert newly == ()


def test_catalog_reports_progress(engine):
    snap = snapshot(completed_quizzes=5, xp=130, badges=(Badge(id="first_quiz", unlocked_at=7),
                                                          Badge(id="xp_100", unlocked_at=8)))
    catalog = {s.id: s for s in engine.catalog(snap)}
    assert len(catalog) == len(BADGE_DEFINITIONS)
    assert catalog["first_quiz"].unlocked and catalog["first_quiz"].unlocked_at == 7
    assert catalog["quiz_10"].percent == 50.0
    assert catalog["quiz_10"].current_value == 5
    assert not catalog["quiz_10"].unlocked
    assert catalog["xp_500"].percent == 26.0
    assert catalog["xp_100"].percent == 100.0


def test_unknown_metric_rejected():
    with pytest.raises(ValueError):
        build_rules({"bad": {"title": "", "description": "", "emoji": "", "metric": "karma", "threshold": 1}})


def test_duplicate_rule_ids_rejected():
    rule = BadgeRule("dup", "t", "d", "e", "xp", 1)
    with pytest.raises(ValueError):
        BadgeRuleEngine([rule, rule])


def test_custom_rule_table():
    engine = BadgeRuleEngine([BadgeRule("cards_3", "Card Shark", "Study 3 sets", "🃏", "total_quiz_score", 3)])
    _, newly = engine.evaluate(snapshot(total_quiz_score=3), (), START)
    assert [b.id for b in newly] == ["cards_3"]
