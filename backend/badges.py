"""
Student Progress Engine - Badge Rule Engine
Unlock one-time badges from a progress snapshot
"""

from dataclasses import dataclass
from typing import Dict, Iterable, List, Sequence, Tuple

from models import Badge, BadgeStatus, Progress


# ============================================
# BADGE DEFINITIONS
# ============================================

# Evaluation order is the insertion order of this table
BADGE_DEFINITIONS = {
    # Quiz count badges
    "first_quiz": {
        "title": "First Steps",
        "description": "Complete your first quiz",
        "emoji": "🏅",
        "metric": "completed_quizzes",
        "threshold": 1
    },
    "quiz_10": {
        "title": "Quiz Novice",
        "description": "Complete 10 quizzes",
        "emoji": "🎯",
        "metric": "completed_quizzes",
        "threshold": 10
    },
    "quiz_50": {
        "title": "Quiz Expert",
        "description": "Complete 50 quizzes",
        "emoji": "🏆",
        "metric": "completed_quizzes",
        "threshold": 50
    },
    # XP badges
    "xp_100": {
        "title": "Rising Star",
        "description": "Earn 100 XP",
        "emoji": "⭐",
        "metric": "xp",
        "threshold": 100
    },
    "xp_500": {
        "title": "Super Star",
        "description": "Earn 500 XP",
        "emoji": "🌟",
        "metric": "xp",
        "threshold": 500
    },
    # Streak badges
    "streak_7": {
        "title": "Week Warrior",
        "description": "Maintain a 7-day streak",
        "emoji": "🔥",
        "metric": "streak",
        "threshold": 7
    },
    "streak_30": {
        "title": "Dedication Master",
        "description": "Maintain a 30-day streak",
        "emoji": "💪",
        "metric": "streak",
        "threshold": 30
    },
}


@dataclass(frozen=True)
class BadgeRule:
    id: str
    title: str
    description: str
    emoji: str
    metric: str
    threshold: int

    def current_value(self, snapshot: Progress) -> int:
        return getattr(snapshot, self.metric)

    def is_met(self, snapshot: Progress) -> bool:
        return self.current_value(snapshot) >= self.threshold

    def unlock(self, now: int) -> Badge:
        return Badge(
            id=self.id,
            title=self.title,
            description=self.description,
            emoji=self.emoji,
            unlocked_at=now
        )


def build_rules(definitions: Dict[str, dict]) -> Tuple[BadgeRule, ...]:
    """Turn a definitions table into rules, keeping table order."""
    rules = []
    for badge_id, data in definitions.items():
        if data["metric"] not in Progress.model_fields:
            raise ValueError(f"Badge {badge_id} uses unknown metric {data['metric']}")
        rules.append(BadgeRule(id=badge_id, **data))
    return tuple(rules)


BADGE_RULES = build_rules(BADGE_DEFINITIONS)


# ============================================
# RULE ENGINE
# ============================================

class BadgeRuleEngine:
    """Evaluates the rule table in a fixed order against a snapshot."""

    def __init__(self, rules: Sequence[BadgeRule] = BADGE_RULES):
        ids = [r.id for r in rules]
        if len(ids) != len(set(ids)):
            raise ValueError("Badge rule ids must be unique")
        self.rules = tuple(rules)

    def evaluate(
        self,
        snapshot: Progress,
        existing_badges: Iterable[Badge],
        now: int
    ) -> Tuple[Tuple[Badge, ...], Tuple[Badge, ...]]:
        """Return (full badge list, newly unlocked badges).

        Existing badges keep their position and unlockedAt. A rule whose id is
        already held never produces a second badge, so the delta is empty for
        anything unlocked before.
        """
        badges = list(existing_badges)
        held = {b.id for b in badges}
        newly_unlocked = []

        for rule in self.rules:
            if rule.id in held or not rule.is_met(snapshot):
                continue
            badge = rule.unlock(now)
            badges.append(badge)
            newly_unlocked.append(badge)
            held.add(rule.id)

        return tuple(badges), tuple(newly_unlocked)

    def catalog(self, snapshot: Progress) -> List[BadgeStatus]:
        """Every rule with unlock state and progress toward its threshold."""
        held = {b.id: b for b in snapshot.badges}
        statuses = []

        for rule in self.rules:
            current = rule.current_value(snapshot)
            badge = held.get(rule.id)
            percent = round(min(current, rule.threshold) / rule.threshold * 100, 1) if rule.threshold > 0 else 100.0
            statuses.append(BadgeStatus(
                id=rule.id,
                title=rule.title,
                description=rule.description,
                emoji=rule.emoji,
                metric=rule.metric,
                threshold=rule.threshold,
                current_value=current,
                percent=100.0 if badge else percent,
                unlocked=badge is not None,
                unlocked_at=badge.unlocked_at if badge else None
            ))

        return statuses
