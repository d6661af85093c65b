"""
Student Progress Engine - Pydantic Models (v2 syntax)
Progress records are immutable values; every operation builds a new one.
"""

from typing import Optional, List, Tuple
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from xp_ledger import compute_level


class FrozenModel(BaseModel):
    """Immutable model encoded with camelCase keys, snake_case accepted on input."""
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    def to_json(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


# ============================================
# PROGRESS RECORD
# ============================================

class QuizAnswer(FrozenModel):
    question_id: str = ""
    selected_answer: int = -1
    correct_answer: int = -1
    is_correct: bool = False


class QuizResult(FrozenModel):
    quiz_id: str = ""
    quiz_title: str = ""
    score: int = 0
    total_questions: int = 0
    xp_earned: int = 0
    completed_at: int = 0
    answers: Tuple[QuizAnswer, ...] = ()
    event_id: Optional[str] = None

    @property
    def percentage(self) -> int:
        if self.total_questions <= 0:
            return 0
        return int(self.score / self.total_questions * 100)


class Badge(FrozenModel):
    id: str
    title: str = ""
    description: str = ""
    emoji: str = ""
    unlocked_at: int = 0


class Progress(FrozenModel):
    user_id: str
    xp: int = 0
    level: int = 1
    streak: int = 0
    last_activity_date: int = 0
    completed_quizzes: int = 0
    total_quiz_score: int = 0
    badges: Tuple[Badge, ...] = ()
    quiz_results: Tuple[QuizResult, ...] = ()
    studied_flashcard_sets: Tuple[str, ...] = ()
    # Store revision; 0 means the record has never been persisted
    version: int = 0

    @classmethod
    def zero(cls, user_id: str, version: int = 0) -> "Progress":
        return cls(user_id=user_id, version=version)

    @property
    def badge_ids(self) -> List[str]:
        return [b.id for b in self.badges]

    def has_badge(self, badge_id: str) -> bool:
        return any(b.id == badge_id for b in self.badges)

    def has_event(self, event_id: str) -> bool:
        return any(r.event_id == event_id for r in self.quiz_results)

    def check_invariants(self) -> List[str]:
        """Return every invariant this record breaks (empty when consistent)."""
        problems = []

        for name in ("xp", "streak", "last_activity_date", "completed_quizzes", "total_quiz_score", "version"):
            if getattr(self, name) < 0:
                problems.append(f"{name} is negative ({getattr(self, name)})")

        if self.level != compute_level(max(self.xp, 0)):
            problems.append(f"level {self.level} does not match xp {self.xp}")

        ids = self.badge_ids
        if len(ids) != len(set(ids)):
            problems.append("duplicate badge ids")

        stamps = [r.completed_at for r in self.quiz_results]
        if stamps != sorted(stamps):
            problems.append("quiz results out of completedAt order")

        if len(self.studied_flashcard_sets) != len(set(self.studied_flashcard_sets)):
            problems.append("duplicate flashcard set ids")

        return problems


# ============================================
# EVENT INPUTS
# ============================================

class QuizCompletionEvent(FrozenModel):
    quiz_id: str
    quiz_title: str = ""
    score: int
    total_questions: int
    answers: Tuple[QuizAnswer, ...] = ()
    # Optional stable id from the caller; repeated deliveries are applied once
    event_id: Optional[str] = None


class StudyEvent(FrozenModel):
    flashcard_set_id: str


class ResetRequest(FrozenModel):
    strict: bool = False


# ============================================
# OUTPUTS
# ============================================

class ProgressUpdate(FrozenModel):
    progress: Progress
    newly_unlocked: Tuple[Badge, ...] = ()
    # False when the event changed nothing (repeated event id, known flashcard set)
    applied: bool = True


class LevelProgress(FrozenModel):
    level: int
    xp: int
    xp_for_current_level: int
    xp_for_next_level: int
    percent: int


class ProgressSummary(FrozenModel):
    user_id: str
    level: LevelProgress
    streak: int
    completed_quizzes: int
    average_score_percent: float
    badges_unlocked: int
    badges_total: int
    studied_flashcard_sets: int
    recent_results: Tuple[QuizResult, ...] = ()


class BadgeStatus(FrozenModel):
    id: str
    title: str
    description: str
    emoji: str
    metric: str
    threshold: int
    current_value: int
    percent: float
    unlocked: bool
    unlocked_at: Optional[int] = None


class HealthStatus(BaseModel):
    status: str
    version: str
    store: str
