"""
Student Progress Engine - Progress Service
Applies learning events to a user's progress record.

Every mutating operation is one read-modify-write cycle:

    load -> streak -> XP/level -> badges -> save(expected_version)

Cycles for the same user are serialized in-process by a per-user lock, and
across service instances by the store's version check: a stale save comes
back as a conflict and the whole cycle restarts from a fresh load, so an
event is never replayed against an old snapshot. Cycles for different users
never wait on each other.
"""

import asyncio
import time
from contextlib import asynccontextmanager
from typing import Awaitable, Callable, Dict, List, Optional, Sequence, Tuple

from badges import BadgeRuleEngine
from config import ProgressConfig, get_progress_config
from logger import get_logger
from models import (
    Badge, BadgeStatus, LevelProgress, Progress, ProgressSummary,
    ProgressUpdate, QuizAnswer, QuizCompletionEvent, QuizResult
)
from notifications import ProgressNotifier
from progress_store import ProgressStore
from results import Err, ErrorKind, Ok, ProgressCorruptionError, Result
from streak import next_streak
from xp_ledger import compute_level, compute_xp, level_progress_percent, xp_for_level

log = get_logger("service")

# (new snapshot or None when nothing changes, newly unlocked badges)
Change = Tuple[Optional[Progress], Tuple[Badge, ...]]


def now_millis() -> int:
    return int(time.time() * 1000)


# ============================================
# PER-USER LOCKS
# ============================================

class KeyedLocks:
    """One asyncio.Lock per key, dropped once nobody holds or waits on it."""

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        self._users: Dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def hold(self, key: str):
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]


# ============================================
# VALIDATION
# ============================================

def validate_quiz_event(event: QuizCompletionEvent) -> Optional[Err]:
    """Err(VALIDATION) for a malformed quiz completion, None when acceptable."""
    if event.total_questions <= 0:
        return Err(ErrorKind.VALIDATION, f"totalQuestions must be positive, got {event.total_questions}")
    if not 0 <= event.score <= event.total_questions:
        return Err(
            ErrorKind.VALIDATION,
            f"score must be between 0 and {event.total_questions}, got {event.score}"
        )
    if len(event.answers) != event.total_questions:
        return Err(
            ErrorKind.VALIDATION,
            f"expected {event.total_questions} answers, got {len(event.answers)}"
        )
    return None


# ============================================
# PROGRESS SERVICE
# ============================================

class ProgressService:
    """Orchestrates streak, XP and badge computation around the store."""

    def __init__(
        self,
        store: ProgressStore,
        badge_engine: Optional[BadgeRuleEngine] = None,
        config: Optional[ProgressConfig] = None,
        clock: Callable[[], int] = now_millis,
        notifier: Optional[ProgressNotifier] = None
    ):
        self.store = store
        self.badge_engine = badge_engine or BadgeRuleEngine()
        self.config = config or get_progress_config()
        self.clock = clock
        self.notifier = notifier
        self._locks = KeyedLocks()

    # ---------- store access ----------

    async def _call_store(self, call: Awaitable[Result], what: str, user_id: str, timeout: float) -> Result:
        try:
            return await asyncio.wait_for(call, timeout)
        except asyncio.TimeoutError:
            log.error(f"Store {what} timed out after {timeout}s for user={user_id}")
            return Err(ErrorKind.TRANSIENT, f"store {what} timed out")

    def _checked(self, user_id: str, stored: Optional[Progress]) -> Progress:
        if stored is None:
            return Progress.zero(user_id)

        problems = stored.check_invariants()
        if stored.user_id != user_id:
            problems.append(f"record belongs to user={stored.user_id}")
        if problems:
            log.critical(f"Corrupt progress for user={user_id}: {problems}")
            raise ProgressCorruptionError(user_id, problems)
        return stored

    async def _load(self, user_id: str, timeout: float) -> Result[Optional[Progress]]:
        return await self._call_store(self.store.load(user_id), "load", user_id, timeout)

    async def _mutate(
        self,
        user_id: str,
        operation: str,
        compute: Callable[[Progress, int], Change],
        timeout: Optional[float]
    ) -> Result[ProgressUpdate]:
        """Run compute inside a serialized, retried load -> save cycle."""
        timeout = timeout if timeout is not None else self.config.store_timeout_seconds
        attempts = self.config.max_save_attempts

        async with self._locks.hold(user_id):
            for attempt in range(1, attempts + 1):
                loaded = await self._load(user_id, timeout)
                if not loaded.ok:
                    return loaded
                current = self._checked(user_id, loaded.value)

                updated, newly_unlocked = compute(current, self.clock())
                if updated is None:
                    return Ok(ProgressUpdate(progress=current, applied=False))

                saved = await self._call_store(
                    self.store.save(user_id, updated, current.version), "save", user_id, timeout
                )
                if saved.ok:
                    committed = updated.model_copy(update={"version": saved.value})
                    return Ok(ProgressUpdate(progress=committed, newly_unlocked=newly_unlocked))

                if saved.kind is not ErrorKind.CONFLICT:
                    return saved
                log.warning(
                    f"{operation} conflict for user={user_id} "
                    f"(attempt {attempt}/{attempts}): {saved.detail}"
                )

        log.error(f"{operation} for user={user_id} gave up after {attempts} conflicting attempts")
        return Err(ErrorKind.TRANSIENT, f"{operation} kept conflicting after {attempts} attempts")

    async def _publish(self, user_id: str, update: ProgressUpdate) -> None:
        if self.notifier is not None:
            await self.notifier.publish(user_id, update.progress, update.newly_unlocked)

    # ---------- reads ----------

    async def get_or_create(self, user_id: str, timeout: Optional[float] = None) -> Result[Progress]:
        """Stored record, or a zero-state record that is not persisted yet."""
        if not user_id:
            return Err(ErrorKind.VALIDATION, "user id is required")

        loaded = await self._load(user_id, timeout if timeout is not None else self.config.store_timeout_seconds)
        if not loaded.ok:
            return loaded
        return Ok(self._checked(user_id, loaded.value))

    async def get_summary(self, user_id: str, timeout: Optional[float] = None) -> Result[ProgressSummary]:
        """Level progress, averages and the most recent quiz results."""
        result = await self.get_or_create(user_id, timeout)
        if not result.ok:
            return result
        return Ok(build_summary(result.value, len(self.badge_engine.rules), self.config.recent_results_limit))

    async def get_badge_catalog(self, user_id: str, timeout: Optional[float] = None) -> Result[List[BadgeStatus]]:
        result = await self.get_or_create(user_id, timeout)
        if not result.ok:
            return result
        return Ok(self.badge_engine.catalog(result.value))

    # ---------- events ----------

    async def complete_quiz(
        self,
        user_id: str,
        quiz_id: str,
        quiz_title: str,
        score: int,
        total_questions: int,
        answers: Sequence[QuizAnswer],
        event_id: Optional[str] = None,
        timeout: Optional[float] = None
    ) -> Result[ProgressUpdate]:
        """Record a finished quiz; returns the new snapshot and newly unlocked badges."""
        event = QuizCompletionEvent(
            quiz_id=quiz_id,
            quiz_title=quiz_title,
            score=score,
            total_questions=total_questions,
            answers=tuple(answers),
            event_id=event_id
        )
        return await self.apply_quiz_event(user_id, event, timeout)

    async def apply_quiz_event(
        self,
        user_id: str,
        event: QuizCompletionEvent,
        timeout: Optional[float] = None
    ) -> Result[ProgressUpdate]:
        if not user_id:
            return Err(ErrorKind.VALIDATION, "user id is required")
        invalid = validate_quiz_event(event)
        if invalid is not None:
            log.info(f"Rejected quiz {event.quiz_id} for user={user_id}: {invalid.detail}")
            return invalid

        result = await self._mutate(
            user_id, "complete_quiz", lambda current, now: self._apply_quiz(current, event, now), timeout
        )
        if not result.ok:
            return result

        update = result.value
        if not update.applied:
            return result

        latest = update.progress.quiz_results[-1]
        log.info(
            f"Quiz complete user={user_id} quiz={event.quiz_id} score={event.score}/{event.total_questions} "
            f"xp_earned={latest.xp_earned} total_xp={update.progress.xp} "
            f"level={update.progress.level} streak={update.progress.streak}"
        )
        for badge in update.newly_unlocked:
            log.info(f"Badge unlocked user={user_id} badge={badge.id}")

        await self._publish(user_id, update)
        return result

    def _apply_quiz(self, current: Progress, event: QuizCompletionEvent, now: int) -> Change:
        if event.event_id is not None and current.has_event(event.event_id):
            log.info(f"Duplicate quiz event {event.event_id} for user={current.user_id}, already applied")
            return None, ()

        correct_answers = sum(1 for a in event.answers if a.is_correct)
        new_streak = next_streak(
            self.config.streak_mode,
            current.last_activity_date,
            now,
            current.streak,
            self.config.streak_utc_offset_minutes
        )
        xp_earned = compute_xp(correct_answers, new_streak > current.streak)
        total_xp = current.xp + xp_earned

        # Appended results always carry the greatest completedAt, even if the clock stepped back
        completed_at = max([now] + [r.completed_at for r in current.quiz_results[-1:]])

        quiz_result = QuizResult(
            quiz_id=event.quiz_id,
            quiz_title=event.quiz_title,
            score=event.score,
            total_questions=event.total_questions,
            xp_earned=xp_earned,
            completed_at=completed_at,
            answers=event.answers,
            event_id=event.event_id
        )

        updated = current.model_copy(update={
            "xp": total_xp,
            "level": compute_level(total_xp),
            "streak": new_streak,
            "last_activity_date": now,
            "completed_quizzes": current.completed_quizzes + 1,
            "total_quiz_score": current.total_quiz_score + event.score,
            "quiz_results": current.quiz_results + (quiz_result,),
        })

        badges, newly_unlocked = self.badge_engine.evaluate(updated, current.badges, now)
        return updated.model_copy(update={"badges": badges}), newly_unlocked

    async def study_flashcard_set(
        self,
        user_id: str,
        set_id: str,
        timeout: Optional[float] = None
    ) -> Result[Progress]:
        """Remember a studied flashcard set. No XP, streak or badge effects."""
        if not user_id:
            return Err(ErrorKind.VALIDATION, "user id is required")
        if not set_id:
            return Err(ErrorKind.VALIDATION, "flashcard set id is required")

        def compute(current: Progress, now: int) -> Change:
            if set_id in current.studied_flashcard_sets:
                return None, ()
            return current.model_copy(update={
                "studied_flashcard_sets": current.studied_flashcard_sets + (set_id,)
            }), ()

        result = await self._mutate(user_id, "study_flashcard_set", compute, timeout)
        if not result.ok:
            return result

        if result.value.applied:
            log.info(f"Flashcard set studied user={user_id} set={set_id}")
            await self._publish(user_id, result.value)
        return Ok(result.value.progress)

    async def reset_progress(
        self,
        user_id: str,
        strict: bool = False,
        timeout: Optional[float] = None
    ) -> Result[Progress]:
        """Reinitialize the record to zero state, clearing badges and results.

        Authorization is the caller's job. With strict=True a user that was
        never persisted gets NOT_FOUND instead of a fresh zero record.
        Corrupt records can be reset: only the stored version is used.
        """
        if not user_id:
            return Err(ErrorKind.VALIDATION, "user id is required")

        timeout = timeout if timeout is not None else self.config.store_timeout_seconds
        attempts = self.config.max_save_attempts

        committed = None
        async with self._locks.hold(user_id):
            for attempt in range(1, attempts + 1):
                loaded = await self._load(user_id, timeout)
                if not loaded.ok:
                    return loaded
                if loaded.value is None and strict:
                    return Err(ErrorKind.NOT_FOUND, f"no progress record for user={user_id}")

                expected = loaded.value.version if loaded.value is not None else 0
                fresh = Progress.zero(user_id)
                saved = await self._call_store(self.store.save(user_id, fresh, expected), "save", user_id, timeout)
                if saved.ok:
                    committed = fresh.model_copy(update={"version": saved.value})
                    break
                if saved.kind is not ErrorKind.CONFLICT:
                    return saved
                log.warning(f"reset_progress conflict for user={user_id} (attempt {attempt}/{attempts})")

        if committed is None:
            return Err(ErrorKind.TRANSIENT, f"reset_progress kept conflicting after {attempts} attempts")

        log.warning(f"Progress reset for user={user_id}")
        await self._publish(user_id, ProgressUpdate(progress=committed))
        return Ok(committed)


# ============================================
# SUMMARY
# ============================================

def build_summary(progress: Progress, badges_total: int, recent_limit: int = 5) -> ProgressSummary:
    """Presentation-ready view of a snapshot."""
    answered = sum(r.total_questions for r in progress.quiz_results)
    scored = sum(r.score for r in progress.quiz_results)
    average = round(scored / answered * 100, 1) if answered > 0 else 0.0

    return ProgressSummary(
        user_id=progress.user_id,
        level=LevelProgress(
            level=progress.level,
            xp=progress.xp,
            xp_for_current_level=xp_for_level(progress.level),
            xp_for_next_level=xp_for_level(progress.level + 1),
            percent=level_progress_percent(progress.xp)
        ),
        streak=progress.streak,
        completed_quizzes=progress.completed_quizzes,
        average_score_percent=average,
        badges_unlocked=len(progress.badges),
        badges_total=badges_total,
        studied_flashcard_sets=len(progress.studied_flashcard_sets),
        recent_results=tuple(reversed(progress.quiz_results[-recent_limit:]))
    )
