"""
XP Ledger - XP earned per quiz and the level derived from total XP.

Pure integer arithmetic, no I/O. Level is never stored independently of XP:
callers recompute it with compute_level() whenever XP changes.
"""

XP_PER_QUIZ = 20
XP_PER_CORRECT_ANSWER = 10
XP_STREAK_BONUS = 5

XP_PER_LEVEL = 100


def compute_xp(correct_answers: int, streak_increased: bool) -> int:
    """XP earned for one completed quiz.

    Args:
        correct_answers: Number of answers marked correct
        streak_increased: Whether this event raised the streak

    Returns:
        XP_PER_QUIZ + correct_answers * XP_PER_CORRECT_ANSWER, plus
        XP_STREAK_BONUS when the streak went up.
    """
    xp = XP_PER_QUIZ + correct_answers * XP_PER_CORRECT_ANSWER
    if streak_increased:
        xp += XP_STREAK_BONUS
    return xp


def compute_level(total_xp: int) -> int:
    """Level for a total XP value: floor(xp / 100) + 1."""
    return total_xp // XP_PER_LEVEL + 1


def xp_for_level(level: int) -> int:
    """Total XP at which the given level starts."""
    return (level - 1) * XP_PER_LEVEL


def level_progress_percent(total_xp: int) -> int:
    level = compute_level(total_xp)
    level_start = xp_for_level(level)
    return int((total_xp - level_start) / XP_PER_LEVEL * 100)
