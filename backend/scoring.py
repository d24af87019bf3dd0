"""Point computation and streak tracking for a resolved round.

Everything in here is pure: ``resolve`` takes the player's progress before
the round and returns a ``RoundOutcome`` describing the progress after it.
``PlayerProgress.apply`` is the only place that mutates a player's mirror.
"""
import logging
from typing import Optional

import config

logger = logging.getLogger(__name__)

CORRECT = "correct"
INCORRECT = "incorrect"
TIMEOUT = "timeout"
OUTCOME_KINDS = (CORRECT, INCORRECT, TIMEOUT)


def streak_multiplier(streak: int) -> float:
    """1.1 for the first correct answer in a row, 1.2 for the second, and so on."""
    return 1 + config.STREAK_STEP * streak


def time_multiplier(time_remaining: int) -> float:
    multiplier = 1.0
    for threshold, mult in sorted(config.TIME_BONUS_THRESHOLDS.items()):
        if time_remaining >= threshold:
            multiplier = mult
    return multiplier


def correct_points(time_remaining: int, new_streak: int, reveals_used: int = 0) -> int:
    """Points awarded for a correct answer. Never negative."""
    base = max(config.BASE_CORRECT_POINTS - reveals_used * config.REVEAL_PENALTY, 0)
    points = base * streak_multiplier(new_streak) * time_multiplier(time_remaining)
    return max(int(round(points)), 0)


class RoundOutcome:
    """Result of resolving one round against a player's prior progress."""

    def __init__(self, kind: str, points: int, total_score: int,
                 current_streak: int, best_streak: int):
        self.kind = kind
        self.points = points  # signed delta actually applied to the total
        self.total_score = total_score
        self.current_streak = current_streak
        self.best_streak = best_streak

    @property
    def correct(self) -> bool:
        return self.kind == CORRECT

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "points": self.points,
            "total_score": self.total_score,
            "current_streak": self.current_streak,
            "best_streak": self.best_streak,
        }

    def __repr__(self):
        return f"RoundOutcome({self.to_dict()!r})"


class PlayerProgress:
    """Client-held mirror of a player's score record.

    Invariants: every field is >= 0 and best_streak >= current_streak.
    """

    def __init__(self, total_score: int = 0, current_streak: int = 0, best_streak: int = 0):
        if min(total_score, current_streak, best_streak) < 0:
            raise ValueError("Progress values must be non-negative")
        self.total_score = total_score
        self.current_streak = current_streak
        self.best_streak = max(best_streak, current_streak)

    @classmethod
    def from_record(cls, record: dict) -> "PlayerProgress":
        """Build from a ledger record ({score, correct_streak, best_streak})."""
        return cls(
            total_score=max(int(record.get("score", 0)), 0),
            current_streak=max(int(record.get("correct_streak", 0)), 0),
            best_streak=max(int(record.get("best_streak", 0)), 0),
        )

    def apply(self, outcome: RoundOutcome):
        self.total_score = outcome.total_score
        self.current_streak = outcome.current_streak
        self.best_streak = max(self.best_streak, outcome.best_streak, outcome.current_streak)

    def snapshot(self) -> dict:
        return {
            "score": self.total_score,
            "correct_streak": self.current_streak,
            "best_streak": self.best_streak,
        }


def score_correct(progress: PlayerProgress, time_remaining: int,
                  reveals_used: int = 0) -> RoundOutcome:
    new_streak = progress.current_streak + 1
    points = correct_points(time_remaining, new_streak, reveals_used)
    return RoundOutcome(
        CORRECT,
        points,
        progress.total_score + points,
        new_streak,
        max(progress.best_streak, new_streak),
    )


def _score_miss(kind: str, progress: PlayerProgress, penalty: int) -> RoundOutcome:
    new_total = max(progress.total_score - penalty, 0)
    return RoundOutcome(
        kind,
        new_total - progress.total_score,
        new_total,
        0,
        progress.best_streak,
    )


def score_incorrect(progress: PlayerProgress) -> RoundOutcome:
    return _score_miss(INCORRECT, progress, config.INCORRECT_PENALTY)


def score_timeout(progress: PlayerProgress) -> RoundOutcome:
    return _score_miss(TIMEOUT, progress, config.TIMEOUT_PENALTY)


def resolve(progress: PlayerProgress, kind: str, time_remaining: int = 0,
            reveals_used: int = 0) -> RoundOutcome:
    if kind == CORRECT:
        return score_correct(progress, time_remaining, reveals_used)
    if kind == INCORRECT:
        return score_incorrect(progress)
    if kind == TIMEOUT:
        return score_timeout(progress)
    raise ValueError(f"Unknown outcome kind: {kind!r}")


def describe(outcome: RoundOutcome, answer_text: Optional[str] = None) -> str:
    """One-line status text for a resolved round."""
    if outcome.kind == CORRECT:
        return (f"Correct! +{outcome.points} points | Streak: {outcome.current_streak}"
                f" | Best streak: {outcome.best_streak}")
    prefix = "Time's up!" if outcome.kind == TIMEOUT else "Wrong!"
    answer = f" | Correct answer: {answer_text}" if answer_text else ""
    return (f"{prefix} {outcome.total_score} points{answer} | Streak: 0"
            f" | Best streak: {outcome.best_streak}")
