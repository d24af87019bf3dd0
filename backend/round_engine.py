"""Round clock and round state machine.

A Round runs on the event loop: the clock's tick task, answers and reveal
hints are all serialized there, so only one resolution path can win.
"""
from typing import Callable, List, Optional
import asyncio
import logging
import random
import time

import config
from scoring import CORRECT, INCORRECT, TIMEOUT

logger = logging.getLogger(__name__)

IDLE = "IDLE"
ACTIVE = "ACTIVE"
RESOLVED = "RESOLVED"


class RoundClock:
    """Single countdown task. Starting while running is a no-op."""

    def __init__(self, on_tick: Optional[Callable[[int], None]] = None,
                 on_expire: Optional[Callable[[], None]] = None,
                 tick_seconds: float = config.CLOCK_TICK_SECONDS):
        self.on_tick = on_tick
        self.on_expire = on_expire
        self.tick_seconds = tick_seconds
        self.time_remaining = 0
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self, duration_seconds: int) -> bool:
        """Reset the countdown and begin ticking. Returns False if already running."""
        if self.running:
            logger.debug("Clock already running, ignoring start")
            return False
        self.time_remaining = max(int(duration_seconds), 0)
        self._task = asyncio.create_task(self._run())
        return True

    def stop(self):
        if self._task is not None:
            if not self._task.done():
                self._task.cancel()
            self._task = None

    async def _run(self):
        try:
            while self.time_remaining > 0:
                await asyncio.sleep(self.tick_seconds)
                self.time_remaining -= 1
                if self.on_tick:
                    self.on_tick(self.time_remaining)
        except asyncio.CancelledError:
            return
        # Detach before firing so stop() from the expire handler is a no-op
        self._task = None
        if self.on_expire:
            self.on_expire()


class Question:
    """One catalog entry: image path, ordered choices, index of the right one."""

    def __init__(self, path: str, choices: List[str], correct_index: int):
        if not choices:
            raise ValueError("Question must have at least one choice")
        if isinstance(correct_index, bool) or not isinstance(correct_index, int) \
                or not (0 <= correct_index < len(choices)):
            raise ValueError("Invalid correct_index")
        self.path = path
        self.choices = list(choices)
        self.correct_index = correct_index

    @classmethod
    def from_dict(cls, data: dict) -> "Question":
        return cls(data["path"], data["choices"], data["correct"])

    @property
    def answer_text(self) -> str:
        return self.choices[self.correct_index]


class Round:
    """IDLE -> ACTIVE -> RESOLVED. A resolved round never changes again."""

    def __init__(self, question: Question,
                 duration_seconds: int = config.ROUND_DURATION_SECONDS,
                 reveal_budget: int = config.REVEAL_BUDGET,
                 tile_count: int = config.TILE_COUNT,
                 on_resolved: Optional[Callable[["Round"], None]] = None,
                 rng: Optional[random.Random] = None,
                 tick_seconds: float = config.CLOCK_TICK_SECONDS):
        self.question = question
        self.duration_seconds = duration_seconds
        self.reveal_budget = reveal_budget
        self.status = IDLE
        self.reveals_remaining = reveal_budget
        self.revealed: List[bool] = [False] * tile_count
        self.started_at: Optional[float] = None
        self.selected_index: Optional[int] = None
        self.outcome_kind: Optional[str] = None
        self.resolved_time_remaining = 0
        self.on_resolved = on_resolved
        self._rng = rng or random.Random()
        self.clock = RoundClock(on_expire=self._on_clock_expired, tick_seconds=tick_seconds)
        self._time_remaining = duration_seconds

    @property
    def time_remaining(self) -> int:
        if self.status == ACTIVE:
            return self.clock.time_remaining
        return self._time_remaining

    @property
    def reveals_used(self) -> int:
        return self.reveal_budget - self.reveals_remaining

    @property
    def hidden_tiles(self) -> List[int]:
        return [i for i, shown in enumerate(self.revealed) if not shown]

    def start(self) -> bool:
        if self.status != IDLE:
            return False
        self.reveals_remaining = self.reveal_budget
        self.revealed = [False] * len(self.revealed)
        self.started_at = time.time()
        self.status = ACTIVE
        self.clock.start(self.duration_seconds)
        logger.info("Round started (%ds, %d reveals)", self.duration_seconds, self.reveal_budget)
        return True

    def answer(self, choice_index) -> Optional[str]:
        """Resolve with the chosen index. Returns the outcome kind, or None if ignored."""
        if self.status != ACTIVE:
            return None
        if isinstance(choice_index, bool) or not isinstance(choice_index, int):
            return None
        if not (0 <= choice_index < len(self.question.choices)):
            return None
        self.selected_index = choice_index
        kind = CORRECT if choice_index == self.question.correct_index else INCORRECT
        self._resolve(kind)
        return kind

    def reveal_hint(self) -> Optional[int]:
        """Uncover one random hidden tile. Returns its index, or None if nothing happened."""
        if self.status != ACTIVE or self.reveals_remaining <= 0:
            return None
        hidden = self.hidden_tiles
        if not hidden:
            return None
        tile = self._rng.choice(hidden)
        self.revealed[tile] = True
        self.reveals_remaining -= 1
        return tile

    def _on_clock_expired(self):
        if self.status == ACTIVE and self.clock.time_remaining == 0:
            self._resolve(TIMEOUT)

    def _resolve(self, kind: str):
        self.clock.stop()
        self._time_remaining = self.clock.time_remaining
        self.resolved_time_remaining = self._time_remaining
        self.outcome_kind = kind
        self.revealed = [True] * len(self.revealed)
        self.status = RESOLVED
        logger.info("Round resolved: %s with %ds left", kind, self._time_remaining)
        if self.on_resolved:
            self.on_resolved(self)
