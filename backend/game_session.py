"""One player's play session: local progress mirror, rounds, score sync."""
from typing import Optional, Set
import asyncio
import logging
import random

import config
import scoring
from round_engine import Question, Round, ACTIVE
from score_client import AuthenticationError, ScoreClient, ScoreClientError

logger = logging.getLogger(__name__)

SAVE_FAILED_MESSAGE = "Could not save score"


class GameSession:
    def __init__(self, client: ScoreClient, progress: Optional[scoring.PlayerProgress] = None,
                 duration_seconds: int = config.ROUND_DURATION_SECONDS,
                 reveal_budget: int = config.REVEAL_BUDGET,
                 tick_seconds: float = config.CLOCK_TICK_SECONDS,
                 rng: Optional[random.Random] = None):
        self.client = client
        self.progress = progress or scoring.PlayerProgress()
        self.duration_seconds = duration_seconds
        self.reveal_budget = reveal_budget
        self.tick_seconds = tick_seconds
        self.rng = rng or random.Random()
        self.round: Optional[Round] = None
        self.last_outcome: Optional[scoring.RoundOutcome] = None
        self.last_submit_error: Optional[ScoreClientError] = None
        self.authenticated = True
        self.status_message = ""
        self._submissions: Set[asyncio.Task] = set()
        self._submit_lock = asyncio.Lock()  # keeps submissions in round order

    async def load(self) -> bool:
        """Sync the local mirror from the server. Returns False if it could not."""
        try:
            record = await self.client.get_player_state()
        except AuthenticationError:
            logger.warning("Authentication lost while loading player state")
            self.authenticated = False
            return False
        except ScoreClientError as e:
            logger.warning("Could not load player state: %s", e)
            self.status_message = "Could not load player data"
            return False
        self.progress = scoring.PlayerProgress.from_record(record)
        return True

    def start_round(self, question: Question) -> Round:
        """Start a new round. While one is still active, that round is returned instead."""
        if self.round is not None and self.round.status == ACTIVE:
            return self.round
        self.round = Round(
            question,
            duration_seconds=self.duration_seconds,
            reveal_budget=self.reveal_budget,
            on_resolved=self._on_round_resolved,
            rng=self.rng,
            tick_seconds=self.tick_seconds,
        )
        self.round.start()
        return self.round

    def answer(self, choice_index) -> Optional[str]:
        if self.round is None:
            return None
        return self.round.answer(choice_index)

    def reveal_hint(self) -> Optional[int]:
        if self.round is None:
            return None
        return self.round.reveal_hint()

    def _on_round_resolved(self, finished: Round):
        outcome = scoring.resolve(
            self.progress,
            finished.outcome_kind,
            time_remaining=finished.resolved_time_remaining,
            reveals_used=finished.reveals_used,
        )
        self.progress.apply(outcome)
        self.last_outcome = outcome
        self.status_message = scoring.describe(outcome, finished.question.answer_text)
        task = asyncio.get_running_loop().create_task(self._submit(self.progress.snapshot()))
        self._submissions.add(task)
        task.add_done_callback(self._submissions.discard)

    async def _submit(self, snapshot: dict):
        async with self._submit_lock:
            try:
                await self.client.submit_score(
                    snapshot["score"], snapshot["correct_streak"], snapshot["best_streak"]
                )
            except AuthenticationError:
                logger.warning("Authentication lost while saving score")
                self.authenticated = False
                self.last_submit_error = None
                return
            except ScoreClientError as e:
                logger.warning("Failed to save score: %s", e)
                self.last_submit_error = e
                self.status_message = f"{self.status_message} | {SAVE_FAILED_MESSAGE}"
                return
            self.last_submit_error = None
            logger.info("Score saved: %d", snapshot["score"])

    async def flush(self):
        """Wait for in-flight score submissions."""
        if self._submissions:
            await asyncio.gather(*list(self._submissions))
