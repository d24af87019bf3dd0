"""Authoritative per-player score records.

Score and current streak are overwritten with whatever the client reports;
best streak is merged with max() and never moves down. Records live in a
SQL table (SQLite through aiosqlite by default) so they survive restarts.
"""
from typing import Callable, Dict, List, Optional
import asyncio
import logging

from sqlalchemy import Integer, String, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.pool import NullPool

import config

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


class ScoreRecord(Base):
    __tablename__ = "scores"

    # creation order, used as the ranking tie-breaker
    seq: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    identity: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    correct_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    best_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    def to_dict(self) -> dict:
        return {
            "username": self.identity,
            "score": self.score,
            "correct_streak": self.correct_streak,
            "best_streak": self.best_streak,
        }


def zero_record(identity: str) -> dict:
    return {"username": identity, "score": 0, "correct_streak": 0, "best_streak": 0}


def validate_count(name: str, value) -> int:
    """Reject anything that is not a plain non-negative int within bounds."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{name} must be an integer")
    if value < 0 or value > config.MAX_SCORE_VALUE:
        raise ValueError(f"{name} must be between 0 and {config.MAX_SCORE_VALUE}")
    return value


class ScoreStore:
    """SQL-backed record store keyed by identity, one row per identity.

    Every call opens its own session; NullPool keeps connections from being
    shared across event loops.
    """

    def __init__(self, database_url: Optional[str] = None):
        self.database_url = database_url or config.DATABASE_URL
        self.engine = create_async_engine(self.database_url, poolclass=NullPool)
        self._sessions = async_sessionmaker(bind=self.engine, class_=AsyncSession,
                                            expire_on_commit=False)
        self._schema_ready = False
        self._schema_lock = asyncio.Lock()

    async def open(self):
        """Create the table if it does not exist yet."""
        if self._schema_ready:
            return
        async with self._schema_lock:
            if self._schema_ready:
                return
            async with self.engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            self._schema_ready = True

    async def close(self):
        await self.engine.dispose()

    async def get(self, identity: str) -> Optional[ScoreRecord]:
        await self.open()
        async with self._sessions() as session:
            result = await session.execute(
                select(ScoreRecord).where(ScoreRecord.identity == identity)
            )
            return result.scalar_one_or_none()

    async def create(self, identity: str, score: int, correct_streak: int, best_streak: int) -> ScoreRecord:
        await self.open()
        record = ScoreRecord(identity=identity, score=score,
                             correct_streak=correct_streak, best_streak=best_streak)
        async with self._sessions() as session:
            session.add(record)
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                raise KeyError(f"Record already exists for {identity}") from None
        return record

    async def update(self, identity: str, score: int, correct_streak: int, best_streak: int) -> ScoreRecord:
        await self.open()
        async with self._sessions() as session:
            result = await session.execute(
                select(ScoreRecord).where(ScoreRecord.identity == identity)
            )
            record = result.scalar_one_or_none()
            if record is None:
                raise KeyError(f"No record for {identity}")
            record.score = score
            record.correct_streak = correct_streak
            record.best_streak = best_streak
            await session.commit()
        return record

    async def all(self) -> List[ScoreRecord]:
        await self.open()
        async with self._sessions() as session:
            result = await session.execute(select(ScoreRecord).order_by(ScoreRecord.seq))
            return list(result.scalars().all())

    async def count(self) -> int:
        await self.open()
        async with self._sessions() as session:
            result = await session.execute(select(func.count()).select_from(ScoreRecord))
            return result.scalar_one()


class ScoreLedger:
    def __init__(self, store: Optional[ScoreStore] = None):
        self.store = store or ScoreStore()
        self._locks: Dict[str, asyncio.Lock] = {}
        self._listeners: List[Callable[[], None]] = []

    def add_listener(self, callback: Callable[[], None]):
        """Register a callback fired after every successful upsert.

        Callbacks must not block; the broadcaster schedules its own delivery.
        """
        self._listeners.append(callback)

    def _lock_for(self, identity: str) -> asyncio.Lock:
        lock = self._locks.get(identity)
        if lock is None:
            lock = self._locks[identity] = asyncio.Lock()
        return lock

    async def upsert_score(self, identity: str, score, correct_streak, best_streak) -> dict:
        """Create or update the record for ``identity`` and return it.

        Raises ValueError without touching the store if any value is invalid.
        """
        if not identity:
            raise ValueError("identity is required")
        score = validate_count("score", score)
        correct_streak = validate_count("correct_streak", correct_streak)
        best_streak = validate_count("best_streak", best_streak)

        # The read and the write are separate awaits; the lock keeps them together.
        async with self._lock_for(identity):
            record = await self.store.get(identity)
            if record is None:
                record = await self.store.create(identity, score, correct_streak, best_streak)
                logger.info("Score record created for %s: %d", identity, score)
            else:
                record = await self.store.update(
                    identity, score, correct_streak, max(record.best_streak, best_streak)
                )
                logger.info("Score updated for %s to %d (best streak %d)",
                            identity, record.score, record.best_streak)
            result = record.to_dict()

        self._notify()
        return result

    async def get_score(self, identity: str) -> dict:
        record = await self.store.get(identity)
        if record is None:
            return zero_record(identity)
        return record.to_dict()

    async def records(self) -> List[ScoreRecord]:
        return await self.store.all()

    def _notify(self):
        for callback in self._listeners:
            try:
                callback()
            except Exception:
                logger.exception("Score change listener failed")


score_ledger = ScoreLedger()
