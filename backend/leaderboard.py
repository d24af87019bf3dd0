"""Top-N ranking and viewer rank over the ledger's records."""
from typing import Iterable, List, Optional

import config
from ledger import ScoreRecord


def normalize_sort_key(sort_key: Optional[str]) -> str:
    """Unknown or missing sort keys fall back to score."""
    if sort_key in config.VALID_SORT_KEYS:
        return sort_key
    return config.DEFAULT_SORT_KEY


def sort_value(record: ScoreRecord, sort_key: str) -> int:
    return record.best_streak if sort_key == "best_streak" else record.score


def rank_records(records: Iterable[ScoreRecord], sort_key: str) -> List[ScoreRecord]:
    """Descending by sort key; ties keep record creation order."""
    return sorted(records, key=lambda r: (-sort_value(r, sort_key), r.seq))


def viewer_rank(records: Iterable[ScoreRecord], sort_key: str, value: int) -> int:
    """1 + number of records strictly above ``value``."""
    return sum(1 for r in records if sort_value(r, sort_key) > value) + 1


def format_rank(rank: Optional[int]) -> str:
    if rank is None or rank <= 0:
        return ""
    if rank % 100 in (11, 12, 13):
        return f"{rank}th"
    suffix = {1: "st", 2: "nd", 3: "rd"}.get(rank % 10, "th")
    return f"{rank}{suffix}"


def get_leaderboard(records: Iterable[ScoreRecord], sort_key: Optional[str] = None,
                    viewer_identity: Optional[str] = None,
                    limit: int = config.LEADERBOARD_SIZE) -> dict:
    sort_key = normalize_sort_key(sort_key)
    records = list(records)
    top = rank_records(records, sort_key)[:limit]
    result = {
        "sort_by": sort_key,
        "leaderboard": [
            {"username": r.identity, "score": r.score, "best_streak": r.best_streak}
            for r in top
        ],
    }
    if viewer_identity:
        own = next((r for r in records if r.identity == viewer_identity), None)
        value = sort_value(own, sort_key) if own else 0
        result["viewer_rank"] = viewer_rank(records, sort_key, value)
        result["viewer_score"] = own.score if own else 0
        result["viewer_best_streak"] = own.best_streak if own else 0
    return result
