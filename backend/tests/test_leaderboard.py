import sys
import os

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from ledger import ScoreRecord
import leaderboard


def make_records(rows):
    """rows: list of (identity, score, best_streak) in creation order."""
    return [
        ScoreRecord(identity=identity, score=score, correct_streak=0, best_streak=best, seq=seq)
        for seq, (identity, score, best) in enumerate(rows, start=1)
    ]


def twelve_players():
    return make_records([(f"p{i:02d}", 1200 - i * 100, i) for i in range(12)])


# ---------------------------------------------------------------------------
# Ordering
# ---------------------------------------------------------------------------

class TestOrdering:
    def test_sorted_descending_by_score(self):
        records = make_records([("alice", 500, 1), ("bob", 800, 2), ("charlie", 300, 9)])
        lb = leaderboard.get_leaderboard(records, "score")
        assert [e["username"] for e in lb["leaderboard"]] == ["bob", "alice", "charlie"]

    def test_sorted_by_best_streak(self):
        records = make_records([("alice", 500, 1), ("bob", 800, 2), ("charlie", 300, 9)])
        lb = leaderboard.get_leaderboard(records, "best_streak")
        assert [e["username"] for e in lb["leaderboard"]] == ["charlie", "bob", "alice"]
        assert lb["sort_by"] == "best_streak"

    def test_ties_keep_creation_order(self):
        records = make_records([("zed", 100, 0), ("amy", 100, 0), ("max", 200, 0), ("bea", 100, 0)])
        lb = leaderboard.get_leaderboard(records, "score")
        assert [e["username"] for e in lb["leaderboard"]] == ["max", "zed", "amy", "bea"]

    def test_ties_stable_regardless_of_input_order(self):
        records = make_records([("zed", 100, 0), ("amy", 100, 0), ("bea", 100, 0)])
        forward = leaderboard.get_leaderboard(records, "score")
        backward = leaderboard.get_leaderboard(list(reversed(records)), "score")
        assert forward["leaderboard"] == backward["leaderboard"]

    def test_repeated_queries_identical(self):
        records = make_records([(f"p{i}", (i * 37) % 5 * 10, i % 3) for i in range(30)])
        first = leaderboard.get_leaderboard(records, "best_streak")
        second = leaderboard.get_leaderboard(records, "best_streak")
        assert first == second

    def test_unknown_sort_key_falls_back_to_score(self):
        records = make_records([("alice", 500, 9), ("bob", 800, 1)])
        lb = leaderboard.get_leaderboard(records, "mostClicks")
        assert lb["sort_by"] == "score"
        assert lb["leaderboard"][0]["username"] == "bob"

    def test_entry_fields(self):
        records = make_records([("alice", 500, 3)])
        lb = leaderboard.get_leaderboard(records, "score")
        assert lb["leaderboard"] == [{"username": "alice", "score": 500, "best_streak": 3}]


# ---------------------------------------------------------------------------
# Top-N and viewer rank
# ---------------------------------------------------------------------------

class TestViewerRank:
    def test_viewer_outside_top_ten(self):
        records = twelve_players()
        lb = leaderboard.get_leaderboard(records, "score", viewer_identity="p10")
        names = [e["username"] for e in lb["leaderboard"]]
        assert len(names) == 10
        assert names == [f"p{i:02d}" for i in range(10)]
        assert "p10" not in names
        assert lb["viewer_rank"] == 11
        assert lb["viewer_score"] == 200

    def test_viewer_inside_top_ten(self):
        records = twelve_players()
        lb = leaderboard.get_leaderboard(records, "score", viewer_identity="p00")
        assert lb["viewer_rank"] == 1

    def test_ties_share_rank(self):
        records = make_records([("a", 300, 0), ("b", 200, 0), ("c", 200, 0), ("d", 100, 0)])
        ranks = {
            who: leaderboard.get_leaderboard(records, "score", viewer_identity=who)["viewer_rank"]
            for who in "abcd"
        }
        assert ranks == {"a": 1, "b": 2, "c": 2, "d": 4}

    def test_rank_matches_strictly_greater_count(self):
        records = make_records([(f"p{i}", (i * 7) % 11, (i * 3) % 5) for i in range(25)])
        for key in ("score", "best_streak"):
            for rec in records:
                lb = leaderboard.get_leaderboard(records, key, viewer_identity=rec.identity)
                mine = leaderboard.sort_value(rec, key)
                higher = sum(1 for r in records if leaderboard.sort_value(r, key) > mine)
                assert lb["viewer_rank"] - 1 == higher

    def test_viewer_without_record(self):
        records = make_records([("a", 300, 1), ("b", 0, 0)])
        lb = leaderboard.get_leaderboard(records, "score", viewer_identity="newbie")
        assert lb["viewer_rank"] == 2
        assert lb["viewer_score"] == 0
        assert lb["viewer_best_streak"] == 0

    def test_no_viewer_fields_without_identity(self):
        records = make_records([("a", 300, 1)])
        lb = leaderboard.get_leaderboard(records, "score")
        assert "viewer_rank" not in lb

    def test_empty_leaderboard(self):
        lb = leaderboard.get_leaderboard([], "score", viewer_identity="newbie")
        assert lb["leaderboard"] == []
        assert lb["viewer_rank"] == 1


class TestFormatRank:
    @pytest.mark.parametrize("rank, text", [
        (1, "1st"), (2, "2nd"), (3, "3rd"), (4, "4th"),
        (11, "11th"), (12, "12th"), (13, "13th"),
        (21, "21st"), (22, "22nd"), (101, "101st"), (111, "111th"),
        (0, ""), (None, ""),
    ])
    def test_ordinals(self, rank, text):
        assert leaderboard.format_rank(rank) == text
