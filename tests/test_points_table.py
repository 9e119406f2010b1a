"""Team standings: points for results, NRR ordering."""

from __future__ import annotations

import pytest

from cricket_live.models import MatchResult
from cricket_live.points_table import StandingsRow, record_result, sorted_standings


def test_win_gives_two_points():
    a, b = StandingsRow("IND"), StandingsRow("AUS")
    record_result(a, b, MatchResult(method="wickets", winner="AUS", margin=4))

    assert (a.played, a.won, a.lost, a.points) == (1, 0, 1, 0)
    assert (b.played, b.won, b.lost, b.points) == (1, 1, 0, 2)


@pytest.mark.parametrize("method, field", [("tie", "tied"), ("no_result", "nr")])
def test_shared_results_split_points(method, field):
    a, b = StandingsRow("IND"), StandingsRow("AUS")
    record_result(a, b, MatchResult(method=method))

    assert a.points == b.points == 1
    assert getattr(a, field) == getattr(b, field) == 1


def test_winner_must_be_playing():
    with pytest.raises(ValueError):
        record_result(StandingsRow("IND"), StandingsRow("AUS"), MatchResult(method="runs", winner="ENG", margin=1))


def test_points_then_nrr_order():
    a, b, c = StandingsRow("IND"), StandingsRow("AUS"), StandingsRow("ENG")
    a.points = b.points = 2
    a.agg.runs_for, a.agg.balls_for, a.agg.runs_against, a.agg.balls_against = 150, 120, 160, 120
    b.agg.runs_for, b.agg.balls_for, b.agg.runs_against, b.agg.balls_against = 160, 120, 150, 120

    table = sorted_standings([c, a, b])
    assert [r["team"] for r in table] == ["AUS", "IND", "ENG"]
    assert [r["pos"] for r in table] == [1, 2, 3]
    assert table[0]["nrr"] == pytest.approx(0.5)
