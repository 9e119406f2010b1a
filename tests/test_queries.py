"""Public query service: live state, commentary feed, leaderboards."""

from __future__ import annotations

import pytest

from conftest import ball, bowl_over, make_config, start_match
from cricket_live.errors import MatchNotFoundError, ValidationError


def _finish_match(engine, match_id):
    """IND make 18 in two overs, AUS chase 19 in four balls."""
    bowl_over(engine, match_id, [1] * 6, bowler="AUS1")
    bowl_over(engine, match_id, [2] * 6, bowler="AUS2")
    engine.begin_innings(match_id)
    bowl_over(engine, match_id, [6, 6, 6, 1], bowler="IND1", striker="AUS1", non_striker="AUS2")


def test_live_state_snapshot(engine, live_match):
    engine.record_ball(live_match, ball(runs=4))
    engine.record_ball(live_match, ball(extra_type="wide", extras=2))
    state = engine.queries.get_live_state(live_match)

    assert state["status"] == "live"
    assert state["last_sequence"] == engine.publisher.last_sequence(live_match)
    assert state["toss"] == {"won_by": "IND", "decision": "bat"}
    assert [t["id"] for t in state["teams"]] == ["IND", "AUS"]

    inn = state["innings"][0]
    assert inn["runs"] == 6
    assert inn["overs"] == "0.1"
    assert inn["extras"]["wides"] == 2
    assert inn["current_bowler"] == "AUS1"
    assert inn["current_run_rate"] == pytest.approx(36.0)
    assert inn["partnership"] == {"batsmen": ["IND1", "IND2"], "runs": 6, "balls": 1}
    assert state["recent_commentary"][0]["sequence"] == 2


def test_live_state_unknown_match(engine):
    with pytest.raises(MatchNotFoundError):
        engine.queries.get_live_state("nope")


def test_chase_shows_required_rate(engine, live_match):
    bowl_over(engine, live_match, [1] * 6, bowler="AUS1")
    bowl_over(engine, live_match, [2] * 6, bowler="AUS2")
    engine.begin_innings(live_match)
    bowl_over(engine, live_match, [1] * 6, bowler="IND1", striker="AUS1", non_striker="AUS2")

    chase = engine.queries.get_live_state(live_match)["innings"][1]
    assert chase["target"] == 19
    assert chase["runs_needed"] == 13
    assert chase["balls_remaining"] == 6
    assert chase["required_run_rate"] == pytest.approx(13.0)
    assert chase["awaiting_bowler"]
    assert chase["previous_bowler"] == "IND1"


def test_list_live_matches_only_live(engine):
    start_match(engine, "m1")
    engine.create_match(make_config("m2"))
    start_match(engine, "m3")
    engine.set_status("m3", "abandoned")

    live = engine.queries.list_live_matches()
    assert [m["match_id"] for m in live] == ["m1"]
    assert live[0]["innings"]["runs"] == 0


def test_commentary_newest_first_with_limit(engine, live_match):
    bowl_over(engine, live_match, [0, 1, 2, 3])
    feed = engine.queries.get_commentary(live_match, limit=2)

    assert [c["sequence"] for c in feed] == [4, 3]
    assert feed[0]["delivery"]["runs"] == 3
    assert engine.queries.get_commentary(live_match, limit=0) == []


def test_unknown_leaderboard_category(engine):
    with pytest.raises(ValidationError) as exc:
        engine.queries.get_leaderboard("catches")
    assert exc.value.kind == "unknown_category"


def test_batting_and_bowling_leaderboards(engine, live_match):
    _finish_match(engine, live_match)

    runs = engine.queries.get_leaderboard("runs")
    assert runs[0]["player"] == "AUS1"
    assert runs[0]["runs"] == 19
    assert runs[0]["pos"] == 1
    assert runs[1]["player"] == "IND1"

    sixes = engine.queries.get_leaderboard("sixes", limit=1)
    assert len(sixes) == 1
    assert (sixes[0]["player"], sixes[0]["sixes"]) == ("AUS1", 3)

    strike = engine.queries.get_leaderboard("strike_rate")
    assert [r["player"] for r in strike] == ["IND1"]

    economy = engine.queries.get_leaderboard("economy")
    assert economy == []
    assert engine.queries.get_leaderboard("wickets") == []


@pytest.mark.parametrize("category", ["runs", "teams"])
def test_leaderboard_non_positive_limit_is_empty(engine, live_match, category):
    _finish_match(engine, live_match)
    assert engine.queries.get_leaderboard(category, limit=0) == []
    assert engine.queries.get_leaderboard(category, limit=-1) == []


def test_teams_leaderboard_points_and_nrr(engine, live_match):
    _finish_match(engine, live_match)
    table = engine.queries.get_leaderboard("teams")

    assert [r["team"] for r in table] == ["AUS", "IND"]
    assert table[0]["points"] == 2
    assert table[0]["won"] == 1
    assert table[1]["lost"] == 1
    # AUS 19 off 4 balls vs 18 off 12
    assert table[0]["nrr"] == pytest.approx(round(19 / (4 / 6) - 18 / 2, 3))
