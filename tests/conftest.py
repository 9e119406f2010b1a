"""Shared fixtures: two 11-player sides, a seeded engine, and ball payload helpers."""

from __future__ import annotations

import random
from typing import Any, Dict, Iterable, List

import pytest

from cricket_live.commentary import CommentaryGenerator
from cricket_live.engine import LiveMatchEngine
from cricket_live.models import MatchConfig, TeamSheet

IND = TeamSheet("IND", "India", tuple(f"IND{i}" for i in range(1, 12)))
AUS = TeamSheet("AUS", "Australia", tuple(f"AUS{i}" for i in range(1, 12)))


def make_config(match_id: str = "m1", overs: int = 2, players_per_team: int = 11) -> MatchConfig:
    return MatchConfig(
        match_id=match_id,
        team_a=IND,
        team_b=AUS,
        overs=overs,
        players_per_team=players_per_team,
        venue="Wankhede Stadium",
    )


def ball(striker: str = "IND1", non_striker: str = "IND2", bowler: str = "AUS1", **kw: Any) -> Dict[str, Any]:
    payload: Dict[str, Any] = {"striker": striker, "non_striker": non_striker, "bowler": bowler}
    payload.update(kw)
    return payload


def bowl_over(
    engine: LiveMatchEngine,
    match_id: str,
    runs: Iterable[int],
    *,
    bowler: str = "AUS1",
    striker: str = "IND1",
    non_striker: str = "IND2",
) -> List[Any]:
    """Record one legal ball per entry in `runs`; returns the processed events."""
    events = []
    for r in runs:
        event, _ = engine.record_ball(
            match_id, ball(striker=striker, non_striker=non_striker, bowler=bowler, runs=r)
        )
        events.append(event)
    return events


@pytest.fixture
def engine() -> LiveMatchEngine:
    return LiveMatchEngine(commentary=CommentaryGenerator(random.Random(7)))


def start_match(engine: LiveMatchEngine, match_id: str = "m1", **config_kw: Any) -> str:
    """Create a match, IND win the toss and bat, first innings begun."""
    engine.create_match(make_config(match_id, **config_kw))
    engine.record_toss(match_id, "IND", "bat")
    engine.begin_innings(match_id)
    return match_id


@pytest.fixture
def live_match(engine: LiveMatchEngine) -> str:
    return start_match(engine)
