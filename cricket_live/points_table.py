# cricket_live/points_table.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List

from cricket_live.cricket_math import (
    TeamAggregate,
    apply_innings_pair,
    normalize_innings_balls,
    nrr,
)
from cricket_live.models import Match, MatchResult

POINTS_FOR_WIN = 2
POINTS_FOR_SHARED = 1  # tie or no result


@dataclass
class StandingsRow:
    team: str
    played: int = 0
    won: int = 0
    lost: int = 0
    nr: int = 0
    tied: int = 0
    points: int = 0
    agg: TeamAggregate = field(init=False)

    def __post_init__(self) -> None:
        self.agg = TeamAggregate(self.team)

    def to_dict(self, pos: int) -> dict:
        return {
            "pos": pos,
            "team": self.team,
            "played": self.played,
            "won": self.won,
            "lost": self.lost,
            "nr": self.nr,
            "tied": self.tied,
            "points": self.points,
            "nrr": round(nrr(self.agg), 3),
            "runs_for": self.agg.runs_for,
            "balls_for": self.agg.balls_for,
            "runs_against": self.agg.runs_against,
            "balls_against": self.agg.balls_against,
        }


def sorted_standings(rows: Iterable[StandingsRow]) -> List[dict]:
    """
    Returns standings sorted by:
    1) Points (desc)
    2) NRR (desc)
    3) Team id, so equal rows have a stable order
    """
    ordered = sorted(rows, key=lambda r: (-r.points, -nrr(r.agg), r.team))
    return [r.to_dict(pos) for pos, r in enumerate(ordered, start=1)]


def record_result(row_a: StandingsRow, row_b: StandingsRow, result: MatchResult) -> None:
    """
    Updates played/won/lost/nr/tied/points ONLY.
    Aggregates are updated separately from the innings totals.

    Rules:
    - runs/wickets: winner must be row_a.team or row_b.team, gets POINTS_FOR_WIN
    - tie        : both get POINTS_FOR_SHARED, tied += 1
    - no_result  : both get POINTS_FOR_SHARED, nr += 1
    """
    row_a.played += 1
    row_b.played += 1

    if result.method in ("tie", "no_result"):
        for row in (row_a, row_b):
            row.points += POINTS_FOR_SHARED
            if result.method == "tie":
                row.tied += 1
            else:
                row.nr += 1
        return

    if result.method not in ("runs", "wickets"):
        raise ValueError(f"Invalid result method: {result.method}")

    rows = {row_a.team: row_a, row_b.team: row_b}
    winner = rows.get(result.winner or "")
    if winner is None:
        raise ValueError(f"winner must be {row_a.team} or {row_b.team}, got {result.winner}")
    loser = row_b if winner is row_a else row_a

    winner.won += 1
    winner.points += POINTS_FOR_WIN
    loser.lost += 1


def build_points_table(matches: Iterable[Match]) -> List[dict]:
    """
    Standings over every finished match.

    - completed/abandoned matches with a result count; everything else is skipped
    - no result: points split, NO aggregate update
    - all-out innings count as the full quota of overs for NRR
    """
    rows: Dict[str, StandingsRow] = {}

    for m in matches:
        if m.result is None or m.status not in ("completed", "abandoned"):
            continue

        cfg = m.config
        row_a = rows.setdefault(cfg.team_a.team_id, StandingsRow(cfg.team_a.team_id))
        row_b = rows.setdefault(cfg.team_b.team_id, StandingsRow(cfg.team_b.team_id))
        record_result(row_a, row_b, m.result)

        if m.result.method == "no_result" or len(m.innings) < 2:
            continue

        first, second = m.innings[0], m.innings[1]
        first_balls = normalize_innings_balls(first.legal_balls, first.is_all_out, first.max_balls)
        second_balls = normalize_innings_balls(second.legal_balls, second.is_all_out, second.max_balls)
        if first_balls <= 0 or second_balls <= 0:
            continue

        apply_innings_pair(
            rows[first.batting_team].agg,
            rows[second.batting_team].agg,
            first_runs=first.runs,
            first_balls=first_balls,
            second_runs=second.runs,
            second_balls=second_balls,
        )

    return sorted_standings(rows.values())
