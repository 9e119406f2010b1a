# cricket_live/cricket_math.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

BALLS_PER_OVER = 6


@dataclass
class TeamAggregate:
    """
    Aggregate stats needed for NRR.
    All overs are stored as BALLS (not float overs) to avoid mistakes.
    """
    team: str
    runs_for: int = 0
    balls_for: int = 0
    runs_against: int = 0
    balls_against: int = 0


def balls_to_overs_str(balls: int) -> str:
    """
    Cricket overs notation: balls=119 -> "19.5", balls=12 -> "2.0".
    The part after the dot is balls (0-5), not a decimal fraction.
    """
    if balls <= 0:
        return "0.0"
    return f"{balls // BALLS_PER_OVER}.{balls % BALLS_PER_OVER}"


def balls_to_overs_float(balls: int) -> float:
    if balls <= 0:
        return 0.0
    return balls / float(BALLS_PER_OVER)


def run_rate(runs: int, balls: int) -> float:
    """Runs per over; 0.0 before any legal ball."""
    overs = balls_to_overs_float(balls)
    if overs == 0.0:
        return 0.0
    return runs / overs


def strike_rate(runs: int, balls_faced: int) -> float:
    """Runs per 100 balls faced."""
    if balls_faced <= 0:
        return 0.0
    return runs * 100.0 / balls_faced


def economy_rate(runs_conceded: int, legal_balls: int) -> float:
    """Runs conceded per 6 legal balls."""
    if legal_balls <= 0:
        return 0.0
    return runs_conceded * float(BALLS_PER_OVER) / legal_balls


def required_run_rate(target: int, current_runs: int, balls_remaining: int) -> Optional[float]:
    """
    Runs per over needed to reach the target.

    Returns None (not a divide-by-zero) once no legal balls remain.
    """
    if balls_remaining <= 0:
        return None
    runs_needed = max(0, target - current_runs)
    return runs_needed * float(BALLS_PER_OVER) / balls_remaining


def projected_score(runs: int, balls: int, max_balls: int) -> int:
    """Current run rate extrapolated over the full innings quota."""
    if balls <= 0:
        return runs
    return int(round(runs * max_balls / float(balls)))


def nrr(agg: TeamAggregate) -> float:
    """
    Net Run Rate = (runs_for / overs_for) - (runs_against / overs_against)
    """
    rr_for = run_rate(agg.runs_for, agg.balls_for)
    rr_against = run_rate(agg.runs_against, agg.balls_against)
    return rr_for - rr_against


def normalize_innings_balls(balls: int, all_out: bool, max_balls: int) -> int:
    """
    NRR rule: if a team is all-out, the innings counts as the full quota of overs.
    Otherwise, use actual balls faced (a chase completed early keeps its real balls).
    """
    if balls < 0:
        raise ValueError("Balls cannot be negative")
    if balls == 0:
        # 0 balls innings should not be applied to aggregates (e.g. abandoned).
        return 0
    return max_balls if all_out else balls


def apply_innings_pair(
    agg_first: TeamAggregate,
    agg_second: TeamAggregate,
    *,
    first_runs: int,
    first_balls: int,
    second_runs: int,
    second_balls: int,
) -> None:
    """
    Updates aggregates for a match where `agg_first` batted first.

    Balls are expected to be already normalized (see normalize_innings_balls).
    """
    if first_balls <= 0 or second_balls <= 0:
        raise ValueError("Cannot apply match with <= 0 balls. For no-result, skip aggregate update.")

    agg_first.runs_for += int(first_runs)
    agg_first.balls_for += int(first_balls)
    agg_first.runs_against += int(second_runs)
    agg_first.balls_against += int(second_balls)

    agg_second.runs_for += int(second_runs)
    agg_second.balls_for += int(second_balls)
    agg_second.runs_against += int(first_runs)
    agg_second.balls_against += int(first_balls)
