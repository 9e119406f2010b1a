# cricket_live/stats.py
from __future__ import annotations

from typing import Any, Dict, List, Optional

from cricket_live.cricket_math import (
    BALLS_PER_OVER,
    projected_score,
    required_run_rate,
    run_rate,
)
from cricket_live.models import (
    ILLEGAL_EXTRAS,
    NON_BOWLER_DISMISSALS,
    BattingFigures,
    BowlingFigures,
    Delivery,
    FallOfWicket,
    Innings,
    Over,
    Partnership,
)


def _batting(innings: Innings, player: str) -> BattingFigures:
    fig = innings.batting.get(player)
    if fig is None:
        fig = BattingFigures(player=player)
        innings.batting[player] = fig
    return fig


def _bowling(innings: Innings, player: str) -> BowlingFigures:
    fig = innings.bowling.get(player)
    if fig is None:
        fig = BowlingFigures(player=player)
        innings.bowling[player] = fig
    return fig


def runs_charged_to_bowler(delivery: Delivery) -> int:
    """Byes and leg-byes are not the bowler's fault; wides and no-balls are."""
    if delivery.extra_type in ILLEGAL_EXTRAS:
        return delivery.runs + delivery.extras
    return delivery.runs


def apply_delivery_stats(innings: Innings, over: Over, delivery: Delivery) -> None:
    """
    Incrementally fold one delivery into the innings figures.

    Updates, in order:
    - team total, legal-ball counters (innings + over) and extras breakdown
    - striker runs / balls faced (balls faced excludes wides, includes no-balls)
    - bowler runs conceded / legal balls / wides / no-balls / wickets / maidens
    - the active partnership and the pair at the crease, fall of wickets

    Caller is responsible for validation; this never rejects anything.
    """
    et = delivery.extra_type

    # 1) Team total and ball counters
    innings.runs += delivery.total_runs
    if delivery.is_legal:
        innings.legal_balls += 1
        over.legal_balls += 1

    # 2) Extras breakdown
    if et == "wide":
        innings.extras.wides += delivery.extras
    elif et == "no_ball":
        innings.extras.no_balls += delivery.extras
    elif et == "bye":
        innings.extras.byes += delivery.extras
    elif et == "leg_bye":
        innings.extras.leg_byes += delivery.extras

    # 3) Batsmen (non-striker is listed too so the scorecard shows both)
    striker = _batting(innings, delivery.striker)
    _batting(innings, delivery.non_striker)

    striker.runs += delivery.runs
    if et != "wide":
        striker.balls += 1
    if delivery.runs == 4:
        striker.fours += 1
    elif delivery.runs == 6:
        striker.sixes += 1

    # 4) Bowler
    bowler = _bowling(innings, delivery.bowler)
    charged = runs_charged_to_bowler(delivery)
    bowler.runs_conceded += charged
    over.bowler_runs += charged
    if delivery.is_legal:
        bowler.legal_balls += 1
    if et == "wide":
        bowler.wides += 1
    elif et == "no_ball":
        bowler.no_balls += 1

    # 5) Partnership
    p = innings.partnership
    if p is None or not p.involves(delivery.striker, delivery.non_striker):
        if p is not None:
            innings.partnerships.append(p)
        p = Partnership(batsman_1=delivery.striker, batsman_2=delivery.non_striker)
        innings.partnership = p
    p.runs += delivery.total_runs
    if et != "wide":
        p.balls += 1
    innings.at_crease = (delivery.striker, delivery.non_striker)

    # 6) Wicket
    w = delivery.wicket
    if w is not None:
        innings.wickets += 1
        out = _batting(innings, w.player_out)
        out.is_out = True
        out.dismissal = w
        if w.kind not in NON_BOWLER_DISMISSALS:
            bowler.wickets += 1
            out.dismissed_by = delivery.bowler

        innings.fall_of_wickets.append(FallOfWicket(
            wicket_number=innings.wickets,
            runs=innings.runs,
            overs=innings.overs_notation,
            player_out=w.player_out,
        ))
        innings.partnerships.append(p)
        innings.partnership = None
        innings.at_crease = tuple(b for b in innings.at_crease if b != w.player_out)

    # 7) Maiden: the over finished on this ball without the bowler conceding
    if delivery.is_legal and over.legal_balls == BALLS_PER_OVER and over.bowler_runs == 0:
        bowler.maidens += 1


def highest_partnership(innings: Innings) -> Optional[Partnership]:
    candidates: List[Partnership] = list(innings.partnerships)
    if innings.partnership is not None:
        candidates.append(innings.partnership)
    if not candidates:
        return None
    return max(candidates, key=lambda p: (p.runs, -p.balls))


def innings_rates(innings: Innings) -> Dict[str, Any]:
    """
    Derived metrics, computed on demand (never stored).

    required_run_rate is only meaningful while chasing; None otherwise,
    and None once no legal balls remain.
    """
    rrr: Optional[float] = None
    runs_needed: Optional[int] = None
    if innings.target is not None:
        runs_needed = max(0, innings.target - innings.runs)
        rrr = required_run_rate(innings.target, innings.runs, innings.balls_remaining)

    return {
        "current_run_rate": round(run_rate(innings.runs, innings.legal_balls), 2),
        "required_run_rate": round(rrr, 2) if rrr is not None else None,
        "runs_needed": runs_needed,
        "balls_remaining": innings.balls_remaining,
        "projected_score": projected_score(innings.runs, innings.legal_balls, innings.max_balls),
    }


def find_inconsistency(innings: Innings) -> Optional[str]:
    """
    Recompute the headline counters from the delivery log and compare.

    Returns a description of the first mismatch, or None when consistent.
    """
    deliveries = innings.deliveries
    expected_runs = sum(d.total_runs for d in deliveries)
    expected_legal = sum(1 for d in deliveries if d.is_legal)
    expected_wickets = sum(1 for d in deliveries if d.wicket is not None)
    expected_extras = sum(d.extras for d in deliveries)

    if innings.runs != expected_runs:
        return f"innings {innings.number} runs {innings.runs} != {expected_runs} from deliveries"
    if innings.legal_balls != expected_legal:
        return f"innings {innings.number} legal balls {innings.legal_balls} != {expected_legal} from deliveries"
    if innings.wickets != expected_wickets:
        return f"innings {innings.number} wickets {innings.wickets} != {expected_wickets} from deliveries"
    if innings.extras.total != expected_extras:
        return f"innings {innings.number} extras {innings.extras.total} != {expected_extras} from deliveries"
    if innings.wickets > innings.max_wickets:
        return f"innings {innings.number} has {innings.wickets} wickets (limit {innings.max_wickets})"

    for ov in innings.overs:
        legal = sum(1 for d in ov.deliveries if d.is_legal)
        if legal != ov.legal_balls or legal > BALLS_PER_OVER:
            return f"innings {innings.number} over {ov.number} legal balls {ov.legal_balls} != {legal}"
    return None
