# cricket_live/queries.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from cricket_live.config import COMMENTARY_FEED_LIMIT
from cricket_live.cricket_math import balls_to_overs_str, economy_rate, strike_rate
from cricket_live.errors import ValidationError
from cricket_live.models import Innings, Match
from cricket_live.points_table import build_points_table
from cricket_live.publisher import BroadcastPublisher
from cricket_live.stats import highest_partnership, innings_rates
from cricket_live.store import MatchStateStore

LEADERBOARD_CATEGORIES: Tuple[str, ...] = (
    "runs", "wickets", "sixes", "fours", "strike_rate", "economy", "teams",
)

# Qualification thresholds for the rate leaderboards
MIN_BALLS_FOR_STRIKE_RATE = 10
MIN_BALLS_FOR_ECONOMY = 12


# -----------------------------
# Projections
# -----------------------------
def innings_view(innings: Innings) -> Dict[str, Any]:
    """Full scorecard of one innings plus on-demand rates."""
    p = innings.partnership
    best = highest_partnership(innings)
    over = innings.current_over
    previous = innings.last_completed_over

    view = innings.totals_dict()
    view.update(innings_rates(innings))
    view.update({
        "free_hit": innings.free_hit,
        "current_bowler": over.bowler if over else None,
        "awaiting_bowler": over is None and not innings.is_completed,
        "previous_bowler": previous.bowler if previous else None,
        "extras": {
            "wides": innings.extras.wides,
            "no_balls": innings.extras.no_balls,
            "byes": innings.extras.byes,
            "leg_byes": innings.extras.leg_byes,
            "total": innings.extras.total,
        },
        "batting": [b.to_dict() for b in innings.batting.values()],
        "bowling": [b.to_dict() for b in innings.bowling.values()],
        "partnership": (
            {"batsmen": [p.batsman_1, p.batsman_2], "runs": p.runs, "balls": p.balls} if p else None
        ),
        "highest_partnership": (
            {"batsmen": [best.batsman_1, best.batsman_2], "runs": best.runs, "balls": best.balls}
            if best else None
        ),
        "fall_of_wickets": [
            {"wicket": f.wicket_number, "runs": f.runs, "overs": f.overs, "player_out": f.player_out}
            for f in innings.fall_of_wickets
        ],
    })
    return view


def match_summary(match: Match) -> Dict[str, Any]:
    """Compact row for live-match lists."""
    cfg = match.config
    inn = match.current_innings
    out: Dict[str, Any] = {
        "match_id": match.match_id,
        "team_a": {"id": cfg.team_a.team_id, "name": cfg.team_a.name},
        "team_b": {"id": cfg.team_b.team_id, "name": cfg.team_b.name},
        "venue": cfg.venue,
        "status": match.status,
        "innings": None,
    }
    if inn is not None:
        rates = innings_rates(inn)
        out["innings"] = {
            **inn.totals_dict(),
            "current_run_rate": rates["current_run_rate"],
            "required_run_rate": rates["required_run_rate"],
        }
    if match.result is not None:
        out["result"] = match.result.to_dict()
    return out


def match_snapshot(match: Match, last_sequence: int = 0) -> Dict[str, Any]:
    cfg = match.config
    return {
        "match_id": match.match_id,
        "status": match.status,
        "venue": cfg.venue,
        "overs": cfg.overs,
        "players_per_team": cfg.players_per_team,
        "teams": [
            {"id": t.team_id, "name": t.name, "players": list(t.players)}
            for t in (cfg.team_a, cfg.team_b)
        ],
        "toss": {"won_by": match.toss.won_by, "decision": match.toss.decision} if match.toss else None,
        "innings": [innings_view(i) for i in match.innings],
        "target": match.pending_target,
        "result": match.result.to_dict() if match.result else None,
        "last_sequence": last_sequence,
        "recent_commentary": [c.to_dict() for c in reversed(match.commentary[-6:])],
    }


# -----------------------------
# Leaderboards
# -----------------------------
@dataclass
class _PlayerLine:
    player: str
    team: str
    matches: Set[str] = field(default_factory=set)
    innings: int = 0
    runs: int = 0
    balls: int = 0
    fours: int = 0
    sixes: int = 0
    wickets: int = 0
    legal_balls: int = 0
    runs_conceded: int = 0


def _collect(matches: List[Match]) -> Tuple[Dict[str, _PlayerLine], Dict[str, _PlayerLine]]:
    batting: Dict[str, _PlayerLine] = {}
    bowling: Dict[str, _PlayerLine] = {}

    for m in matches:
        for inn in m.innings:
            for fig in inn.batting.values():
                line = batting.setdefault(fig.player, _PlayerLine(fig.player, inn.batting_team))
                line.matches.add(m.match_id)
                line.innings += 1
                line.runs += fig.runs
                line.balls += fig.balls
                line.fours += fig.fours
                line.sixes += fig.sixes
            for fig in inn.bowling.values():
                line = bowling.setdefault(fig.player, _PlayerLine(fig.player, inn.bowling_team))
                line.matches.add(m.match_id)
                line.innings += 1
                line.wickets += fig.wickets
                line.legal_balls += fig.legal_balls
                line.runs_conceded += fig.runs_conceded
    return batting, bowling


def _batting_row(line: _PlayerLine) -> Dict[str, Any]:
    return {
        "player": line.player,
        "team": line.team,
        "matches": len(line.matches),
        "innings": line.innings,
        "runs": line.runs,
        "balls": line.balls,
        "fours": line.fours,
        "sixes": line.sixes,
        "strike_rate": round(strike_rate(line.runs, line.balls), 2),
    }


def _bowling_row(line: _PlayerLine) -> Dict[str, Any]:
    return {
        "player": line.player,
        "team": line.team,
        "matches": len(line.matches),
        "innings": line.innings,
        "overs": balls_to_overs_str(line.legal_balls),
        "runs": line.runs_conceded,
        "wickets": line.wickets,
        "economy": round(economy_rate(line.runs_conceded, line.legal_balls), 2),
    }


def _ranked(rows: List[Dict[str, Any]], limit: int) -> List[Dict[str, Any]]:
    out = rows[:limit]
    for idx, row in enumerate(out, start=1):
        row["pos"] = idx
    return out


class PublicQueryService:
    """
    Read-only projections for viewers.

    Everything is built from committed match objects, which writers never
    mutate in place, so a read sees either the state before or after a
    ball, never a half-applied one.
    """

    def __init__(self, store: MatchStateStore, publisher: Optional[BroadcastPublisher] = None) -> None:
        self.store = store
        self.publisher = publisher

    def list_live_matches(self) -> List[Dict[str, Any]]:
        return [match_summary(m) for m in self.store.list_matches() if m.status == "live"]

    def get_live_state(self, match_id: str) -> Dict[str, Any]:
        match = self.store.get_match(match_id)
        last = self.publisher.last_sequence(match_id) if self.publisher else 0
        return match_snapshot(match, last_sequence=last)

    def get_commentary(self, match_id: str, limit: int = COMMENTARY_FEED_LIMIT) -> List[Dict[str, Any]]:
        """Newest first."""
        match = self.store.get_match(match_id)
        if limit <= 0:
            return []
        return [c.to_dict() for c in reversed(match.commentary[-limit:])]

    def get_leaderboard(self, category: str, limit: int = 10) -> List[Dict[str, Any]]:
        if category not in LEADERBOARD_CATEGORIES:
            raise ValidationError(
                "unknown_category",
                f"Unknown leaderboard category: {category} (expected one of {LEADERBOARD_CATEGORIES})",
            )

        if limit <= 0:
            return []

        matches = self.store.list_matches()
        if category == "teams":
            return build_points_table(matches)[:limit]

        batting, bowling = _collect(matches)
        sort_key: Callable[[_PlayerLine], Any]

        if category in ("runs", "sixes", "fours"):
            lines = list(batting.values())
            if category == "runs":
                sort_key = lambda l: (-l.runs, l.balls, l.player)
            elif category == "sixes":
                sort_key = lambda l: (-l.sixes, -l.runs, l.player)
            else:
                sort_key = lambda l: (-l.fours, -l.runs, l.player)
            return _ranked([_batting_row(l) for l in sorted(lines, key=sort_key)], limit)

        if category == "strike_rate":
            lines = [l for l in batting.values() if l.balls >= MIN_BALLS_FOR_STRIKE_RATE]
            lines.sort(key=lambda l: (-strike_rate(l.runs, l.balls), l.player))
            return _ranked([_batting_row(l) for l in lines], limit)

        if category == "wickets":
            lines = [l for l in bowling.values() if l.wickets > 0]
            lines.sort(key=lambda l: (-l.wickets, l.runs_conceded, l.player))
            return _ranked([_bowling_row(l) for l in lines], limit)

        # economy
        lines = [l for l in bowling.values() if l.legal_balls >= MIN_BALLS_FOR_ECONOMY]
        lines.sort(key=lambda l: (economy_rate(l.runs_conceded, l.legal_balls), l.player))
        return _ranked([_bowling_row(l) for l in lines], limit)
