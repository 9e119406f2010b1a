from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional, Tuple

from cricket_live.cricket_math import (
    BALLS_PER_OVER,
    balls_to_overs_str,
    economy_rate,
    strike_rate,
)


# -----------------------------
# Enumerations
# -----------------------------
MatchStatus = Literal["scheduled", "toss_done", "live", "completed", "abandoned"]
MATCH_STATUSES: Tuple[str, ...] = ("scheduled", "toss_done", "live", "completed", "abandoned")

ExtraType = Literal["none", "wide", "no_ball", "bye", "leg_bye"]
EXTRA_TYPES: Tuple[str, ...] = ("none", "wide", "no_ball", "bye", "leg_bye")

# Wides and no-balls do not count toward the 6-ball over
ILLEGAL_EXTRAS: Tuple[str, ...] = ("wide", "no_ball")

DismissalKind = Literal["bowled", "caught", "lbw", "run_out", "stumped", "hit_wicket", "retired_hurt"]
DISMISSAL_KINDS: Tuple[str, ...] = (
    "bowled", "caught", "lbw", "run_out", "stumped", "hit_wicket", "retired_hurt",
)

# Not credited to the bowler
NON_BOWLER_DISMISSALS: Tuple[str, ...] = ("run_out", "retired_hurt")

TossDecision = Literal["bat", "field"]
TOSS_DECISIONS: Tuple[str, ...] = ("bat", "field")

InningsState = Literal["NOT_STARTED", "IN_PROGRESS", "COMPLETED"]

ResultMethod = Literal["runs", "wickets", "tie", "no_result"]


# -----------------------------
# Match configuration (owned by the tournament/team CRUD side)
# -----------------------------
@dataclass(frozen=True)
class TeamSheet:
    team_id: str
    name: str
    players: Tuple[str, ...]


@dataclass(frozen=True)
class MatchConfig:
    match_id: str
    team_a: TeamSheet
    team_b: TeamSheet
    overs: int
    players_per_team: int
    venue: str = ""

    @property
    def max_balls(self) -> int:
        return self.overs * BALLS_PER_OVER

    @property
    def max_wickets(self) -> int:
        # Last batsman cannot bat alone
        return self.players_per_team - 1

    def team(self, team_id: str) -> TeamSheet:
        if team_id == self.team_a.team_id:
            return self.team_a
        if team_id == self.team_b.team_id:
            return self.team_b
        raise KeyError(team_id)

    def opponent(self, team_id: str) -> TeamSheet:
        if team_id == self.team_a.team_id:
            return self.team_b
        if team_id == self.team_b.team_id:
            return self.team_a
        raise KeyError(team_id)


# -----------------------------
# Ball events
# -----------------------------
@dataclass(frozen=True)
class Wicket:
    player_out: str
    kind: str
    fielder: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"player_out": self.player_out, "kind": self.kind, "fielder": self.fielder}


@dataclass(frozen=True)
class Delivery:
    """
    One ball as submitted by the scorer.

    `runs` are runs off the bat. `extras` are the runs credited as extras
    (the wide/no-ball penalty included), so the team total moves by
    runs + extras.
    """
    striker: str
    non_striker: str
    bowler: str
    runs: int = 0
    extra_type: str = "none"
    extras: int = 0
    wicket: Optional[Wicket] = None
    shot_zone: Optional[str] = None

    @property
    def is_legal(self) -> bool:
        return self.extra_type not in ILLEGAL_EXTRAS

    @property
    def total_runs(self) -> int:
        return self.runs + self.extras

    def to_dict(self) -> Dict[str, Any]:
        return {
            "striker": self.striker,
            "non_striker": self.non_striker,
            "bowler": self.bowler,
            "runs": self.runs,
            "extra_type": self.extra_type,
            "extras": self.extras,
            "wicket": self.wicket.to_dict() if self.wicket else None,
            "shot_zone": self.shot_zone,
        }


@dataclass
class Over:
    number: int
    bowler: str
    deliveries: List[Delivery] = field(default_factory=list)
    legal_balls: int = 0
    bowler_runs: int = 0

    @property
    def is_complete(self) -> bool:
        return self.legal_balls >= BALLS_PER_OVER


# -----------------------------
# Derived figures
# -----------------------------
@dataclass
class BattingFigures:
    player: str
    runs: int = 0
    balls: int = 0
    fours: int = 0
    sixes: int = 0
    is_out: bool = False
    dismissal: Optional[Wicket] = None
    dismissed_by: Optional[str] = None

    @property
    def strike_rate(self) -> float:
        return strike_rate(self.runs, self.balls)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "player": self.player,
            "runs": self.runs,
            "balls": self.balls,
            "fours": self.fours,
            "sixes": self.sixes,
            "strike_rate": round(self.strike_rate, 2),
            "is_out": self.is_out,
            "dismissal": self.dismissal.kind if self.dismissal else None,
            "bowler": self.dismissed_by,
            "fielder": self.dismissal.fielder if self.dismissal else None,
        }


@dataclass
class BowlingFigures:
    player: str
    legal_balls: int = 0
    runs_conceded: int = 0
    wickets: int = 0
    wides: int = 0
    no_balls: int = 0
    maidens: int = 0

    @property
    def overs(self) -> str:
        return balls_to_overs_str(self.legal_balls)

    @property
    def economy(self) -> float:
        return economy_rate(self.runs_conceded, self.legal_balls)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "player": self.player,
            "overs": self.overs,
            "maidens": self.maidens,
            "runs": self.runs_conceded,
            "wickets": self.wickets,
            "wides": self.wides,
            "no_balls": self.no_balls,
            "economy": round(self.economy, 2),
        }


@dataclass
class Extras:
    wides: int = 0
    no_balls: int = 0
    byes: int = 0
    leg_byes: int = 0

    @property
    def total(self) -> int:
        return self.wides + self.no_balls + self.byes + self.leg_byes


@dataclass
class Partnership:
    batsman_1: str
    batsman_2: str
    runs: int = 0
    balls: int = 0

    def involves(self, a: str, b: str) -> bool:
        return {self.batsman_1, self.batsman_2} == {a, b}


@dataclass(frozen=True)
class FallOfWicket:
    wicket_number: int
    runs: int
    overs: str
    player_out: str


# -----------------------------
# Innings / Match aggregate
# -----------------------------
@dataclass
class Innings:
    number: int
    batting_team: str
    bowling_team: str
    max_balls: int
    max_wickets: int
    target: Optional[int] = None

    state: str = "NOT_STARTED"
    runs: int = 0
    wickets: int = 0
    legal_balls: int = 0
    free_hit: bool = False
    closed_manually: bool = False
    # Not-out batsmen at the crease; one name right after a wicket
    at_crease: Tuple[str, ...] = ()

    overs: List[Over] = field(default_factory=list)
    extras: Extras = field(default_factory=Extras)
    batting: Dict[str, BattingFigures] = field(default_factory=dict)
    bowling: Dict[str, BowlingFigures] = field(default_factory=dict)

    partnership: Optional[Partnership] = None
    partnerships: List[Partnership] = field(default_factory=list)
    fall_of_wickets: List[FallOfWicket] = field(default_factory=list)

    @property
    def deliveries(self) -> List[Delivery]:
        out: List[Delivery] = []
        for ov in self.overs:
            out.extend(ov.deliveries)
        return out

    @property
    def current_over(self) -> Optional[Over]:
        """The over in progress, or None when the next ball needs a (new) bowler."""
        if self.overs and not self.overs[-1].is_complete:
            return self.overs[-1]
        return None

    @property
    def last_completed_over(self) -> Optional[Over]:
        for ov in reversed(self.overs):
            if ov.is_complete:
                return ov
        return None

    @property
    def balls_remaining(self) -> int:
        return max(0, self.max_balls - self.legal_balls)

    @property
    def is_completed(self) -> bool:
        return self.state == "COMPLETED"

    @property
    def overs_notation(self) -> str:
        return balls_to_overs_str(self.legal_balls)

    @property
    def is_all_out(self) -> bool:
        return self.wickets >= self.max_wickets

    def totals_dict(self) -> Dict[str, Any]:
        return {
            "number": self.number,
            "batting_team": self.batting_team,
            "runs": self.runs,
            "wickets": self.wickets,
            "legal_balls": self.legal_balls,
            "overs": self.overs_notation,
            "state": self.state,
            "target": self.target,
        }


@dataclass(frozen=True)
class TossResult:
    won_by: str
    decision: str


@dataclass(frozen=True)
class MatchResult:
    method: str
    winner: Optional[str] = None
    margin: Optional[int] = None

    @property
    def summary(self) -> str:
        if self.method == "tie":
            return "Match tied"
        if self.method == "no_result":
            return "No result"
        return f"{self.winner} won by {self.margin} {self.method}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "method": self.method,
            "winner": self.winner,
            "margin": self.margin,
            "summary": self.summary,
        }


@dataclass(frozen=True)
class CommentaryEntry:
    sequence: int
    innings: int
    over: str
    text: str
    delivery: Delivery

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sequence": self.sequence,
            "innings": self.innings,
            "over": self.over,
            "text": self.text,
            "delivery": self.delivery.to_dict(),
        }


@dataclass
class Match:
    config: MatchConfig
    status: str = "scheduled"
    toss: Optional[TossResult] = None
    innings: List[Innings] = field(default_factory=list)
    result: Optional[MatchResult] = None
    pending_target: Optional[int] = None
    commentary: List[CommentaryEntry] = field(default_factory=list)
    commentary_sequence: int = 0

    @property
    def match_id(self) -> str:
        return self.config.match_id

    @property
    def current_innings(self) -> Optional[Innings]:
        return self.innings[-1] if self.innings else None

    @property
    def open_innings(self) -> Optional[Innings]:
        inn = self.current_innings
        if inn is not None and not inn.is_completed:
            return inn
        return None


# -----------------------------
# Processor output
# -----------------------------
@dataclass(frozen=True)
class ProcessedEvent:
    match_id: str
    innings_number: int
    over_number: int
    ball_label: str
    delivery: Delivery
    free_hit: bool = False
    over_completed: bool = False
    innings_closed: bool = False
    match_completed: bool = False
    commentary: Optional[CommentaryEntry] = None
