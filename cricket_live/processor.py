# cricket_live/processor.py
from __future__ import annotations

import dataclasses
import logging
from typing import Any, Mapping, Optional

from cricket_live.commentary import CommentaryGenerator
from cricket_live.errors import StateConflictError, ValidationError
from cricket_live.models import (
    DISMISSAL_KINDS,
    EXTRA_TYPES,
    ILLEGAL_EXTRAS,
    CommentaryEntry,
    Delivery,
    Innings,
    Match,
    ProcessedEvent,
    Wicket,
)
from cricket_live.store import MatchStateStore, add_delivery, settle_innings

logger = logging.getLogger(__name__)

# Dismissals possible off a no-ball or a free hit
FREE_HIT_DISMISSALS = ("run_out", "retired_hurt")

# Dismissals possible off a wide
WIDE_DISMISSALS = ("run_out", "stumped", "hit_wicket", "retired_hurt")

# Dismissals where the non-striker can be the one out
NON_STRIKER_DISMISSALS = ("run_out", "retired_hurt")


# -----------------------------
# Parsing
# -----------------------------
def _req_str(raw: Mapping[str, Any], name: str) -> str:
    val = raw.get(name)
    if not isinstance(val, str) or not val.strip():
        raise ValidationError("malformed", f"'{name}' is required")
    return val.strip()


def _opt_str(raw: Mapping[str, Any], name: str) -> Optional[str]:
    val = raw.get(name)
    if val is None:
        return None
    if not isinstance(val, str):
        raise ValidationError("malformed", f"'{name}' must be a string")
    return val.strip() or None


def _opt_int(raw: Mapping[str, Any], name: str) -> Optional[int]:
    val = raw.get(name)
    if val is None:
        return None
    # bool is an int subclass; reject it explicitly
    if isinstance(val, bool) or not isinstance(val, int):
        raise ValidationError("malformed", f"'{name}' must be an integer")
    if val < 0:
        raise ValidationError("malformed", f"'{name}' cannot be negative")
    return val


def parse_delivery(raw: Mapping[str, Any]) -> Delivery:
    """
    Build a Delivery from a scorer payload.

    Missing/ill-typed fields raise ValidationError(kind="malformed").
    `extras` defaults to the 1-run penalty for wides and no-balls.
    """
    if not isinstance(raw, Mapping):
        raise ValidationError("malformed", "Delivery must be an object")

    striker = _req_str(raw, "striker")
    non_striker = _req_str(raw, "non_striker")
    bowler = _req_str(raw, "bowler")
    runs = _opt_int(raw, "runs") or 0

    extra_type = raw.get("extra_type") or "none"
    if extra_type not in EXTRA_TYPES:
        raise ValidationError("malformed", f"Unknown extra_type: {extra_type}")

    extras = _opt_int(raw, "extras")
    if extras is None:
        extras = 1 if extra_type in ILLEGAL_EXTRAS else 0

    wicket = None
    raw_wicket = raw.get("wicket")
    if raw_wicket is not None:
        if not isinstance(raw_wicket, Mapping):
            raise ValidationError("malformed", "'wicket' must be an object")
        wicket = Wicket(
            player_out=_req_str(raw_wicket, "player_out"),
            kind=_req_str(raw_wicket, "kind"),
            fielder=_opt_str(raw_wicket, "fielder"),
        )

    return Delivery(
        striker=striker,
        non_striker=non_striker,
        bowler=bowler,
        runs=runs,
        extra_type=extra_type,
        extras=extras,
        wicket=wicket,
        shot_zone=_opt_str(raw, "shot_zone"),
    )


# -----------------------------
# Validation (rules applied in order)
# -----------------------------
def scoring_innings(match: Match) -> Innings:
    """(a) match must be live with an open innings."""
    if match.status != "live":
        raise StateConflictError(f"Deliveries are not accepted when match is {match.status}")
    innings = match.open_innings
    if innings is None:
        raise ValidationError("no_open_innings", "No innings is open; begin the next innings first")
    return innings


def _check_participants(match: Match, innings: Innings, d: Delivery) -> None:
    """(b) striker/non-striker/bowler must be valid current participants."""
    cfg = match.config
    batting = cfg.team(innings.batting_team).players
    bowling = cfg.team(innings.bowling_team).players

    for role, player in (("striker", d.striker), ("non_striker", d.non_striker)):
        if player not in batting:
            raise ValidationError("unknown_participant", f"{role} {player} is not in {innings.batting_team}")
        fig = innings.batting.get(player)
        if fig is not None and fig.is_out:
            raise ValidationError("batsman_dismissed", f"{role} {player} is already out")

    if d.striker == d.non_striker:
        raise ValidationError("same_batsmen", "striker and non_striker must be different players")

    _check_crease(innings, d)

    if d.bowler not in bowling:
        raise ValidationError("unknown_participant", f"bowler {d.bowler} is not in {innings.bowling_team}")

    over = innings.current_over
    if over is not None and over.bowler != d.bowler:
        raise ValidationError("bowler_mismatch", f"Over {over.number} is being bowled by {over.bowler}")
    if over is None:
        previous = innings.last_completed_over
        if previous is not None and previous.bowler == d.bowler:
            raise ValidationError("consecutive_overs", f"{d.bowler} bowled the previous over")

    if d.wicket is not None and d.wicket.fielder is not None and d.wicket.fielder not in bowling:
        raise ValidationError("unknown_participant", f"fielder {d.wicket.fielder} is not in {innings.bowling_team}")


def _check_crease(innings: Innings, d: Delivery) -> None:
    """
    Rules:
    - first ball of the innings: any two not-out batsmen open
    - otherwise the same pair, either way round
    - after a wicket: the survivor plus a batsman who has not batted yet
    """
    crease = innings.at_crease
    pair = {d.striker, d.non_striker}
    if not crease:
        return

    if len(crease) == 2:
        if pair != set(crease):
            raise ValidationError("not_at_crease", f"{crease[0]} and {crease[1]} are at the crease")
        return

    survivor = crease[0]
    if survivor not in pair:
        raise ValidationError("not_at_crease", f"{survivor} is still at the crease")
    newcomer = d.non_striker if d.striker == survivor else d.striker
    if newcomer in innings.batting:
        raise ValidationError("not_at_crease", f"{newcomer} has already batted this innings")


def _check_extras(d: Delivery) -> None:
    """(c) wides/no-balls carry no runs off the bat and never advance the over."""
    if d.extra_type == "none":
        if d.extras != 0:
            raise ValidationError("invalid_extra_runs", "extras must be 0 when extra_type is none")
        return

    if d.runs != 0:
        raise ValidationError("runs_off_bat_on_extra", f"runs off the bat must be 0 on a {d.extra_type}")
    if d.extras < 1:
        raise ValidationError("invalid_extra_runs", f"a {d.extra_type} must carry at least 1 extra run")


def _check_wicket(innings: Innings, d: Delivery) -> None:
    """(d) dismissal kind must be known and possible off this delivery."""
    w = d.wicket
    if w is None:
        return

    if w.kind not in DISMISSAL_KINDS:
        raise ValidationError("invalid_dismissal", f"Unknown dismissal kind: {w.kind}")

    if w.player_out not in (d.striker, d.non_striker):
        raise ValidationError("invalid_dismissed_player", f"{w.player_out} is not at the crease")
    if w.player_out == d.non_striker and w.kind not in NON_STRIKER_DISMISSALS:
        raise ValidationError("invalid_dismissed_player", f"the non-striker cannot be out {w.kind}")

    if d.extra_type == "no_ball" or innings.free_hit:
        if w.kind not in FREE_HIT_DISMISSALS:
            label = "a no-ball" if d.extra_type == "no_ball" else "a free hit"
            raise ValidationError("dismissal_not_allowed", f"{w.kind} is not possible off {label}")
    elif d.extra_type == "wide" and w.kind not in WIDE_DISMISSALS:
        raise ValidationError("dismissal_not_allowed", f"{w.kind} is not possible off a wide")


def _check_wicket_limit(innings: Innings, d: Delivery) -> None:
    """(e) the (players per team)th wicket is never reachable."""
    if d.wicket is not None and innings.wickets + 1 > innings.max_wickets:
        raise ValidationError("wicket_limit", f"innings already has {innings.wickets} wickets")


def validate_delivery(match: Match, innings: Innings, delivery: Delivery) -> None:
    _check_participants(match, innings, delivery)
    _check_extras(delivery)
    _check_wicket(innings, delivery)
    _check_wicket_limit(innings, delivery)


# -----------------------------
# Processor
# -----------------------------
class BallEventProcessor:
    """
    Validates one scorer submission and applies it inside a store
    transaction: the state transition, the statistics update and the
    commentary entry either all land or none do.
    """

    def __init__(self, store: MatchStateStore, commentary: Optional[CommentaryGenerator] = None) -> None:
        self.store = store
        self.commentary = commentary if commentary is not None else CommentaryGenerator()

    def process(self, match_id: str, raw: Mapping[str, Any]) -> ProcessedEvent:
        try:
            with self.store.transaction(match_id) as match:
                event = self._apply(match, raw)
        except ValidationError as e:
            logger.info("Match %s: delivery rejected (%s): %s", match_id, e.kind, e.message)
            raise

        innings = self.store.get_match(match_id).innings[event.innings_number - 1]
        logger.info("Match %s: ball %s recorded (%d/%d)",
                    match_id, event.ball_label, innings.runs, innings.wickets)
        return event

    def _apply(self, match: Match, raw: Mapping[str, Any]) -> ProcessedEvent:
        innings = scoring_innings(match)
        delivery = parse_delivery(raw)
        validate_delivery(match, innings, delivery)

        free_hit = innings.free_hit
        over, over_completed = add_delivery(match, delivery)
        innings_closed, match_completed = settle_innings(match)

        event = ProcessedEvent(
            match_id=match.match_id,
            innings_number=innings.number,
            over_number=over.number,
            ball_label=innings.overs_notation,
            delivery=delivery,
            free_hit=free_hit,
            over_completed=over_completed,
            innings_closed=innings_closed,
            match_completed=match_completed,
        )

        match.commentary_sequence += 1
        entry = CommentaryEntry(
            sequence=match.commentary_sequence,
            innings=innings.number,
            over=innings.overs_notation,
            text=self.commentary.describe(event),
            delivery=delivery,
        )
        match.commentary.append(entry)
        return dataclasses.replace(event, commentary=entry)
