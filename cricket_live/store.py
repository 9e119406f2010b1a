# cricket_live/store.py
from __future__ import annotations

import copy
import logging
import threading
from contextlib import contextmanager
from typing import Dict, Iterator, List, Tuple

from cricket_live.errors import (
    InternalInconsistencyError,
    MatchNotFoundError,
    StateConflictError,
    ValidationError,
)
from cricket_live.models import (
    MATCH_STATUSES,
    TOSS_DECISIONS,
    Delivery,
    Innings,
    Match,
    MatchConfig,
    MatchResult,
    Over,
    TossResult,
)
from cricket_live.stats import apply_delivery_stats, find_inconsistency

logger = logging.getLogger(__name__)

# Limited-overs: one innings per side
MAX_INNINGS = 2

# Manual status changes (automatic completion happens through settle_innings)
ALLOWED_STATUS_CHANGES: Dict[str, Tuple[str, ...]] = {
    "scheduled": ("abandoned",),
    "toss_done": ("live", "abandoned"),
    "live": ("completed", "abandoned"),
    "completed": (),
    "abandoned": (),
}


# -----------------------------
# State transitions on a working copy
# -----------------------------
def add_delivery(match: Match, delivery: Delivery) -> Tuple[Over, bool]:
    """
    Append a delivery to the open innings, opening a new over when needed.

    Returns (over, over_completed). No rule checks here: the processor
    validates first, and replay trusts the log.
    """
    innings = match.open_innings
    if innings is None:
        raise StateConflictError(f"Match {match.match_id} has no open innings")

    over = innings.current_over
    if over is None:
        over = Over(number=len(innings.overs) + 1, bowler=delivery.bowler)
        innings.overs.append(over)

    over.deliveries.append(delivery)
    innings.state = "IN_PROGRESS"
    apply_delivery_stats(innings, over, delivery)

    # Free hit follows a no-ball and survives a wide bowled on the free hit
    innings.free_hit = delivery.extra_type == "no_ball" or (
        innings.free_hit and delivery.extra_type == "wide"
    )
    return over, over.is_complete and delivery.is_legal


def close_innings(match: Match, innings: Innings) -> bool:
    """
    Mark an innings completed. Sets the chase target after the first
    innings and the match result after the second.

    Returns True when the match is now completed.
    """
    innings.state = "COMPLETED"
    innings.free_hit = False

    if innings.number == 1:
        match.pending_target = innings.runs + 1
        return False

    match.result = compute_result(match)
    match.status = "completed"
    return True


def settle_innings(match: Match) -> Tuple[bool, bool]:
    """
    Close the open innings if overs, wickets or the target are exhausted.

    Returns (innings_closed, match_completed).
    """
    innings = match.open_innings
    if innings is None:
        return False, False

    chased = innings.target is not None and innings.runs >= innings.target
    if innings.is_all_out or innings.balls_remaining == 0 or chased:
        return True, close_innings(match, innings)
    return False, False


def compute_result(match: Match) -> MatchResult:
    """
    Rules:
    - chasing side reaches the target: wins by wickets in hand
    - chasing side finishes on target - 1: tie
    - otherwise: side batting first wins by the run difference
    """
    first, second = match.innings[0], match.innings[1]
    target = second.target if second.target is not None else first.runs + 1

    if second.runs >= target:
        return MatchResult(
            method="wickets",
            winner=second.batting_team,
            margin=second.max_wickets - second.wickets,
        )
    if second.runs == target - 1:
        return MatchResult(method="tie")
    return MatchResult(
        method="runs",
        winner=first.batting_team,
        margin=(target - 1) - second.runs,
    )


def _new_innings(match: Match, number: int, batting_team: str, bowling_team: str) -> Innings:
    cfg = match.config
    return Innings(
        number=number,
        batting_team=batting_team,
        bowling_team=bowling_team,
        max_balls=cfg.max_balls,
        max_wickets=cfg.max_wickets,
        target=match.pending_target if number > 1 else None,
    )


def replay(match: Match, logs: List[List[Delivery]], closed_manually: List[bool]) -> Match:
    """
    Rebuild a match from its per-innings delivery logs.

    Toss, config and the commentary feed are carried over; every counter
    is recomputed by folding the deliveries again. An innings that had
    been ended by hand stays ended unless it is the last one in `logs`.
    """
    rebuilt = Match(
        config=match.config,
        status="live",
        toss=match.toss,
        commentary=match.commentary,
        commentary_sequence=match.commentary_sequence,
    )

    for idx, (old, log) in enumerate(zip(match.innings, logs)):
        inn = _new_innings(rebuilt, old.number, old.batting_team, old.bowling_team)
        inn.closed_manually = closed_manually[idx]
        rebuilt.innings.append(inn)
        for d in log:
            add_delivery(rebuilt, d)
            settle_innings(rebuilt)
        is_last = idx == len(logs) - 1
        if closed_manually[idx] and not is_last and not inn.is_completed:
            close_innings(rebuilt, inn)

    if rebuilt.result is None:
        rebuilt.status = "live"
    return rebuilt


# -----------------------------
# Store
# -----------------------------
class MatchStateStore:
    """
    Authoritative in-memory holder of every match aggregate.

    Writers go through `transaction()`, which serializes writers of the
    same match and mutates a private copy; the copy replaces the committed
    match only if the whole block succeeds and passes the consistency
    audit. Readers get the committed object, which is never mutated again.
    """

    def __init__(self) -> None:
        self._matches: Dict[str, Match] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._locked: Dict[str, str] = {}
        self._registry_lock = threading.Lock()

    # ---------- reads ----------
    def get_match(self, match_id: str) -> Match:
        match = self._matches.get(match_id)
        if match is None:
            raise MatchNotFoundError(match_id)
        return match

    def list_matches(self) -> List[Match]:
        return list(self._matches.values())

    def is_locked(self, match_id: str) -> bool:
        return match_id in self._locked

    # ---------- writes ----------
    def create_match(self, config: MatchConfig) -> Match:
        if config.team_a.team_id == config.team_b.team_id:
            raise ValidationError("malformed", "team_a and team_b must be different")
        if config.overs <= 0:
            raise ValidationError("malformed", "overs must be positive")
        if config.players_per_team < 2:
            raise ValidationError("malformed", "players_per_team must be at least 2")

        with self._registry_lock:
            if config.match_id in self._matches:
                raise StateConflictError(f"Match already exists: {config.match_id}")
            match = Match(config=config)
            self._matches[config.match_id] = match
            self._locks[config.match_id] = threading.Lock()

        logger.info("Match %s created: %s vs %s, %d overs",
                    config.match_id, config.team_a.team_id, config.team_b.team_id, config.overs)
        return match

    @contextmanager
    def transaction(self, match_id: str) -> Iterator[Match]:
        """
        Single-writer section for one match.

        Yields a deep copy; on normal exit the copy is audited and
        committed, on any exception it is discarded.
        """
        self.get_match(match_id)
        lock = self._locks[match_id]
        with lock:
            if match_id in self._locked:
                raise InternalInconsistencyError(match_id, self._locked[match_id])

            working = copy.deepcopy(self._matches[match_id])
            yield working

            self._audit(working)
            self._matches[match_id] = working

    def _audit(self, match: Match) -> None:
        for innings in match.innings:
            problem = find_inconsistency(innings)
            if problem is not None:
                self._locked[match.match_id] = problem
                logger.error("Match %s locked for writes: %s", match.match_id, problem)
                raise InternalInconsistencyError(match.match_id, problem)

    def unlock(self, match_id: str) -> None:
        """Operator action after manual correction."""
        self.get_match(match_id)
        if self._locked.pop(match_id, None) is not None:
            logger.warning("Match %s unlocked by operator", match_id)

    def apply_toss_result(self, match_id: str, won_by: str, decision: str) -> Match:
        with self.transaction(match_id) as match:
            if match.status not in ("scheduled", "toss_done"):
                raise StateConflictError(f"Toss cannot be recorded when match is {match.status}")
            if won_by not in (match.config.team_a.team_id, match.config.team_b.team_id):
                raise ValidationError("invalid_toss", f"Toss winner {won_by} is not playing this match")
            if decision not in TOSS_DECISIONS:
                raise ValidationError("invalid_toss", f"Toss decision must be one of {TOSS_DECISIONS}")

            match.toss = TossResult(won_by=won_by, decision=decision)
            match.status = "toss_done"

        logger.info("Match %s toss: %s chose to %s", match_id, won_by, decision)
        return self.get_match(match_id)

    def begin_innings(self, match_id: str) -> Innings:
        with self.transaction(match_id) as match:
            if match.status not in ("toss_done", "live"):
                raise StateConflictError(f"Innings cannot begin when match is {match.status}")
            if match.toss is None:
                raise StateConflictError("Toss result is required before the first innings")
            if match.open_innings is not None:
                raise StateConflictError(f"Innings {match.open_innings.number} is still open")
            if len(match.innings) >= MAX_INNINGS:
                raise StateConflictError("Both innings have already been played")

            cfg = match.config
            if not match.innings:
                toss = match.toss
                batting = toss.won_by if toss.decision == "bat" else cfg.opponent(toss.won_by).team_id
            else:
                batting = match.innings[-1].bowling_team
            bowling = cfg.opponent(batting).team_id

            innings = _new_innings(match, len(match.innings) + 1, batting, bowling)
            match.innings.append(innings)
            match.status = "live"

        logger.info("Match %s innings %d begins: %s batting", match_id, innings.number, batting)
        return self.get_match(match_id).innings[-1]

    def append_delivery(self, match_id: str, delivery: Delivery) -> Match:
        """Low-level append without rule checks; scoring goes through the processor."""
        with self.transaction(match_id) as match:
            add_delivery(match, delivery)
            settle_innings(match)
        return self.get_match(match_id)

    def end_innings(self, match_id: str) -> Match:
        """Close the open innings by hand (declaration, rain, scorer decision)."""
        with self.transaction(match_id) as match:
            innings = match.open_innings
            if match.status != "live" or innings is None:
                raise StateConflictError("There is no open innings to end")
            innings.closed_manually = True
            close_innings(match, innings)

        logger.info("Match %s innings %d ended by scorer", match_id, innings.number)
        return self.get_match(match_id)

    def undo_last_delivery(self, match_id: str) -> Match:
        """
        Pop the last delivery and rebuild every derived counter from the
        remaining log. Re-opens an innings (and the match) the popped ball
        had closed. Also pops that ball's commentary entry, if it has one.
        """
        with self.transaction(match_id) as match:
            if match.status not in ("live", "completed"):
                raise StateConflictError(f"Cannot undo when match is {match.status}")

            # A just-begun second innings has nothing to undo; step back into the first
            while len(match.innings) > 1 and not match.innings[-1].deliveries:
                match.innings.pop()

            if not match.innings or not match.innings[-1].deliveries:
                raise StateConflictError("There is no delivery to undo")

            logs = [inn.deliveries for inn in match.innings]
            manual = [inn.closed_manually for inn in match.innings]
            popped = logs[-1].pop()

            # Deliveries appended without the processor have no commentary entry
            if match.commentary and match.commentary[-1].delivery is popped:
                match.commentary.pop()
                match.commentary_sequence -= 1

            rebuilt = replay(match, logs, manual)

            match.status = rebuilt.status
            match.innings = rebuilt.innings
            match.result = rebuilt.result
            match.pending_target = rebuilt.pending_target

        logger.info("Match %s: last delivery undone", match_id)
        return self.get_match(match_id)

    def set_status(self, match_id: str, status: str) -> Match:
        if status not in MATCH_STATUSES:
            raise ValidationError("malformed", f"Unknown status: {status}")

        with self.transaction(match_id) as match:
            allowed = ALLOWED_STATUS_CHANGES.get(match.status, ())
            if status not in allowed:
                raise StateConflictError(f"Cannot change status from {match.status} to {status}")

            if status == "abandoned":
                innings = match.open_innings
                if innings is not None:
                    innings.state = "COMPLETED"
                match.result = MatchResult(method="no_result")
                match.status = "abandoned"
            elif status == "completed":
                if len(match.innings) < MAX_INNINGS:
                    raise StateConflictError("A match cannot be completed before the second innings")
                innings = match.open_innings
                if innings is not None:
                    innings.closed_manually = True
                close_innings(match, match.innings[-1])
            else:
                match.status = status

        logger.info("Match %s status -> %s", match_id, status)
        return self.get_match(match_id)
