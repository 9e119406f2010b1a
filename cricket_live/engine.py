# cricket_live/engine.py
from __future__ import annotations

import logging
import threading
from typing import Any, Dict, Mapping, Optional, Tuple

from cricket_live.commentary import CommentaryGenerator
from cricket_live.models import Innings, Match, MatchConfig, ProcessedEvent
from cricket_live.processor import BallEventProcessor
from cricket_live.publisher import BroadcastPublisher, Envelope
from cricket_live.queries import PublicQueryService
from cricket_live.store import MatchStateStore

logger = logging.getLogger(__name__)


def _innings_totals(innings: Optional[Innings]) -> Optional[Dict[str, Any]]:
    if innings is None:
        return None
    return {
        "number": innings.number,
        "runs": innings.runs,
        "wickets": innings.wickets,
        "legal_balls": innings.legal_balls,
        "overs": innings.overs_notation,
        "target": innings.target,
    }


class LiveMatchEngine:
    """
    Composition root: owns the store, processor, commentary generator,
    publisher and query service, and runs every scorer action as

        validate + mutate + stats + commentary (one store transaction)
        -> publish (only after the transaction committed)

    Actions on the same match are serialized end to end so envelopes go
    out in the order the state changed. Different matches do not block
    each other.
    """

    def __init__(
        self,
        store: Optional[MatchStateStore] = None,
        publisher: Optional[BroadcastPublisher] = None,
        commentary: Optional[CommentaryGenerator] = None,
    ) -> None:
        self.store = store if store is not None else MatchStateStore()
        self.publisher = publisher if publisher is not None else BroadcastPublisher()
        self.commentary = commentary if commentary is not None else CommentaryGenerator()
        self.processor = BallEventProcessor(self.store, self.commentary)
        self.queries = PublicQueryService(self.store, self.publisher)

        self._write_locks: Dict[str, threading.RLock] = {}
        self._locks_guard = threading.Lock()

    def _writer(self, match_id: str) -> threading.RLock:
        self.store.get_match(match_id)
        with self._locks_guard:
            lock = self._write_locks.get(match_id)
            if lock is None:
                lock = threading.RLock()
                self._write_locks[match_id] = lock
            return lock

    def _publish_status_if_changed(self, before: str, match: Match) -> Optional[Envelope]:
        if match.status == before:
            return None
        payload: Dict[str, Any] = {"status": match.status}
        if match.result is not None:
            payload["result"] = match.result.to_dict()
        return self.publisher.publish(match.match_id, "status-change", payload)

    # ---------- scorer actions ----------
    def create_match(self, config: MatchConfig) -> Match:
        return self.store.create_match(config)

    def record_toss(self, match_id: str, won_by: str, decision: str) -> Envelope:
        with self._writer(match_id):
            match = self.store.apply_toss_result(match_id, won_by, decision)
            return self.publisher.publish(match_id, "toss-update", {
                "won_by": match.toss.won_by,
                "decision": match.toss.decision,
            })

    def begin_innings(self, match_id: str) -> Innings:
        with self._writer(match_id):
            before = self.store.get_match(match_id).status
            innings = self.store.begin_innings(match_id)
            self._publish_status_if_changed(before, self.store.get_match(match_id))
            return innings

    def record_ball(self, match_id: str, raw: Mapping[str, Any]) -> Tuple[ProcessedEvent, Envelope]:
        with self._writer(match_id):
            before = self.store.get_match(match_id).status
            event = self.processor.process(match_id, raw)

            match = self.store.get_match(match_id)
            innings = match.innings[event.innings_number - 1]
            envelope = self.publisher.publish(match_id, "ball-update", {
                "ball": event.ball_label,
                "over_number": event.over_number,
                "delivery": event.delivery.to_dict(),
                "innings": _innings_totals(innings),
                "commentary": event.commentary.text if event.commentary else "",
                "over_completed": event.over_completed,
                "innings_closed": event.innings_closed,
                "free_hit_next": innings.free_hit,
            })
            self._publish_status_if_changed(before, match)
            return event, envelope

    def undo_last_ball(self, match_id: str) -> Envelope:
        with self._writer(match_id):
            before = self.store.get_match(match_id).status
            match = self.store.undo_last_delivery(match_id)
            envelope = self.publisher.publish(match_id, "ball-undo", {
                "innings": _innings_totals(match.current_innings),
                "commentary_sequence": match.commentary_sequence,
            })
            self._publish_status_if_changed(before, match)
            return envelope

    def end_innings(self, match_id: str) -> Match:
        with self._writer(match_id):
            before = self.store.get_match(match_id).status
            match = self.store.end_innings(match_id)
            self._publish_status_if_changed(before, match)
            return match

    def set_status(self, match_id: str, status: str) -> Match:
        with self._writer(match_id):
            before = self.store.get_match(match_id).status
            match = self.store.set_status(match_id, status)
            self._publish_status_if_changed(before, match)
            return match

    def archive_match(self, match_id: str) -> None:
        """Drop every live subscription of a finished match."""
        self.store.get_match(match_id)
        self.publisher.close_match(match_id)
        logger.info("Match %s archived; subscriptions closed", match_id)
