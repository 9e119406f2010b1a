# cricket_live/publisher.py
from __future__ import annotations

import asyncio
import logging
import threading
import uuid
from collections import deque
from dataclasses import dataclass
from typing import Any, AsyncIterator, Awaitable, Callable, Deque, Dict, List, Optional, Tuple

from cricket_live.config import (
    BROADCAST_HISTORY_LIMIT,
    SUBSCRIBER_QUEUE_SIZE,
    SUBSCRIBER_SEND_RETRIES,
    SUBSCRIBER_SEND_TIMEOUT_SECONDS,
)

logger = logging.getLogger(__name__)

ENVELOPE_KINDS: Tuple[str, ...] = ("ball-update", "status-change", "toss-update", "ball-undo")


@dataclass(frozen=True)
class Envelope:
    kind: str
    match_id: str
    sequence: int
    payload: Dict[str, Any]

    def to_dict(self) -> Dict[str, Any]:
        d = {"kind": self.kind, "match_id": self.match_id, "sequence": self.sequence}
        d.update(self.payload)
        return d


class Subscription:
    """
    One viewer's live feed for one match.

    Envelopes are buffered in a bounded asyncio.Queue; a viewer that lets
    the buffer overflow is dropped by the publisher instead of slowing the
    match down. Iterate with `async for envelope in subscription`.
    """

    def __init__(self, match_id: str, maxsize: int, loop: Optional[asyncio.AbstractEventLoop]) -> None:
        self.id = uuid.uuid4().hex
        self.match_id = match_id
        self.loop = loop
        self.closed = False
        self.last_sequence = 0
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize + 1)  # +1 keeps room for the close marker
        self._limit = maxsize

    def offer(self, envelope: Envelope) -> bool:
        """Buffer an envelope. Returns False when the viewer has fallen too far behind."""
        if self.closed:
            return False
        # Never hand the same (or an older) envelope to a live subscription twice
        if envelope.sequence <= self.last_sequence:
            return True
        if self._queue.qsize() >= self._limit:
            return False
        self._queue.put_nowait(envelope)
        self.last_sequence = envelope.sequence
        return True

    def close(self, discard_pending: bool = False) -> None:
        """
        End the feed. Envelopes already queued are still handed out before
        the end marker, unless `discard_pending` (viewer gone or too slow).
        """
        if self.closed:
            return
        self.closed = True
        if discard_pending:
            while not self._queue.empty():
                self._queue.get_nowait()
        self._queue.put_nowait(None)

    def pending(self) -> int:
        return self._queue.qsize()

    async def next(self) -> Optional[Envelope]:
        """Next envelope, or None once the subscription is closed."""
        if self.closed and self._queue.empty():
            return None
        return await self._queue.get()

    async def _iterate(self) -> AsyncIterator[Envelope]:
        while True:
            envelope = await self.next()
            if envelope is None:
                return
            yield envelope

    def __aiter__(self) -> AsyncIterator[Envelope]:
        return self._iterate()


class BroadcastPublisher:
    """
    Per-match publish/subscribe channel.

    Rules:
    - every envelope of a match gets the next per-match sequence number
      (strictly increasing, never reused, including across undo)
    - all subscriptions of a match receive envelopes in publish order
    - publish never waits on a viewer; overflow drops that viewer only
    - a new subscription gets only envelopes published after it, unless
      it asks for replay of the retained history
    """

    def __init__(
        self,
        queue_size: int = SUBSCRIBER_QUEUE_SIZE,
        history_limit: int = BROADCAST_HISTORY_LIMIT,
    ) -> None:
        self.queue_size = queue_size
        self.history_limit = history_limit
        self._subs: Dict[str, Dict[str, Subscription]] = {}
        self._sequences: Dict[str, int] = {}
        self._history: Dict[str, Deque[Envelope]] = {}
        self._lock = threading.RLock()

    # ---------- publishing ----------
    def publish(self, match_id: str, kind: str, payload: Dict[str, Any]) -> Envelope:
        if kind not in ENVELOPE_KINDS:
            raise ValueError(f"Unknown envelope kind: {kind}")

        with self._lock:
            seq = self._sequences.get(match_id, 0) + 1
            self._sequences[match_id] = seq
            envelope = Envelope(kind=kind, match_id=match_id, sequence=seq, payload=payload)

            if self.history_limit > 0:
                history = self._history.setdefault(match_id, deque(maxlen=self.history_limit))
                history.append(envelope)

            # Fan-out under the lock so concurrent publishers cannot interleave order
            for sub in list(self._subs.get(match_id, {}).values()):
                self._deliver(sub, envelope)

        logger.debug("Match %s: published %s #%d", match_id, kind, seq)
        return envelope

    def _deliver(self, sub: Subscription, envelope: Envelope) -> None:
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if sub.loop is None or sub.loop is running:
            self._offer_or_drop(sub, envelope)
            return
        try:
            sub.loop.call_soon_threadsafe(self._offer_or_drop, sub, envelope)
        except RuntimeError:
            # subscriber's loop already closed
            self.unsubscribe(sub, discard_pending=True)

    def _offer_or_drop(self, sub: Subscription, envelope: Envelope) -> None:
        if not sub.offer(envelope) and not sub.closed:
            logger.warning("Match %s: subscriber %s fell behind (%d pending); dropping it",
                           sub.match_id, sub.id, sub.pending())
            self.unsubscribe(sub, discard_pending=True)

    # ---------- subscriptions ----------
    def subscribe(self, match_id: str, replay_from: Optional[int] = None) -> Subscription:
        """
        Register a viewer. With `replay_from=n`, retained envelopes with
        sequence > n are queued first.
        """
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None

        with self._lock:
            backlog: List[Envelope] = []
            if replay_from is not None:
                backlog = [e for e in self._history.get(match_id, ()) if e.sequence > replay_from]

            sub = Subscription(match_id, self.queue_size + len(backlog), loop)
            for envelope in backlog:
                sub.offer(envelope)
            # Skip anything at or before the current head when not replaying
            if replay_from is None:
                sub.last_sequence = self._sequences.get(match_id, 0)

            self._subs.setdefault(match_id, {})[sub.id] = sub

        logger.info("Match %s: subscriber %s joined (replayed %d)", match_id, sub.id, len(backlog))
        return sub

    def unsubscribe(self, sub: Subscription, discard_pending: bool = False) -> None:
        """Immediate and idempotent."""
        with self._lock:
            removed = self._subs.get(sub.match_id, {}).pop(sub.id, None)

        if sub.loop is None or not sub.loop.is_running() or _on_loop(sub.loop):
            sub.close(discard_pending)
        else:
            sub.loop.call_soon_threadsafe(sub.close, discard_pending)

        if removed is not None:
            logger.info("Match %s: subscriber %s left", sub.match_id, sub.id)

    def close_match(self, match_id: str) -> None:
        """Tear down every subscription of an archived match."""
        with self._lock:
            subs = list(self._subs.pop(match_id, {}).values())
        for sub in subs:
            self.unsubscribe(sub)

    # ---------- introspection ----------
    def last_sequence(self, match_id: str) -> int:
        return self._sequences.get(match_id, 0)

    def subscriber_count(self, match_id: str) -> int:
        return len(self._subs.get(match_id, {}))

    def history(self, match_id: str, after: int = 0) -> List[Envelope]:
        return [e for e in self._history.get(match_id, ()) if e.sequence > after]


def _on_loop(loop: asyncio.AbstractEventLoop) -> bool:
    try:
        return asyncio.get_running_loop() is loop
    except RuntimeError:
        return False


SendFn = Callable[[Dict[str, Any]], Awaitable[Any]]


async def pump(
    publisher: BroadcastPublisher,
    sub: Subscription,
    send: SendFn,
    *,
    timeout: float = SUBSCRIBER_SEND_TIMEOUT_SECONDS,
    retries: int = SUBSCRIBER_SEND_RETRIES,
    fatal: Tuple[type, ...] = (),
) -> None:
    """
    Drain a subscription into `send` (e.g. websocket.send_json).

    Each envelope gets 1 + `retries` attempts, each bounded by `timeout`;
    after that (or on an exception listed in `fatal`) the subscription is
    torn down. Other subscribers and the writer are never affected.
    """
    try:
        async for envelope in sub:
            attempt = 0
            while True:
                try:
                    await asyncio.wait_for(send(envelope.to_dict()), timeout)
                    break
                except fatal:
                    logger.info("Match %s: subscriber %s disconnected", sub.match_id, sub.id)
                    return
                except Exception as e:
                    attempt += 1
                    if attempt > retries:
                        logger.warning("Match %s: subscriber %s failed %d sends (%s); dropping it",
                                       sub.match_id, sub.id, attempt, e)
                        return
                    logger.debug("Match %s: retrying send #%d to %s", sub.match_id, envelope.sequence, sub.id)
    finally:
        publisher.unsubscribe(sub, discard_pending=True)
