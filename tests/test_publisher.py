"""Broadcast publisher: ordering, replay, slow/failed subscribers."""

from __future__ import annotations

import asyncio

import pytest

from cricket_live.publisher import BroadcastPublisher, pump


def test_sequences_strictly_increase_per_match():
    pub = BroadcastPublisher()
    seqs = [pub.publish("m1", kind, {}).sequence
            for kind in ("toss-update", "status-change", "ball-update", "ball-undo", "ball-update")]
    assert seqs == [1, 2, 3, 4, 5]
    assert pub.publish("m2", "ball-update", {}).sequence == 1
    assert pub.last_sequence("m1") == 5


def test_unknown_envelope_kind():
    with pytest.raises(ValueError):
        BroadcastPublisher().publish("m1", "scorecard", {})


def test_envelope_flattens_payload():
    env = BroadcastPublisher().publish("m1", "ball-update", {"ball": "0.1", "runs": 4})
    assert env.to_dict() == {"kind": "ball-update", "match_id": "m1", "sequence": 1, "ball": "0.1", "runs": 4}


@pytest.mark.asyncio
async def test_subscriber_sees_only_later_envelopes_in_order():
    pub = BroadcastPublisher()
    pub.publish("m1", "ball-update", {"n": 0})
    sub = pub.subscribe("m1")
    for n in range(1, 4):
        pub.publish("m1", "ball-update", {"n": n})
    pub.publish("m2", "ball-update", {"n": 99})

    got = [(await sub.next()).payload["n"] for _ in range(3)]
    assert got == [1, 2, 3]
    assert sub.pending() == 0


@pytest.mark.asyncio
async def test_replay_from_history():
    pub = BroadcastPublisher()
    for n in range(5):
        pub.publish("m1", "ball-update", {"n": n})
    sub = pub.subscribe("m1", replay_from=3)
    pub.publish("m1", "ball-update", {"n": 5})

    got = [(await sub.next()).sequence for _ in range(3)]
    assert got == [4, 5, 6]


@pytest.mark.asyncio
async def test_slow_subscriber_dropped_others_unaffected():
    pub = BroadcastPublisher(queue_size=2)
    slow = pub.subscribe("m1")
    fast = pub.subscribe("m1")

    received = []
    for n in range(4):
        pub.publish("m1", "ball-update", {"n": n})
        received.append((await fast.next()).payload["n"])

    assert received == [0, 1, 2, 3]
    assert slow.closed
    assert await slow.next() is None
    assert pub.subscriber_count("m1") == 1


@pytest.mark.asyncio
async def test_unsubscribe_is_idempotent():
    pub = BroadcastPublisher()
    sub = pub.subscribe("m1")
    pub.unsubscribe(sub)
    pub.unsubscribe(sub)
    assert pub.subscriber_count("m1") == 0
    assert await sub.next() is None


@pytest.mark.asyncio
async def test_publish_from_worker_thread_reaches_loop_subscriber():
    pub = BroadcastPublisher()
    sub = pub.subscribe("m1")
    await asyncio.to_thread(pub.publish, "m1", "ball-update", {"n": 1})

    env = await asyncio.wait_for(sub.next(), timeout=1.0)
    assert env.payload == {"n": 1}


@pytest.mark.asyncio
async def test_pump_delivers_until_match_closed():
    pub = BroadcastPublisher()
    sub = pub.subscribe("m1")
    sent = []

    async def send(message):
        sent.append(message["sequence"])

    task = asyncio.create_task(pump(pub, sub, send))
    pub.publish("m1", "ball-update", {})
    pub.publish("m1", "status-change", {"status": "completed"})
    for _ in range(20):
        if len(sent) == 2:
            break
        await asyncio.sleep(0.01)

    pub.close_match("m1")
    await asyncio.wait_for(task, timeout=1.0)
    assert sent == [1, 2]
    assert pub.subscriber_count("m1") == 0


@pytest.mark.asyncio
async def test_closing_match_still_hands_out_queued_envelopes():
    pub = BroadcastPublisher()
    sub = pub.subscribe("m1")
    pub.publish("m1", "ball-update", {"n": 1})
    pub.publish("m1", "status-change", {"status": "completed"})

    pub.close_match("m1")
    assert sub.closed
    assert (await sub.next()).kind == "ball-update"
    last = await sub.next()
    assert last.kind == "status-change"
    assert last.payload == {"status": "completed"}
    assert await sub.next() is None


@pytest.mark.asyncio
async def test_pump_sends_final_status_when_archived_before_it_runs():
    pub = BroadcastPublisher()
    sub = pub.subscribe("m1")
    sent = []

    async def send(message):
        sent.append(message["kind"])

    pub.publish("m1", "status-change", {"status": "completed"})
    pub.close_match("m1")
    await asyncio.wait_for(pump(pub, sub, send), timeout=1.0)
    assert sent == ["status-change"]


@pytest.mark.asyncio
async def test_pump_drops_subscriber_after_retries():
    pub = BroadcastPublisher()
    sub = pub.subscribe("m1")
    other = pub.subscribe("m1")
    attempts = []

    async def failing_send(message):
        attempts.append(message["sequence"])
        raise ConnectionError("gone")

    pub.publish("m1", "ball-update", {})
    await pump(pub, sub, failing_send, timeout=0.1, retries=2)

    assert attempts == [1, 1, 1]
    assert pub.subscriber_count("m1") == 1
    assert (await other.next()).sequence == 1


@pytest.mark.asyncio
async def test_pump_times_out_stuck_send():
    pub = BroadcastPublisher()
    sub = pub.subscribe("m1")

    async def stuck_send(message):
        await asyncio.sleep(10)

    pub.publish("m1", "ball-update", {})
    await asyncio.wait_for(pump(pub, sub, stuck_send, timeout=0.01, retries=0), timeout=1.0)
    assert pub.subscriber_count("m1") == 0


@pytest.mark.asyncio
async def test_pump_stops_on_fatal_error():
    pub = BroadcastPublisher()
    sub = pub.subscribe("m1")
    attempts = []

    async def disconnected(message):
        attempts.append(message)
        raise BrokenPipeError()

    pub.publish("m1", "ball-update", {})
    await pump(pub, sub, disconnected, retries=5, fatal=(BrokenPipeError,))
    assert len(attempts) == 1
    assert pub.subscriber_count("m1") == 0
