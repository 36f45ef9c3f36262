"""Outbox relay against the invoicing outbox table, with an in-memory bus."""

import asyncio

from sqlalchemy import select, update

from payledger.common.logging import trace_id_ctx
from payledger.common.outbox import OutboxRelay, enqueue_outbox_event
from payledger.services.invoicing.models import OutboxEvent


class RecordingBus:
    """Stands in for `KafkaBus`; fails for the aggregate ids in `failing`."""

    def __init__(self, failing=()):
        self.failing = set(failing)
        self.published = []
        self.closed = False

    async def publish(self, topic, envelope, key=None):
        if key in self.failing:
            raise ConnectionError("broker unavailable")
        self.published.append((topic, key, envelope))

    async def close(self):
        self.closed = True


def enqueue(session_factory, *aggregate_ids):
    token = trace_id_ctx.set("trace-1")
    try:
        with session_factory() as db:
            for aggregate_id in aggregate_ids:
                enqueue_outbox_event(db, OutboxEvent, "invoice", aggregate_id, "invoices.generated", {"status": "Draft"})
            db.commit()
    finally:
        trace_id_ctx.reset(token)


def statuses(session_factory):
    with session_factory() as db:
        return dict(db.execute(select(OutboxEvent.aggregate_id, OutboxEvent.status)).all())


def test_publish_sends_envelopes_keyed_by_aggregate(session_factory):
    enqueue(session_factory, "inv-1", "inv-2")
    bus = RecordingBus()
    relay = OutboxRelay(session_factory, OutboxEvent, "invoicing", bus=bus)

    assert asyncio.run(relay.publish_pending()) == 2
    assert statuses(session_factory) == {"inv-1": "SENT", "inv-2": "SENT"}
    topic, key, envelope = bus.published[0]
    assert topic == envelope.event_type == "invoices.generated"
    assert key == envelope.aggregate_id
    assert envelope.trace_id == "trace-1"
    assert envelope.payload == {"status": "Draft"}

    # Nothing left to claim.
    assert asyncio.run(relay.publish_pending()) == 0
    assert len(bus.published) == 2


def test_failed_publish_returns_row_to_pending(session_factory):
    enqueue(session_factory, "inv-1", "inv-2")
    relay = OutboxRelay(session_factory, OutboxEvent, "invoicing", bus=RecordingBus(failing={"inv-1"}))

    assert asyncio.run(relay.publish_pending()) == 1
    assert statuses(session_factory) == {"inv-1": "PENDING", "inv-2": "SENT"}

    relay.bus.failing.clear()
    assert asyncio.run(relay.publish_pending()) == 1
    assert statuses(session_factory) == {"inv-1": "SENT", "inv-2": "SENT"}


def test_claimed_rows_are_not_claimed_twice_until_stale(session_factory):
    enqueue(session_factory, "inv-1")
    relay = OutboxRelay(session_factory, OutboxEvent, "invoicing", bus=RecordingBus(), claim_timeout_seconds=30)

    assert len(relay.claim()) == 1
    assert relay.claim() == []

    # A relay that crashed mid-batch leaves the row PROCESSING with an old claim time.
    with session_factory() as db:
        db.execute(update(OutboxEvent).values(sent_at=OutboxEvent.created_at))
        db.commit()
    expired = OutboxRelay(session_factory, OutboxEvent, "invoicing", bus=RecordingBus(), claim_timeout_seconds=0)
    assert [event.key for event in expired.claim()] == ["inv-1"]


def test_close_closes_the_bus(session_factory):
    bus = RecordingBus()
    asyncio.run(OutboxRelay(session_factory, OutboxEvent, "invoicing", bus=bus).close())
    assert bus.closed
