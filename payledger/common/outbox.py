"""Transactional outbox: rows written with business changes, relayed to Kafka.

Services call `enqueue_outbox_event` inside the transaction that makes the
change. An `OutboxRelay` per service then moves each row through

    PENDING -> PROCESSING -> SENT

A failed publish returns the row to PENDING. A row left in PROCESSING longer
than the claim timeout (its relay died mid-batch) becomes claimable again, so
delivery is at-least-once; consumers dedupe on `event_id`.
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.exc import SQLAlchemyError

from payledger.common.events import EventEnvelope, KafkaBus
from payledger.common.logging import logger
from payledger.common.metrics import outbox_oldest_pending_age_seconds, outbox_pending_total

PENDING = "PENDING"
PROCESSING = "PROCESSING"
SENT = "SENT"


def enqueue_outbox_event(
    db, outbox_model, aggregate_type: str, aggregate_id: str, event_type: str, payload: dict[str, Any]
) -> None:
    """Stage one event in the caller's transaction; the topic is the event type."""

    envelope = EventEnvelope.wrap(event_type, aggregate_id, payload)
    db.add(
        outbox_model(
            id=envelope.event_id,
            aggregate_type=aggregate_type,
            aggregate_id=aggregate_id,
            event_type=event_type,
            topic=event_type,
            payload=envelope.model_dump(mode="json"),
            status=PENDING,
        )
    )


@dataclass(frozen=True)
class ClaimedEvent:
    id: str
    topic: str
    key: str
    envelope: EventEnvelope


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OutboxRelay:
    """Publishes one service's outbox table to Kafka."""

    def __init__(
        self,
        session_factory,
        outbox_model,
        service_name: str,
        bus: KafkaBus | None = None,
        batch_size: int = 100,
        claim_timeout_seconds: int = 30,
    ) -> None:
        self.session_factory = session_factory
        self.model = outbox_model
        self.service_name = service_name
        self.bus = bus if bus is not None else KafkaBus()
        self.batch_size = batch_size
        self.claim_timeout = timedelta(seconds=claim_timeout_seconds)

    def claim(self) -> list[ClaimedEvent]:
        """Mark up to `batch_size` publishable rows PROCESSING, oldest first."""

        model = self.model
        now = _utcnow()
        claimable = or_(
            model.status == PENDING,
            and_(model.status == PROCESSING, model.sent_at < now - self.claim_timeout),
        )
        with self.session_factory() as db:
            ids = list(
                db.execute(
                    select(model.id)
                    .where(claimable)
                    .order_by(model.created_at)
                    .limit(self.batch_size)
                    .with_for_update(skip_locked=True)
                ).scalars()
            )
            claimed: list[ClaimedEvent] = []
            if ids:
                db.execute(
                    update(model)
                    .where(model.id.in_(ids))
                    .values(status=PROCESSING, sent_at=now)
                    .execution_options(synchronize_session=False)
                )
                rows = db.execute(select(model).where(model.id.in_(ids)).order_by(model.created_at)).scalars()
                claimed = [
                    ClaimedEvent(
                        id=row.id,
                        topic=row.topic,
                        key=row.aggregate_id,
                        envelope=EventEnvelope.model_validate(row.payload),
                    )
                    for row in rows
                ]
            self._refresh_backlog(db)
            db.commit()
        return claimed

    def settle(self, event_id: str, delivered: bool) -> None:
        """SENT when `delivered`, otherwise back to PENDING for the next pass."""

        values = {"status": SENT, "sent_at": _utcnow()} if delivered else {"status": PENDING, "sent_at": None}
        with self.session_factory() as db:
            db.execute(
                update(self.model)
                .where(self.model.id == event_id, self.model.status == PROCESSING)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            self._refresh_backlog(db)
            db.commit()

    def _refresh_backlog(self, db) -> None:
        model = self.model
        unsent = model.status.in_((PENDING, PROCESSING))
        count, oldest = db.execute(select(func.count(), func.min(model.created_at)).where(unsent)).one()
        age = 0.0
        if oldest is not None:
            if oldest.tzinfo is None:
                oldest = oldest.replace(tzinfo=timezone.utc)
            age = max(0.0, (_utcnow() - oldest).total_seconds())
        outbox_pending_total.labels(service=self.service_name).set(count)
        outbox_oldest_pending_age_seconds.labels(service=self.service_name).set(age)

    async def publish_pending(self) -> int:
        """One claim-and-publish pass; returns how many events were sent."""

        sent = 0
        for event in self.claim():
            try:
                await self.bus.publish(event.topic, event.envelope, key=event.key)
            except Exception:
                logger.exception(
                    "outbox_publish_failed service=%s event_id=%s topic=%s",
                    self.service_name,
                    event.id,
                    event.topic,
                )
                self.settle(event.id, delivered=False)
                continue
            self.settle(event.id, delivered=True)
            sent += 1
        if sent:
            logger.debug("outbox_published service=%s count=%s", self.service_name, sent)
        return sent

    async def run_forever(self, interval_seconds: float = 0.5) -> None:
        while True:
            try:
                await self.publish_pending()
            except SQLAlchemyError:
                logger.exception("outbox_relay_db_error service=%s", self.service_name)
            await asyncio.sleep(interval_seconds)

    async def close(self) -> None:
        await self.bus.close()
