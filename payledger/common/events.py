"""Event envelope and the Kafka producer used by the outbox relays.

Ledger runs and invoice lifecycle steps are published as `EventEnvelope`
JSON documents. The aggregate id is the Kafka message key, so every event of
one invoice (or one ledger run) lands on the same partition in order.
"""

import json
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from aiokafka import AIOKafkaProducer
from pydantic import BaseModel, Field

from payledger.common.config import settings
from payledger.common.logging import trace_id_ctx


class EventEnvelope(BaseModel):
    event_id: str = Field(default_factory=lambda: str(uuid4()))
    event_type: str
    aggregate_id: str
    occurred_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    trace_id: str = ""
    payload: dict[str, Any]

    @classmethod
    def wrap(cls, event_type: str, aggregate_id: str, payload: dict[str, Any]) -> "EventEnvelope":
        """Envelope stamped with the trace id of the current request or run."""

        return cls(event_type=event_type, aggregate_id=aggregate_id, trace_id=trace_id_ctx.get(), payload=payload)


def _encode(value: dict[str, Any]) -> bytes:
    return json.dumps(value, separators=(",", ":")).encode("utf-8")


class KafkaBus:
    """Starts an idempotent `AIOKafkaProducer` on first publish."""

    def __init__(self, bootstrap_servers: str | None = None, client_id: str | None = None) -> None:
        self.bootstrap_servers = bootstrap_servers or settings.kafka_bootstrap_servers
        self.client_id = client_id or settings.service_name
        self._producer: AIOKafkaProducer | None = None

    async def _started(self) -> AIOKafkaProducer:
        if self._producer is None:
            producer = AIOKafkaProducer(
                bootstrap_servers=self.bootstrap_servers,
                client_id=self.client_id,
                acks="all",
                enable_idempotence=True,
                key_serializer=lambda key: key.encode("utf-8"),
                value_serializer=_encode,
            )
            await producer.start()
            self._producer = producer
        return self._producer

    async def publish(self, topic: str, envelope: EventEnvelope, key: str | None = None) -> None:
        producer = await self._started()
        await producer.send_and_wait(topic, value=envelope.model_dump(mode="json"), key=key or envelope.aggregate_id)

    async def close(self) -> None:
        if self._producer is not None:
            await self._producer.stop()
            self._producer = None
