"""Redis stream consumer for the documents service - turns appointment results into stored PDFs."""

import json
import logging
import threading
from typing import Dict, List, Optional, Tuple

import redis

from clinic_documents import config
from clinic_documents.adapters.pdf_renderer import AbstractRenderer, ResultPdfRenderer
from clinic_documents.adapters.redis_adapter import dead_letter_stream
from clinic_documents.domain.events import AppointmentResultCreated
from clinic_documents.service_layer.document_service import DocumentService
from clinic_documents.service_layer.handlers import store_result_pdf

logger = logging.getLogger(__name__)

BATCH_SIZE = 10
BLOCK_MS = 5000

Message = Tuple[str, Optional[Dict[str, str]]]


class ResultCreatedConsumer:
    """
    Consume AppointmentResultCreated events from a Redis stream consumer group.

    Delivery is at-least-once. A message is acknowledged only after its PDF
    is stored. Failed messages stay pending and are reclaimed, by this or
    another consumer, once their lease expires. Messages delivered more than
    ``max_deliveries`` times are moved to the dead-letter stream.

    The client must be created with ``decode_responses=True``.
    """

    def __init__(
        self,
        client: redis.Redis,
        documents: DocumentService,
        renderer: AbstractRenderer,
        stream: str,
        group: str,
        consumer: str,
        lease_seconds: int = 30,
        max_deliveries: int = 5,
    ):
        self.client = client
        self.documents = documents
        self.renderer = renderer
        self.stream = stream
        self.group = group
        self.consumer = consumer
        self.lease_seconds = lease_seconds
        self.max_deliveries = max_deliveries

    def ensure_group(self):
        """Create the consumer group (and stream) if it does not exist yet."""
        try:
            self.client.xgroup_create(self.stream, self.group, id="0", mkstream=True)
            logger.info("Created consumer group %s on stream %s", self.group, self.stream)
        except redis.exceptions.ResponseError as e:
            if "BUSYGROUP" not in str(e):
                raise
            logger.info("Using existing consumer group %s on stream %s", self.group, self.stream)

    def reclaim_expired(self, min_idle_ms: Optional[int] = None) -> List[Message]:
        """Claim pending messages whose lease expired, from any consumer in the group."""
        if min_idle_ms is None:
            min_idle_ms = self.lease_seconds * 1000
        response = self.client.xautoclaim(
            self.stream,
            self.group,
            self.consumer,
            min_idle_time=min_idle_ms,
            start_id="0-0",
            count=BATCH_SIZE,
        )
        # Redis 6.2 reports entries deleted while pending as (None, None)
        messages = [message for message in response[1] if message[0] is not None]
        if messages:
            logger.info("Reclaimed %d expired message(s) from %s", len(messages), self.stream)
        return messages

    def read_new(self, block_ms: Optional[int] = BLOCK_MS) -> List[Message]:
        """Read messages never delivered to any consumer of the group."""
        response = self.client.xreadgroup(
            self.group,
            self.consumer,
            {self.stream: ">"},
            count=BATCH_SIZE,
            block=block_ms,
        )
        messages = []
        for _stream, entries in response or []:
            messages.extend(entries)
        return messages

    def poll(self, block_ms: Optional[int] = BLOCK_MS) -> int:
        """
        Handle one batch: expired leases first, then new messages.

        Returns:
            The number of messages handled
        """
        messages = self.reclaim_expired() or self.read_new(block_ms)
        for message_id, fields in messages:
            self.handle_result_created(message_id, fields)
        return len(messages)

    def run(self):
        self.ensure_group()
        logger.info(
            "Consuming stream %s as %s/%s, waiting for messages...",
            self.stream, self.group, self.consumer,
        )
        while True:
            self.poll()

    def handle_result_created(self, message_id: str, fields: Optional[Dict[str, str]]) -> bool:
        """
        Handle one AppointmentResultCreated message.

        Returns:
            bool: True when the message was acknowledged
        """
        logger.info("Received message %s", message_id)

        if fields is None:
            # Entry was trimmed from the stream while pending
            logger.error("Message %s no longer exists in %s, acknowledging", message_id, self.stream)
            self._ack(message_id)
            return True

        deliveries, idle_ms, owner = self._delivery_state(message_id)
        if owner is not None and owner != self.consumer:
            logger.error("Message %s was reclaimed by %s, skipping it", message_id, owner)
            return False

        if deliveries > self.max_deliveries:
            self._dead_letter(message_id, fields, deliveries)
            return True

        try:
            event = AppointmentResultCreated.from_dict(json.loads(fields["data"]))
        except (KeyError, TypeError, ValueError) as e:
            # Redelivery cannot fix a malformed payload
            logger.error("Discarding malformed message %s: %s", message_id, e)
            self._ack(message_id)
            return True

        # The lease runs from delivery, not from the start of handling
        remaining = self.lease_seconds - idle_ms / 1000
        if remaining <= 0:
            logger.error(
                "Lease on message %s expired %d ms after delivery, leaving it for redelivery",
                message_id, idle_ms,
            )
            return False

        cancel = threading.Event()
        lease = threading.Timer(remaining, cancel.set)
        lease.daemon = True
        lease.start()
        try:
            key = store_result_pdf(event, self.documents, self.renderer, cancel=cancel)
        except Exception as e:
            logger.error(
                "Error handling result %s (delivery %d), leaving message %s pending: %s",
                event.result_id, deliveries, message_id, e, exc_info=True,
            )
            return False
        finally:
            lease.cancel()

        self._ack(message_id)
        logger.info("Successfully processed result %s into %s", event.result_id, key)
        return True

    def _delivery_state(self, message_id: str) -> Tuple[int, int, Optional[str]]:
        """Return (times delivered, ms since last delivery, owning consumer)."""
        pending = self.client.xpending_range(
            self.stream, self.group, min=message_id, max=message_id, count=1
        )
        if not pending:
            return 1, 0, None
        entry = pending[0]
        return entry["times_delivered"], entry.get("time_since_delivered", 0), entry.get("consumer")

    def _dead_letter(self, message_id: str, fields: Dict[str, str], deliveries: int):
        target = dead_letter_stream(self.stream)
        logger.error(
            "Message %s exceeded %d deliveries (%d), moving it to %s",
            message_id, self.max_deliveries, deliveries, target,
        )
        self.client.xadd(target, {**fields, "source_id": message_id, "deliveries": str(deliveries)})
        self._ack(message_id)

    def _ack(self, message_id: str):
        self.client.xack(self.stream, self.group, message_id)


def main():
    """Main entry point for the PDF upload consumer."""
    logging.basicConfig(level=logging.INFO)
    logger.info("Documents service PDF upload consumer starting")

    config.validate_settings()
    documents = DocumentService.from_environment()

    queue_config = config.get_pdf_queue_config()
    client = redis.Redis(**config.get_redis_config(), decode_responses=True)

    consumer = ResultCreatedConsumer(
        client,
        documents,
        ResultPdfRenderer(),
        stream=queue_config["stream"],
        group=queue_config["group"],
        consumer=queue_config["consumer"],
        lease_seconds=queue_config["lease_seconds"],
        max_deliveries=queue_config["max_deliveries"],
    )
    consumer.run()


if __name__ == "__main__":
    main()
