"""Redis adapter for publishing appointment result events to the PDF upload stream."""

import json
import logging

import redis

from clinic_documents.domain.events import AppointmentResultCreated

logger = logging.getLogger(__name__)

DEFAULT_STREAM = "pdf-upload-queue"


def dead_letter_stream(stream: str) -> str:
    """Name of the stream that receives entries which exhausted their deliveries."""
    return f"{stream}:dead-letter"


def publish_result_created(
    client: redis.Redis,
    event: AppointmentResultCreated,
    stream: str = DEFAULT_STREAM,
) -> str:
    """
    Append an AppointmentResultCreated event to the stream.

    The JSON payload is stored in the entry's ``data`` field.

    Returns:
        message_id: The stream entry ID assigned by Redis
    """
    logger.info("publishing: stream=%s, result_id=%s", stream, event.result_id)
    message_id = client.xadd(stream, {"data": json.dumps(event.to_dict())})
    if isinstance(message_id, bytes):
        message_id = message_id.decode()
    return message_id
