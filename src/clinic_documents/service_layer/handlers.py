import logging
import threading
from typing import Optional

from clinic_documents.adapters.pdf_renderer import AbstractRenderer, RenderError
from clinic_documents.domain.events import AppointmentResultCreated
from clinic_documents.domain.exceptions import StoreUnavailable
from clinic_documents.domain.model import PDF_CONTENT_TYPE, result_document_key
from clinic_documents.service_layer.document_service import DocumentService

logger = logging.getLogger(__name__)


def store_result_pdf(
    event: AppointmentResultCreated,
    documents: DocumentService,
    renderer: AbstractRenderer,
    cancel: Optional[threading.Event] = None,
) -> str:
    """
    Render an appointment result as a PDF report and store it.

    Flow:
    1. Render the result into PDF bytes
    2. Upload the bytes under ``<resultId>.pdf`` with content type application/pdf

    Re-delivery of the same event overwrites the stored report with
    identical bytes, so handling is idempotent.

    Args:
        event: AppointmentResultCreated event from the appointments service
        documents: Document service bound to the result container
        renderer: PDF renderer
        cancel: Optional event that aborts the upload when set

    Returns:
        key: The storage key the report was written to

    Raises:
        RenderError: If the report cannot be rendered; nothing is uploaded
        StoreUnavailable: If the upload fails or is cancelled
    """
    logger.info(f"Received appointment result {event.result_id}")

    try:
        pdf = renderer.render(event)
    except RenderError as e:
        logger.error(f"Failed to render result {event.result_id}: {e}")
        raise

    key = result_document_key(event.result_id)

    try:
        documents.put(key, pdf, PDF_CONTENT_TYPE, cancel=cancel)
    except StoreUnavailable as e:
        logger.error(f"Failed to store report for result {event.result_id}: {e}")
        raise

    logger.info(f"Stored report for result {event.result_id} as {key}")
    return key
