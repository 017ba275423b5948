"""Unit tests for the appointment result pipeline"""
import threading
from unittest.mock import Mock

import pytest

from clinic_documents.adapters.pdf_renderer import AbstractRenderer, RenderError
from clinic_documents.domain.exceptions import OperationCancelled, StoreUnavailable
from clinic_documents.service_layer.handlers import store_result_pdf
from conftest import s3_error

RESULT_KEY = "11111111-1111-1111-1111-111111111111.pdf"


class FailingRenderer(AbstractRenderer):
    def render(self, event):
        raise RenderError("encoder failed")


def test_result_is_stored_as_pdf_under_result_key(document_service, fake_store, renderer, result_event):
    key = store_result_pdf(result_event, document_service, renderer)

    assert key == RESULT_KEY
    data, content_type = fake_store.objects()[RESULT_KEY]
    assert content_type == "application/pdf"
    assert data == renderer.render(result_event)


def test_redelivered_event_leaves_a_single_identical_report(document_service, fake_store, renderer, result_event):
    store_result_pdf(result_event, document_service, renderer)
    store_result_pdf(result_event, document_service, renderer)

    assert list(fake_store.objects()) == [RESULT_KEY]
    assert fake_store.objects()[RESULT_KEY][0] == renderer.render(result_event)


def test_render_failure_uploads_nothing(document_service, fake_store, result_event):
    with pytest.raises(RenderError):
        store_result_pdf(result_event, document_service, FailingRenderer())

    assert fake_store.objects() == {}
    assert "upload" not in fake_store.calls


def test_store_failure_propagates(document_service, fake_store, renderer, result_event):
    fake_store.failure = s3_error("SlowDown", status=503)

    with pytest.raises(StoreUnavailable):
        store_result_pdf(result_event, document_service, renderer)


def test_cancelled_upload_propagates(document_service, fake_store, renderer, result_event):
    cancel = threading.Event()
    cancel.set()

    with pytest.raises(OperationCancelled):
        store_result_pdf(result_event, document_service, renderer, cancel=cancel)

    assert fake_store.objects() == {}


def test_renderer_receives_the_event(document_service, result_event):
    renderer = Mock(spec=AbstractRenderer)
    renderer.render.return_value = b"%PDF-stub"

    store_result_pdf(result_event, document_service, renderer)

    renderer.render.assert_called_once_with(result_event)
    assert document_service.get(RESULT_KEY).read() == b"%PDF-stub"
