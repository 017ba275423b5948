# pylint: disable=redefined-outer-name
import uuid
from datetime import date, datetime
from io import BytesIO
from unittest.mock import Mock
from urllib.parse import unquote, urlsplit

import pytest
from minio.error import S3Error

from clinic_documents.adapters.object_store import (
    AbstractBlobClient,
    AbstractClientFactory,
    AbstractContainerClient,
)
from clinic_documents.adapters.pdf_renderer import ResultPdfRenderer
from clinic_documents.domain.events import AppointmentResultCreated
from clinic_documents.domain.model import StoredDocument
from clinic_documents.service_layer.document_service import DocumentService

BUCKET = "documents"


def s3_error(code, status=404):
    return S3Error(
        code=code,
        message=f"{code} raised by fake store",
        resource="/documents",
        request_id="123",
        host_id="456",
        response=Mock(status=status)
    )


class FakeObjectStore:
    """In-memory stand-in for the MinIO server."""

    def __init__(self, buckets=()):
        self.buckets = {name: {} for name in buckets}
        self.calls = []
        # Raised by every object call when set
        self.failure = None
        # Called with the operation name before every object call
        self.before_call = None

    def objects(self, bucket=BUCKET):
        return self.buckets[bucket]

    def _enter(self, operation, bucket):
        self.calls.append(operation)
        if self.before_call is not None:
            self.before_call(operation)
        if self.failure is not None:
            raise self.failure
        if bucket not in self.buckets:
            raise s3_error("NoSuchBucket")


class FakeBlobClient(AbstractBlobClient):
    def __init__(self, store, bucket_name, object_name):
        self.store = store
        self.bucket_name = bucket_name
        self.object_name = object_name

    def _stored(self):
        objects = self.store.buckets[self.bucket_name]
        if self.object_name not in objects:
            raise s3_error("NoSuchKey")
        return objects[self.object_name]

    def download(self):
        self.store._enter("download", self.bucket_name)
        data, content_type = self._stored()
        return StoredDocument(content=BytesIO(data), content_type=content_type)

    def get_properties(self):
        self.store._enter("get_properties", self.bucket_name)
        data, content_type = self._stored()
        return Mock(size=len(data), content_type=content_type)

    def upload(self, data, length, content_type):
        self.store._enter("upload", self.bucket_name)
        if not isinstance(data, (bytes, bytearray)):
            data = data.read()
        self.store.buckets[self.bucket_name][self.object_name] = (bytes(data), content_type)

    def delete(self):
        self.store._enter("delete", self.bucket_name)
        self.store.buckets[self.bucket_name].pop(self.object_name, None)


class FakeContainerClient(AbstractContainerClient):
    def __init__(self, store, bucket_name, uri):
        self.store = store
        self.bucket_name = bucket_name
        self.uri = uri

    def create_if_not_exists(self):
        self.store.calls.append("create_if_not_exists")
        if self.store.failure is not None:
            raise self.store.failure
        if self.bucket_name in self.store.buckets:
            return False
        self.store.buckets[self.bucket_name] = {}
        return True


class FakeClientFactory(AbstractClientFactory):
    base_uri = "http://fake-store:9000"

    def __init__(self, store):
        self.store = store

    def container_client(self, bucket_name):
        return FakeContainerClient(self.store, bucket_name, f"{self.base_uri}/{bucket_name}")

    def create_client(self, object_uri):
        bucket_name, _, object_name = urlsplit(object_uri).path.lstrip("/").partition("/")
        return FakeBlobClient(self.store, bucket_name, unquote(object_name))


@pytest.fixture
def fake_store():
    return FakeObjectStore()


@pytest.fixture
def document_service(fake_store):
    return DocumentService(FakeClientFactory(fake_store), BUCKET)


@pytest.fixture
def renderer():
    return ResultPdfRenderer()


@pytest.fixture
def result_event():
    return AppointmentResultCreated(
        result_id=uuid.UUID("11111111-1111-1111-1111-111111111111"),
        date=datetime(2024, 3, 1, 10, 30),
        service_name="Consultation",
        specialization_name="Cardiology",
        patient_full_name="Jane Doe",
        patient_birth_date=date(1990, 5, 2),
        doctor_full_name="Dr. Smith",
        complaints="Chest pain",
        conclusion="Stable",
        recommendations="Follow-up in 2 weeks",
    )


@pytest.fixture
def minio_env(monkeypatch):
    monkeypatch.setenv("MINIO_ENDPOINT", "http://localhost:9000")
    monkeypatch.setenv("MINIO_BUCKET", BUCKET)
    monkeypatch.setenv("MINIO_ACCESS_KEY", "minioadmin")
    monkeypatch.setenv("MINIO_SECRET_KEY", "minioadmin")


@pytest.fixture
def no_minio_env(monkeypatch):
    for name in ("MINIO_ENDPOINT", "MINIO_BUCKET", "MINIO_ACCESS_KEY", "MINIO_SECRET_KEY"):
        monkeypatch.delenv(name, raising=False)
