"""Document access service - get, put and delete documents in the object store."""

import logging
import threading
from typing import BinaryIO, Optional, Union

import urllib3
from minio.error import MinioException, S3Error

from clinic_documents import config
from clinic_documents.adapters.object_store import (
    AbstractBlobClient,
    AbstractClientFactory,
    MinioClientFactory,
    object_uri,
)
from clinic_documents.domain.exceptions import NotFound, OperationCancelled, StoreUnavailable
from clinic_documents.domain.model import StoredDocument

logger = logging.getLogger(__name__)

# Errors the MinIO client raises for service and transport failures
STORE_ERRORS = (MinioException, urllib3.exceptions.HTTPError, OSError)

MISSING_OBJECT_CODES = frozenset({"NoSuchKey", "NoSuchObject", "NotFound", "ResourceNotFound"})


def is_missing_object(error: Exception) -> bool:
    """True when the store reports the 404-equivalent for an object."""
    if not isinstance(error, S3Error):
        return False
    if error.code in MISSING_OBJECT_CODES:
        return True
    return getattr(error.response, "status", None) == 404 and error.code != "NoSuchBucket"


class DocumentService:
    """
    Get, put and delete documents in a single container.

    The service owns the container handle and the client factory. The
    container is created, if missing, exactly once when the service is built.
    Every store error is translated here into NotFound or StoreUnavailable.

    All operations accept an optional ``cancel`` event. When it is set before
    or after the network call the operation raises OperationCancelled.
    """

    def __init__(self, client_factory: AbstractClientFactory, container_name: str):
        self.client_factory = client_factory
        self.container = client_factory.container_client(container_name)
        self._ensure_container_exists()

    @classmethod
    def from_environment(cls) -> "DocumentService":
        """
        Build the service from MINIO_* environment variables.

        Raises:
            ConfigurationError: If a required setting is missing or malformed
            StoreUnavailable: If the container cannot be verified or created
        """
        minio_config = config.get_minio_config()
        factory = MinioClientFactory(
            endpoint=minio_config["endpoint"],
            access_key=minio_config["access_key"],
            secret_key=minio_config["secret_key"],
            secure=minio_config["secure"]
        )
        return cls(factory, minio_config["bucket_name"])

    def _ensure_container_exists(self):
        try:
            created = self.container.create_if_not_exists()
        except STORE_ERRORS as e:
            logger.error(f"Failed to ensure container {self.container.uri} exists: {e}")
            raise StoreUnavailable(f"Failed to ensure container exists: {e}") from e

        if created:
            logger.info(f"Created container {self.container.uri}")
        else:
            logger.info(f"Using existing container {self.container.uri}")

    def _client(self, key: str) -> AbstractBlobClient:
        if not key:
            raise ValueError("Document key must not be empty")
        return self.client_factory.create_client(object_uri(self.container.uri, key))

    def get(self, key: str, cancel: Optional[threading.Event] = None) -> StoredDocument:
        """
        Retrieve a document and the content type recorded by the store.

        Raises:
            NotFound: If no document is stored under the key
            StoreUnavailable: For any other store failure
        """
        blob = self._client(key)
        logger.info(f"Attempting to retrieve document with key: {key}")

        _check_cancelled(cancel, "retrieve", key)
        try:
            document = blob.download()
        except STORE_ERRORS as e:
            raise self._translate(e, "retrieve", key) from e

        if cancel is not None and cancel.is_set():
            document.close()
            _check_cancelled(cancel, "retrieve", key)

        logger.info(f"Retrieved document {key} ({document.content_type})")
        return document

    def put(
        self,
        key: str,
        content: Union[bytes, BinaryIO],
        content_type: str,
        length: int = -1,
        cancel: Optional[threading.Event] = None,
    ):
        """
        Upload or overwrite a document, recording its content type.

        ``length`` may be -1 for file objects of unknown size.

        Raises:
            StoreUnavailable: If the upload fails; no retry is attempted
        """
        blob = self._client(key)

        _check_cancelled(cancel, "upload", key)
        try:
            blob.upload(content, length, content_type)
        except STORE_ERRORS as e:
            raise self._translate(e, "upload", key) from e
        _check_cancelled(cancel, "upload", key)

        logger.info(f"The document {key} has been uploaded or updated successfully")

    def delete(self, key: str, cancel: Optional[threading.Event] = None):
        """
        Delete a document that must exist.

        Raises:
            NotFound: If no document is stored under the key
            StoreUnavailable: For any other store failure
        """
        blob = self._client(key)

        _check_cancelled(cancel, "delete", key)
        try:
            # S3 deletes succeed for missing keys, so confirm existence first
            blob.get_properties()
            _check_cancelled(cancel, "delete", key)
            blob.delete()
        except STORE_ERRORS as e:
            raise self._translate(e, "delete", key) from e
        _check_cancelled(cancel, "delete", key)

        logger.info(f"The document {key} was successfully deleted")

    @staticmethod
    def _translate(error: Exception, action: str, key: str) -> Exception:
        if is_missing_object(error):
            logger.error(f"Failed to {action} document {key}: not found")
            return NotFound(f"No document with the key '{key}' was found")

        logger.error(f"Failed to {action} document {key}: {error}")
        return StoreUnavailable(f"Object store failed to {action} document '{key}': {error}")


def _check_cancelled(cancel: Optional[threading.Event], action: str, key: str):
    if cancel is not None and cancel.is_set():
        logger.error(f"Cancelled {action} of document {key}")
        raise OperationCancelled(f"The {action} of document '{key}' was cancelled")
