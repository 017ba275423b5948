"""Object store adapter - per-key client handles over MinIO.

The document service builds a fully-qualified object URI
(``<container uri>/<quoted key>``) and asks a client factory for a handle.
Nothing here interprets keys or translates errors: ``minio.error.S3Error``
and transport errors propagate as raised by the client.
"""

import abc
import logging
from io import BytesIO
from typing import BinaryIO, Union
from urllib.parse import quote, unquote, urlsplit

from minio import Minio
from minio.error import S3Error

from clinic_documents.domain.exceptions import ConfigurationError
from clinic_documents.domain.model import DEFAULT_CONTENT_TYPE, StoredDocument

logger = logging.getLogger(__name__)

# Multipart part size (S3 minimum is 5 MiB), used when the upload length is unknown
PART_SIZE = 10 * 1024 * 1024


class AbstractBlobClient(abc.ABC):
    """Handle bound to a single object in the store."""

    @abc.abstractmethod
    def download(self) -> StoredDocument:
        raise NotImplementedError

    @abc.abstractmethod
    def get_properties(self):
        """Fetch object metadata; raises the store's not-found error if absent."""
        raise NotImplementedError

    @abc.abstractmethod
    def upload(self, data: Union[bytes, BinaryIO], length: int, content_type: str):
        raise NotImplementedError

    @abc.abstractmethod
    def delete(self):
        raise NotImplementedError


class AbstractContainerClient(abc.ABC):
    """Handle for the container (bucket) that holds all documents."""

    uri: str

    @abc.abstractmethod
    def create_if_not_exists(self) -> bool:
        """Create the container if missing. Returns True when it was created."""
        raise NotImplementedError


class AbstractClientFactory(abc.ABC):
    """Creates per-object client handles from fully-qualified object URIs."""

    @abc.abstractmethod
    def create_client(self, object_uri: str) -> AbstractBlobClient:
        raise NotImplementedError

    @abc.abstractmethod
    def container_client(self, bucket_name: str) -> AbstractContainerClient:
        raise NotImplementedError


def object_uri(container_uri: str, key: str) -> str:
    """Join a container URI and a storage key into a fully-qualified object URI."""
    return f"{container_uri}/{quote(key, safe='')}"


class MinioBlobClient(AbstractBlobClient):
    """MinIO implementation of a per-object handle."""

    def __init__(self, client: Minio, bucket_name: str, object_name: str):
        self.client = client
        self.bucket_name = bucket_name
        self.object_name = object_name

    def download(self) -> StoredDocument:
        response = self.client.get_object(self.bucket_name, self.object_name)
        content_type = response.headers.get("Content-Type") or DEFAULT_CONTENT_TYPE
        return StoredDocument(
            content=response,
            content_type=content_type,
            on_close=response.release_conn,
        )

    def get_properties(self):
        return self.client.stat_object(self.bucket_name, self.object_name)

    def upload(self, data: Union[bytes, BinaryIO], length: int, content_type: str):
        if isinstance(data, (bytes, bytearray)):
            length = len(data)
            data = BytesIO(data)

        return self.client.put_object(
            bucket_name=self.bucket_name,
            object_name=self.object_name,
            data=data,
            length=length,
            content_type=content_type,
            part_size=PART_SIZE if length < 0 else 0,
        )

    def delete(self):
        self.client.remove_object(self.bucket_name, self.object_name)


class MinioContainerClient(AbstractContainerClient):
    """MinIO bucket handle."""

    def __init__(self, client: Minio, bucket_name: str, uri: str):
        self.client = client
        self.bucket_name = bucket_name
        self.uri = uri

    def create_if_not_exists(self) -> bool:
        if self.client.bucket_exists(self.bucket_name):
            return False
        try:
            self.client.make_bucket(self.bucket_name)
        except S3Error as e:
            # Another instance created it between the check and the create
            if e.code in ("BucketAlreadyOwnedByYou", "BucketAlreadyExists"):
                return False
            raise
        logger.info(f"Created MinIO bucket: {self.bucket_name}")
        return True


class MinioClientFactory(AbstractClientFactory):
    """Builds MinIO handles for objects under a single configured endpoint.

    Construction only validates settings; no request is sent until a handle
    is used.
    """

    def __init__(self, endpoint: str, access_key: str, secret_key: str, secure: bool = False):
        if not endpoint:
            raise ConfigurationError("MinIO endpoint is required")
        if not access_key or not secret_key:
            raise ConfigurationError("MinIO access key and secret key are required")

        try:
            self.client = Minio(
                endpoint=endpoint,
                access_key=access_key,
                secret_key=secret_key,
                secure=secure
            )
        except ValueError as e:
            raise ConfigurationError(f"Invalid MinIO endpoint {endpoint!r}: {e}") from e

        self.endpoint = endpoint
        self.base_uri = f"{'https' if secure else 'http'}://{endpoint}"

    def container_client(self, bucket_name: str) -> MinioContainerClient:
        return MinioContainerClient(self.client, bucket_name, f"{self.base_uri}/{bucket_name}")

    def create_client(self, object_uri: str) -> MinioBlobClient:
        parts = urlsplit(object_uri)
        if f"{parts.scheme}://{parts.netloc}" != self.base_uri:
            raise ConfigurationError(
                f"Object URI {object_uri!r} is not served by the configured endpoint {self.base_uri}"
            )

        bucket_name, _, object_name = parts.path.lstrip("/").partition("/")
        if not bucket_name or not object_name:
            raise ValueError(f"Object URI {object_uri!r} must name a bucket and an object")

        return MinioBlobClient(self.client, bucket_name, unquote(object_name))
