"""Configuration settings for the documents service."""

import os
import socket
from urllib.parse import urlsplit

from clinic_documents.domain.exceptions import ConfigurationError

MINIO_REQUIRED = ("MINIO_ENDPOINT", "MINIO_BUCKET", "MINIO_ACCESS_KEY", "MINIO_SECRET_KEY")
REDIS_REQUIRED = ("REDIS_HOST", "REDIS_USERNAME", "REDIS_PASSWORD")


def _require(*names):
    """Read required environment variables, failing with every missing name at once."""
    values = {name: os.environ.get(name, "").strip() for name in names}
    missing = [name for name, value in values.items() if not value]
    if missing:
        raise ConfigurationError(
            f"Missing required configuration: {', '.join(missing)} must be set and non-empty"
        )
    return values


def _int(name, default):
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}")
    if value <= 0:
        raise ConfigurationError(f"{name} must be positive, got {value}")
    return value


def parse_minio_endpoint(connection_string):
    """Split a MinIO connection string like ``http://host:9000`` into (endpoint, secure)."""
    if "://" not in connection_string:
        connection_string = f"http://{connection_string}"
    parts = urlsplit(connection_string)
    if parts.scheme not in ("http", "https") or not parts.netloc or parts.path not in ("", "/"):
        raise ConfigurationError(
            f"MINIO_ENDPOINT must look like http(s)://host[:port], got {connection_string!r}"
        )
    return parts.netloc, parts.scheme == "https"


def get_minio_config():
    """Get MinIO connection configuration from environment variables."""
    values = _require(*MINIO_REQUIRED)
    endpoint, secure = parse_minio_endpoint(values["MINIO_ENDPOINT"])

    return dict(
        endpoint=endpoint,
        access_key=values["MINIO_ACCESS_KEY"],
        secret_key=values["MINIO_SECRET_KEY"],
        bucket_name=values["MINIO_BUCKET"],
        secure=secure
    )


def get_redis_config():
    """Get Redis broker connection details from environment variables."""
    values = _require(*REDIS_REQUIRED)
    return dict(
        host=values["REDIS_HOST"],
        port=_int("REDIS_PORT", 6379),
        username=values["REDIS_USERNAME"],
        password=values["REDIS_PASSWORD"],
    )


def get_pdf_queue_config():
    """Get stream, consumer group and delivery lease settings for PDF uploads."""
    return dict(
        stream=os.environ.get("PDF_UPLOAD_STREAM", "pdf-upload-queue"),
        group=os.environ.get("PDF_UPLOAD_GROUP", "documents-service"),
        consumer=f"{socket.gethostname()}-{os.getpid()}",
        lease_seconds=_int("PDF_UPLOAD_LEASE_SECONDS", 30),
        max_deliveries=_int("PDF_UPLOAD_MAX_DELIVERIES", 5),
    )


def validate_settings():
    """Validate every required setting, reporting all missing values together."""
    _require(*MINIO_REQUIRED, *REDIS_REQUIRED)
    get_minio_config()
    get_redis_config()
    get_pdf_queue_config()


def get_api_url():
    """Get API URL from environment variables."""
    host = os.environ.get("API_HOST", "localhost")
    port = 8000
    return f"http://{host}:{port}"
