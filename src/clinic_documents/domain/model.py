"""Domain model for stored documents."""

from dataclasses import dataclass, field
from typing import BinaryIO, Callable, Iterator, Optional
from uuid import UUID

PDF_CONTENT_TYPE = "application/pdf"
DEFAULT_CONTENT_TYPE = "application/octet-stream"
CHUNK_SIZE = 32 * 1024


@dataclass
class StoredDocument:
    """Content stream and content type of a document read from the store.

    Only lives for the duration of a request. ``close`` releases the
    underlying store connection and must be called once the stream is consumed.
    """
    content: BinaryIO
    content_type: str
    on_close: Optional[Callable[[], None]] = field(default=None, repr=False)

    def read(self) -> bytes:
        try:
            return self.content.read()
        finally:
            self.close()

    def iter_chunks(self, chunk_size: int = CHUNK_SIZE) -> Iterator[bytes]:
        while True:
            chunk = self.content.read(chunk_size)
            if not chunk:
                break
            yield chunk

    def close(self):
        self.content.close()
        if self.on_close is not None:
            self.on_close()
            self.on_close = None


def result_document_key(result_id: UUID) -> str:
    """Storage key of the rendered PDF for an appointment result."""
    return f"{result_id}.pdf"
