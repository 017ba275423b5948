"""Domain-level errors raised by the document access layer.

Callers (HTTP routes, the event pipeline) only ever see these kinds; raw
object-store errors are translated by the document service.
"""


class DocumentError(Exception):
    """Base class for document access errors."""
    pass


class NotFound(DocumentError):
    """Raised when the requested document key does not exist."""
    pass


class StoreUnavailable(DocumentError):
    """Raised when the object store fails at the transport or service level."""
    pass


class OperationCancelled(StoreUnavailable):
    """Raised when a store call is cancelled before or while it runs."""
    pass


class ConfigurationError(DocumentError):
    """Raised at startup when required settings or credentials are missing."""
    pass
