"""Error types raised by search backends and the indexing pipeline."""

RETRYABLE_STATUSES: frozenset[int] = frozenset({429, 502})


class SearcherError(Exception):
    """Base class for all searcher errors."""


class BackendError(SearcherError):
    """Error reported by a search backend.

    Attributes:
        status_code: Backend status code used for retry classification,
            or None when the failure never reached the backend.
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    @classmethod
    def from_status(cls, message: str, status_code: int | None) -> "BackendError":
        """Build the error subclass matching a status code.

        Args:
            message: Human-readable error description.
            status_code: Backend status code, if any.

        Returns:
            RetryableBackendError for rate limiting or upstream
            unavailability, FatalBackendError otherwise.
        """
        if status_code in RETRYABLE_STATUSES:
            return RetryableBackendError(message, status_code)
        return FatalBackendError(message, status_code)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r}, status_code={self.status_code})"


class RetryableBackendError(BackendError):
    """Rate limited (429) or temporarily unavailable (502) backend."""


class FatalBackendError(BackendError):
    """Any backend failure that must not be retried."""


class BulkIndexError(FatalBackendError):
    """A bulk request was accepted but one or more items failed.

    Attributes:
        items: The failed item entries from the bulk response.
    """

    def __init__(self, message: str, items: list[dict] | None = None) -> None:
        super().__init__(message, status_code=None)
        self.items = items or []


class TransformError(SearcherError):
    """A document processor raised while preparing a record for indexing.

    Attributes:
        model: Model identity of the record being transformed.
    """

    def __init__(self, model: str, cause: BaseException) -> None:
        super().__init__(f"Processor for {model} failed: {cause}")
        self.model = model
        self.__cause__ = cause


def status_of(error: BaseException) -> int | None:
    """Extract a backend status code from an arbitrary exception.

    Understands searcher's own errors, elasticsearch ``ApiError``
    (``meta.status``) and clients exposing a plain ``status`` attribute.

    Args:
        error: Exception raised by a backend call.

    Returns:
        Integer status code, or None if the error carries none.
    """
    status = getattr(error, "status_code", None)
    if isinstance(status, int):
        return status
    meta = getattr(error, "meta", None)
    status = getattr(meta, "status", None)
    if isinstance(status, int):
        return status
    status = getattr(error, "status", None)
    if isinstance(status, int):
        return status
    return None
