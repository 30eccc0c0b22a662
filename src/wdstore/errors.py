from typing import Any, Optional


class WdstoreError(Exception):
    """Base class for every error raised by wdstore."""


class ConfigError(WdstoreError):
    pass


class BackendError(WdstoreError):
    def __init__(self, message: str, cause: Optional[BaseException] = None) -> None:
        super().__init__(message)
        self.message = message
        self.cause = cause

    def __str__(self) -> str:
        if self.cause is None:
            return self.message
        return f"{self.message} ({self.cause})"


class BackendInitError(BackendError):
    pass


class BackendUnavailableError(BackendError):
    """Raised by a handler that failed to connect or was shut down."""


class BackendWriteError(BackendError):
    pass


class UnsupportedOperationError(BackendError):
    pass


class FetchError(WdstoreError):
    def __init__(self, entity_id: int, message: str, cause: Optional[BaseException] = None) -> None:
        super().__init__(message)
        self.entity_id = entity_id
        self.message = message
        self.cause = cause

    def __str__(self) -> str:
        return f"Q{self.entity_id}: {self.message}"


class HttpError(FetchError):
    def __init__(self, entity_id: int, status: int) -> None:
        super().__init__(entity_id, f"HTTP error {status}")
        self.status = status


class NetworkError(FetchError):
    def __init__(self, entity_id: int, cause: BaseException) -> None:
        super().__init__(entity_id, f"network error: {cause}", cause)


class UnknownError(FetchError):
    def __init__(self, entity_id: int, cause: BaseException) -> None:
        super().__init__(entity_id, f"unknown error: {cause}", cause)


class FetchCancelled(FetchError):
    def __init__(self, entity_id: int) -> None:
        super().__init__(entity_id, "fetch cancelled")


class DrainTimeout(WdstoreError):
    def __init__(self, pending: int, timeout: float) -> None:
        super().__init__(f"{pending} task(s) still running after {timeout:.0f}s")
        self.pending = pending
        self.timeout = timeout


class ProcessingError(WdstoreError):
    def __init__(self, message: str, document: Optional[Any] = None) -> None:
        super().__init__(message)
        self.message = message
        self.document = document
