class StorageError(Exception):
    """Base class for every failure raised by a storage backend."""


class BackendUnavailable(StorageError):
    """The backend could not be reached (pool exhausted, network, not initialised)."""


class StorageTimeout(BackendUnavailable):
    """A backend call ran past the configured per-call timeout."""


class ConstraintViolation(StorageError):
    """Uniqueness, foreign-key or check constraint rejected a write."""


class MappingError(StorageError):
    """A row or document coming back from a backend does not have the expected shape."""


class InvalidStatusTransition(StorageError):
    def __init__(self, current: str, requested: str):
        self.current = current
        self.requested = requested
        super().__init__(f"Order status cannot move from '{current}' to '{requested}'")


class StorageInitError(StorageError):
    """Raised at startup when the selected backend fails to initialise."""
