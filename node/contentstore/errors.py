class StoreError(Exception):
    """Base class for every error a store operation reports to its caller."""


class ValidationError(StoreError):
    """A required field is missing or empty, or a value is out of range."""


class NotFound(StoreError):
    pass


class Forbidden(StoreError):
    """Caller identity does not own the record it tries to change."""


class Expired(StoreError):
    """Vote arrived after the poll's end time."""


class PersistenceFailure(StoreError):
    """A snapshot write that the operation depends on did not reach disk."""
