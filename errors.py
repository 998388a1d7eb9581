class LedgerError(Exception):
    """Base class for errors raised by the ledger and its analytics."""


class ValidationError(LedgerError, ValueError):
    pass


class RangeError(ValidationError):
    """Month or year outside the supported calendar range."""


class AuthorizationError(LedgerError):
    pass


class StoreError(LedgerError):
    """The underlying database failed to answer a query."""


class NotFoundError(LedgerError, LookupError):
    pass


class ConflictError(LedgerError):
    pass
