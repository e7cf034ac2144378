# pokerledger/errors.py


class LedgerError(Exception):
    """Base class for client-side ledger errors."""


class TransientNetworkError(LedgerError):
    """Remote call failed in a way worth retrying (timeout, 5xx, transport)."""


class AuthenticationError(LedgerError):
    """Remote store rejected our credentials. Never retried."""


class PermissionDeniedError(LedgerError):
    """Remote store refused the write (e.g. updating a session we don't own)."""


class StorageError(LedgerError):
    pass


class StorageCorruptionError(StorageError):
    """A stored snapshot could not be parsed or has an invalid shape."""


class StorageQuotaError(StorageError):
    def __init__(self, key: str, size: int, limit: int):
        super().__init__(f"value for {key!r} is {size} bytes, limit is {limit}")
        self.key = key
        self.size = size
        self.limit = limit


class SessionValidationError(LedgerError):
    """Malformed session payload that cannot be salvaged."""


class GameRuleError(LedgerError):
    """A game operation that the session's current state does not allow."""
