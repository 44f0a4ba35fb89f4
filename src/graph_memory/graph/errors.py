"""
Error taxonomy for the graph layer.

Native redis/FalkorDB exceptions are translated exactly once, inside
GraphSession, into a StoreError carrying an ErrorKind. Everything above the
session (retry policy, record store, sweeps) branches on the kind and never
inspects error text.
"""

from __future__ import annotations

from enum import Enum

from redis import exceptions as redis_exceptions


class ErrorKind(str, Enum):
    """Classification of a failed store call."""

    DEADLOCK = "deadlock"
    SERVICE_UNAVAILABLE = "service_unavailable"
    SESSION_EXPIRED = "session_expired"
    TRANSIENT = "transient"
    # Optimistic transaction aborted by a concurrent write (WATCH/EXEC)
    CONFLICT = "conflict"
    CONSTRAINT = "constraint"
    QUERY = "query"
    UNKNOWN = "unknown"


TRANSIENT_KINDS: frozenset[ErrorKind] = frozenset(
    {
        ErrorKind.DEADLOCK,
        ErrorKind.SERVICE_UNAVAILABLE,
        ErrorKind.SESSION_EXPIRED,
        ErrorKind.TRANSIENT,
        ErrorKind.CONFLICT,
    }
)


class StoreError(Exception):
    """A graph store call failed; ``kind`` says whether retrying can help."""

    def __init__(self, message: str, kind: ErrorKind = ErrorKind.UNKNOWN):
        super().__init__(message)
        self.kind = kind

    @property
    def is_transient(self) -> bool:
        return self.kind in TRANSIENT_KINDS


class InvalidIdentifier(ValueError):
    """A memory identifier is not a well-formed UUID."""


class InvalidTransition(ValueError):
    """An extraction status change is not allowed by the state machine."""


# Leading error code of a server reply → kind. Only the start of the message
# is matched; the rest may quote query text.
_RESPONSE_CODE_PREFIXES: tuple[tuple[str, ErrorKind], ...] = (
    ("deadlock", ErrorKind.DEADLOCK),
    ("service unavailable", ErrorKind.SERVICE_UNAVAILABLE),
    ("serviceunavailable", ErrorKind.SERVICE_UNAVAILABLE),
    ("session expired", ErrorKind.SESSION_EXPIRED),
    ("sessionexpired", ErrorKind.SESSION_EXPIRED),
    ("transient", ErrorKind.TRANSIENT),
    ("constraint", ErrorKind.CONSTRAINT),
)


def classify_native_error(exc: BaseException) -> ErrorKind:
    """Map a redis/FalkorDB exception to an ErrorKind."""
    if isinstance(exc, StoreError):
        return exc.kind
    if isinstance(exc, redis_exceptions.WatchError):
        return ErrorKind.CONFLICT
    # AuthenticationError subclasses ConnectionError, so it goes first
    if isinstance(exc, redis_exceptions.AuthenticationError):
        return ErrorKind.SESSION_EXPIRED
    if isinstance(exc, (redis_exceptions.BusyLoadingError, redis_exceptions.TryAgainError)):
        return ErrorKind.SERVICE_UNAVAILABLE
    if isinstance(exc, (redis_exceptions.ConnectionError, redis_exceptions.TimeoutError)):
        return ErrorKind.SERVICE_UNAVAILABLE

    message = str(exc).strip().lower()
    for prefix, kind in _RESPONSE_CODE_PREFIXES:
        if message.startswith(prefix):
            return kind
    if isinstance(exc, redis_exceptions.ResponseError):
        return ErrorKind.QUERY
    return ErrorKind.UNKNOWN


def translate_native_error(exc: BaseException) -> StoreError:
    """Wrap a native exception in a StoreError with its kind attached."""
    if isinstance(exc, StoreError):
        return exc
    return StoreError(f"{type(exc).__name__}: {exc}", kind=classify_native_error(exc))
