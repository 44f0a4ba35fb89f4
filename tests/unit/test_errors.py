"""
Unit tests for store error classification.

Native redis/FalkorDB exceptions must map to a structured ErrorKind once,
and only the transient kinds may report is_transient.
"""

import pytest
from redis import exceptions as redis_exceptions

from graph_memory.graph.errors import (
    ErrorKind,
    StoreError,
    classify_native_error,
    translate_native_error,
)


class TestClassifyNativeError:
    @pytest.mark.parametrize(
        "exc,kind",
        [
            (redis_exceptions.WatchError("watched key changed"), ErrorKind.CONFLICT),
            (redis_exceptions.ConnectionError("Connection refused"), ErrorKind.SERVICE_UNAVAILABLE),
            (redis_exceptions.TimeoutError("Timeout reading from socket"), ErrorKind.SERVICE_UNAVAILABLE),
            (redis_exceptions.BusyLoadingError("Redis is loading the dataset"), ErrorKind.SERVICE_UNAVAILABLE),
            (redis_exceptions.AuthenticationError("invalid password"), ErrorKind.SESSION_EXPIRED),
            (redis_exceptions.ResponseError("Deadlock detected"), ErrorKind.DEADLOCK),
            (redis_exceptions.ResponseError("Session expired"), ErrorKind.SESSION_EXPIRED),
            (redis_exceptions.ResponseError("transient failure, retry"), ErrorKind.TRANSIENT),
            (redis_exceptions.ResponseError("Constraint violation on Memory.id"), ErrorKind.CONSTRAINT),
            (redis_exceptions.ResponseError("errMsg: Invalid input 'X'"), ErrorKind.QUERY),
            (RuntimeError("boom"), ErrorKind.UNKNOWN),
        ],
    )
    def test_kind(self, exc, kind):
        assert classify_native_error(exc) == kind

    @pytest.mark.parametrize(
        "message",
        [
            "Unknown function 'loading_factor'",
            "Syntax error at offset 12 near 'deadlock'",
            "Invalid input 'transient': expected MATCH",
            "errMsg: session expired tokens are not a keyword",
        ],
    )
    def test_keywords_quoted_in_query_errors_stay_permanent(self, message):
        exc = redis_exceptions.ResponseError(message)
        assert classify_native_error(exc) == ErrorKind.QUERY
        assert translate_native_error(exc).is_transient is False

    def test_authentication_not_treated_as_plain_connection_error(self):
        """AuthenticationError subclasses ConnectionError but is a session problem."""
        exc = redis_exceptions.AuthenticationError("auth")
        assert isinstance(exc, redis_exceptions.ConnectionError)
        assert classify_native_error(exc) == ErrorKind.SESSION_EXPIRED


class TestStoreError:
    @pytest.mark.parametrize(
        "kind",
        [
            ErrorKind.DEADLOCK,
            ErrorKind.SERVICE_UNAVAILABLE,
            ErrorKind.SESSION_EXPIRED,
            ErrorKind.TRANSIENT,
            ErrorKind.CONFLICT,
        ],
    )
    def test_transient_kinds(self, kind):
        assert StoreError("x", kind).is_transient is True

    @pytest.mark.parametrize("kind", [ErrorKind.CONSTRAINT, ErrorKind.QUERY, ErrorKind.UNKNOWN])
    def test_permanent_kinds(self, kind):
        assert StoreError("x", kind).is_transient is False

    def test_translate_attaches_kind(self):
        err = translate_native_error(redis_exceptions.ConnectionError("down"))
        assert isinstance(err, StoreError)
        assert err.kind == ErrorKind.SERVICE_UNAVAILABLE
        assert "down" in str(err)

    def test_translate_is_idempotent(self):
        original = StoreError("already translated", ErrorKind.DEADLOCK)
        assert translate_native_error(original) is original
