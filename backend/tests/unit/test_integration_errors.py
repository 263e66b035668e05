"""Unit tests for the integration error taxonomy and classification."""

import pytest
from sqlalchemy.exc import OperationalError, ProgrammingError

from portals.errors import (
    AuthError,
    ConfigurationError,
    DecryptionError,
    ErrorKind,
    IntegrationError,
    NotFoundError,
    SystemicError,
    TransportError,
    ValidationError,
    classify_exception,
    detect_systemic_error,
)


class FakePgError(Exception):
    """Stand-in for a psycopg2 error carrying a SQLSTATE."""

    def __init__(self, message, pgcode=None):
        super().__init__(message)
        self.pgcode = pgcode


class TestErrorKinds:

    @pytest.mark.parametrize("error, kind, retryable", [
        (ValidationError("bad"), ErrorKind.VALIDATION, False),
        (NotFoundError("missing"), ErrorKind.NOT_FOUND, False),
        (ConfigurationError("unknown portal"), ErrorKind.CONFIGURATION, False),
        (TransportError("timeout"), ErrorKind.TRANSPORT, True),
        (AuthError("401"), ErrorKind.AUTH, False),
        (DecryptionError("bad tag"), ErrorKind.AUTH, False),
        (SystemicError("42P17"), ErrorKind.SYSTEMIC, False),
    ])
    def test_kind_and_retryable(self, error, kind, retryable):
        assert error.kind == kind
        assert error.retryable is retryable

    def test_validation_error_joins_violations(self):
        error = ValidationError.from_violations(["description too short", "needs 2 photos"])
        assert error.message == "description too short, needs 2 photos"
        assert error.violations == ["description too short", "needs 2 photos"]

    def test_transport_error_keeps_status_code(self):
        assert TransportError("bad gateway", status_code=502).status_code == 502


class TestClassifyException:

    def test_integration_errors_pass_through(self):
        error = NotFoundError("Vehicle not found")
        assert classify_exception(error) is error

    def test_unknown_exception_is_transport(self):
        result = classify_exception(RuntimeError("connection reset"))
        assert isinstance(result, TransportError)
        assert "connection reset" in result.message
        assert result.retryable

    def test_pgcode_42p17_is_systemic(self):
        exc = ProgrammingError("SELECT 1", {}, FakePgError("policy error", pgcode="42P17"))
        assert isinstance(classify_exception(exc), SystemicError)

    def test_infinite_recursion_message_is_systemic(self):
        exc = OperationalError(
            "SELECT 1", {}, FakePgError('infinite recursion detected in policy for relation "vehicle"')
        )
        assert isinstance(classify_exception(exc), SystemicError)

    def test_other_database_errors_are_not_systemic(self):
        exc = OperationalError("SELECT 1", {}, FakePgError("server closed the connection", pgcode="08006"))
        assert detect_systemic_error(exc) is None
        assert isinstance(classify_exception(exc), TransportError)

    def test_message_text_does_not_classify_validation(self):
        # Classification never looks at message text for non-systemic errors
        result = classify_exception(RuntimeError("Validation Failed: description"))
        assert isinstance(result, TransportError)

    def test_all_results_are_integration_errors(self):
        for exc in (ValueError("x"), KeyError("y"), TimeoutError()):
            assert isinstance(classify_exception(exc), IntegrationError)
