"""Tests for backend error categorization."""

import asyncio

import httpx
import pytest

from desktop_assistant.assistant.errors import (
    ErrorCategory,
    Recovery,
    classify_backend_error,
    exception_status_code,
)


@pytest.mark.parametrize(
    "code, message, expected",
    [
        (14, "No access or refresh token is set", ErrorCategory.AUTH_INVALID),
        (14, "grpc: no access or refresh token is set.", ErrorCategory.AUTH_INVALID),
        (16, "Request had invalid authentication credentials", ErrorCategory.AUTH_INVALID),
        (7, "Permission denied", ErrorCategory.AUTH_INVALID),
        (14, "failed to connect to all addresses", ErrorCategory.BACKEND_OFFLINE),
        (4, "Deadline Exceeded", ErrorCategory.BACKEND_OFFLINE),
        (2, "Something else", ErrorCategory.BACKEND_UNEXPECTED),
        (None, None, ErrorCategory.BACKEND_UNEXPECTED),
    ],
)
def test_classify_backend_error(code, message, expected):
    assert classify_backend_error(code, message) == expected


def test_recovery_affordances():
    assert ErrorCategory.BACKEND_OFFLINE.recovery == Recovery.RETRY
    assert ErrorCategory.AUTH_INVALID.recovery == Recovery.OPEN_SETTINGS
    assert ErrorCategory.BACKEND_UNEXPECTED.recovery == Recovery.RELAUNCH
    assert ErrorCategory.DEVICE_ERROR.recovery == Recovery.NONE


def test_every_category_has_a_title():
    for category in ErrorCategory:
        assert category.title


class CodedError(Exception):
    code = 16


@pytest.mark.parametrize(
    "exc, expected",
    [
        (ConnectionRefusedError("connection refused"), 14),
        (OSError("network is unreachable"), 14),
        (httpx.ConnectError("Connection refused"), 14),
        (httpx.ReadTimeout("timed out"), 4),
        (asyncio.TimeoutError(), 4),
        (CodedError("unauthenticated"), 16),
        (RuntimeError("boom"), 2),
        (ValueError("bad payload"), 2),
    ],
)
def test_exception_status_code(exc, expected):
    assert exception_status_code(exc) == expected


def test_connection_failure_reads_as_offline():
    exc = ConnectionResetError("connection reset by peer")
    assert classify_backend_error(exception_status_code(exc), str(exc)) == ErrorCategory.BACKEND_OFFLINE
