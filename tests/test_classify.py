"""Tests for tdclient.classify: attempt outcomes and error construction."""

from __future__ import annotations

from unittest.mock import MagicMock

import httpx
import pytest

from tdclient.classify import Outcome, build_service_error, classify, is_successful
from tdclient.errors import TDServiceError
from tdclient.handlers import default_error_handler
from tdclient.request import ApiRequest
from tdclient.retry import RetryPolicy
from tdclient.transport import Exchange, ExchangeState

POLICY = RetryPolicy()


def completed(status: int, **kwargs) -> Exchange:
    ex = Exchange(ApiRequest.get("/x"), httpx.Request("GET", "https://h/x"))
    ex.response = httpx.Response(status, **kwargs)
    ex.state = ExchangeState.COMPLETED
    return ex


def failed(error: BaseException) -> Exchange:
    ex = Exchange(ApiRequest.get("/x"), httpx.Request("GET", "https://h/x"))
    ex.error = error
    ex.state = ExchangeState.FAILED
    return ex


class TestIsSuccessful:
    @pytest.mark.parametrize("status", [200, 201, 204, 299])
    def test_2xx(self, status):
        assert is_successful(status)

    @pytest.mark.parametrize("status", [100, 199, 300, 304, 404, 500])
    def test_other(self, status):
        assert not is_successful(status)


class TestClassify:
    @pytest.mark.parametrize("status", [200, 202, 204])
    def test_success(self, status):
        assert classify(completed(status), POLICY) is Outcome.SUCCESS

    @pytest.mark.parametrize("status", [500, 503])
    def test_retryable_statuses(self, status):
        assert classify(completed(status), POLICY) is Outcome.RETRYABLE_FAILURE

    @pytest.mark.parametrize("status", [301, 400, 401, 403, 404, 409, 413, 429, 502, 504])
    def test_fatal_statuses(self, status):
        assert classify(completed(status), POLICY) is Outcome.FATAL

    def test_io_failure_retryable(self):
        assert classify(failed(httpx.ReadError("eof")), POLICY) is Outcome.RETRYABLE_FAILURE

    def test_os_error_retryable(self):
        assert classify(failed(ConnectionResetError()), POLICY) is Outcome.RETRYABLE_FAILURE

    def test_other_exception_fatal(self):
        assert classify(failed(ValueError("bug")), POLICY) is Outcome.FATAL


class TestBuildServiceError:
    def test_uses_handler_result(self):
        ex = completed(404, json={"error": "NotFound", "message": "Database 'x' does not exist"})
        err = build_service_error(ex, default_error_handler, attempts=1)
        assert err.message == "Database 'x' does not exist"
        assert err.error_code == "NotFound"
        assert err.status_code == 404
        assert err.attempts == 1

    def test_413_skips_handler(self):
        handler = MagicMock()
        err = build_service_error(completed(413), handler, attempts=1)
        handler.assert_not_called()
        assert err.message == "Request entity too large"
        assert err.status_code == 413

    def test_503_handler_failure_is_service_unavailable(self):
        err = build_service_error(completed(503), default_error_handler, attempts=11)
        assert err.message == "Service unavailable"
        assert err.status_code == 503
        assert err.attempts == 11

    def test_503_reason_match_case_insensitive(self):
        ex = completed(503, extensions={"reason_phrase": b"SERVICE UNAVAILABLE"})
        err = build_service_error(ex, default_error_handler, attempts=1)
        assert err.message == "Service unavailable"

    def test_503_other_reason_is_unmarshal_failure(self):
        ex = completed(503, extensions={"reason_phrase": b"Back Later"})
        err = build_service_error(ex, default_error_handler, attempts=1)
        assert err.message.startswith("Unable to unmarshal error response")
        assert err.error_code == "Back Later"

    def test_handler_failure(self):
        handler = MagicMock(side_effect=KeyError("error"))
        err = build_service_error(completed(400), handler, attempts=1)
        assert err.message.startswith("Unable to unmarshal error response")
        assert err.status_code == 400
        assert err.error_code == "Bad Request"
        assert isinstance(err.__cause__, KeyError)

    def test_handler_returning_wrong_type(self):
        err = build_service_error(completed(409), lambda ex: "conflict", attempts=1)
        assert isinstance(err, TDServiceError)
        assert "handler returned str" in err.message
        assert err.status_code == 409

    def test_handler_error_code_kept(self):
        handler = MagicMock(return_value=TDServiceError("dup", error_code="AlreadyExists"))
        err = build_service_error(completed(409), handler, attempts=2)
        assert err.error_code == "AlreadyExists"
        assert err.attempts == 2
