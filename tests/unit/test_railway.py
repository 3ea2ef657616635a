"""
Unit tests for the railway helpers — Result, FailureDescription,
execution contexts and HTTP mapping.
"""

from __future__ import annotations

import json

import pytest

from cert_issuer.railway import (
    ErrorCode,
    Failure,
    FailureDescription,
    LoggingExecutionContext,
    NoOpExecutionContext,
    Result,
    ResultAssertions,
    Success,
)
from cert_issuer.railway.http_support import (
    HttpStatusMapper,
    build_fastapi_response,
    error_body,
)

# ─────────────────────── Result ───────────────────────


class TestResultConstruction:
    def test_success_holds_value(self) -> None:
        result = Result.success(42)

        assert result.is_success()
        assert not result.is_failure()
        assert result.value() == 42
        assert bool(result) is True

    def test_failure_holds_description(self) -> None:
        result = Result.failure(ErrorCode.NOT_FOUND, "gone")

        assert result.is_failure()
        assert result.error().code is ErrorCode.NOT_FOUND
        assert result.error().message == "gone"
        assert bool(result) is False

    def test_success_rejects_none(self) -> None:
        with pytest.raises(TypeError):
            Success(None)

    def test_value_of_failure_raises(self) -> None:
        with pytest.raises(Exception):
            Result.failure(ErrorCode.NOT_FOUND, "gone").value()

    def test_error_of_success_raises(self) -> None:
        with pytest.raises(Exception):
            Result.success(1).error()

    def test_equality(self) -> None:
        assert Result.success(1) == Result.success(1)
        assert Result.success(1) != Result.success(2)
        assert Result.failure(ErrorCode.NOT_FOUND, "x") == Result.failure(ErrorCode.NOT_FOUND, "x")
        assert Result.failure(ErrorCode.NOT_FOUND, "x") != Result.success(1)

    def test_from_computation_captures_exceptions(self) -> None:
        def _boom() -> int:
            raise ValueError("bad")

        result = Result.from_computation(_boom, ErrorCode.RENDER_ERROR, "render failed")

        error = ResultAssertions.assert_failure(result, ErrorCode.RENDER_ERROR)
        assert isinstance(error.exception, ValueError)


class TestResultComposition:
    def test_map_transforms_success(self) -> None:
        assert Result.success(2).map(lambda v: v * 10) == Result.success(20)

    def test_map_skips_failure(self) -> None:
        called: list[int] = []
        result: Result[int] = Result.failure(ErrorCode.DATABASE_ERROR, "down")

        result.map(called.append)

        assert called == []

    def test_flat_map_short_circuits(self) -> None:
        """
        GIVEN a chain whose second step fails
        WHEN flat_map continues the chain
        THEN the third step never runs and the first failure is returned.
        """
        third: list[int] = []

        result = (
            Result.success(1)
            .flat_map(lambda _: Result.failure(ErrorCode.UPLOAD_FAILED, "step 2"))
            .flat_map(lambda v: Result.success(third.append(v)))
        )

        assert third == []
        ResultAssertions.assert_failure_message_contains(result, "step 2")

    def test_either(self) -> None:
        assert Result.success(1).either(lambda v: "ok", lambda e: "ko") == "ok"
        assert Result.failure(ErrorCode.NOT_FOUND, "x").either(lambda v: "ok", lambda e: "ko") == "ko"

    def test_peek_and_peek_failure(self) -> None:
        seen: list[object] = []

        Result.success(1).peek(seen.append).peek_failure(seen.append)
        Result.failure(ErrorCode.NOT_FOUND, "x").peek(seen.append).peek_failure(
            lambda e: seen.append(e.code)
        )

        assert seen == [1, ErrorCode.NOT_FOUND]

    def test_pattern_matching(self) -> None:
        match Result.success("v"):
            case Success(value):
                assert value == "v"
            case Failure(_):
                pytest.fail("expected success")


# ─────────────────────── FailureDescription ───────────────────────


class TestFailureDescription:
    def test_str(self) -> None:
        assert str(FailureDescription(ErrorCode.ACCESS_DENIED, "policy")) == "ACCESS_DENIED: policy"

    def test_stack_trace_of_captured_exception(self) -> None:
        try:
            raise RuntimeError("deep")
        except RuntimeError as e:
            failure = FailureDescription(ErrorCode.UNKNOWN_ERROR, "x", e)

        assert "RuntimeError: deep" in failure.full_stack_trace()


# ─────────────────────── Execution contexts ───────────────────────


class TestExecutionContexts:
    def test_noop_passthrough(self) -> None:
        assert NoOpExecutionContext().execute(lambda: Result.success(42)) == Result.success(42)

    def test_logging_context_returns_result(self) -> None:
        ctx = LoggingExecutionContext(operation="CertificateBatch")

        assert ctx.execute(lambda: Result.success("ok")) == Result.success("ok")

    def test_logging_context_converts_exceptions(self) -> None:
        """
        GIVEN a computation that raises
        WHEN it runs inside a LoggingExecutionContext
        THEN the caller receives an UNKNOWN_ERROR failure instead of the exception.
        """

        def _failing() -> Result[int]:
            raise RuntimeError("exploded")

        result = LoggingExecutionContext(operation="Boom").execute(_failing)

        error = ResultAssertions.assert_failure(result, ErrorCode.UNKNOWN_ERROR)
        assert "exploded" in error.message

    def test_logging_context_wraps_inner(self) -> None:
        ctx = LoggingExecutionContext(inner=NoOpExecutionContext(), operation="Wrapped")

        assert ctx.execute(lambda: Result.success(99)).value() == 99


# ─────────────────────── HTTP mapping ───────────────────────


class TestHttpSupport:
    @pytest.mark.parametrize(
        ("code", "status"),
        [
            (ErrorCode.FORMAT_ERROR, 400),
            (ErrorCode.INVALID_EMAIL, 400),
            (ErrorCode.NOT_FOUND, 404),
            (ErrorCode.DUPLICATE_ISSUANCE, 409),
            (ErrorCode.DATABASE_ERROR, 500),
            (ErrorCode.UNKNOWN_ERROR, 500),
            (ErrorCode.ACCESS_DENIED, 502),
            (ErrorCode.UPLOAD_FAILED, 502),
            (ErrorCode.NETWORK_UNREACHABLE, 503),
            (ErrorCode.NOTIFY_TIMEOUT, 504),
        ],
    )
    def test_status_mapping(self, code: ErrorCode, status: int) -> None:
        assert HttpStatusMapper.map_error_code(code) == status

    def test_error_body(self) -> None:
        body = error_body(FailureDescription(ErrorCode.NOT_FOUND, "Certificate not found"))

        assert body["success"] is False
        assert body["error"] == "Certificate not found"
        assert body["error_code"] == "NOT_FOUND"
        assert "timestamp" in body

    def test_success_response(self) -> None:
        response = build_fastapi_response(Result.success({"id": "cert_1"}), success_status=201)

        assert response.status_code == 201
        assert json.loads(response.body) == {"success": True, "data": {"id": "cert_1"}}

    def test_failure_response(self) -> None:
        response = build_fastapi_response(Result.failure(ErrorCode.NOT_FOUND, "missing"))

        assert response.status_code == 404
        assert json.loads(response.body)["error"] == "missing"
