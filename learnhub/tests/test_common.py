import json
import logging
import unittest

import pytest

from learnhub.common.exceptions import (
    ConcurrencyConflictError,
    ErrorCode,
    NotEligibleError,
    SessionTimeoutError,
    UpstreamServerError,
    error_response,
)
from learnhub.common.logger import JsonFormatter, LoggerAdapter, log_execution_time
from learnhub.common.utils import round_half_up, safe_divide, strip_code_fences, to_text


class TestErrors(unittest.TestCase):

    def test_error_response_for_typed_error(self):
        response = error_response(NotEligibleError(["Maximum attempts exceeded"]))

        self.assertEqual(response["status"], "error")
        self.assertEqual(response["code"], "not_eligible")
        self.assertEqual(response["details"], {"reasons": ["Maximum attempts exceeded"]})

    def test_error_response_wraps_unknown_errors(self):
        response = error_response(ValueError("boom"), include_details=False)

        self.assertEqual(response["code"], ErrorCode.UNKNOWN_ERROR.value)
        self.assertEqual(response["message"], "boom")
        self.assertNotIn("details", response)

    def test_timeout_details(self):
        error = SessionTimeoutError("s1", 605.456, 600)

        self.assertEqual(error.details["elapsed_seconds"], 605.46)
        self.assertEqual(error.to_dict()["code"], "session_timeout")

    def test_upstream_server_error_is_retryable(self):
        error = UpstreamServerError("HTTP 503", model="gpt-4o", status_code=503)

        self.assertTrue(error.retryable)
        self.assertEqual(error.details, {"model": "gpt-4o", "status_code": 503})

    def test_conflict_message(self):
        error = ConcurrencyConflictError("Session", "s1", 4)

        self.assertIn("expected version 4", error.message)


@pytest.mark.parametrize("value, digits, expected", [
    (2.5, 0, 3), (3.5, 0, 4), (5.833, 0, 6), (66.666666, 2, 66.67), (0.125, 2, 0.13),
])
def test_round_half_up(value, digits, expected):
    assert round_half_up(value, digits) == expected


def test_small_helpers():
    assert safe_divide(1, 0) == 0
    assert strip_code_fences('```json\n{"a": 1}\n```') == '{"a": 1}'
    assert to_text(None) == ""
    assert to_text(["a", "b"]) == '["a", "b"]'
    assert to_text(True) == "True"


def test_json_formatter_merges_context():
    adapter = LoggerAdapter(logging.getLogger("learnhub.test"), {"session_id": "s1"}).with_context(user_id="u1")
    msg, kwargs = adapter.process("hello", {})
    record = logging.LogRecord("learnhub.test", logging.INFO, __file__, 1, msg, None, None)
    record.data = kwargs["extra"]["data"]

    payload = json.loads(JsonFormatter().format(record))

    assert payload["message"] == "hello"
    assert payload["level"] == "INFO"
    assert payload["session_id"] == "s1"
    assert payload["user_id"] == "u1"


@pytest.mark.asyncio
async def test_log_execution_time_wraps_coroutines():
    calls = []

    @log_execution_time(logging.getLogger("learnhub.test"))
    async def work(value):
        calls.append(value)
        return value * 2

    assert await work(21) == 42
    assert calls == [21]
