import asyncio
import logging

import pytest

from orderbot.messaging import PlatformError, TransientPlatformError
from orderbot.retry import _backoff_seconds, call_with_backoff


class _Flaky:
    def __init__(self, failures, result="ok"):
        self.failures = list(failures)
        self.result = result
        self.calls = 0

    async def __call__(self, *args, **kwargs):
        self.calls += 1
        self.last_args = (args, kwargs)
        if self.failures:
            raise self.failures.pop(0)
        return self.result


def test_transient_errors_are_retried_until_success(caplog):
    flaky = _Flaky([TransientPlatformError("rate limited", status_code=429)] * 2)

    with caplog.at_level(logging.INFO, logger="orderbot.retry"):
        result = asyncio.run(
            call_with_backoff(flaky, "chan-1", max_attempts=3, base_delay=0, name="x")
        )

    assert result == "ok"
    assert flaky.calls == 3
    assert flaky.last_args == (("chan-1",), {"name": "x"})
    assert sum("retrying" in r.getMessage() for r in caplog.records) == 2


def test_last_error_is_raised_after_max_attempts(caplog):
    flaky = _Flaky([TransientPlatformError("timeout")] * 5)

    with caplog.at_level(logging.WARNING, logger="orderbot.retry"):
        with pytest.raises(TransientPlatformError):
            asyncio.run(call_with_backoff(flaky, max_attempts=3, base_delay=0))

    assert flaky.calls == 3
    assert any("Retry failed" in r.getMessage() for r in caplog.records)


def test_non_transient_errors_are_not_retried():
    flaky = _Flaky([PlatformError("Missing Permissions", status_code=403)])

    with pytest.raises(PlatformError):
        asyncio.run(call_with_backoff(flaky, max_attempts=3, base_delay=0))

    assert flaky.calls == 1


def test_backoff_grows_and_honours_retry_after():
    plain = TransientPlatformError("server error")

    first = _backoff_seconds(1, 1.0, 30.0, plain)
    third = _backoff_seconds(3, 1.0, 30.0, plain)
    capped = _backoff_seconds(10, 1.0, 30.0, plain)

    assert 1.0 <= first <= 1.25
    assert 4.0 <= third <= 5.0
    assert capped <= 30.0 * 1.25
    limited = TransientPlatformError("slow down", status_code=429, retry_after=12.0)
    assert _backoff_seconds(1, 1.0, 30.0, limited) == 12.0
