import itertools

import pytest

from errors import ConfigurationError, GateBypassFailed, InvalidDateRange, RetryExhausted
from retry_utils import linear_wait, with_retry


def test_linear_wait_grows_by_step():
    waits = linear_wait(2.0)
    next(waits)  # priming

    assert list(itertools.islice(waits, 3)) == [2.0, 4.0, 6.0]


async def test_returns_first_success():
    calls = []

    async def flaky():
        calls.append(1)
        if len(calls) == 1:
            raise GateBypassFailed("https://portal.test/Home/Welcome", 0)
        return "ok"

    assert await with_retry(flaky, "Search", max_attempts=2, step_s=0) == "ok"
    assert len(calls) == 2


async def test_exhaustion_names_label_and_attempts():
    async def always_fails():
        raise RuntimeError("portal down")

    with pytest.raises(RetryExhausted) as excinfo:
        await with_retry(always_fails, "Search 01/01/2026-01/31/2026", max_attempts=3, step_s=0)

    error = excinfo.value
    assert error.attempts == 3
    assert str(error) == "Search 01/01/2026-01/31/2026 failed after 3 attempts: portal down"
    assert isinstance(error.last_error, RuntimeError)


@pytest.mark.parametrize("fatal", [ConfigurationError("no key"), InvalidDateRange("too long")])
async def test_fatal_errors_are_not_retried(fatal):
    calls = []

    async def operation():
        calls.append(1)
        raise fatal

    with pytest.raises(type(fatal)):
        await with_retry(operation, "op", max_attempts=3, step_s=0)
    assert len(calls) == 1
