"""Request deadline propagation for store calls."""

import asyncio

import pytest

from app.achievements.achievement_errors import StorageError
from app.database.deadline import bounded, remaining_time, request_deadline


async def _value(value):
    return value


class TestRequestDeadline:
    def test_fallback_outside_request(self) -> None:
        assert remaining_time(5.0) == 5.0

    def test_deadline_shrinks_budget(self) -> None:
        with request_deadline(2.0):
            assert 0 < remaining_time(30.0) <= 2.0
        assert remaining_time(30.0) == 30.0

    async def test_call_within_budget(self) -> None:
        with request_deadline(1.0):
            assert await bounded(_value(7), 5.0, "lookup") == 7

    async def test_expired_deadline_fails_fast(self) -> None:
        with request_deadline(-1.0):
            with pytest.raises(StorageError, match="deadline exceeded before lookup"):
                await bounded(_value(7), 5.0, "lookup")

    async def test_compensation_ignores_request_deadline(self) -> None:
        with request_deadline(-1.0):
            assert await bounded(_value("done"), 5.0, "compensating delete", ignore_deadline=True) == "done"

    async def test_slow_call_times_out(self) -> None:
        with pytest.raises(StorageError, match="timed out") as exc_info:
            await bounded(asyncio.sleep(1.0), 0.01, "slow insert")
        assert isinstance(exc_info.value.__cause__, asyncio.TimeoutError)
