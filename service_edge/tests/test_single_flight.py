"""
Unit tests for SingleFlight.
"""

import asyncio

import pytest

from service_edge.app.caching.single_flight import SingleFlight


class TestSingleFlight:
    """Test cases for SingleFlight."""

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_run(self):
        """Callers for the same key share one execution and its result."""
        flight = SingleFlight()
        runs = []

        async def operation():
            runs.append(1)
            await asyncio.sleep(0.02)
            return "value"

        results = await asyncio.gather(*(flight.do("k", operation) for _ in range(5)))

        assert len(runs) == 1
        assert [value for value, _ in results] == ["value"] * 5
        assert sorted(shared for _, shared in results) == [False, True, True, True, True]
        assert len(flight) == 0

    @pytest.mark.asyncio
    async def test_sequential_calls_run_again(self):
        flight = SingleFlight()
        runs = []

        async def operation():
            runs.append(1)
            return len(runs)

        first, _ = await flight.do("k", operation)
        second, _ = await flight.do("k", operation)

        assert (first, second) == (1, 2)

    @pytest.mark.asyncio
    async def test_keys_are_independent(self):
        flight = SingleFlight()
        gate = asyncio.Event()

        async def operation():
            await gate.wait()
            return "done"

        first = asyncio.ensure_future(flight.do("a", operation))
        second = asyncio.ensure_future(flight.do("b", operation))
        await asyncio.sleep(0)

        assert flight.in_flight("a") and flight.in_flight("b")
        assert len(flight) == 2

        gate.set()
        await asyncio.gather(first, second)
        assert len(flight) == 0

    @pytest.mark.asyncio
    async def test_error_reaches_every_waiter(self):
        """A failing operation raises in every caller and clears the entry."""
        flight = SingleFlight()
        runs = []

        async def operation():
            runs.append(1)
            await asyncio.sleep(0.01)
            raise RuntimeError("boom")

        results = await asyncio.gather(*(flight.do("k", operation) for _ in range(3)), return_exceptions=True)

        assert len(runs) == 1
        assert all(isinstance(result, RuntimeError) for result in results)
        assert not flight.in_flight("k")

    @pytest.mark.asyncio
    async def test_cancelled_waiter_leaves_operation_running(self):
        """Cancelling one caller neither cancels the operation nor the other callers."""
        flight = SingleFlight()
        gate = asyncio.Event()

        async def operation():
            await gate.wait()
            return "value"

        first = asyncio.ensure_future(flight.do("k", operation))
        second = asyncio.ensure_future(flight.do("k", operation))
        await asyncio.sleep(0)

        first.cancel()
        with pytest.raises(asyncio.CancelledError):
            await first

        assert flight.in_flight("k")
        gate.set()
        assert await second == ("value", True)
