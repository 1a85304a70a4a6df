import asyncio

import pytest

from core.clock import LoopClock, ManualClock


class TestManualClock:
    """Test suite for the virtual clock."""

    def test_fires_in_deadline_order(self):
        clock = ManualClock()
        fired = []
        clock.call_later(10, fired.append, "late")
        clock.call_later(5, fired.append, "early")
        clock.call_later(5, fired.append, "early-second")

        clock.advance(4)
        assert fired == []
        clock.advance(1)
        assert fired == ["early", "early-second"]
        clock.advance(5)
        assert fired == ["early", "early-second", "late"]
        assert clock.time() == 10

    def test_callback_sees_its_deadline(self):
        clock = ManualClock(start=100)
        seen = []
        clock.call_later(7, lambda: seen.append(clock.time()))
        clock.advance(60)
        assert seen == [107]
        assert clock.time() == 160

    def test_cancelled_timer_never_fires(self):
        clock = ManualClock()
        fired = []
        handle = clock.call_later(1, fired.append, "x")
        handle.cancel()

        assert handle.cancelled()
        assert clock.pending() == []
        clock.advance(10)
        assert fired == []

    def test_nested_scheduling_within_window(self):
        clock = ManualClock()
        fired = []

        def first():
            fired.append(("first", clock.time()))
            clock.call_later(3, lambda: fired.append(("second", clock.time())))

        clock.call_later(2, first)
        clock.advance(5)
        assert fired == [("first", 2), ("second", 5)]

    def test_negative_delay_fires_immediately(self):
        clock = ManualClock(start=50)
        fired = []
        clock.call_later(-5, fired.append, "now")
        clock.advance(0)
        assert fired == ["now"]

    def test_pending_sorted(self):
        clock = ManualClock()
        clock.call_later(30, print)
        clock.call_later(10, print)
        assert [c.when for c in clock.pending()] == [10, 30]


class TestLoopClock:

    @pytest.mark.asyncio
    async def test_call_later_on_running_loop(self):
        clock = LoopClock()
        fired = asyncio.Event()
        start = clock.time()
        clock.call_later(0.01, fired.set)

        await asyncio.wait_for(fired.wait(), timeout=2)
        assert clock.time() >= start
        assert clock.loop is asyncio.get_running_loop()

    @pytest.mark.asyncio
    async def test_handle_can_be_cancelled(self):
        clock = LoopClock()
        fired = []
        handle = clock.call_later(0.01, fired.append, "x")
        handle.cancel()
        await asyncio.sleep(0.05)
        assert fired == []
        assert handle.cancelled()

    def test_requires_loop_outside_asyncio(self):
        with pytest.raises(RuntimeError):
            LoopClock().time()
