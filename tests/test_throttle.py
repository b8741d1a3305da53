from webvisor.recorder.page import ManualScheduler
from webvisor.recorder.throttle import Throttle


def _throttle(interval=50):
    scheduler = ManualScheduler()
    calls = []
    throttle = Throttle(lambda *a: calls.append((scheduler.now(), a)), interval,
                        scheduler.now, scheduler.call_later)
    return scheduler, throttle, calls


class TestThrottle:
    def test_leading_call_runs_immediately(self):
        scheduler, throttle, calls = _throttle()
        throttle(1)
        assert calls == [(0, (1,))]

    def test_one_trailing_call_with_latest_arguments(self):
        scheduler, throttle, calls = _throttle()
        throttle(1)
        scheduler.advance(10)
        throttle(2)
        scheduler.advance(10)
        throttle(3)
        assert throttle.pending
        scheduler.advance(100)
        assert calls == [(0, (1,)), (50, (3,))]
        assert not throttle.pending

    def test_quiet_period_resets_the_window(self):
        scheduler, throttle, calls = _throttle()
        throttle("a")
        scheduler.advance(60)
        throttle("b")
        assert [c[1] for c in calls] == [("a",), ("b",)]

    def test_cancel_drops_the_trailing_call(self):
        scheduler, throttle, calls = _throttle()
        throttle(1)
        throttle(2)
        throttle.cancel()
        scheduler.advance(100)
        assert calls == [(0, (1,))]


def test_loop_scheduler_drives_a_throttle():
    import asyncio
    from webvisor.recorder.page import LoopScheduler

    async def scenario():
        scheduler = LoopScheduler()
        calls = []
        throttle = Throttle(calls.append, 20, scheduler.now, scheduler.call_later)
        throttle(1)
        throttle(2)
        await asyncio.sleep(0.1)
        return calls

    assert asyncio.run(scenario()) == [1, 2]
