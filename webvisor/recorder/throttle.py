from typing import Any, Callable, Optional


class Throttle:
    """
    Leading-edge throttle with a single trailing call.

    The first call in a quiet period runs immediately. Calls inside the
    window schedule one trailing run at the window end with the latest
    arguments; further calls only replace those arguments.
    """

    def __init__(self, fn: Callable[..., Any], interval_ms: float,
                 clock: Callable[[], int], call_later: Callable[[float, Callable[[], None]], Any]):
        self.fn = fn
        self.interval_ms = interval_ms
        self._clock = clock
        self._call_later = call_later
        self._last: Optional[int] = None
        self._timer = None
        self._pending_args: tuple = ()

    @property
    def pending(self) -> bool:
        return self._timer is not None

    def __call__(self, *args) -> None:
        now = self._clock()
        remaining = 0 if self._last is None else self.interval_ms - (now - self._last)
        if remaining <= 0:
            self.cancel()
            self._last = now
            self.fn(*args)
            return
        self._pending_args = args
        if self._timer is None:
            self._timer = self._call_later(remaining, self._trailing)

    def _trailing(self) -> None:
        self._timer = None
        self._last = self._clock()
        args, self._pending_args = self._pending_args, ()
        self.fn(*args)

    def cancel(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._pending_args = ()
