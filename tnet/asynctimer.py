"""Asynchronous timers managed by a time wheel."""

from __future__ import annotations

import queue
import threading
import time
from typing import Any, Callable

DEFAULT_INTERVAL = 1.0
DEFAULT_SLOT_NUM = 60

_NS = 1_000_000_000
_ADD = "add"
_DELETE = "delete"
_QUIT = "quit"

Callback = Callable[[Any], None]


class InvalidParamError(ValueError):
    """A time wheel parameter is out of range."""


class ShortDelayError(ValueError):
    """The timer's delay is shorter than one tick of the wheel."""


def _to_ns(seconds: float) -> int:
    return round(seconds * _NS)


def _round_to(value: int, multiple: int) -> int:
    """Round to the nearest multiple, halves away from zero."""
    if multiple <= 0:
        return value
    magnitude = abs(value)
    remainder = magnitude % multiple
    magnitude -= remainder
    if remainder * 2 >= multiple:
        magnitude += multiple
    return -magnitude if value < 0 else magnitude


def _trunc_div(a: int, b: int) -> int:
    q = abs(a) // b
    return -q if a < 0 else q


class Timer:
    """Calls ``expired_handle(data)`` once ``timeout`` seconds pass without a refresh."""

    def __init__(self, data: Any, expired_handle: Callback | None, timeout: float) -> None:
        self.data = data
        self.expired_handle = expired_handle
        self.timeout = timeout
        self._timeout = _to_ns(timeout)
        self._delay = self._timeout
        self._begin = 0
        self._circle = 0
        self._active = False

    @property
    def is_active(self) -> bool:
        return self._active


class TimeWheel:
    """Keeps timers in ``slot_num`` slots, advancing one slot every ``interval`` seconds."""

    def __init__(self, interval: float, slot_num: int) -> None:
        if interval <= 0 or slot_num <= 0:
            raise InvalidParamError("interval and slot_num should be greater than 0")
        self.interval = interval
        self.slot_num = slot_num
        self._interval = _to_ns(interval)
        if self._interval <= 0:
            raise InvalidParamError("interval is too small")
        self._now = time.monotonic_ns()
        self._curr = 0
        self._slots: list[set[Timer]] = [set() for _ in range(slot_num)]
        self._timer_slot: dict[Timer, set[Timer]] = {}
        self._commands: queue.Queue[tuple[str, Timer | None]] = queue.Queue()
        self._thread: threading.Thread | None = None

    def start(self) -> None:
        """Start the wheel's worker thread; call before relying on any timer."""
        self._thread = threading.Thread(target=self._run, name="time-wheel", daemon=True)
        self._thread.start()

    def add(self, timer: Timer) -> None:
        """Arm ``timer``, or restart its countdown if it is already armed."""
        if timer._active:
            timer._begin = self._now
            timer._delay = timer._timeout
            return
        if timer._delay < self._interval:
            raise ShortDelayError("delay time is too short")
        timer._active = True
        timer._delay = _round_to(timer._timeout, self._interval)
        timer._begin = self._now
        self._commands.put((_ADD, timer))

    def delete(self, timer: Timer) -> None:
        """Disarm ``timer``; it will not fire."""
        timer._active = False
        self._commands.put((_DELETE, timer))

    def stop(self) -> None:
        """Stop the wheel and forget every timer."""
        self._commands.put((_QUIT, None))

    def _run(self) -> None:
        next_tick = time.monotonic_ns() + self._interval
        while True:
            while time.monotonic_ns() >= next_tick:
                self._tick()
                next_tick += self._interval
            remaining = max(0, next_tick - time.monotonic_ns()) / _NS
            try:
                kind, timer = self._commands.get(timeout=remaining)
            except queue.Empty:
                continue
            if kind == _QUIT:
                self._timer_slot.clear()
                for slot in self._slots:
                    slot.clear()
                return
            if kind == _ADD:
                self._place(timer)
            else:
                self._remove(timer)

    def _remove(self, timer: Timer) -> None:
        slot = self._timer_slot.pop(timer, None)
        if slot is not None:
            slot.discard(timer)

    def _place(self, timer: Timer) -> None:
        self._remove(timer)
        delay = timer._delay
        index = (self._curr + _trunc_div(delay, self._interval)) % self.slot_num
        timer._circle = _trunc_div(_trunc_div(delay - self._interval, self._interval), self.slot_num)
        slot = self._slots[index]
        slot.add(timer)
        self._timer_slot[timer] = slot

    def _tick(self) -> None:
        self._now += self._interval
        self._curr = (self._curr + 1) % self.slot_num
        slot = self._slots[self._curr]
        for timer in list(slot):
            if timer._circle != 0:
                timer._circle -= 1
                continue
            slot.discard(timer)
            self._timer_slot.pop(timer, None)
            timer._active = False
            threading.Thread(target=self._check_expire, args=(timer,), daemon=True).start()

    def _check_expire(self, timer: Timer) -> None:
        if timer.expired_handle is None:
            return
        actual = self._now - timer._begin
        if actual >= timer._timeout:
            timer.expired_handle(timer.data)
            return
        timer._delay = timer._timeout - actual
        try:
            self.add(timer)
        except ShortDelayError:
            timer.expired_handle(timer.data)


_default_wheel = TimeWheel(DEFAULT_INTERVAL, DEFAULT_SLOT_NUM)
_default_wheel.start()


def add(timer: Timer) -> None:
    """Arm ``timer`` on the shared one-second wheel."""
    _default_wheel.add(timer)


def delete(timer: Timer) -> None:
    """Disarm ``timer`` on the shared wheel."""
    _default_wheel.delete(timer)


def stop() -> None:
    """Stop the shared wheel."""
    _default_wheel.stop()