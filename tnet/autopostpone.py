"""Heuristics deciding whether writes should be postponed."""

from __future__ import annotations

import threading

CONSECUTIVE_SAME_PACKETS_NUM_THRESH = 70
LOOP_CNT_THRESH = 3
READING_LOCK_CONTENTION_THRESH = 5
_MAX_LOOP_CNT = 255


class PostponeWrite:
    """Turns postponed writing on under contention and off once traffic is steady."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._enabled = False
        self._prev_packets_num = 0
        self._same_packets_count = 0
        self._loop_cnt = 0
        self._try_lock_failed = 0

    def check_and_disable(self, packets_num: int) -> None:
        """Disable postponing after many rounds with the same packet count."""
        try:
            if self._prev_packets_num != 0 and self._prev_packets_num != packets_num:
                self._same_packets_count = 0
                return
            self._same_packets_count += 1
            if self._same_packets_count >= CONSECUTIVE_SAME_PACKETS_NUM_THRESH:
                self._same_packets_count = 0
                self.set(False)
        finally:
            self._prev_packets_num = packets_num

    def set(self, value: bool) -> None:
        """Turn postponing on or off."""
        with self._lock:
            self._enabled = bool(value)

    def enabled(self) -> bool:
        """Whether writes are postponed."""
        return self._enabled

    def reset_loop_cnt(self) -> None:
        self._loop_cnt = 0

    def inc_loop_cnt(self) -> None:
        if self._loop_cnt < _MAX_LOOP_CNT:
            self._loop_cnt += 1

    def check_loop_cnt(self) -> None:
        """Enable postponing once the handler has looped past the threshold."""
        if self._loop_cnt > LOOP_CNT_THRESH:
            self.set(True)

    def reset_reading_try_lock_fail(self) -> None:
        with self._lock:
            self._try_lock_failed = 0

    def inc_reading_try_lock_fail(self) -> None:
        """Count a failed read-lock attempt; enable postponing under heavy contention."""
        with self._lock:
            self._try_lock_failed += 1
            if self._try_lock_failed > READING_LOCK_CONTENTION_THRESH:
                self._enabled = True
                self._try_lock_failed = 0