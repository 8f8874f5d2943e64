"""Scroller-like target with hidden state, used by the example and benchmark."""

import time
from collections.abc import Iterator
from dataclasses import dataclass

from pyreflector.markers import accessor
from pyreflector.markers import default
from pyreflector.markers import for_type
from pyreflector.markers import static


@dataclass(frozen=True)
class ScrollerConfig:
    """Immutable tuning values a scroller is created with."""

    friction: float = 0.015
    fling_enabled: bool = True


class Scroller:
    """Animates a scroll between two offsets over a fixed duration."""

    _s_created: int = 0
    _s_clock: Iterator[int] | None = None

    def __init__(self, config: ScrollerConfig | None = None) -> None:
        """Initialize an idle scroller.

        :param config: Optional tuning values.
        """
        self._config: ScrollerConfig = config if config is not None else ScrollerConfig()
        self._start_x: int = 0
        self._final_x: int = 0
        self._start_time: int = 0
        self.__duration: int = 0
        self.__started: bool = False
        Scroller._s_created += 1

    @staticmethod
    def _uptime_millis() -> int:
        """Return the scroller clock in milliseconds.

        :returns: Monotonic milliseconds.
        """
        clock: Iterator[int] | None = Scroller._s_clock
        if clock is not None:
            return next(clock)
        return int(time.monotonic() * 1000)

    def start_scroll(self, start_x: int, dx: int, duration: int) -> None:
        """Start scrolling from ``start_x`` by ``dx`` over ``duration`` ms.

        :param start_x: Starting offset.
        :param dx: Distance to travel.
        :param duration: Duration in milliseconds.
        :raises ValueError: If ``duration`` is negative.
        """
        if duration < 0:
            raise ValueError("duration must not be negative")
        self._start_x = start_x
        self._final_x = start_x + dx
        self._start_time = self._uptime_millis()
        self.__duration = duration
        self.__started = True

    def _delta_x(self) -> int:
        return self._final_x - self._start_x

    def _position_at(self, elapsed: int, clamp: bool = True) -> int:
        """Return the offset after ``elapsed`` milliseconds.

        :param elapsed: Milliseconds since the scroll started.
        :param clamp: Stop at the final offset once the duration passed.
        :returns: Offset.
        """
        if self.__duration == 0 or (clamp is True and elapsed >= self.__duration):
            return self._final_x
        return self._start_x + (self._delta_x() * elapsed) // self.__duration

    def is_finished(self) -> bool:
        """Report whether the scroll has run its course.

        :returns: ``True`` when finished.
        """
        if self.__started is False:
            return True
        return self._uptime_millis() - self._start_time >= self.__duration


@for_type(Scroller)
class ScrollerReflector:
    """Reach the scroller's private state from tests."""

    @accessor("_start_x")
    def get_start_x(self) -> int: ...

    @accessor("_final_x")
    def get_final_x(self) -> int: ...

    @accessor("_final_x")
    def set_final_x(self, value: int) -> None: ...

    @accessor("__duration")
    def get_duration(self) -> int: ...

    @accessor("__duration")
    def set_duration(self, value: int) -> None: ...

    @accessor("_config")
    def get_config(self) -> ScrollerConfig: ...

    @static
    @accessor("_s_created")
    def get_created_count(self) -> int: ...

    @static
    @accessor("_s_clock")
    def set_clock(self, clock: Iterator[int] | None) -> None: ...

    @static
    def _uptime_millis(self) -> int: ...

    def _delta_x(self) -> int: ...

    def _position_at(self, elapsed: int, clamp: bool = True) -> int: ...

    @default
    def get_remaining_x(self) -> int:
        """Return how far the scroller still has to travel at its start.

        :returns: Remaining distance.
        """
        return self.get_final_x() - self.get_start_x()
