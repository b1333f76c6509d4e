# SPDX-License-Identifier: Apache-2.0

"""
Debounced background tasks.

Used for lookups triggered by typing (postal code, CPF/e-mail availability):
only the last call in a burst runs, and results of superseded or cancelled
runs are dropped.
"""

import logging
import threading
from typing import Any, Callable, Dict, Hashable, Optional

logger = logging.getLogger(__name__)

TimerFactory = Callable[[float, Callable[[], None]], Any]


def _default_timer_factory(delay: float, callback: Callable[[], None]) -> threading.Timer:
    timer = threading.Timer(delay, callback)
    timer.daemon = True
    return timer


class DebouncedTask:
    """
    Run executor_fn once the calls to schedule() go quiet for `delay` seconds.

    Every schedule() or cancel() bumps a generation counter. A run captures
    the generation it was started for and its result reaches on_result only
    if no newer schedule() or cancel() happened meanwhile.

    Args:
        delay: quiet period in seconds
        executor_fn: blocking work, called on the timer thread
        on_result: receives the executor's return value
        on_error: receives exceptions raised by executor_fn; when omitted
            they are logged
        timer_factory: builds a started-later timer, replaceable in tests
    """

    def __init__(
        self,
        delay: float,
        executor_fn: Callable[..., Any],
        on_result: Callable[[Any], None],
        on_error: Optional[Callable[[Exception], None]] = None,
        timer_factory: Optional[TimerFactory] = None,
        name: str = "task"
    ):
        if delay < 0:
            raise ValueError("Debounce delay cannot be negative")
        self.delay = delay
        self.executor_fn = executor_fn
        self.on_result = on_result
        self.on_error = on_error
        self.name = name
        self._timer_factory = timer_factory or _default_timer_factory
        self._lock = threading.Lock()
        self._generation = 0
        self._timer = None
        self._running_generation = None

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def pending(self) -> bool:
        """True while a run is scheduled or executing."""
        with self._lock:
            return self._timer is not None or self._running_generation == self._generation

    def schedule(self, *args: Any, **kwargs: Any) -> int:
        """
        Schedule a run, superseding any earlier one.

        Returns:
            Generation number of the new run
        """
        with self._lock:
            self._generation += 1
            generation = self._generation
            if self._timer is not None:
                self._timer.cancel()
            self._timer = self._timer_factory(
                self.delay, lambda: self._run(generation, args, kwargs)
            )
            timer = self._timer
        timer.start()
        return generation

    def cancel(self) -> None:
        """Drop the pending run and discard the result of one in flight."""
        with self._lock:
            self._generation += 1
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None

    def _is_current(self, generation: int) -> bool:
        with self._lock:
            return generation == self._generation

    def _run(self, generation: int, args: tuple, kwargs: dict) -> None:
        with self._lock:
            if generation != self._generation:
                return
            self._timer = None
            self._running_generation = generation

        try:
            try:
                result = self.executor_fn(*args, **kwargs)
            except Exception as e:
                if not self._is_current(generation):
                    return
                if self.on_error is not None:
                    self.on_error(e)
                else:
                    logger.error(f"Debounced task '{self.name}' failed: {str(e)}", exc_info=True)
                return

            if self._is_current(generation):
                self.on_result(result)
            else:
                logger.debug(f"Discarding superseded result of debounced task '{self.name}'")
        finally:
            with self._lock:
                if self._running_generation == generation:
                    self._running_generation = None


class DebouncedTaskGroup:
    """One DebouncedTask per key, e.g. per form field."""

    def __init__(self, delay: float, timer_factory: Optional[TimerFactory] = None):
        self.delay = delay
        self._timer_factory = timer_factory
        self._tasks: Dict[Hashable, DebouncedTask] = {}
        self._lock = threading.Lock()

    def register(
        self,
        key: Hashable,
        executor_fn: Callable[..., Any],
        on_result: Callable[[Any], None],
        on_error: Optional[Callable[[Exception], None]] = None
    ) -> DebouncedTask:
        with self._lock:
            task = DebouncedTask(
                self.delay, executor_fn, on_result, on_error,
                timer_factory=self._timer_factory, name=str(key)
            )
            previous = self._tasks.get(key)
            self._tasks[key] = task
        if previous is not None:
            previous.cancel()
        return task

    def get(self, key: Hashable) -> Optional[DebouncedTask]:
        with self._lock:
            return self._tasks.get(key)

    def schedule(self, key: Hashable, *args: Any, **kwargs: Any) -> int:
        task = self.get(key)
        if task is None:
            raise KeyError(f"No debounced task registered for '{key}'")
        return task.schedule(*args, **kwargs)

    def cancel(self, key: Hashable) -> None:
        task = self.get(key)
        if task is not None:
            task.cancel()

    def cancel_all(self) -> None:
        with self._lock:
            tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()

    @property
    def pending(self) -> bool:
        with self._lock:
            tasks = list(self._tasks.values())
        return any(task.pending for task in tasks)
