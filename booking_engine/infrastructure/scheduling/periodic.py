from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class PeriodicTask:
    name: str
    interval: float  # seconds
    tick: Callable[[], Any]
    run_on_start: bool = False


class PeriodicScheduler:
    """
    Runs each task on its own daemon thread.
    Threads wait on a shared stop event between ticks, so stop() returns promptly.
    """

    def __init__(self, tasks: list[PeriodicTask] | None = None) -> None:
        self._tasks: dict[str, PeriodicTask] = {}
        self._threads: list[threading.Thread] = []
        self._stop = threading.Event()
        self._lock = threading.Lock()
        self._running = False
        self._logger = logging.getLogger(__name__)
        for task in tasks or []:
            self.add(task)

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def task_names(self) -> list[str]:
        return list(self._tasks)

    def add(self, task: PeriodicTask) -> None:
        if task.interval <= 0:
            raise ValueError(f"Task {task.name} needs a positive interval")
        with self._lock:
            if self._running:
                raise RuntimeError("Cannot add tasks while the scheduler is running")
            self._tasks[task.name] = task

    def start(self) -> None:
        with self._lock:
            if self._running:
                return
            self._stop.clear()
            self._threads = [
                threading.Thread(target=self._loop, args=(task,), name=f"periodic-{task.name}", daemon=True)
                for task in self._tasks.values()
            ]
            for thread in self._threads:
                thread.start()
            self._running = True
        self._logger.info("Periodic scheduler started", extra={"tasks": ",".join(self._tasks)})

    def stop(self, timeout: float = 5.0) -> None:
        with self._lock:
            if not self._running:
                return
            self._stop.set()
            threads, self._threads = self._threads, []
            self._running = False
        for thread in threads:
            thread.join(timeout=timeout)
        self._logger.info("Periodic scheduler stopped")

    def run_once(self, name: str) -> Any:
        task = self._tasks.get(name)
        if task is None:
            raise KeyError(f"Unknown task: {name}")
        return task.tick()

    def _loop(self, task: PeriodicTask) -> None:
        if task.run_on_start:
            self._safe_tick(task)
        while not self._stop.wait(timeout=task.interval):
            self._safe_tick(task)

    def _safe_tick(self, task: PeriodicTask) -> None:
        try:
            task.tick()
        except Exception:
            self._logger.exception("Periodic task failed", extra={"task": task.name})
