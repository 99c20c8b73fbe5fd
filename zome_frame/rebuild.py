"""Coalescing, optionally chunked rebuild of the scene layers.

A host (viewer loop, test, CLI) calls :meth:`RebuildScheduler.request_rebuild`
whenever parameters change and :meth:`RebuildScheduler.tick` once per
frame. Requests arriving while a rebuild is in flight collapse into a single
follow-up rebuild. Large models with visible rhombi build their heavy
components one per tick so the host stays responsive.
"""

from __future__ import annotations

import logging
from collections import deque
from typing import Callable, Deque, List

from .scene import SceneBuilder

__all__ = ["LAZY_N_THRESHOLD", "RebuildScheduler"]

log = logging.getLogger(__name__)

LAZY_N_THRESHOLD = 25

Task = Callable[[], None]


class RebuildScheduler:
    """Single-threaded rebuild state machine around a :class:`SceneBuilder`."""

    def __init__(self, builder: SceneBuilder, lazy_threshold: int = LAZY_N_THRESHOLD) -> None:
        self.builder = builder
        self.lazy_threshold = int(lazy_threshold)
        self.is_rebuilding = False
        self.pending = False
        self.rebuild_count = 0
        self._scheduled: Deque[Task] = deque()
        self.queue: Deque[List[Task]] = deque()

    # -- public API ---------------------------------------------------------

    def request_rebuild(self) -> bool:
        """Schedule a rebuild; returns ``False`` if it was coalesced."""
        if self.is_rebuilding:
            self.pending = True
            return False
        self._schedule()
        return True

    def tick(self) -> bool:
        """Advance one frame. Returns ``True`` if any work ran."""
        if self._scheduled:
            self._scheduled.popleft()()
            return True
        if self.queue:
            for task in self.queue.popleft():
                task()
            return True
        return False

    @property
    def idle(self) -> bool:
        return not (self.is_rebuilding or self._scheduled or self.queue)

    def run_until_idle(self, max_ticks: int = 1000) -> int:
        """Tick until no work remains; returns the number of busy ticks."""
        ticks = 0
        while ticks < max_ticks and self.tick():
            ticks += 1
        return ticks

    def uses_lazy_path(self) -> bool:
        params = self.builder.params
        return params.n > self.lazy_threshold and params.rhombi_visible

    # -- internals ----------------------------------------------------------

    def _schedule(self) -> None:
        self.is_rebuilding = True
        self._scheduled.append(self._execute)

    def _execute(self) -> None:
        b = self.builder
        # A fresh rebuild drops chunks left over from the previous one.
        if self.queue:
            log.debug("Dropping %d queued rebuild chunks", len(self.queue))
        self.queue.clear()
        self.rebuild_count += 1
        try:
            if self.uses_lazy_path():
                b.build_polygons()
                b.build_axis()
                self.queue.append([b.build_lines])
                self.queue.append([b.build_rhombi])
                self.queue.append([b.build_cap])
                self.queue.append([b.build_structure])
                log.info("Rebuild #%d (lazy, N=%d)", self.rebuild_count, b.params.n)
            else:
                b.build_polygons()
                b.build_lines()
                b.build_rhombi()
                b.build_cap()
                b.build_axis()
                b.build_structure()
                log.info("Rebuild #%d (N=%d)", self.rebuild_count, b.params.n)
        finally:
            self.is_rebuilding = False
        if self.pending:
            self.pending = False
            self._schedule()
