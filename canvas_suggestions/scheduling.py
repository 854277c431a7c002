"""Debounce, single-flight and render coalescing primitives on asyncio."""

from __future__ import annotations

import asyncio
import enum
import logging
import os
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional

logger = logging.getLogger(__name__)

Job = Callable[[], Awaitable[None]]


@dataclass(slots=True)
class SchedulerConfig:
    """Timing used by the analysis scheduler, in seconds."""

    debounce_seconds: float = 0.22
    frame_interval: float = 1 / 60

    @classmethod
    def from_env(cls) -> "SchedulerConfig":
        config = cls(
            debounce_seconds=float(os.getenv("CANVAS_SUGGESTIONS_DEBOUNCE_MS", "220")) / 1000,
            frame_interval=float(os.getenv("CANVAS_SUGGESTIONS_FRAME_MS", "16.667")) / 1000,
        )
        if config.debounce_seconds < 0 or config.frame_interval < 0:
            raise ValueError("scheduler delays must not be negative")
        return config


class FlightState(enum.Enum):
    IDLE = "idle"
    RUNNING = "running"
    RUNNING_QUEUED = "running+queued"


class SingleFlight:
    """Runs ``job`` at most once at a time, coalescing triggers made mid-flight.

    A trigger while a pass runs marks the flight as queued; when the pass ends
    exactly one follow-up pass starts, however many triggers arrived. State
    only changes between awaits on the loop thread, so no lock is taken.
    """

    def __init__(self, job: Job, *, name: str = "job") -> None:
        self._job = job
        self.name = name
        self._state = FlightState.IDLE
        self._generation = 0
        self._active = 0
        self._idle_waiters: List[asyncio.Future] = []
        self.passes_started = 0

    @property
    def state(self) -> FlightState:
        return self._state

    @property
    def in_flight(self) -> bool:
        return self._state is not FlightState.IDLE

    async def run(self) -> bool:
        """Run a pass now, or queue one if a pass is already in flight.

        Returns False when the call only queued a follow-up.
        """

        if self._state is not FlightState.IDLE:
            self._state = FlightState.RUNNING_QUEUED
            return False
        self._state = FlightState.RUNNING
        generation = self._generation
        self._active += 1
        try:
            while True:
                self.passes_started += 1
                try:
                    await self._job()
                except Exception:
                    logger.exception("%s pass failed", self.name)
                if generation != self._generation:
                    return True
                if self._state is FlightState.RUNNING_QUEUED:
                    self._state = FlightState.RUNNING
                    continue
                self._state = FlightState.IDLE
                return True
        finally:
            self._active -= 1
            if self._active == 0:
                self._wake_idle_waiters()

    async def wait_idle(self) -> None:
        """Wait until no pass body is executing, detached passes included."""

        if self._active == 0:
            return
        waiter = asyncio.get_running_loop().create_future()
        self._idle_waiters.append(waiter)
        await waiter

    def reset(self) -> None:
        """Forget any in-flight or queued pass."""

        self._generation += 1
        self._state = FlightState.IDLE

    def _wake_idle_waiters(self) -> None:
        waiters, self._idle_waiters = self._idle_waiters, []
        for waiter in waiters:
            if not waiter.done():
                waiter.set_result(None)


class Debouncer:
    """Restartable timer; only the last ``schedule`` call in a window fires."""

    def __init__(self, callback: Callable[[], None], delay: float) -> None:
        self._callback = callback
        self.delay = delay
        self._handle: Optional[asyncio.TimerHandle] = None

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def schedule(self, *, immediate: bool = False) -> bool:
        """Restart the timer; returns False when no event loop is running.

        Without a running loop nothing is scheduled and the trigger is dropped.
        """

        self.cancel()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop, debounced call dropped")
            return False
        self._handle = loop.call_later(0 if immediate else self.delay, self._fire)
        return True

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self) -> None:
        self._handle = None
        self._callback()


class RenderCoalescer:
    """Keeps at most one pending render frame.

    A request arriving while a frame is pending is remembered and produces one
    more frame right after the pending one has rendered.
    """

    def __init__(self, render: Callable[[], None], frame_interval: float = 1 / 60) -> None:
        self._render = render
        self.frame_interval = frame_interval
        self._handle: Optional[asyncio.TimerHandle] = None
        self._deferred = False

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def request(self, *, immediate: bool = False) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None
        if immediate or loop is None:
            self.cancel()
            self._render()
            return
        if self._handle is not None:
            self._deferred = True
            return
        self._handle = loop.call_later(self.frame_interval, self._on_frame)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        self._deferred = False

    def _on_frame(self) -> None:
        self._handle = None
        try:
            self._render()
        except Exception:
            logger.exception("Render callback failed")
        if self._deferred:
            self._deferred = False
            self.request()
