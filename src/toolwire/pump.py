"""CooperativePump — drives a ProtocolSession from the host's frame tick.

The host owns the only thread that touches the session.  Instead of
blocking until a response arrives, callers register interest (a pending
request, or :meth:`CooperativePump.wait_for`) and the pump re-checks it on
every tick until it resolves or its deadline passes.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from concurrent.futures import Future
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from toolwire.errors import ToolwireError
from toolwire.session.protocol import ProtocolSession

logger = logging.getLogger(__name__)

TickCallback = Callable[[], None]


@runtime_checkable
class HostLoop(Protocol):
    """A single-threaded host that calls registered callbacks once per frame."""

    def add_tick_callback(self, callback: TickCallback) -> None: ...

    def remove_tick_callback(self, callback: TickCallback) -> None: ...


class FrameLoop:
    """A minimal cooperative host: a list of callbacks ticked at a frame rate.

    Stands in for an editor's update loop when toolwire runs from a script
    or the command line.
    """

    def __init__(
        self,
        frame_interval: float = 1 / 60,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._frame_interval = frame_interval
        self._clock = clock
        self._sleep = sleep
        self._callbacks: list[TickCallback] = []
        self.frame_count = 0

    def add_tick_callback(self, callback: TickCallback) -> None:
        if callback not in self._callbacks:
            self._callbacks.append(callback)

    def remove_tick_callback(self, callback: TickCallback) -> None:
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    @property
    def callback_count(self) -> int:
        return len(self._callbacks)

    def tick(self) -> None:
        """Run every registered callback once."""
        self.frame_count += 1
        # Snapshot: callbacks may (un)register during the frame.
        for callback in list(self._callbacks):
            try:
                callback()
            except Exception:
                logger.exception("Tick callback %r raised", callback)

    def run_until(
        self,
        predicate: Callable[[], bool],
        timeout: float | None = None,
    ) -> bool:
        """Tick frames until *predicate* holds or *timeout* elapses.

        Returns:
            ``True`` if the predicate became true, ``False`` on timeout.
        """
        deadline = None if timeout is None else self._clock() + timeout
        while True:
            self.tick()
            if predicate():
                return True
            if deadline is not None and self._clock() >= deadline:
                return False
            self._sleep(self._frame_interval)


@dataclass(slots=True)
class _Waiter:
    predicate: Callable[[], bool]
    deadline: float
    future: Future[bool]


class CooperativePump:
    """Binds :meth:`ProtocolSession.poll` to a :class:`HostLoop` tick.

    :meth:`tick` never raises: any exception from the session is logged
    and turned into a session failure, so the host's frame loop is never
    disturbed.  The pump detaches itself once the session is finished and
    no waiters remain.
    """

    def __init__(
        self,
        session: ProtocolSession,
        host: HostLoop | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._session = session
        self._host = host
        self._clock = clock
        self._attached = False
        self._waiters: list[_Waiter] = []

    @property
    def attached(self) -> bool:
        return self._attached

    def attach(self) -> None:
        """Register :meth:`tick` with the host loop."""
        if self._host is None:
            msg = "CooperativePump has no host loop to attach to"
            raise ValueError(msg)
        if self._attached:
            return
        self._host.add_tick_callback(self.tick)
        self._attached = True

    def detach(self) -> None:
        if not self._attached or self._host is None:
            return
        self._host.remove_tick_callback(self.tick)
        self._attached = False

    def wait_for(
        self,
        predicate: Callable[[], bool],
        timeout: float,
    ) -> Future[bool]:
        """Resolve ``True`` on the first tick where *predicate* holds.

        Resolves ``False`` once *timeout* seconds pass without it.
        """
        future: Future[bool] = Future()
        if predicate():
            future.set_result(True)
            return future
        self._waiters.append(_Waiter(predicate, self._clock() + timeout, future))
        return future

    def tick(self) -> None:
        """One frame of work.  Safe to call directly without a host."""
        try:
            self._session.poll()
        except Exception as exc:
            logger.exception("%s: poll raised; failing session", self._session.name)
            try:
                self._session.fail(
                    ToolwireError(f"Internal error while polling: {exc}"),
                    context="internal",
                )
            except Exception:
                logger.exception("%s: could not fail session", self._session.name)

        self._check_waiters()

        if self._session.state.is_terminal and not self._waiters:
            self.detach()

    def _check_waiters(self) -> None:
        if not self._waiters:
            return
        now = self._clock()
        for waiter in list(self._waiters):
            try:
                satisfied = waiter.predicate()
            except Exception:
                logger.exception("%s: wait predicate raised", self._session.name)
                satisfied = False
                waiter.deadline = now
            if satisfied:
                self._waiters.remove(waiter)
                waiter.future.set_result(True)
            elif now >= waiter.deadline:
                self._waiters.remove(waiter)
                waiter.future.set_result(False)
