"""The event reactor that strands are scheduled on

The kernel needs very little from a reactor: a way to run a callback on a
later turn, timers, a way to be called back when a file descriptor becomes
readable, and a blocking `run` which returns once there's nothing left to do
or someone calls `stop`. That's the Reactor interface.

TrioReactor implements it on top of trio. Each call to `run` is one call to
`trio.run`; between calls, the pending callbacks, timers and readers are kept
on the reactor, so a stopped reactor can be run again and pick up where it
left off.

A turn of the reactor is:
1. Run the callbacks which were queued before the turn started. Callbacks
   queued by those callbacks wait for the next turn.
2. Run the timers which are due.
3. Run the reader callbacks for file descriptors which trio has told us are
   readable.
4. If there's nothing queued, no live timer and no reader, return from `run`.
5. Otherwise, block until the next timer is due or a reader is readable. If
   there are already callbacks queued, we don't block, but we still give trio
   a chance to poll for readiness.

`stop` is checked before each callback, so the callback calling `stop` is the
last one to run.

"""
from __future__ import annotations
from dataclasses import dataclass
import abc
import collections
import heapq
import itertools
import logging
import math
import outcome
import time
import trio
import typing as t

logger = logging.getLogger(__name__)

__all__ = [
    "Reactor",
    "Timer",
    "TrioReactor",
]

Callback = t.Callable[[], None]

class FileDescriptorLike(t.Protocol):
    def fileno(self) -> int: ...

def _fileno(fd: t.Union[int, FileDescriptorLike]) -> int:
    if isinstance(fd, int):
        return fd
    return fd.fileno()

@dataclass(eq=False)
class Timer:
    "A handle for a callback scheduled with `Reactor.call_later`."
    deadline: float
    callback: Callback
    cancelled: bool = False

    def cancel(self) -> None:
        "Prevent the callback from running. Does nothing if it already ran."
        self.cancelled = True

class Reactor:
    "The capabilities the kernel needs from an event loop."
    @abc.abstractmethod
    def call_soon(self, callback: Callback) -> None:
        "Run `callback` on a future turn, after every callback already queued."
        pass

    @abc.abstractmethod
    def call_later(self, delay: float, callback: Callback) -> Timer:
        "Run `callback` once `delay` seconds have passed."
        pass

    @abc.abstractmethod
    def add_reader(self, fd: t.Union[int, FileDescriptorLike], callback: Callback) -> None:
        "Call `callback` whenever `fd` is readable, until `remove_reader` is called."
        pass

    @abc.abstractmethod
    def remove_reader(self, fd: t.Union[int, FileDescriptorLike]) -> None:
        pass

    @abc.abstractmethod
    def run(self) -> None:
        "Dispatch events until there's nothing left to wait for, or until `stop` is called."
        pass

    @abc.abstractmethod
    def stop(self) -> None:
        "Make the current `run` return before dispatching anything else."
        pass

@dataclass(eq=False)
class _Reader:
    callback: Callback
    readable: bool = False
    # present while a trio task is waiting for this fd to be readable
    cancel_scope: t.Optional[trio.CancelScope] = None

class TrioReactor(Reactor):
    "A Reactor which blocks using trio."
    def __init__(self) -> None:
        self._ready: t.Deque[Callback] = collections.deque()
        # a heap, ordered by deadline and then by scheduling order
        self._timers: t.List[t.Tuple[float, int, Timer]] = []
        self._timer_counter = itertools.count()
        self._readers: t.Dict[int, _Reader] = {}
        self._wakeup = trio.Event()
        self._stopped = False
        self._running = False

    def call_soon(self, callback: Callback) -> None:
        self._ready.append(callback)

    def call_later(self, delay: float, callback: Callback) -> Timer:
        timer = Timer(time.monotonic() + max(delay, 0), callback)
        heapq.heappush(self._timers, (timer.deadline, next(self._timer_counter), timer))
        return timer

    def add_reader(self, fd: t.Union[int, FileDescriptorLike], callback: Callback) -> None:
        number = _fileno(fd)
        if number in self._readers:
            raise Exception("already watching fd for readability", number)
        self._readers[number] = _Reader(callback)

    def remove_reader(self, fd: t.Union[int, FileDescriptorLike]) -> None:
        reader = self._readers.pop(_fileno(fd), None)
        if reader is not None and reader.cancel_scope is not None:
            reader.cancel_scope.cancel()

    def stop(self) -> None:
        logger.debug("TrioReactor: stop requested")
        self._stopped = True

    def run(self) -> None:
        if self._running:
            raise RuntimeError("reactor is already running")
        self._stopped = False
        self._running = True
        try:
            trio.run(self._run)
        finally:
            self._running = False
            for reader in self._readers.values():
                reader.cancel_scope = None

    def _is_idle(self) -> bool:
        return not (self._ready or self._readers
                    or any(not timer.cancelled for _, _, timer in self._timers))

    async def _run(self) -> None:
        async with trio.open_nursery() as nursery:
            # run the loop outside the nursery's exception handling, so that an
            # exception from a callback comes out of trio.run as itself
            result = await outcome.acapture(self._loop, nursery)
            nursery.cancel_scope.cancel()
        result.unwrap()

    async def _loop(self, nursery: trio.Nursery) -> None:
        self._wakeup = trio.Event()
        while True:
            if self._run_turn():
                logger.debug("TrioReactor: stopped")
                return
            if self._is_idle():
                logger.debug("TrioReactor: idle")
                return
            for number, reader in self._readers.items():
                if reader.cancel_scope is None and not reader.readable:
                    reader.cancel_scope = trio.CancelScope()
                    nursery.start_soon(self._wait_readable, number, reader)
            if self._ready:
                await trio.sleep(0)
            else:
                with trio.move_on_after(self._time_to_next_timer()):
                    await self._wakeup.wait()
                self._wakeup = trio.Event()

    def _run_turn(self) -> bool:
        "Run one turn of callbacks; return True if we were stopped partway."
        for _ in range(len(self._ready)):
            if self._stopped:
                return True
            self._ready.popleft()()
        now = time.monotonic()
        while self._timers and self._timers[0][0] <= now:
            if self._stopped:
                return True
            _, _, timer = heapq.heappop(self._timers)
            if not timer.cancelled:
                timer.cancelled = True
                timer.callback()
        for number, reader in list(self._readers.items()):
            if self._stopped:
                return True
            # a previous reader callback may have removed this one
            if reader.readable and self._readers.get(number) is reader:
                reader.readable = False
                reader.callback()
        return self._stopped

    def _time_to_next_timer(self) -> float:
        while self._timers and self._timers[0][2].cancelled:
            heapq.heappop(self._timers)
        if not self._timers:
            return math.inf
        return max(self._timers[0][0] - time.monotonic(), 0)

    async def _wait_readable(self, number: int, reader: _Reader) -> None:
        assert reader.cancel_scope is not None
        with reader.cancel_scope:
            try:
                await trio.lowlevel.wait_readable(number)
            except OSError as e:
                # can't be polled (e.g. a regular file); let the callback find
                # out what's wrong by trying to read it
                logger.debug("TrioReactor: can't wait for fd %d: %s", number, e)
            reader.readable = True
            self._wakeup.set()
        reader.cancel_scope = None
