"""The requests a coroutine can yield to the engine

A coroutine running on a strand talks to the engine by yielding an
Instruction. The engine does not look at which instruction it got; it calls
`execute` with the strand that yielded it, and the instruction takes it from
there.

The contract for `execute` is that it arranges for exactly one future call to
`Strand.resume_with_value` or `Strand.resume_with_exception`. That call may
happen immediately, before `execute` returns; the engine copes with that
without growing the stack. If no call ever happens, the strand stays suspended
forever. If two calls happen, that's a bug in the instruction, and the second
one will resume the strand at some arbitrary later yield point.

The only exceptions are Return and Terminate, which end the strand instead of
resuming it.

Instructions which leave a strand waiting on the reactor also say what to do
if that strand is terminated while it waits; see `Strand.on_terminate`.

"""
from __future__ import annotations
from dataclasses import dataclass
from strandio.observer import StrandObserver, StrandTerminated
import abc
import functools
import logging
import typing as t
if t.TYPE_CHECKING:
    from strandio.strand import Strand

logger = logging.getLogger(__name__)

__all__ = [
    "Instruction",
    "Suspend",
    "Return",
    "Raise",
    "Noop",
    "Cooperate",
    "Sleep",
    "Execute",
    "CurrentStrand",
    "Terminate",
    "Join",
]

class Instruction:
    "Something a coroutine yields to ask the engine for a service."
    @abc.abstractmethod
    def execute(self, strand: Strand) -> None:
        "Perform this request on behalf of `strand`, which is now suspended."
        pass

    def __await__(self) -> t.Generator[Instruction, t.Any, t.Any]:
        return (yield self)

@dataclass(frozen=True)
class Suspend(Instruction):
    """Suspend the strand and hand it to `setup`.

    `setup` is called once, synchronously, and is responsible for making sure
    something eventually resumes the strand. Typically it registers a callback
    on the reactor which resumes the strand and unregisters itself.

    If `cancel` is passed, it's called with the strand if the strand is
    terminated while still suspended here, so that whatever `setup` registered
    can be torn down.

    """
    setup: t.Callable[[Strand], None]
    cancel: t.Optional[t.Callable[[Strand], None]] = None

    def execute(self, strand: Strand) -> None:
        if self.cancel is not None:
            strand.on_terminate(self.cancel)
        self.setup(strand)

@dataclass(frozen=True)
class Return(Instruction):
    """Settle the whole strand with `value`.

    This unwinds every frame on the strand, not just the one that yielded it;
    the frames below never see the value.

    """
    value: t.Any = None

    def execute(self, strand: Strand) -> None:
        strand.finish(self.value)

@dataclass(frozen=True)
class Raise(Instruction):
    "Throw `exn` into the frame that yielded this."
    exn: BaseException

    def execute(self, strand: Strand) -> None:
        strand.resume_with_exception(self.exn)

@dataclass(frozen=True)
class Noop(Instruction):
    "Resume immediately with None."
    def execute(self, strand: Strand) -> None:
        strand.resume_with_value(None)

@dataclass(frozen=True)
class Cooperate(Instruction):
    """Resume on the next reactor turn, letting other ready strands run first.

    On termination, the queued callback finds the strand terminated and does
    nothing, so no cleanup is needed.

    """
    def execute(self, strand: Strand) -> None:
        strand.kernel.reactor.call_soon(functools.partial(strand.resume_with_value, None))

@dataclass(frozen=True)
class Sleep(Instruction):
    "Resume with None after `seconds`; termination cancels the timer."
    seconds: float

    def execute(self, strand: Strand) -> None:
        timer = strand.kernel.reactor.call_later(
            self.seconds, functools.partial(strand.resume_with_value, None))
        strand.on_terminate(lambda strand: timer.cancel())

@dataclass(frozen=True)
class Execute(Instruction):
    "Start `coroutine` on a new strand of the same kernel, and resume with that Strand."
    coroutine: t.Any

    def execute(self, strand: Strand) -> None:
        strand.resume_with_value(strand.kernel.execute(self.coroutine))

@dataclass(frozen=True)
class CurrentStrand(Instruction):
    "Resume with the strand that's running this coroutine."
    def execute(self, strand: Strand) -> None:
        strand.resume_with_value(strand)

@dataclass(frozen=True)
class Terminate(Instruction):
    "Terminate the strand that yielded this; it never resumes."
    def execute(self, strand: Strand) -> None:
        strand.terminate()

@dataclass
class _JoinObserver(StrandObserver):
    """Resumes the joining strand on the next reactor turn.

    Resuming it right away would run it on the stack of the strand that just
    settled, so a chain of joins would nest one level deeper per link.

    """
    waiter: Strand

    def _resume_later(self, resume: t.Callable[[t.Any], None], arg: t.Any) -> None:
        self.waiter.kernel.reactor.call_soon(functools.partial(resume, arg))

    def success(self, strand: Strand, value: t.Any) -> None:
        self._resume_later(self.waiter.resume_with_value, value)

    def failure(self, strand: Strand, exn: BaseException) -> None:
        self._resume_later(self.waiter.resume_with_exception, exn)

    def terminated(self, strand: Strand) -> None:
        self._resume_later(self.waiter.resume_with_exception, StrandTerminated(strand))

@dataclass(frozen=True)
class Join(Instruction):
    """Wait for `target` to end, and resume with its value or exception.

    The joining strand is resumed on the reactor turn after `target` ends, or
    after the join if `target` had already ended.

    If `target` was terminated, we resume with StrandTerminated. This takes
    up the observer slot on `target`, so `target` must not already have an
    observer; if it does, the attachment error is thrown into the joining
    frame. Termination of the joining strand leaves the observer in place; it
    will resume a terminated strand, which is a no-op.

    """
    target: Strand

    def execute(self, strand: Strand) -> None:
        logger.debug("strand %d joining strand %d", strand.id, self.target.id)
        self.target.set_observer(_JoinObserver(strand))
