"""The kernel: creates strands, and runs the reactor they're scheduled on

The kernel is deliberately thin. It hands out strand ids, defers the first
step of each new strand to the reactor, and runs the reactor until there's
nothing left to do. It keeps no registry of strands; a strand is kept alive
by whatever reactor callbacks refer to it, and by whoever holds its handle.

`wait` can be interrupted with an exception, which is raised out of `wait`
without touching any strand. Calling `wait` again carries on from where it
left off.

"""
from __future__ import annotations
from dataclasses import dataclass
from strandio.observer import StrandObserver, StrandTerminated
from strandio.reactor import Reactor, TrioReactor
from strandio.strand import Strand, is_coroutine
import logging
import outcome
import typing as t

logger = logging.getLogger(__name__)

__all__ = [
    "Kernel",
    "NeverSettledError",
    "start",
]

class NeverSettledError(RuntimeError):
    """The entry coroutine passed to `start` never returned or raised.

    The reactor ran out of work while the entry strand was still suspended;
    for example, it suspended on something which will never resume it, or
    it's waiting on another strand which is waiting on it.

    """
    def __init__(self, strand: Strand) -> None:
        super().__init__(f"the entry-point coroutine never settled; {strand} is still {strand.state.value}")
        self.strand = strand

class Kernel:
    "Runs strands on a reactor."
    def __init__(self, reactor: t.Optional[Reactor] = None) -> None:
        self.reactor = reactor if reactor is not None else TrioReactor()
        self._next_id = 1
        # only the most recent interrupt is kept
        self._interrupt_exn: t.Optional[BaseException] = None

    def execute(self, coroutine: t.Any) -> Strand:
        """Make a new strand running `coroutine`, and return it.

        None of `coroutine` runs until a later reactor turn, so the caller can
        attach an observer to the strand, or terminate it, first.

        """
        if not is_coroutine(coroutine):
            raise TypeError("strand entry point must be a generator or coroutine object", coroutine)
        strand = Strand(self._next_id, self, coroutine)
        self._next_id += 1
        logger.debug("Kernel: scheduling %s", strand)
        self.reactor.call_soon(strand.start)
        return strand

    def wait(self) -> None:
        """Run until there's nothing left to do, or until interrupted or stopped.

        If the kernel was interrupted, the interrupting exception is raised
        here. Strands which were still suspended stay that way, and calling
        `wait` again resumes running them.

        """
        self.reactor.run()
        if self._interrupt_exn is not None:
            exn, self._interrupt_exn = self._interrupt_exn, None
            raise exn

    def interrupt(self, exn: BaseException) -> None:
        """Stop the reactor, and make the current `wait` raise `exn`.

        If the kernel is interrupted again before `wait` raises, the earlier
        exception is forgotten.

        """
        if self._interrupt_exn is not None:
            logger.debug("Kernel: interrupt %r replaces pending %r", exn, self._interrupt_exn)
        else:
            logger.debug("Kernel: interrupted with %r", exn)
        self._interrupt_exn = exn
        self.reactor.stop()

    def stop(self) -> None:
        "Stop the reactor; the current `wait` returns normally."
        logger.debug("Kernel: stopping")
        self.reactor.stop()

@dataclass
class _EntryObserver(StrandObserver):
    result: t.Optional[outcome.Outcome] = None

    def success(self, strand: Strand, value: t.Any) -> None:
        self.result = outcome.Value(value)

    def failure(self, strand: Strand, exn: BaseException) -> None:
        self.result = outcome.Error(exn)

    def terminated(self, strand: Strand) -> None:
        self.result = outcome.Error(StrandTerminated(strand))

def start(coroutine: t.Any, reactor: t.Optional[Reactor] = None) -> t.Any:
    """Run `coroutine` on a fresh kernel, and return what it returns.

    This blocks until the kernel has nothing left to do. If the coroutine
    raised, we raise the same exception; if its strand was terminated, we
    raise StrandTerminated. An interrupt of the kernel is raised as is.

    """
    kernel = Kernel(reactor)
    strand = kernel.execute(coroutine)
    observer = _EntryObserver()
    strand.set_observer(observer)
    kernel.wait()
    if observer.result is None:
        raise NeverSettledError(strand)
    return observer.result.unwrap()
