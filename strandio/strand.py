"""The strand: one cooperatively-scheduled computation, and the engine that drives it

A strand runs a stack of coroutines. The bottom of the stack is the entry
coroutine passed to `Kernel.execute`. When the top coroutine yields another
coroutine, we push it and run it; when it returns or raises, we pop it and
send the value, or throw the exception, into the coroutine below. This gives
coroutines ordinary call and exception semantics, without using the Python
stack to hold the chain of callers.

When the top coroutine yields an Instruction, we execute it, and the strand is
suspended until the instruction (or whatever it handed the strand to) calls
`resume_with_value` or `resume_with_exception`. That's the only way a strand
gives up control; there is no preemption.

Anything else a coroutine yields is sent straight back to it, as if it were
an instruction that resumed immediately with that value.

When the last frame returns or raises, the strand has settled; we store the
outcome and tell the observer.

Resuming a strand which is not suspended is a bug in the caller. We don't
defend against it, except for one case: resuming a strand which has already
ended is ignored, since a strand can be terminated while some reactor
callback still holds onto it.

"""
from __future__ import annotations
from strandio.instructions import Instruction
from strandio.observer import StrandObserver
import enum
import inspect
import logging
import outcome
import typing as t
if t.TYPE_CHECKING:
    from strandio.kernel import Kernel

logger = logging.getLogger(__name__)

__all__ = [
    "Strand",
    "StrandState",
    "is_coroutine",
]

class StrandState(enum.Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUSPENDED = "suspended"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    TERMINATED = "terminated"

EXITED_STATES = frozenset({StrandState.SUCCEEDED, StrandState.FAILED, StrandState.TERMINATED})

def is_coroutine(value: t.Any) -> bool:
    "Can this be pushed as a frame? Generators and native coroutine objects both can."
    return inspect.isgenerator(value) or inspect.iscoroutine(value)

class Strand:
    """A single strand of execution, running on some Kernel.

    Don't construct directly; use `Kernel.execute`, which assigns the id and
    schedules the first step.

    """
    def __init__(self, id: int, kernel: Kernel, entry: t.Any) -> None:
        self.id = id
        self.kernel = kernel
        self.state = StrandState.PENDING
        # the entry coroutine, until the first step pushes it
        self._entry: t.Any = entry
        self._frames: t.List[t.Any] = []
        self._observer: t.Optional[StrandObserver] = None
        self._observer_notified = False
        self._result: t.Optional[outcome.Outcome] = None
        self._terminate_cb: t.Optional[t.Callable[[Strand], None]] = None
        # set while an Instruction is executing, so a synchronous resume can
        # be handed back to the running loop instead of recursing
        self._on_stack = False
        self._saved_send: t.Optional[outcome.Outcome] = None

    def __repr__(self) -> str:
        return f"Strand({self.id}, {self.state.value})"

    def has_exited(self) -> bool:
        return self.state in EXITED_STATES

    def start(self) -> None:
        "Push the entry coroutine and run it; the kernel calls this on a later reactor turn."
        if self.state is not StrandState.PENDING:
            logger.debug("%s: not starting, already %s", self, self.state.value)
            return
        entry, self._entry = self._entry, None
        logger.debug("%s: starting %s", self, entry)
        self._frames.append(entry)
        self._run(outcome.Value(None))

    def resume_with_value(self, value: t.Any) -> None:
        "Resume this suspended strand, sending `value` into the top frame."
        self._resume(outcome.Value(value))

    def resume_with_exception(self, exn: BaseException) -> None:
        "Resume this suspended strand, throwing `exn` into the top frame."
        self._resume(outcome.Error(exn))

    def on_terminate(self, cancel: t.Callable[[Strand], None]) -> None:
        """Register cleanup for the current suspension.

        Instructions call this when they leave the strand waiting on something
        external. If the strand is terminated before it's resumed, `cancel` is
        called with the strand. Resuming the strand discards it.

        """
        self._terminate_cb = cancel

    def terminate(self) -> None:
        """End this strand without running any more of its code.

        The frames are dropped, and an entry coroutine which never got its
        first step is closed. Once nothing else refers to them, Python closes
        dropped frames right away, so their `finally` blocks run during this
        call and see the strand already TERMINATED. The frame which yielded
        Terminate is still running, so it is closed once it unwinds. The
        observer is told the strand was terminated. Does nothing if the strand
        has already ended.

        """
        if self.has_exited():
            return
        logger.debug("%s: terminating", self)
        self.state = StrandState.TERMINATED
        cancel, self._terminate_cb = self._terminate_cb, None
        entry, self._entry = self._entry, None
        if entry is not None:
            entry.close()
        self._frames = []
        self._saved_send = None
        if cancel is not None:
            cancel(self)
        self._notify()

    def finish(self, value: t.Any) -> None:
        "Drop every frame and settle the strand with `value`; used by the Return instruction."
        self._frames = []
        self._terminate_cb = None
        self._settle(outcome.Value(value))

    def set_observer(self, observer: StrandObserver) -> None:
        """Attach the observer that will be told how this strand ends.

        A strand has at most one observer. If the strand has already ended,
        the observer is told right away.

        """
        if self._observer is not None or self._observer_notified:
            raise RuntimeError("strand already has an observer", self)
        self._observer = observer
        if self.has_exited():
            self._notify()

    def _resume(self, sent: outcome.Outcome) -> None:
        if self.has_exited():
            logger.debug("%s: resumed after exiting, ignoring %s", self, sent)
            return
        self._terminate_cb = None
        if self._on_stack:
            # resumed by the instruction we're still executing; the running
            # loop picks this up when execute returns
            self._saved_send = sent
            return
        self._run(sent)

    def _run(self, sent: outcome.Outcome) -> None:
        self.state = StrandState.RUNNING
        while self._frames:
            frame = self._frames[-1]
            try:
                yielded = sent.send(frame)
            except StopIteration as exn:
                if self.has_exited():
                    return
                self._frames.pop()
                sent = outcome.Value(exn.value)
                continue
            except BaseException as exn:
                if self.has_exited():
                    return
                self._frames.pop()
                sent = outcome.Error(exn)
                continue
            if self.has_exited():
                # the frame terminated its own strand
                return
            if isinstance(yielded, Instruction):
                next_send = self._execute(yielded)
                if next_send is None:
                    return
                sent = next_send
            elif is_coroutine(yielded):
                self._frames.append(yielded)
                sent = outcome.Value(None)
            else:
                sent = outcome.Value(yielded)
        self._settle(sent)

    def _execute(self, instruction: Instruction) -> t.Optional[outcome.Outcome]:
        "Execute an instruction; return what to send next if it resumed us synchronously."
        self.state = StrandState.SUSPENDED
        self._on_stack = True
        try:
            instruction.execute(self)
        except Exception as exn:
            if self.has_exited() or self._saved_send is not None:
                raise
            logger.debug("%s: %s failed to execute: %s", self, instruction, exn)
            self._terminate_cb = None
            self._saved_send = outcome.Error(exn)
        finally:
            self._on_stack = False
        if self.has_exited():
            return None
        sent, self._saved_send = self._saved_send, None
        if sent is None:
            logger.debug("%s: suspended on %s", self, instruction)
            return None
        self.state = StrandState.RUNNING
        return sent

    def _settle(self, result: outcome.Outcome) -> None:
        self._result = result
        if isinstance(result, outcome.Value):
            self.state = StrandState.SUCCEEDED
            logger.debug("%s: returned %s", self, result.value)
        else:
            self.state = StrandState.FAILED
            logger.debug("%s: raised %r", self, result.error)
        self._notify()

    def _notify(self) -> None:
        observer = self._observer
        if observer is None:
            # kept until someone attaches
            return
        self._observer = None
        self._observer_notified = True
        if self.state is StrandState.TERMINATED:
            observer.terminated(self)
        elif isinstance(self._result, outcome.Value):
            observer.success(self, self._result.value)
        elif isinstance(self._result, outcome.Error):
            observer.failure(self, self._result.error)
