"""Cooperative strands of execution on a single-threaded reactor

strandio runs many independent computations, "strands", on one thread, by
writing them as coroutines which yield whenever they need to wait. Like so:

```
def handle(stream):
    data = yield stream.read(4096)
    yield Sleep(1)
    return len(data)

start(handle(ReadableStream(fd)))
```

A coroutine calls another coroutine by yielding it; the callee's return value
comes back as the value of the `yield`, and its exceptions propagate to the
caller as they would with a normal call. A coroutine asks for a service from
the kernel, such as suspending until something happens, by yielding an
Instruction. Native `async def` coroutines work too: instructions can be
awaited.

None of this uses the Python stack to remember who called whom. Each strand
keeps its own stack of coroutine frames and steps through it with a
trampoline, so a suspended strand is just an object: it can be resumed from
any reactor callback, by anyone holding it.

The pieces, from the bottom up:

- `strandio.reactor`: the event loop. Deferred callbacks, timers and
  readability watchers, run by trio.
- `strandio.instructions`: what a coroutine can yield. Suspend, Return, Noop,
  Sleep and friends.
- `strandio.strand`: the Strand, and the engine which drives its frames.
- `strandio.observer`: how to be told that a strand ended, and how.
- `strandio.kernel`: creates strands, and runs the reactor; also `start`,
  the usual entry point.
- `strandio.stream`: a readable file descriptor built on Suspend, as an
  example of a resource which strands wait on.

Scheduling is cooperative: a strand runs until it yields an instruction that
suspends it. There is no preemption and no parallelism, and no fairness
between strands waiting on I/O beyond the order the reactor sees events in.

"""
from strandio.instructions import (
    Instruction, Suspend, Return, Raise, Noop, Cooperate, Sleep, Execute, CurrentStrand, Terminate, Join,
)
from strandio.observer import StrandObserver, StrandTerminated
from strandio.strand import Strand, StrandState
from strandio.reactor import Reactor, TrioReactor, Timer
from strandio.kernel import Kernel, NeverSettledError, start
from strandio.stream import ReadableStream, StreamError, StreamClosedError, StreamLockedError, StreamReadError
