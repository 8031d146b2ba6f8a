"""A readable stream on a file descriptor, for use from strands

Reads suspend the calling strand until the descriptor is readable, using the
Suspend instruction and a reader on the kernel's reactor, then perform a
single `os.read`.

There's no queueing: only one read may be outstanding at a time, and a
second read fails immediately with StreamLockedError. Callers which share a
stream have to take turns themselves.

"""
from __future__ import annotations
from strandio.instructions import Suspend
import logging
import os
import typing as t
if t.TYPE_CHECKING:
    from strandio.strand import Strand

logger = logging.getLogger(__name__)

__all__ = [
    "ReadableStream",
    "StreamError",
    "StreamClosedError",
    "StreamLockedError",
    "StreamReadError",
]

class StreamError(Exception):
    pass

class StreamClosedError(StreamError):
    "The stream is closed."
    pass

class StreamLockedError(StreamError):
    "Another read is already in progress on this stream."
    pass

class StreamReadError(StreamError):
    "The underlying read failed; the OSError is in __cause__."
    pass

class ReadableStream:
    "Reads from a file descriptor, which this object owns and closes."
    def __init__(self, fd: int) -> None:
        self.fd: t.Optional[int] = fd
        self.locked = False

    def __repr__(self) -> str:
        return f"ReadableStream({self.fd})"

    def read(self, max_bytes: int) -> t.Generator[t.Any, t.Any, bytes]:
        """Read up to `max_bytes`, suspending until some data is available.

        Returns an empty bytes object at end of file, at which point the
        stream closes itself.

        """
        if self.locked:
            raise StreamLockedError(self)
        elif self.fd is None:
            raise StreamClosedError(self)
        self.locked = True
        try:
            yield Suspend(self._wait_readable, self._cancel_wait)
        finally:
            self.locked = False
        if self.fd is None:
            raise StreamClosedError(self)
        try:
            data = os.read(self.fd, max_bytes)
        except OSError as e:
            raise StreamReadError(self) from e
        if not data:
            logger.debug("%s: end of file, closing", self)
            self._close()
        return data

    def close(self) -> None:
        "Close the stream; fails with StreamLockedError if a read is in progress."
        if self.locked:
            raise StreamLockedError(self)
        self._close()

    def is_closed(self) -> bool:
        return self.fd is None

    def _close(self) -> None:
        if self.fd is not None:
            fd, self.fd = self.fd, None
            os.close(fd)

    def _wait_readable(self, strand: Strand) -> None:
        reactor = strand.kernel.reactor
        fd = self.fd
        def readable() -> None:
            reactor.remove_reader(fd)
            strand.resume_with_value(None)
        reactor.add_reader(fd, readable)

    def _cancel_wait(self, strand: Strand) -> None:
        logger.debug("%s: read cancelled by termination of %s", self, strand)
        strand.kernel.reactor.remove_reader(self.fd)
        self.locked = False
