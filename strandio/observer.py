"""The contract for learning how a strand ended

A strand ends exactly once, in one of three ways: it returns a value, it
raises an exception which no frame caught, or it is terminated from outside.
A StrandObserver is told which one happened, exactly once.

"""
from __future__ import annotations
import abc
import typing as t
if t.TYPE_CHECKING:
    from strandio.strand import Strand

__all__ = [
    "StrandObserver",
    "StrandTerminated",
]

class StrandTerminated(Exception):
    """The marker for a strand which was terminated rather than settled.

    No coroutine produced this exception; we make it up so that a terminated
    strand can be reported through the same channels as a failed one.

    """
    def __init__(self, strand: Strand) -> None:
        super().__init__(f"strand {strand.id} was terminated")
        self.strand = strand

class StrandObserver:
    "Receives the terminal outcome of a single strand."
    @abc.abstractmethod
    def success(self, strand: Strand, value: t.Any) -> None:
        "The strand's entry coroutine returned `value`."
        pass

    @abc.abstractmethod
    def failure(self, strand: Strand, exn: BaseException) -> None:
        "The strand's entry coroutine raised `exn`, and nothing caught it."
        pass

    @abc.abstractmethod
    def terminated(self, strand: Strand) -> None:
        "The strand was terminated before it could settle."
        pass
