"Helpers shared by the strandio tests"
from __future__ import annotations
from strandio import Strand, StrandObserver
import typing as t

class RecordingObserver(StrandObserver):
    "Remembers every notification it gets, in order."
    def __init__(self) -> None:
        self.events: t.List[t.Tuple[t.Any, ...]] = []

    def success(self, strand: Strand, value: t.Any) -> None:
        self.events.append(("success", strand, value))

    def failure(self, strand: Strand, exn: BaseException) -> None:
        self.events.append(("failure", strand, exn))

    def terminated(self, strand: Strand) -> None:
        self.events.append(("terminated", strand))

def returns(value: t.Any) -> t.Generator[t.Any, t.Any, t.Any]:
    "A coroutine which returns without ever yielding."
    return value
    yield

def raises(exn: BaseException) -> t.Generator[t.Any, t.Any, t.Any]:
    raise exn
    yield

class MyException(Exception):
    pass
