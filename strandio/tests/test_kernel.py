from __future__ import annotations
import unittest

from strandio import (
    Kernel, NeverSettledError, Noop, Sleep, StrandState, StrandTerminated, Suspend, Terminate, TrioReactor, start,
)
from strandio.tests.utils import RecordingObserver, MyException, returns, raises

class OtherException(Exception):
    pass

class TestStart(unittest.TestCase):
    def test_synchronous_return(self) -> None:
        self.assertEqual(start(returns(5)), 5)

    def test_exception(self) -> None:
        exn = MyException()
        with self.assertRaises(MyException) as cm:
            start(raises(exn))
        self.assertIs(cm.exception, exn)

    def test_terminated(self) -> None:
        def fn():
            yield Terminate()
            return "unreachable"
        with self.assertRaises(StrandTerminated) as cm:
            start(fn())
        self.assertEqual(cm.exception.strand.id, 1)

    def test_never_settled(self) -> None:
        "Suspending with nothing to resume us makes the reactor go idle."
        def fn():
            yield Suspend(lambda strand: None)
        with self.assertRaises(NeverSettledError):
            start(fn())

    def test_explicit_reactor(self) -> None:
        reactor = TrioReactor()
        called = []
        reactor.call_soon(lambda: called.append(True))
        self.assertEqual(start(returns("x"), reactor), "x")
        self.assertEqual(called, [True])

    def test_not_a_coroutine(self) -> None:
        with self.assertRaises(TypeError):
            start(returns)

class TestKernel(unittest.TestCase):
    def setUp(self) -> None:
        self.kernel = Kernel()

    def test_ids(self) -> None:
        strands = [self.kernel.execute(returns(i)) for i in range(3)]
        self.assertEqual([strand.id for strand in strands], [1, 2, 3])
        self.assertEqual(Kernel().execute(returns(0)).id, 1)
        self.kernel.wait()

    def test_execute_defers(self) -> None:
        ran = []
        def fn():
            ran.append(True)
            yield Noop()
        self.kernel.execute(fn())
        self.assertEqual(ran, [])
        self.kernel.wait()
        self.assertEqual(ran, [True])

    def test_creation_order(self) -> None:
        log = []
        def fn(i: int):
            log.append(i)
            yield Noop()
        for i in range(5):
            self.kernel.execute(fn(i))
        self.kernel.wait()
        self.assertEqual(log, [0, 1, 2, 3, 4])

    def test_interrupt_and_resume(self) -> None:
        "wait can be called again after an interrupt, and carries on in creation order."
        log = []
        def fn(i: int):
            log.append(i)
            yield Noop()
        self.kernel.reactor.call_soon(lambda: self.kernel.interrupt(MyException()))
        strands = [self.kernel.execute(fn(i)) for i in range(3)]
        with self.assertRaises(MyException):
            self.kernel.wait()
        self.assertEqual(log, [])
        self.kernel.wait()
        self.assertEqual(log, [0, 1, 2])
        self.assertTrue(all(strand.has_exited() for strand in strands))

    def test_interrupt_while_sleeping(self) -> None:
        "Sleeping strands stay suspended across an interrupt, and wake in order on the next wait."
        log = []
        def sleeper(i: int):
            yield Sleep(0.05)
            log.append(i)
        strands = [self.kernel.execute(sleeper(i)) for i in range(3)]
        self.kernel.reactor.call_later(0.01, lambda: self.kernel.interrupt(MyException()))
        with self.assertRaises(MyException):
            self.kernel.wait()
        self.assertEqual([strand.state for strand in strands], [StrandState.SUSPENDED] * 3)
        self.assertEqual(log, [])
        self.kernel.wait()
        self.assertEqual(log, [0, 1, 2])
        self.assertEqual([strand.state for strand in strands], [StrandState.SUCCEEDED] * 3)

    def test_interrupt_from_strand(self) -> None:
        exn = MyException()
        def interrupter():
            self.kernel.interrupt(exn)
            yield Noop()
            return "finished"
        strand = self.kernel.execute(interrupter())
        observer = RecordingObserver()
        strand.set_observer(observer)
        with self.assertRaises(MyException) as cm:
            self.kernel.wait()
        self.assertIs(cm.exception, exn)
        # the strand itself was not affected
        self.assertEqual(observer.events, [("success", strand, "finished")])
        self.kernel.wait()

    def test_interrupt_last_wins(self) -> None:
        def interrupter():
            self.kernel.interrupt(MyException())
            self.kernel.interrupt(OtherException())
            yield Noop()
        self.kernel.execute(interrupter())
        with self.assertRaises(OtherException):
            self.kernel.wait()
        self.kernel.wait()

    def test_stop(self) -> None:
        log = []
        def fn(i: int):
            log.append(i)
            yield Noop()
        self.kernel.reactor.call_soon(self.kernel.stop)
        self.kernel.execute(fn(0))
        self.kernel.wait()
        self.assertEqual(log, [])
        self.kernel.wait()
        self.assertEqual(log, [0])

