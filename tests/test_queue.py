from __future__ import annotations

import logging
import unittest

from queuekit.events import AfterPush, BeforePush, SyncEventDispatcher
from queuekit.exceptions import BehaviorNotSupportedError, UnknownMessageIdError
from queuekit.memory import InMemoryAdapter
from queuekit.queue import Queue
from queuekit.types import JobStatus, Message


class RecordingWorker:
    def __init__(self, fail_on: str | None = None):
        self.seen: list[Message] = []
        self.fail_on = fail_on

    def process(self, message, queue):
        if message.name == self.fail_on:
            raise RuntimeError(f"boom: {message.name}")
        self.seen.append(message)


class CountdownLoop:
    """Allows ``allowed`` checks, then reports that the loop must stop."""

    def __init__(self, allowed: int | None = None):
        self.allowed = allowed
        self.checks = 0

    def can_continue(self) -> bool:
        self.checks += 1
        return self.allowed is None or self.checks <= self.allowed


class ListenOnlyAdapter:
    def __init__(self, messages):
        self.messages = list(messages)

    def subscribe(self, handler):
        for message in self.messages:
            handler(message)


class FailingPushAdapter(InMemoryAdapter):
    def push(self, message):
        raise ConnectionError("store unavailable")


class QueueTestCase(unittest.TestCase):
    def build(self, *, adapter=None, worker=None, loop=None, **kwargs):
        self.adapter = adapter if adapter is not None else InMemoryAdapter()
        self.worker = worker or RecordingWorker()
        self.loop = loop or CountdownLoop()
        self.events = SyncEventDispatcher()
        self.trace: list[str] = []
        self.events.subscribe(BeforePush, lambda e: self.trace.append(f"before:{e.message.name}"))
        self.events.subscribe(AfterPush, lambda e: self.trace.append(f"after:{e.message.name}"))
        return Queue(
            adapter=self.adapter,
            worker=self.worker,
            loop=self.loop,
            event_dispatcher=self.events,
            **kwargs,
        )

    def fill(self, queue: Queue, count: int, name: str = "send-email") -> list[str]:
        return [queue.push(Message(name, {"n": i})) for i in range(count)]


class PushTests(QueueTestCase):
    def test_push_notifies_before_and_after_adapter(self):
        adapter = InMemoryAdapter()
        original_push = adapter.push

        def tracking_push(message):
            self.trace.append("adapter")
            return original_push(message)

        adapter.push = tracking_push
        queue = self.build(adapter=adapter)

        message_id = queue.push(Message("send-email", {"to": "a@example.org"}))

        self.assertEqual(self.trace, ["before:send-email", "adapter", "after:send-email"])
        self.assertIsNotNone(message_id)
        self.assertEqual(queue.status(message_id), JobStatus.WAITING)

    def test_before_push_fires_even_if_adapter_fails(self):
        queue = self.build(adapter=FailingPushAdapter())

        with self.assertRaises(ConnectionError):
            queue.push(Message("send-email"))

        self.assertEqual(self.trace, ["before:send-email"])

    def test_push_without_push_support_raises(self):
        queue = self.build(adapter=ListenOnlyAdapter([]))

        with self.assertRaises(BehaviorNotSupportedError):
            queue.push(Message("send-email"))

        self.assertEqual(self.trace, ["before:send-email"])

    def test_listener_error_vetoes_push(self):
        queue = self.build()

        def veto(event):
            raise PermissionError("not allowed")

        self.events.subscribe(BeforePush, veto)

        with self.assertRaises(PermissionError):
            queue.push(Message("send-email"))
        self.assertEqual(self.adapter.pending(), 0)

    def test_push_none_is_rejected(self):
        queue = self.build()
        with self.assertRaises(TypeError):
            queue.push(None)

    def test_push_logs_debug_trace(self):
        logger = logging.getLogger("tests.queue.push")
        queue = self.build(logger=logger)

        with self.assertLogs(logger, level="DEBUG") as captured:
            queue.push(Message("send-email"))

        self.assertIn("Preparing to push message", captured.output[0])
        self.assertIn("Successfully pushed message", captured.output[1])


class RunTests(QueueTestCase):
    def test_run_without_bound_handles_everything(self):
        logger = logging.getLogger("tests.queue.run")
        queue = self.build(logger=logger)
        self.fill(queue, 3)

        with self.assertLogs(logger, level="DEBUG") as captured:
            handled = queue.run()

        self.assertEqual(handled, 3)
        self.assertEqual(len(self.worker.seen), 3)
        self.assertIn("There were 3 messages", captured.output[-1])

    def test_run_with_bound_leaves_rest(self):
        queue = self.build()
        ids = self.fill(queue, 5)

        handled = queue.run(2)

        self.assertEqual(handled, 2)
        self.assertEqual([m.id for m in self.worker.seen], ids[:2])
        self.assertEqual(self.adapter.pending(), 3)

    def test_run_bound_larger_than_available(self):
        queue = self.build()
        self.fill(queue, 2)
        self.assertEqual(queue.run(10), 2)

    def test_run_handles_in_delivery_order(self):
        queue = self.build()
        ids = self.fill(queue, 4)
        queue.run()
        self.assertEqual([m.id for m in self.worker.seen], ids)

    def test_cancellation_before_kth_message(self):
        # can_continue is true for the first two checks only
        queue = self.build(loop=CountdownLoop(allowed=2))
        self.fill(queue, 5)

        handled = queue.run()

        self.assertEqual(handled, 2)
        self.assertEqual(self.adapter.pending(), 3)

    def test_bound_checked_before_loop(self):
        loop = CountdownLoop()
        queue = self.build(loop=loop)
        self.fill(queue, 5)

        queue.run(2)

        # third offer is refused by the bound without polling the loop
        self.assertEqual(loop.checks, 2)

    def test_worker_error_aborts_run(self):
        queue = self.build(worker=RecordingWorker(fail_on="bad"))
        queue.push(Message("good"))
        queue.push(Message("bad"))
        queue.push(Message("good"))

        with self.assertRaises(RuntimeError):
            queue.run()

        self.assertEqual(len(self.worker.seen), 1)
        self.assertEqual(self.adapter.pending(), 1)

    def test_negative_bound_rejected(self):
        queue = self.build()
        with self.assertRaises(ValueError):
            queue.run(-1)

    def test_run_requires_drainable_adapter(self):
        queue = self.build(adapter=ListenOnlyAdapter([]))
        with self.assertRaises(BehaviorNotSupportedError):
            queue.run()


class ListenTests(QueueTestCase):
    def test_listen_handles_every_delivered_message(self):
        messages = [Message("a"), Message("b"), Message("c")]
        # loop refusing everything must not matter in listen mode
        queue = self.build(adapter=ListenOnlyAdapter(messages), loop=CountdownLoop(allowed=0))

        queue.listen()

        self.assertEqual([m.name for m in self.worker.seen], ["a", "b", "c"])
        self.assertEqual(self.loop.checks, 0)

    def test_listen_on_memory_adapter_stops_with_loop(self):
        loop = CountdownLoop(allowed=3)
        adapter = InMemoryAdapter(loop=loop, poll_interval_seconds=0.01)
        queue = self.build(adapter=adapter, loop=loop)
        self.fill(queue, 5)

        queue.listen()

        self.assertEqual(len(self.worker.seen), 3)
        self.assertEqual(adapter.pending(), 2)

    def test_worker_error_propagates_out_of_listen(self):
        loop = CountdownLoop(allowed=10)
        adapter = InMemoryAdapter(loop=loop, poll_interval_seconds=0.01)
        queue = self.build(adapter=adapter, worker=RecordingWorker(fail_on="bad"), loop=loop)
        queue.push(Message("good"))
        queue.push(Message("bad"))
        queue.push(Message("good"))

        with self.assertRaises(RuntimeError):
            queue.listen()

        self.assertEqual([m.name for m in self.worker.seen], ["good"])
        self.assertEqual(adapter.pending(), 1)


class StatusTests(QueueTestCase):
    def test_unknown_id_is_invalid_argument(self):
        queue = self.build()
        with self.assertRaises(UnknownMessageIdError):
            queue.status("missing")
        with self.assertRaises(ValueError):
            queue.status("missing")

    def test_status_is_idempotent(self):
        queue = self.build()
        message_id = queue.push(Message("send-email"))
        self.assertEqual(queue.status(message_id), queue.status(message_id))

    def test_worker_can_call_back_into_queue(self):
        follow_ups = []

        class ChainingWorker:
            def process(self, message, queue):
                self_status = queue.status(message.id)
                if message.name == "first":
                    follow_ups.append(queue.push(Message("second")))
                follow_ups.append(self_status)

        queue = self.build(worker=ChainingWorker())
        queue.push(Message("first"))

        self.assertEqual(queue.run(), 2)
        self.assertEqual(follow_ups[1], JobStatus.WAITING)

    def test_worker_can_requeue_the_message_it_is_handling(self):
        requeued = []

        class RequeueOnceWorker:
            def process(self, message, queue):
                if "retry_of" not in message.metadata:
                    requeued.append(queue.push(message))

        queue = self.build(worker=RequeueOnceWorker())
        first_id = queue.push(Message("flaky", {"attempt": 1}))

        self.assertEqual(queue.run(), 2)
        self.assertEqual(len(requeued), 1)
        self.assertNotEqual(requeued[0], first_id)
        self.assertEqual(self.trace, ["before:flaky", "after:flaky", "before:flaky", "after:flaky"])

    def test_push_returns_adapter_issued_id(self):
        queue = self.build()
        message = Message("send-email", metadata={"id": "chosen"})
        self.assertEqual(queue.push(message), "chosen")


if __name__ == "__main__":
    unittest.main()
