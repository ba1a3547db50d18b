from __future__ import annotations

import tempfile
import unittest

import queuekit
from queuekit import JobStatus, Message, QueueConfig, SimpleLoop, build_queue


class PublicApiTests(unittest.TestCase):
    def test_exports_resolve(self):
        for name in queuekit.__all__:
            with self.subTest(name=name):
                self.assertTrue(hasattr(queuekit, name))

    def test_build_queue_from_config(self):
        handled = []
        with tempfile.TemporaryDirectory() as tmp:
            queue = build_queue(
                QueueConfig(workspace=tmp, queue_name="reports"),
                {"render": lambda message, q: handled.append(message.payload)},
                loop=SimpleLoop(),
            )
            message_id = queue.push(Message("render", {"report": 7}))
            self.assertEqual(queue.run(), 1)
            self.assertEqual(queue.status(message_id), JobStatus.DONE)
        self.assertEqual(handled, [{"report": 7}])

    def test_config_middleware_applies(self):
        with tempfile.TemporaryDirectory() as tmp:
            config = QueueConfig(workspace=tmp, middleware=[queuekit.DelayMiddleware(3600)])
            queue = build_queue(config, loop=SimpleLoop())
            queue.push(Message("later"))
            self.assertEqual(queue.run(), 0)


if __name__ == "__main__":
    unittest.main()
