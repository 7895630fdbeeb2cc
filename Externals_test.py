# Externals_test.py
import os, queue, sys, typing, unittest

from external_runner import (ExternalRunner, SPAWN_FAILED, decode_status, describe_status,
                             status_from_returncode)
from messages import AppendResult, Error, QueryFinished, QueryStarted, RunRequest, SetResult
from spool import Spool, SpoolReader


def make_spool(data=b""):
    spool = Spool()
    spool.write(data)
    return spool


def drain(updates):
    msgs = []
    while True:
        try:
            msgs.append(updates.get_nowait())
        except queue.Empty:
            return msgs


def output_of(msgs):
    return b"".join(m.data for m in msgs if isinstance(m, AppendResult))


class TestStatus(unittest.TestCase):
    def test_decode(self):
        self.assertEqual(decode_status(0), (0, 0))
        self.assertEqual(decode_status(256), (1, 0))
        self.assertEqual(decode_status(15), (0, 15))
        self.assertEqual(decode_status(2 << 8), (2, 0))

    def test_from_returncode(self):
        self.assertEqual(status_from_returncode(0), 0)
        self.assertEqual(status_from_returncode(1), 256)
        self.assertEqual(status_from_returncode(-15), 15)

    def test_describe(self):
        self.assertEqual(describe_status(256), "exited with code 1")
        self.assertIn("SIGTERM", describe_status(15))
        self.assertEqual(describe_status(SPAWN_FAILED), "command did not start")


class TestExternals(unittest.TestCase):
    def setUp(self):
        self.updates = queue.SimpleQueue()
        self.runner = ExternalRunner(self.updates)
        self.spools = []

    def tearDown(self):
        for s in self.spools:
            s.close()

    def run_once(self, argv, data=b"", query=""):
        spool = make_spool(data)
        self.spools.append(spool)
        self.runner.run(RunRequest(query, spool.open_reader(), argv))
        return drain(self.updates)

    def test_message_order(self):
        msgs = self.run_once(["cat"], b"one\ntwo\n")
        self.assertIsInstance(msgs[0], QueryStarted)
        self.assertEqual(msgs[1], SetResult(""))
        self.assertEqual(msgs[-1], QueryFinished(0))
        for m in msgs[2:-1]:
            self.assertIsInstance(m, AppendResult)
        self.assertEqual(output_of(msgs), b"one\ntwo\n")
        self.assertEqual(sum(isinstance(m, SetResult) for m in msgs), 1)

    def test_grep_query(self):
        msgs = self.run_once(["grep", "-i", "foo"], b"foo\nbar\nFOO\n", query="foo")
        self.assertEqual(output_of(msgs), b"foo\nFOO\n")
        self.assertEqual(msgs[-1], QueryFinished(0))

    def test_not_found(self):
        msgs = self.run_once(["__no_such_cmd__"])
        self.assertEqual(len(msgs), 2)
        self.assertIsInstance(msgs[0], Error)
        self.assertIn("__no_such_cmd__", msgs[0].message)
        self.assertEqual(msgs[1], QueryFinished(SPAWN_FAILED))

    def test_nonzero_exit_without_output_clears(self):
        msgs = self.run_once(["sh", "-c", "exit 3"])
        self.assertIsInstance(msgs[0], QueryStarted)
        self.assertEqual(msgs[1:], [SetResult(""), QueryFinished(3 << 8)])

    def test_signalled_without_output_keeps_display(self):
        msgs = self.run_once(["sh", "-c", "kill -TERM $$"])
        self.assertNotIn(SetResult(""), msgs)
        self.assertEqual(decode_status(msgs[-1].status), (0, 15))

    def test_environment(self):
        script = 'echo "$QUERY $QUERY_COUNTER1 $QUERY_COUNTER2"'
        msgs = self.run_once(["sh", "-c", script], query="abc")
        self.assertEqual(output_of(msgs), b"abc 0 0\n")

    def test_stderr_visible(self):
        msgs = self.run_once(["sh", "-c", "echo oops >&2; exit 1"])
        self.assertEqual(output_of(msgs), b"oops\n")
        self.assertEqual(msgs[-1], QueryFinished(256))

    def test_broken_pipe_ignored(self):
        msgs = self.run_once(["head", "-c", "10"], b"x" * (1 << 20))
        self.assertEqual(output_of(msgs), b"x" * 10)
        self.assertEqual(msgs[-1], QueryFinished(0))

    def test_large_output_no_deadlock(self):
        py = "import sys; sys.stdout.write('x'*50000)\n"
        msgs = self.run_once([sys.executable, "-c", py])
        self.assertEqual(len(output_of(msgs)), 50000)
        self.assertEqual(msgs[-1], QueryFinished(0))

    def test_same_query_twice_is_identical(self):
        spool = make_spool(b"alpha\nbeta\ngamma\n" * 500)
        self.spools.append(spool)
        outputs = []
        for _ in range(2):
            self.runner.run(RunRequest("a", spool.open_reader(), ["grep", "a"]))
            outputs.append(output_of(drain(self.updates)))
        self.assertEqual(outputs[0], outputs[1])
        self.assertTrue(outputs[0])

    def test_nul_in_argv_is_spawn_failure(self):
        msgs = self.run_once(["echo", "a\0b"])
        self.assertEqual(len(msgs), 2)
        self.assertIsInstance(msgs[0], Error)
        self.assertNotIn("internal error", msgs[0].message)
        self.assertEqual(msgs[1], QueryFinished(SPAWN_FAILED))

    def test_failed_drain_does_not_leak_filter(self):
        class BrokenRunner(ExternalRunner):
            def drain(self, stream):
                raise RuntimeError("drain broke")

        runner = BrokenRunner(self.updates)
        spool = make_spool()
        self.spools.append(spool)
        with self.assertRaises(RuntimeError):
            runner.run(RunRequest("", spool.open_reader(), ["sh", "-c", "sleep 30"]))
        started = drain(self.updates)[0]
        self.assertIsInstance(started, QueryStarted)
        # killed and reaped: the pid no longer exists
        with self.assertRaises(ProcessLookupError):
            os.kill(started.pid, 0)

    def test_failed_drain_reported_by_worker(self):
        class BrokenRunner(ExternalRunner):
            def drain(self, stream):
                raise RuntimeError("drain broke")

        runner = BrokenRunner(self.updates)
        spool = make_spool()
        self.spools.append(spool)
        runner.start()
        try:
            runner.submit(RunRequest("", spool.open_reader(), ["sh", "-c", "sleep 30"]))
            msgs = []
            while not msgs or not isinstance(msgs[-1], QueryFinished):
                msgs.append(self.updates.get(timeout=10))
        finally:
            runner.stop(timeout=5)
        self.assertIsInstance(msgs[0], QueryStarted)
        self.assertIn("drain broke", msgs[1].message)
        self.assertEqual(msgs[-1], QueryFinished(SPAWN_FAILED))

    def test_request_reader_type(self):
        spool = make_spool(b"x")
        self.spools.append(spool)
        request = RunRequest("q", spool.open_reader(), ["cat"])
        self.assertIsInstance(request.reader, SpoolReader)
        hints = typing.get_type_hints(RunRequest, localns={"SpoolReader": SpoolReader})
        self.assertIs(hints["reader"], SpoolReader)

    def test_worker_serves_in_order(self):
        spool = make_spool(b"data\n")
        self.spools.append(spool)
        self.runner.start()
        try:
            self.runner.submit(RunRequest("", spool.open_reader(), ["sh", "-c", "echo first"]))
            self.runner.submit(RunRequest("", spool.open_reader(), ["__no_such_cmd__"]))
            self.runner.submit(RunRequest("", spool.open_reader(), ["sh", "-c", "echo third"]))
            msgs = []
            while sum(isinstance(m, QueryFinished) for m in msgs) < 3:
                msgs.append(self.updates.get(timeout=10))
        finally:
            self.runner.stop(timeout=5)
        finished = [m.status for m in msgs if isinstance(m, QueryFinished)]
        self.assertEqual(finished, [0, SPAWN_FAILED, 0])
        self.assertEqual(output_of(msgs), b"first\nthird\n")
        # nothing from a later request shows up before the earlier one finished
        first_done = msgs.index(QueryFinished(0))
        self.assertEqual(output_of(msgs[:first_done]), b"first\n")


if __name__ == "__main__":
    unittest.main(verbosity=2)
