# external_runner.py - runs the filter command for each request and streams its output
from __future__ import annotations
import logging
import os
import queue
import selectors
import signal
import subprocess
import threading
from typing import Optional, Tuple

from messages import AppendResult, Error, QueryFinished, QueryStarted, RunRequest, SetResult

log = logging.getLogger(__name__)

READ_CHUNK = 4 * 4096
SPAWN_FAILED = -1

QUERY_ENV = "QUERY"
COUNTER_ENVS = ("QUERY_COUNTER1", "QUERY_COUNTER2")


# -----------------------
# Wait status helpers
# -----------------------
def decode_status(status: int) -> Tuple[int, int]:
    """Split a raw wait status into (exit_code, signal)."""
    return status >> 8, status & 0x7F


def status_from_returncode(rc: int) -> int:
    """Rebuild the raw wait status from a Popen returncode."""
    if rc < 0:
        return -rc
    return rc << 8


def describe_status(status: int) -> str:
    if status == SPAWN_FAILED:
        return "command did not start"
    code, sig = decode_status(status)
    if sig:
        try:
            name = signal.Signals(sig).name
        except ValueError:
            name = "unknown"
        return f"terminated by signal {sig} ({name})"
    return f"exited with code {code}"


def child_env(query: str, base: Optional[dict] = None) -> dict:
    env = dict(os.environ if base is None else base)
    env[QUERY_ENV] = query
    for name in COUNTER_ENVS:
        env[name] = "0"
    return env


def _popen_filter(argv, env):
    # New session: the filter and anything it spawns share one process
    # group, which is what cancellation signals.
    return subprocess.Popen(argv,
                            stdin=subprocess.PIPE,
                            stdout=subprocess.PIPE,
                            stderr=subprocess.STDOUT,
                            env=env,
                            start_new_session=True)


# -----------------------
# Input feeder
# -----------------------
def _feed(stdin, reader):
    try:
        for chunk in reader:
            stdin.write(chunk)
    except BrokenPipeError:
        pass
    except (OSError, ValueError) as e:
        log.warning("feeder: writing to filter failed: %s", e)
    finally:
        try:
            stdin.close()
        except BrokenPipeError:
            pass
        except OSError as e:
            log.debug("feeder: close failed: %s", e)


def feed_input(stdin, reader) -> threading.Thread:
    """Stream the spool into the filter on a detached thread."""
    t = threading.Thread(target=_feed, args=(stdin, reader), name="feeder", daemon=True)
    t.start()
    return t


# -----------------------
# Runner
# -----------------------
class ExternalRunner:
    """Single worker that turns RunRequests into update messages.

    Requests are served strictly one at a time; the next one is taken off
    the queue only after QueryFinished for the previous one was sent.
    """

    def __init__(self, updates, chunk_size=READ_CHUNK, env=None):
        self.updates = updates
        self.requests = queue.Queue()
        self.chunk_size = chunk_size
        self.base_env = env
        self._thread = None

    def _emit(self, msg):
        self.updates.put(msg)

    def submit(self, request: RunRequest):
        self.requests.put(request)

    def start(self):
        self._thread = threading.Thread(target=self._serve, name="runner", daemon=True)
        self._thread.start()
        return self._thread

    def stop(self, timeout=None):
        self.requests.put(None)
        if self._thread:
            self._thread.join(timeout)

    def _serve(self):
        while True:
            request = self.requests.get()
            if request is None:
                break
            try:
                self.run(request)
            except Exception as e:
                log.exception("runner: request %r failed", request.argv)
                self._emit(Error(f"internal error: {e}"))
                self._emit(QueryFinished(SPAWN_FAILED))

    def _spawn_failed(self, message):
        log.warning("runner: %s", message)
        self._emit(Error(message))
        self._emit(QueryFinished(SPAWN_FAILED))

    def run(self, request: RunRequest):
        argv = request.argv
        env = child_env(request.query, self.base_env)
        try:
            proc = _popen_filter(argv, env)
        except FileNotFoundError:
            self._spawn_failed(f"{argv[0]}: command not found")
            return
        except PermissionError:
            self._spawn_failed(f"{argv[0]}: permission denied")
            return
        except OSError as e:
            self._spawn_failed(f"{argv[0]}: {e.strerror or e}")
            return
        except ValueError as e:
            # embedded NUL in argv or env
            self._spawn_failed(f"{argv[0]!r}: {e}")
            return

        log.info("runner: started pid %d: %r", proc.pid, argv)
        self._emit(QueryStarted(proc.pid))
        feed_input(proc.stdin, request.reader)

        drained = False
        try:
            shown = self.drain(proc.stdout)
            drained = True
        finally:
            proc.stdout.close()
            if not drained:
                # don't leave the filter behind when draining blew up
                try:
                    os.killpg(proc.pid, signal.SIGKILL)
                except OSError as e:
                    log.debug("runner: kill %d: %s", proc.pid, e)
                proc.wait()
        status = status_from_returncode(proc.wait())

        _, sig = decode_status(status)
        if not shown and not sig:
            # ran to completion without output: nothing matched
            self._emit(SetResult(""))
        if status:
            log.info("runner: pid %d %s", proc.pid, describe_status(status))
        self._emit(QueryFinished(status))

    def drain(self, stream) -> bool:
        """Forward everything readable on stream until it closes.
        Returns True if any output was seen."""
        fd = stream.fileno()
        os.set_blocking(fd, False)
        shown = False
        with selectors.DefaultSelector() as sel:
            sel.register(fd, selectors.EVENT_READ)
            while True:
                sel.select()
                try:
                    data = os.read(fd, self.chunk_size)
                except BlockingIOError:
                    continue
                except OSError as e:
                    log.debug("runner: read failed, output truncated: %s", e)
                    break
                if not data:
                    break
                if not shown:
                    self._emit(SetResult(""))
                    shown = True
                self._emit(AppendResult(data))
        return shown
