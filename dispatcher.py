# dispatcher.py - the only consumer of update messages; applies them to the screen
from __future__ import annotations
import asyncio
import logging
import queue

from external_runner import SPAWN_FAILED, describe_status
from messages import AppendResult, Error, QueryFinished, QueryStarted, QuitRequested, SetResult

log = logging.getLogger(__name__)

POLL_INTERVAL = 0.05


class RenderSurface:
    """Operations the dispatcher performs on the display."""

    def set_text(self, text: str): raise NotImplementedError
    def append(self, data: bytes): raise NotImplementedError
    def set_busy(self, busy: bool): raise NotImplementedError
    def show_error(self, message: str): raise NotImplementedError
    def clear_error(self): raise NotImplementedError


class Dispatcher:
    def __init__(self, updates: queue.Queue, controller, surface: RenderSurface):
        self.updates = updates
        self.controller = controller
        self.surface = surface

    def apply(self, msg):
        if isinstance(msg, SetResult):
            self.surface.set_text(msg.text)
        elif isinstance(msg, AppendResult):
            self.surface.append(msg.data)
        elif isinstance(msg, QueryStarted):
            self.surface.clear_error()
            self.surface.set_busy(True)
            self.controller.on_started(msg.pid)
        elif isinstance(msg, QueryFinished):
            self.surface.set_busy(False)
            # a spawn failure has already been reported by its Error
            if msg.status and msg.status != SPAWN_FAILED:
                self.surface.show_error(describe_status(msg.status))
            self.controller.on_finished(msg.status)
        elif isinstance(msg, Error):
            self.surface.show_error(msg.message)
        elif isinstance(msg, QuitRequested):
            self.controller.quit()
        else:
            raise TypeError(f"unknown update message: {msg!r}")

    def drain(self) -> int:
        """Apply every queued message without blocking."""
        n = 0
        while True:
            try:
                msg = self.updates.get_nowait()
            except queue.Empty:
                return n
            self.apply(msg)
            n += 1

    @property
    def done(self):
        return self.controller.should_exit

    async def run(self, app, interval=POLL_INTERVAL):
        """Drain between short sleeps so input handling and updates interleave."""
        while True:
            if self.drain():
                app.invalidate()
            if self.done:
                log.debug("dispatcher: exit")
                app.exit()
                return
            await asyncio.sleep(interval)
