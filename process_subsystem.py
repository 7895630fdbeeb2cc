#!/usr/bin/env python3
# process_subsystem.py - decides when the filter command starts, gets cancelled and re-runs

import logging
import os
import signal

from command_template import resolve, validate
from messages import RunRequest

log = logging.getLogger(__name__)

IDLE = "Idle"
RUNNING = "Running"
RUNNING_PENDING_REFIRE = "RunningPendingRefire"
EXITING = "Exiting"


def kill_process_group(pid, sig=signal.SIGTERM):
    # filters run in their own session, so the group id is the pid
    try:
        os.killpg(pid, sig)
    except (ProcessLookupError, PermissionError) as e:
        log.debug("kill %d: %s", pid, e)


class FireController:
    """Owns the command template and the run/cancel/refire flags.

    All methods are called from the dispatcher context only; the runner
    reports back through update messages, never by touching these fields.
    """

    def __init__(self, template, submit, get_query, open_reader, kill=kill_process_group):
        self.template = validate(template)
        self.submit = submit            # callable(RunRequest)
        self.get_query = get_query      # callable() -> str
        self.open_reader = open_reader  # callable() -> spool reader at offset 0
        self.kill = kill

        self.command_pid = None
        self.fire_requested = False
        self.exit_requested = False
        # submitted but QueryFinished not seen yet; command_pid fills in
        # once QueryStarted arrives
        self.running = False
        self.runs_started = 0

    @property
    def state(self):
        if self.exit_requested:
            return EXITING
        if not self.running:
            return IDLE
        if self.fire_requested:
            return RUNNING_PENDING_REFIRE
        return RUNNING

    @property
    def should_exit(self):
        return self.exit_requested and not self.running

    def set_template(self, template):
        self.template = validate(template)

    def _cancel(self):
        if self.command_pid is not None:
            log.debug("cancelling pid %d", self.command_pid)
            self.kill(self.command_pid)

    def _start(self):
        query = self.get_query()
        argv = resolve(self.template, query)
        self.running = True
        self.runs_started += 1
        self.submit(RunRequest(query, self.open_reader(), argv))

    # -----------------------
    # Events
    # -----------------------
    def fire(self):
        if self.exit_requested:
            return
        if self.running:
            self.fire_requested = True
            self._cancel()
            return
        self._start()

    def quit(self):
        self._cancel()
        self.exit_requested = True

    def on_started(self, pid):
        self.command_pid = pid
        # fire or quit arrived before the pid was known
        if self.fire_requested or self.exit_requested:
            self._cancel()

    def on_finished(self, status):
        self.command_pid = None
        self.running = False
        if self.fire_requested:
            self.fire_requested = False
            if not self.exit_requested:
                self._start()
