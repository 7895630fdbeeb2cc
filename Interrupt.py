# Interrupt.py - termination signals become quit requests for the dispatcher

import logging
import signal

from messages import QuitRequested

log = logging.getLogger(__name__)

# The update queue is created in Screen.py, not here.
# We only store a reference once Screen.py gives it to us.
UPDATES = None

QUIT_SIGNALS = ("SIGTERM", "SIGHUP", "SIGINT")


def bind_updates(updates):
    """
    Screen.py must call this once:
        Interrupt.bind_updates(updates)
    Needs a queue whose put() is safe inside a signal handler (SimpleQueue).
    """
    global UPDATES
    UPDATES = updates


def handle_quit(signum, frame):
    if UPDATES is None:
        log.debug("signal %d before the update queue was bound", signum)
        return
    UPDATES.put(QuitRequested(signum))


def setup_signals():
    installed = []
    for name in QUIT_SIGNALS:
        if hasattr(signal, name):  # SIGHUP is POSIX only
            signum = getattr(signal, name)
            signal.signal(signum, handle_quit)
            installed.append(signum)
    return installed
