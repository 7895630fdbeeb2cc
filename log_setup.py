# log_setup.py - file logging, off unless LIVEFILTER_LOG names a file
import logging
import os

LOG_ENV = "LIVEFILTER_LOG"
LEVEL_ENV = "LIVEFILTER_LOG_LEVEL"
LOG_FORMAT = "%(asctime)s %(levelname)s %(threadName)s %(name)s: %(message)s"


def configure(environ=None):
    """The UI owns the terminal, so log records only ever go to a file."""
    environ = os.environ if environ is None else environ
    root = logging.getLogger()
    path = environ.get(LOG_ENV)
    if not path:
        root.addHandler(logging.NullHandler())
        return None
    level = getattr(logging, environ.get(LEVEL_ENV, "INFO").upper(), logging.INFO)
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)
    root.setLevel(level)
    return handler
