# messages.py - work requests and the update messages sent to the dispatcher
from __future__ import annotations
from typing import TYPE_CHECKING, List, NamedTuple, Optional

if TYPE_CHECKING:
    from spool import SpoolReader


class RunRequest(NamedTuple):
    query: str
    reader: "SpoolReader"
    argv: List[str]


# -----------------------
# Update messages (runner / signal handler -> dispatcher)
# -----------------------
class SetResult(NamedTuple):
    text: str


class AppendResult(NamedTuple):
    data: bytes


class QueryStarted(NamedTuple):
    pid: int


class QueryFinished(NamedTuple):
    status: int             # raw wait status, -1 when the command never started


class Error(NamedTuple):
    message: str


class QuitRequested(NamedTuple):
    signum: Optional[int] = None


UPDATE_TYPES = (SetResult, AppendResult, QueryStarted, QueryFinished, Error, QuitRequested)
