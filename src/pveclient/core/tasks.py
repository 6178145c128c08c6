"""
Task poller: follow a Proxmox asynchronous task (UPID) until it stops running.

UPID layout:
    UPID:<node>:<pid>:<pstart>:<starttime>:<type>:<id>:<user>:

Polling:
  poll_interval_ms  <= 0              -> 500
  timeout_ms        <  poll interval  -> poll interval + 5000

A failed status query reads as "not running": the poller does not tell
"task not found" apart from "transport error".
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional, Tuple

from .request_builder import Verb
from .response import ResponseEnvelope
from .session import Session
from .transport import invoke

log = logging.getLogger("pve.tasks")

DEFAULT_POLL_INTERVAL_MS = 500
DEFAULT_TIMEOUT_MS = 10000
TIMEOUT_GRACE_MS = 5000


@dataclass(frozen=True)
class Upid:
    node: str
    pid: str
    pstart: str
    starttime: str
    type: str
    id: str
    user: str
    raw: str

    @classmethod
    def parse(cls, upid: str) -> "Upid":
        parts = upid.split(":")
        if len(parts) < 8 or parts[0] != "UPID" or not parts[1]:
            raise ValueError(f"Malformed UPID: {upid!r}")
        return cls(*parts[1:8], raw=upid)


def node_from_upid(upid: str) -> str:
    parts = upid.split(":")
    if len(parts) < 2 or not parts[1]:
        raise ValueError(f"Malformed UPID: {upid!r}")
    return parts[1]


def get_task_status(
    upid: str,
    *,
    session: Optional[Session] = None,
    http: Any = None,
) -> ResponseEnvelope:
    node = node_from_upid(upid)
    return invoke(f"/nodes/{node}/tasks/{upid}/status", Verb.GET, session=session, http=http)


def get_task_log(
    upid: str,
    start: Optional[int] = None,
    limit: Optional[int] = None,
    *,
    session: Optional[Session] = None,
    http: Any = None,
) -> ResponseEnvelope:
    node = node_from_upid(upid)
    return invoke(
        f"/nodes/{node}/tasks/{upid}/log",
        Verb.GET,
        {"start": start, "limit": limit},
        session=session,
        http=http,
    )


def _status_field(res: ResponseEnvelope, key: str) -> Optional[str]:
    data = res.data()
    if isinstance(data, dict) and data.get(key) is not None:
        return str(data[key])
    return None


def is_running(upid: str, *, session: Optional[Session] = None, http: Any = None) -> bool:
    res = get_task_status(upid, session=session, http=http)
    return _status_field(res, "status") == "running"


def get_task_exit_status(
    upid: str,
    *,
    session: Optional[Session] = None,
    http: Any = None,
) -> Optional[str]:
    """`exitstatus` of a finished task ("OK", an error text...) or None."""
    return _status_field(get_task_status(upid, session=session, http=http), "exitstatus")


def normalize_wait(poll_interval_ms: int, timeout_ms: int) -> Tuple[int, int]:
    if poll_interval_ms <= 0:
        poll_interval_ms = DEFAULT_POLL_INTERVAL_MS
    if timeout_ms < poll_interval_ms:
        timeout_ms = poll_interval_ms + TIMEOUT_GRACE_MS
    return poll_interval_ms, timeout_ms


def wait_until_finished(
    upid: str,
    poll_interval_ms: int = DEFAULT_POLL_INTERVAL_MS,
    timeout_ms: int = DEFAULT_TIMEOUT_MS,
    *,
    session: Optional[Session] = None,
    http: Any = None,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> bool:
    """
    Sleep one poll interval between status queries until the task stops
    running or `timeout_ms` of monotonic time has elapsed.
    Returns True when the task finished, False on timeout.
    """
    poll_interval_ms, timeout_ms = normalize_wait(poll_interval_ms, timeout_ms)
    start = clock()
    running = True
    polls = 0

    while running:
        elapsed_ms = (clock() - start) * 1000
        if elapsed_ms >= timeout_ms:
            break
        sleep(poll_interval_ms / 1000.0)
        running = is_running(upid, session=session, http=http)
        polls += 1

    if running:
        log.warning("Task %s still running after %sms (%d polls)", upid, timeout_ms, polls)
    else:
        log.debug("Task %s finished after %d polls", upid, polls)
    return not running
