"""
Session/ticket store.

A Session carries the target host and the active credential (ticket + CSRF
token, or an API token). Calls that do not receive a session explicitly
resolve one in this order:

  1) a session scoped with `use_session(...)` (per thread / asyncio task)
  2) the process-wide last-used session, refreshed by `connect()`

Usage:
    session = connect(["10.1.1.90:8006"], "root", "secret")
    invoke("/nodes")                      # uses the last-used session
    with use_session(other):
        invoke("/version")                # uses `other`
"""

from __future__ import annotations

import contextvars
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Dict, Iterator, Optional

from .errors import SessionRequired

DEFAULT_PORT = 8006


@dataclass
class Session:
    host: str
    port: int = DEFAULT_PORT
    skip_certificate_check: bool = False
    ticket: str = ""         # secret – never log in clear text
    csrf_token: str = ""
    api_token: str = ""      # USER@REALM!TOKENID=UUID
    timeout_sec: Optional[float] = None

    @property
    def base_url(self) -> str:
        host = f"[{self.host}]" if ":" in self.host else self.host
        return f"https://{host}:{self.port}"

    def headers(self) -> Dict[str, str]:
        """CSRF header is always present (possibly empty); API token adds Authorization."""
        out = {"CSRFPreventionToken": self.csrf_token or ""}
        if self.api_token:
            out["Authorization"] = f"PVEAPIToken {self.api_token}"
        return out

    def cookies(self) -> Dict[str, str]:
        return {"PVEAuthCookie": self.ticket} if self.ticket else {}

    def __repr__(self) -> str:
        return (
            f"Session(host={self.host!r}, port={self.port}, "
            f"skip_certificate_check={self.skip_certificate_check}, "
            f"ticket={'***' if self.ticket else ''!r}, "
            f"api_token={'***' if self.api_token else ''!r})"
        )


_last_session: Optional[Session] = None
_scoped_session: contextvars.ContextVar[Optional[Session]] = contextvars.ContextVar(
    "pve_scoped_session", default=None
)


def get_last_session() -> Optional[Session]:
    return _last_session


def set_last_session(session: Optional[Session]) -> None:
    global _last_session
    _last_session = session


def clear_last_session() -> None:
    set_last_session(None)


@contextmanager
def use_session(session: Session) -> Iterator[Session]:
    """Scope `session` to the current thread/task for the duration of the block."""
    token = _scoped_session.set(session)
    try:
        yield session
    finally:
        _scoped_session.reset(token)


def resolve_session(session: Optional[Session] = None) -> Session:
    if session is not None:
        return session
    scoped = _scoped_session.get()
    if scoped is not None:
        return scoped
    if _last_session is not None:
        return _last_session
    raise SessionRequired("No session given and no session established; call connect() first")
