"""
Exception hierarchy for pveclient.

- Session setup problems raise (ConnectError and subclasses).
- Per-call HTTP/transport problems never raise; they come back as a
  failed ResponseEnvelope (see transport.invoke).
"""

from __future__ import annotations

from dataclasses import dataclass


class PveError(Exception):
    """Base class for every error raised by pveclient."""


class ConnectError(PveError):
    """A session could not be established."""


class HostNotValid(ConnectError):
    """None of the candidate hosts answered the reachability probe."""


class PortNotValid(ConnectError):
    """The selected candidate resolved to a port <= 0."""


@dataclass(eq=False)
class AuthenticationFailed(ConnectError):
    """The ticket endpoint rejected the credentials (or could not be reached)."""
    reason: str
    status: int = -1

    def __str__(self) -> str:
        return f"Authentication failed (status={self.status}): {self.reason}"


class TfaRequired(ConnectError):
    """The account needs a second factor and no otp was supplied."""


class SessionRequired(PveError):
    """No explicit, scoped or last-used session is available."""


class VmNotFound(PveError):
    """A VM/CT selector matched nothing."""


class ConfigError(PveError):
    """Raised when runtime configuration cannot be resolved."""
