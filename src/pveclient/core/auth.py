"""
Session establishment against a Proxmox VE cluster.

- Candidates are tried in order ("host", "host:port", "[v6addr]:port").
- The first candidate answering the reachability probe is used.
- API token: no round-trip, the session is ready as is.
- Ticket: POST /access/ticket with username/password (+ otp).
- The new session becomes the last-used one unless skip_refresh_last.
"""

from __future__ import annotations

import logging
import socket
from typing import Any, Callable, Iterable, Optional, Tuple

from .errors import AuthenticationFailed, HostNotValid, PortNotValid, TfaRequired
from .request_builder import Verb
from .session import DEFAULT_PORT, Session, set_last_session
from .transport import invoke

log = logging.getLogger("pve.auth")

Probe = Callable[[str, int], bool]


def parse_host_port(candidate: str) -> Tuple[str, int]:
    """
    Split "host[:port]". An unparsable port falls back to DEFAULT_PORT.
    Bare IPv6 addresses (more than one colon, no brackets) carry no port.
    """
    text = candidate.strip()
    host, port_text = text, ""
    if text.startswith("["):
        end = text.find("]")
        if end > 0:
            host = text[1:end]
            rest = text[end + 1:]
            port_text = rest[1:] if rest.startswith(":") else ""
    elif text.count(":") == 1:
        host, port_text = text.split(":", 1)

    port = DEFAULT_PORT
    if port_text:
        try:
            port = int(port_text)
        except ValueError:
            log.warning("Invalid port %r for host %s, using %s", port_text, host, DEFAULT_PORT)
    return host, port


def tcp_probe(host: str, port: int, timeout_sec: float = 2.0) -> bool:
    """Single TCP connect to the API port."""
    try:
        with socket.create_connection((host, port), timeout=timeout_sec):
            return True
    except OSError:
        return False


def _select_host(hosts_and_ports: Iterable[str], probe: Probe) -> Tuple[str, int]:
    tried = []
    bad_ports = []
    for candidate in hosts_and_ports:
        if not candidate or not candidate.strip():
            continue
        host, port = parse_host_port(candidate)
        if port <= 0:
            log.warning("Port not valid for %s: %s, trying next candidate", host, port)
            bad_ports.append(f"{host}:{port}")
            continue
        tried.append(f"{host}:{port}")
        if probe(host, port):
            log.debug("Selected host %s:%s", host, port)
            return host, port
        log.info("Host %s:%s not reachable, trying next candidate", host, port)
    if bad_ports and not tried:
        raise PortNotValid("Port not valid for: " + ", ".join(bad_ports))
    raise HostNotValid("No reachable host among: " + (", ".join(tried) or "<none>"))


def connect(
    hosts_and_ports: Iterable[str],
    username: str = "",
    password: str = "",
    *,
    api_token: str = "",
    otp: str = "",
    skip_certificate_check: bool = False,
    skip_refresh_last: bool = False,
    timeout_sec: Optional[float] = None,
    probe: Optional[Probe] = None,
    http: Any = None,
) -> Session:
    if isinstance(hosts_and_ports, str):
        hosts_and_ports = hosts_and_ports.split(",")
    host, port = _select_host(hosts_and_ports, probe or tcp_probe)

    session = Session(
        host=host,
        port=port,
        skip_certificate_check=skip_certificate_check,
        api_token=api_token or "",
        timeout_sec=timeout_sec,
    )

    if not api_token:
        if "@" not in username:
            username = f"{username}@pam"
        parameters = {"username": username, "password": password}
        if otp:
            parameters["otp"] = otp

        res = invoke("/access/ticket", Verb.CREATE, parameters, session=session, http=http)
        if not res.success:
            log.error("Login of %s on %s:%s failed: %s", username, host, port, res.reason)
            raise AuthenticationFailed(reason=res.reason, status=res.status_code)

        data = res.data()
        if not isinstance(data, dict):
            data = {}
        if data.get("NeedTFA") and not otp:
            raise TfaRequired("Couldn't authenticate user: missing Two Factor Authentication (TFA)")

        session.ticket = data.get("ticket", "") or ""
        session.csrf_token = data.get("CSRFPreventionToken", "") or ""
        log.info("Authenticated %s on %s:%s", username, host, port)
    else:
        log.info("Using API token on %s:%s", host, port)

    if not skip_refresh_last:
        set_last_session(session)
    return session
