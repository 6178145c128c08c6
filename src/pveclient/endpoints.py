"""
Typed helpers for a handful of Proxmox VE endpoints.

Each helper substitutes its path parameters into the resource and hands the
remaining arguments to invoke(); unset arguments are dropped there. Larger
payloads are typed request records serialized by serialize_request().
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from .core.request_builder import Verb, serialize_request
from .core.response import ResponseEnvelope
from .core.session import Session
from .core.transport import invoke

QEMU_ACTIONS = ("start", "stop", "shutdown", "reboot", "reset", "suspend", "resume")
LXC_ACTIONS = ("start", "stop", "shutdown", "reboot", "suspend", "resume")


@dataclass
class QemuConfig:
    """Subset of PUT /nodes/{node}/qemu/{vmid}/config."""
    name: Optional[str] = None
    description: Optional[str] = None
    cores: Optional[int] = None
    sockets: Optional[int] = None
    memory: Optional[int] = None
    onboot: Optional[bool] = None
    agent: Optional[str] = None
    tags: Optional[str] = None
    delete: Optional[str] = None
    digest: Optional[str] = None
    # indexed families: {0: "virtio,bridge=vmbr0"} -> net0=...
    net: Dict[int, str] = field(default_factory=dict)
    scsi: Dict[int, str] = field(default_factory=dict)
    ide: Dict[int, str] = field(default_factory=dict)
    ipconfig: Dict[int, str] = field(default_factory=dict)


@dataclass
class VzdumpRequest:
    """Subset of POST /nodes/{node}/vzdump."""
    vmid: Optional[str] = None
    all: Optional[bool] = None
    storage: Optional[str] = None
    mode: Optional[str] = None        # snapshot | suspend | stop
    compress: Optional[str] = None    # 0 | 1 | gzip | lzo | zstd
    remove: Optional[bool] = None
    notes_template: Optional[str] = field(default=None, metadata={"name": "notes-template"})
    mailto: Optional[str] = None


def get_version(*, session: Optional[Session] = None, http: Any = None) -> ResponseEnvelope:
    return invoke("/version", Verb.GET, session=session, http=http)


def get_nodes(*, session: Optional[Session] = None, http: Any = None) -> ResponseEnvelope:
    return invoke("/nodes", Verb.GET, session=session, http=http)


def get_cluster_resources(
    type: Optional[str] = None,
    *,
    session: Optional[Session] = None,
    http: Any = None,
) -> ResponseEnvelope:
    return invoke("/cluster/resources", Verb.GET, {"type": type}, session=session, http=http)


def qemu_status(
    node: str,
    vmid: int,
    action: str,
    *,
    skiplock: Optional[bool] = None,
    timeout: Optional[int] = None,
    session: Optional[Session] = None,
    http: Any = None,
) -> ResponseEnvelope:
    """POST /nodes/{node}/qemu/{vmid}/status/{action}; `data` holds the task UPID."""
    if action not in QEMU_ACTIONS:
        raise ValueError(f"Unknown qemu action: {action!r}")
    return invoke(
        f"/nodes/{node}/qemu/{vmid}/status/{action}",
        Verb.CREATE,
        {"skiplock": skiplock, "timeout": timeout},
        session=session,
        http=http,
    )


def lxc_status(
    node: str,
    vmid: int,
    action: str,
    *,
    session: Optional[Session] = None,
    http: Any = None,
) -> ResponseEnvelope:
    if action not in LXC_ACTIONS:
        raise ValueError(f"Unknown lxc action: {action!r}")
    return invoke(f"/nodes/{node}/lxc/{vmid}/status/{action}", Verb.CREATE, session=session, http=http)


def qemu_config_get(
    node: str,
    vmid: int,
    *,
    current: Optional[bool] = None,
    session: Optional[Session] = None,
    http: Any = None,
) -> ResponseEnvelope:
    return invoke(
        f"/nodes/{node}/qemu/{vmid}/config",
        Verb.GET,
        {"current": current},
        session=session,
        http=http,
    )


def qemu_config_set(
    node: str,
    vmid: int,
    config: QemuConfig,
    *,
    session: Optional[Session] = None,
    http: Any = None,
) -> ResponseEnvelope:
    return invoke(
        f"/nodes/{node}/qemu/{vmid}/config",
        Verb.SET,
        serialize_request(config),
        session=session,
        http=http,
    )


def vzdump(
    node: str,
    request: VzdumpRequest,
    *,
    session: Optional[Session] = None,
    http: Any = None,
) -> ResponseEnvelope:
    return invoke(f"/nodes/{node}/vzdump", Verb.CREATE, serialize_request(request), session=session, http=http)


def qemu_spiceproxy(
    node: str,
    vmid: int,
    proxy: Optional[str] = None,
    *,
    session: Optional[Session] = None,
    http: Any = None,
) -> ResponseEnvelope:
    """SPICE connection file; requested without a response type segment."""
    return invoke(
        f"/nodes/{node}/qemu/{vmid}/spiceproxy",
        Verb.CREATE,
        {"proxy": proxy},
        response_type="",
        session=session,
        http=http,
    )
