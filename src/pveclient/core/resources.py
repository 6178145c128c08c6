"""
VM/CT lookup over /cluster/resources.

Selector syntax (comma separated, evaluated left to right):
  123             vmid
  web*            name, shell wildcards
  100:110         inclusive vmid range
  @all            every guest
  @all-<node>     every guest on <node> (alias: @node-<node>)
  @pool-<pool>    every guest in <pool>
  @tag-<tag>      every guest carrying <tag>
  -<term>         exclude whatever <term> matches
"""

from __future__ import annotations

import fnmatch
import logging
from typing import Any, Dict, List, Optional

from .errors import VmNotFound
from .request_builder import Verb
from .session import Session
from .transport import invoke

log = logging.getLogger("pve.resources")


def get_vms(*, session: Optional[Session] = None, http: Any = None) -> List[Dict[str, Any]]:
    """Guests (qemu + lxc) known to the cluster; empty list when the call fails."""
    res = invoke("/cluster/resources", Verb.GET, {"type": "vm"}, session=session, http=http)
    if not res.success:
        log.warning("Unable to list cluster resources: %s", res.reason)
        return []
    data = res.data()
    return [r for r in data if isinstance(r, dict)] if isinstance(data, list) else []


def _tags(record: Dict[str, Any]) -> List[str]:
    raw = str(record.get("tags") or "")
    return [t for t in raw.replace(",", ";").replace(" ", ";").split(";") if t]


def _vmid(record: Dict[str, Any]) -> Optional[int]:
    try:
        return int(record.get("vmid"))
    except (TypeError, ValueError):
        return None


def _matches(record: Dict[str, Any], term: str) -> bool:
    lowered = term.lower()
    if lowered == "@all":
        return True
    for prefix, key in (("@all-", "node"), ("@node-", "node"), ("@pool-", "pool")):
        if lowered.startswith(prefix):
            return str(record.get(key) or "").lower() == lowered[len(prefix):]
    if lowered.startswith("@tag-"):
        return lowered[len("@tag-"):] in [t.lower() for t in _tags(record)]

    vmid = _vmid(record)
    if term.isdigit():
        return vmid == int(term)
    if ":" in term:
        low, _, high = term.partition(":")
        if low.strip().isdigit() and high.strip().isdigit():
            return vmid is not None and int(low) <= vmid <= int(high)
    return fnmatch.fnmatch(str(record.get("name") or "").lower(), lowered)


def select_vms(records: List[Dict[str, Any]], vm_id_or_name: str) -> List[Dict[str, Any]]:
    terms = [t.strip() for t in str(vm_id_or_name).split(",") if t.strip()]
    include = [t for t in terms if not t.startswith("-")]
    exclude = [t[1:] for t in terms if t.startswith("-") and len(t) > 1]
    if not include and exclude:
        include = ["@all"]

    out = []
    for record in records:
        if not any(_matches(record, t) for t in include):
            continue
        if any(_matches(record, t) for t in exclude):
            continue
        out.append(record)
    return out


def find_vm(
    vm_id_or_name: str,
    *,
    session: Optional[Session] = None,
    http: Any = None,
) -> Dict[str, Any]:
    matches = select_vms(get_vms(session=session, http=http), vm_id_or_name)
    if not matches:
        raise VmNotFound(f"No VM/CT matches {vm_id_or_name!r}")
    return matches[0]
