"""
Transport invoker for the Proxmox VE API.

- Single entry point: invoke(resource, verb, parameters, response_type).
- requests for HTTP; the `http` argument accepts anything with
  `request(method, url, **kwargs)` (requests module, a requests.Session,
  or a test double).
- No retries, no pooling.
- Never raises for transport/HTTP problems: every failure becomes a
  ResponseEnvelope with success=False.

Usage:
    res = invoke("/nodes/pve1/qemu/100/status/start", "Create")
    if not res.success:
        print(res.status_code, res.reason)
"""

from __future__ import annotations

import logging
import time
import warnings
from typing import Any, Mapping, Optional, Tuple, Union

import requests
import urllib3

from .request_builder import RequestDescriptor, Verb, prepare
from .response import ResponseEnvelope, failure
from .session import Session, resolve_session

log = logging.getLogger("pve.http")


def _decode(resp: requests.Response, response_type: str) -> Any:
    if response_type == "png":
        return resp.content
    if response_type in ("json", "extjs"):
        if not resp.content:
            return None
        try:
            return resp.json()
        except ValueError:
            log.warning("Non-JSON body for response type %s, returning text", response_type)
            return resp.text
    return resp.text


def invoke(
    resource: str,
    verb: Union[Verb, str] = Verb.GET,
    parameters: Optional[Mapping[str, Any]] = None,
    response_type: Optional[str] = "json",
    *,
    session: Optional[Session] = None,
    http: Any = None,
) -> ResponseEnvelope:
    session = resolve_session(session)
    descriptor = RequestDescriptor.create(resource, verb, parameters, response_type)
    call = prepare(session, descriptor)
    http = http if http is not None else requests
    request_info = {
        "resource": descriptor.resource,
        "method": descriptor.method,
        "parameters": dict(descriptor.parameters),
        "response_type": descriptor.response_type,
    }

    start = time.time()
    try:
        with warnings.catch_warnings():
            if not call.verify:
                warnings.simplefilter("ignore", urllib3.exceptions.InsecureRequestWarning)
            resp = http.request(
                call.method,
                call.url,
                headers=call.headers,
                cookies=call.cookies,
                json=call.json,
                verify=call.verify,
                timeout=call.timeout,
            )
        resp.raise_for_status()
    except requests.HTTPError as e:
        err_resp = e.response
        status, reason = _status_from_exception(e)
        body = _decode(err_resp, descriptor.response_type) if err_resp is not None else None
        log.warning("%s %s failed (status=%s): %s", call.method, descriptor.resource, status, reason)
        return failure(reason, status_code=status, response=body, **request_info)
    except Exception as e:  # any transport failure becomes a failed envelope
        status, reason = _status_from_exception(e)
        log.warning("%s %s failed (status=%s): %s", call.method, descriptor.resource, status, reason)
        return failure(reason, status_code=status, **request_info)

    elapsed = (time.time() - start) * 1000
    log.debug("%s %s -> %s in %.1fms", call.method, descriptor.resource, resp.status_code, elapsed)
    return ResponseEnvelope(
        response=_decode(resp, descriptor.response_type),
        status_code=int(resp.status_code),
        success=True,
        reason=resp.reason or "",
        **request_info,
    )


def _status_from_exception(exc: Exception) -> Tuple[int, str]:
    resp = getattr(exc, "response", None)
    status = getattr(resp, "status_code", None)
    reason = getattr(resp, "reason", None)
    if not status:
        return -1, str(exc)
    return int(status), reason or str(exc)
