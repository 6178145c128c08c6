"""
Request builder: (session, resource, verb, parameters, response type) -> HTTP call.

Rules:
- Verb mapping is fixed: Get->GET, Set->PUT, Create->POST, Delete->DELETE.
- Booleans are sent as 1/0.
- None and "" values are dropped (unset optional argument).
- A mapping value is an indexed family: {"net": {0: "...", 1: "..."}} -> net0, net1.
- GET/DELETE put parameters in the query string, POST/PUT in a JSON body.
- URL: https://{host}:{port}/api2[/{response_type}]{resource}[?{query}]
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Union
from urllib.parse import urlencode

from .session import Session

RESPONSE_TYPES = ("json", "extjs", "html", "text", "png", "")


class Verb(str, Enum):
    GET = "Get"
    SET = "Set"
    CREATE = "Create"
    DELETE = "Delete"


_HTTP_METHODS: Dict[Verb, str] = {
    Verb.GET: "GET",
    Verb.SET: "PUT",
    Verb.CREATE: "POST",
    Verb.DELETE: "DELETE",
}

_ALIASES: Dict[str, Verb] = {
    "get": Verb.GET,
    "set": Verb.SET,
    "put": Verb.SET,
    "create": Verb.CREATE,
    "post": Verb.CREATE,
    "delete": Verb.DELETE,
}


def to_verb(verb: Union[Verb, str]) -> Verb:
    if isinstance(verb, Verb):
        return verb
    try:
        return _ALIASES[str(verb).strip().lower()]
    except KeyError:
        raise ValueError(f"Unknown verb: {verb!r}") from None


def http_method(verb: Union[Verb, str]) -> str:
    return _HTTP_METHODS[to_verb(verb)]


def coerce_value(value: Any) -> Any:
    # bool is a subclass of int: check it first
    if isinstance(value, bool):
        return 1 if value else 0
    return value


def _is_unset(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value == "")


def flatten_indexed(prefix: str, family: Mapping[Any, Any]) -> Dict[str, Any]:
    """{0: "a", 2: "b"} with prefix "net" -> {"net0": "a", "net2": "b"} (unset members dropped)."""
    return {
        f"{prefix}{index}": coerce_value(value)
        for index, value in family.items()
        if not _is_unset(value)
    }


def build_parameters(parameters: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for key, value in (parameters or {}).items():
        if _is_unset(value):
            continue
        if isinstance(value, Mapping):
            out.update(flatten_indexed(key, value))
        else:
            out[key] = coerce_value(value)
    return out


def serialize_request(request: Any) -> Dict[str, Any]:
    """
    Walk a dataclass request record into a parameter mapping.

    Field names map to parameter names, except when the field carries
    metadata {"name": "..."}; dict fields are indexed families keyed by
    the field (or metadata) name.
    """
    if not dataclasses.is_dataclass(request) or isinstance(request, type):
        raise TypeError(f"Expected a dataclass instance, got {type(request).__name__}")
    raw: Dict[str, Any] = {}
    for f in dataclasses.fields(request):
        name = f.metadata.get("name", f.name)
        raw[name] = getattr(request, f.name)
    return build_parameters(raw)


@dataclass(frozen=True)
class RequestDescriptor:
    resource: str
    verb: Verb = Verb.GET
    parameters: Dict[str, Any] = field(default_factory=dict)
    response_type: str = "json"

    @classmethod
    def create(
        cls,
        resource: str,
        verb: Union[Verb, str] = Verb.GET,
        parameters: Optional[Mapping[str, Any]] = None,
        response_type: Optional[str] = "json",
    ) -> "RequestDescriptor":
        response_type = response_type or ""
        if response_type not in RESPONSE_TYPES:
            raise ValueError(f"Unknown response type: {response_type!r}")
        return cls(
            resource="/" + resource.lstrip("/"),
            verb=to_verb(verb),
            parameters=build_parameters(parameters),
            response_type=response_type,
        )

    @property
    def method(self) -> str:
        return _HTTP_METHODS[self.verb]

    @property
    def uses_query(self) -> bool:
        return self.method in ("GET", "DELETE")

    def query_string(self) -> str:
        if not self.uses_query or not self.parameters:
            return ""
        return urlencode([(k, str(v)) for k, v in self.parameters.items()])

    def json_body(self) -> Optional[Dict[str, Any]]:
        if self.uses_query:
            return None
        return dict(self.parameters)

    def url(self, session: Session) -> str:
        type_segment = f"/{self.response_type}" if self.response_type else ""
        url = f"{session.base_url}/api2{type_segment}{self.resource}"
        query = self.query_string()
        return f"{url}?{query}" if query else url


@dataclass(frozen=True)
class PreparedCall:
    """Everything the transport needs for one HTTP call."""
    method: str
    url: str
    headers: Dict[str, str]
    cookies: Dict[str, str]
    json: Optional[Dict[str, Any]]
    verify: bool
    timeout: Optional[float]


def prepare(session: Session, descriptor: RequestDescriptor) -> PreparedCall:
    headers = session.headers()
    body = descriptor.json_body()
    if body is not None:
        headers["Content-Type"] = "application/json"
    return PreparedCall(
        method=descriptor.method,
        url=descriptor.url(session),
        headers=headers,
        cookies=session.cookies(),
        json=body,
        verify=not session.skip_certificate_check,
        timeout=session.timeout_sec,
    )
