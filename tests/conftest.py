import json
from dataclasses import dataclass
from typing import Any, Dict, List
from urllib.parse import parse_qsl, urlparse

import pytest
import requests

from pveclient.core.session import Session, clear_last_session

_REASONS = {200: "OK", 400: "Bad Request", 401: "authentication failure", 404: "Not Found", 500: "Internal Server Error"}


def reply(status: int = 200, body: Any = None, reason: str = None, url: str = "") -> requests.Response:
    resp = requests.Response()
    resp.status_code = status
    resp.reason = reason if reason is not None else _REASONS.get(status, "")
    resp.url = url
    resp.encoding = "utf-8"
    if isinstance(body, bytes):
        resp._content = body
    elif isinstance(body, str):
        resp._content = body.encode("utf-8")
    elif body is None:
        resp._content = b""
    else:
        resp._content = json.dumps(body).encode("utf-8")
        resp.headers["Content-Type"] = "application/json"
    return resp


@dataclass
class Call:
    method: str
    url: str
    kwargs: Dict[str, Any]

    @property
    def path(self) -> str:
        return urlparse(self.url).path

    @property
    def query(self) -> Dict[str, str]:
        return dict(parse_qsl(urlparse(self.url).query))


class FakeHttp:
    """Stand-in for the `requests` module: records calls, replays canned answers per route."""

    def __init__(self) -> None:
        self.calls: List[Call] = []
        self._routes: Dict[tuple, List[Any]] = {}

    def on(self, method: str, path: str, *answers: Any) -> "FakeHttp":
        # answers: requests.Response or Exception, consumed in order, last one repeats
        self._routes[(method.upper(), path)] = list(answers)
        return self

    def calls_to(self, path: str) -> List[Call]:
        return [c for c in self.calls if c.path == path]

    def request(self, method: str, url: str, **kwargs: Any) -> requests.Response:
        call = Call(method, url, kwargs)
        self.calls.append(call)
        answers = self._routes.get((method.upper(), call.path))
        if not answers:
            return reply(404, {"data": None}, url=url)
        answer = answers.pop(0) if len(answers) > 1 else answers[0]
        if isinstance(answer, Exception):
            raise answer
        answer.url = url
        return answer


@pytest.fixture(autouse=True)
def _reset_last_session():
    clear_last_session()
    yield
    clear_last_session()


@pytest.fixture()
def fake_http():
    return FakeHttp()


@pytest.fixture()
def ticket_session():
    return Session(host="10.1.1.90", port=8006, ticket="PVE:root@pam:ABC", csrf_token="CSRF-1")


@pytest.fixture()
def token_session():
    return Session(host="pve1", api_token="root@pam!ci=0000-1111")
