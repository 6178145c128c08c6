import pytest
import requests

from conftest import reply
from pveclient.core.auth import connect, parse_host_port
from pveclient.core.errors import (
    AuthenticationFailed,
    ConnectError,
    HostNotValid,
    PortNotValid,
    TfaRequired,
)
from pveclient.core.session import get_last_session

TICKET = "/api2/json/access/ticket"


def always_up(host, port):
    return True


class RecordingProbe:
    """Probe answering from a fixed set of reachable host:port pairs."""

    def __init__(self, *reachable):
        self.reachable = set(reachable)
        self.calls = []

    def __call__(self, host, port):
        self.calls.append((host, port))
        return (host, port) in self.reachable


@pytest.mark.parametrize(
    "candidate,expected",
    [
        ("10.1.1.90", ("10.1.1.90", 8006)),
        ("10.1.1.90:8007", ("10.1.1.90", 8007)),
        ("pve1.lan:443", ("pve1.lan", 443)),
        ("[fe80::1]:8443", ("fe80::1", 8443)),
        ("[fe80::1]", ("fe80::1", 8006)),
        ("fe80::1", ("fe80::1", 8006)),
        ("pve1:abc", ("pve1", 8006)),
    ],
)
def test_parse_host_port(candidate, expected):
    assert parse_host_port(candidate) == expected


def test_ticket_login(fake_http):
    fake_http.on("POST", TICKET, reply(200, {"data": {"ticket": "T", "CSRFPreventionToken": "C"}}))

    s = connect(["10.1.1.90:8006"], "root", "secret", probe=always_up, http=fake_http)

    assert (s.host, s.port, s.ticket, s.csrf_token) == ("10.1.1.90", 8006, "T", "C")
    assert get_last_session() is s
    call = fake_http.calls[0]
    assert call.url == "https://10.1.1.90:8006" + TICKET
    assert call.kwargs["json"] == {"username": "root@pam", "password": "secret"}
    assert call.kwargs["cookies"] == {}


def test_realm_is_kept_and_otp_forwarded(fake_http):
    fake_http.on("POST", TICKET, reply(200, {"data": {"ticket": "T", "CSRFPreventionToken": "C"}}))

    connect("pve1", "admin@pve", "pw", otp="123456", probe=always_up, http=fake_http)

    assert fake_http.calls[0].kwargs["json"] == {"username": "admin@pve", "password": "pw", "otp": "123456"}


def test_tfa_required_without_otp(fake_http):
    fake_http.on("POST", TICKET, reply(200, {"data": {"ticket": "T", "CSRFPreventionToken": "C", "NeedTFA": 1}}))

    with pytest.raises(TfaRequired) as exc:
        connect(["pve1"], "root", "pw", probe=always_up, http=fake_http)

    assert "Two Factor Authentication" in str(exc.value)
    assert get_last_session() is None


def test_api_token_makes_no_ticket_call(fake_http):
    s = connect(["pve1:8006"], api_token="root@pam!ci=uuid", probe=always_up, http=fake_http)

    assert fake_http.calls == []
    assert s.api_token == "root@pam!ci=uuid"
    assert s.headers()["Authorization"] == "PVEAPIToken root@pam!ci=uuid"
    assert get_last_session() is s


def test_first_reachable_candidate_wins(fake_http):
    probe = RecordingProbe(("10.1.1.91", 8006))
    fake_http.on("POST", TICKET, reply(200, {"data": {"ticket": "T", "CSRFPreventionToken": "C"}}))

    s = connect("10.1.1.90, ,10.1.1.91,10.1.1.92", "root", "pw", probe=probe, http=fake_http)

    assert s.host == "10.1.1.91"
    assert probe.calls == [("10.1.1.90", 8006), ("10.1.1.91", 8006)]
    assert fake_http.calls[0].url.startswith("https://10.1.1.91:8006/")


def test_no_reachable_host(fake_http):
    with pytest.raises(HostNotValid):
        connect(["10.1.1.90", "10.1.1.91"], "root", "pw", probe=RecordingProbe(), http=fake_http)
    assert fake_http.calls == []


def test_empty_candidate_list():
    with pytest.raises(HostNotValid):
        connect([], "root", "pw", probe=always_up)


def test_non_numeric_port_falls_back_to_default(fake_http):
    probe = RecordingProbe(("pve1", 8006))

    s = connect(["pve1:https"], api_token="t", probe=probe, http=fake_http)

    assert s.port == 8006


@pytest.mark.parametrize("candidate", ["pve1:0", "pve1:-1"])
def test_non_positive_port_is_rejected(candidate):
    probe = RecordingProbe()

    with pytest.raises(PortNotValid):
        connect([candidate, "pve2:-3"], api_token="t", probe=probe)
    assert probe.calls == []


def test_bad_port_candidate_is_skipped_for_next_one():
    probe = RecordingProbe(("pve2", 8006))

    s = connect(["pve1:0", "pve2:8006"], api_token="t", probe=probe)

    assert (s.host, s.port) == ("pve2", 8006)
    assert probe.calls == [("pve2", 8006)]


def test_bad_port_and_unreachable_host_is_host_error():
    with pytest.raises(HostNotValid):
        connect(["pve1:0", "pve2:8006"], api_token="t", probe=RecordingProbe())


def test_rejected_credentials(fake_http):
    fake_http.on("POST", TICKET, reply(401, {"data": None}, reason="authentication failure"))

    with pytest.raises(AuthenticationFailed) as exc:
        connect(["pve1"], "root", "wrong", probe=always_up, http=fake_http)

    assert exc.value.status == 401
    assert exc.value.reason == "authentication failure"
    assert isinstance(exc.value, ConnectError)


def test_unreachable_ticket_endpoint(fake_http):
    fake_http.on("POST", TICKET, requests.ConnectTimeout("timed out"))

    with pytest.raises(AuthenticationFailed) as exc:
        connect(["pve1"], "root", "pw", probe=always_up, http=fake_http)

    assert exc.value.status == -1
    assert exc.value.reason == "timed out"


def test_skip_refresh_last_keeps_previous_session(fake_http):
    first = connect(["pve1"], api_token="a", probe=always_up)
    second = connect(["pve2"], api_token="b", probe=always_up, skip_refresh_last=True)

    assert get_last_session() is first
    assert second.host == "pve2"


def test_connection_options_carried_into_session():
    s = connect(["pve1"], api_token="t", skip_certificate_check=True, timeout_sec=12, probe=always_up)

    assert s.skip_certificate_check is True
    assert s.timeout_sec == 12


def test_session_repr_hides_secrets():
    s = connect(["pve1"], api_token="root@pam!ci=secret-uuid", probe=always_up)

    assert "secret-uuid" not in repr(s)
