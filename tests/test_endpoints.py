import pytest

from conftest import reply
from pveclient.core.request_builder import serialize_request
from pveclient.endpoints import (
    QemuConfig,
    VzdumpRequest,
    get_cluster_resources,
    get_version,
    lxc_status,
    qemu_config_get,
    qemu_config_set,
    qemu_spiceproxy,
    qemu_status,
    vzdump,
)


def test_qemu_config_serialization():
    cfg = QemuConfig(name="web-01", cores=2, onboot=True, net={0: "virtio,bridge=vmbr0", 1: "e1000,bridge=vmbr1"},
                     ipconfig={0: "ip=dhcp"})

    assert serialize_request(cfg) == {
        "name": "web-01",
        "cores": 2,
        "onboot": 1,
        "net0": "virtio,bridge=vmbr0",
        "net1": "e1000,bridge=vmbr1",
        "ipconfig0": "ip=dhcp",
    }


def test_vzdump_uses_wire_names():
    req = VzdumpRequest(vmid="100,101", mode="snapshot", remove=False, notes_template="{{guestname}}")

    assert serialize_request(req) == {
        "vmid": "100,101",
        "mode": "snapshot",
        "remove": 0,
        "notes-template": "{{guestname}}",
    }


def test_version(fake_http, ticket_session):
    fake_http.on("GET", "/api2/json/version", reply(200, {"data": {"version": "8.2.4", "release": "8.2"}}))

    res = get_version(session=ticket_session, http=fake_http)

    assert res.data()["version"] == "8.2.4"


def test_cluster_resources_type_filter(fake_http, ticket_session):
    fake_http.on("GET", "/api2/json/cluster/resources", reply(200, {"data": []}))

    get_cluster_resources(session=ticket_session, http=fake_http)
    get_cluster_resources("storage", session=ticket_session, http=fake_http)

    assert fake_http.calls[0].query == {}
    assert fake_http.calls[1].query == {"type": "storage"}


def test_qemu_status_posts_action(fake_http, ticket_session):
    path = "/api2/json/nodes/pve1/qemu/100/status/shutdown"
    fake_http.on("POST", path, reply(200, {"data": "UPID:pve1:1:2:3:qmshutdown:100:root@pam:"}))

    res = qemu_status("pve1", 100, "shutdown", timeout=60, session=ticket_session, http=fake_http)

    assert res.success
    assert fake_http.calls[0].kwargs["json"] == {"timeout": 60}


def test_unknown_actions_are_rejected(ticket_session):
    with pytest.raises(ValueError):
        qemu_status("pve1", 100, "explode", session=ticket_session)
    with pytest.raises(ValueError):
        lxc_status("pve1", 200, "reset", session=ticket_session)


def test_lxc_status(fake_http, ticket_session):
    fake_http.on("POST", "/api2/json/nodes/pve2/lxc/200/status/start", reply(200, {"data": "UPID:pve2:1:2:3:vzstart:200:root@pam:"}))

    res = lxc_status("pve2", 200, "start", session=ticket_session, http=fake_http)

    assert res.success
    assert fake_http.calls[0].kwargs["json"] == {}


def test_qemu_config_roundtrip_calls(fake_http, ticket_session):
    path = "/api2/json/nodes/pve1/qemu/100/config"
    fake_http.on("GET", path, reply(200, {"data": {"name": "web-01", "cores": 2}}))
    fake_http.on("PUT", path, reply(200, {"data": None}))

    current = qemu_config_get("pve1", 100, current=True, session=ticket_session, http=fake_http)
    qemu_config_set("pve1", 100, QemuConfig(cores=4, delete="ide2"), session=ticket_session, http=fake_http)

    assert current.data()["cores"] == 2
    assert fake_http.calls[0].query == {"current": "1"}
    assert fake_http.calls[1].method == "PUT"
    assert fake_http.calls[1].kwargs["json"] == {"cores": 4, "delete": "ide2"}


def test_vzdump_call(fake_http, ticket_session):
    fake_http.on("POST", "/api2/json/nodes/pve1/vzdump", reply(200, {"data": "UPID:pve1:1:2:3:vzdump::root@pam:"}))

    vzdump("pve1", VzdumpRequest(all=True, storage="local"), session=ticket_session, http=fake_http)

    assert fake_http.calls[0].kwargs["json"] == {"all": 1, "storage": "local"}


def test_spiceproxy_has_no_type_segment(fake_http, ticket_session):
    path = "/api2/nodes/pve1/qemu/100/spiceproxy"
    fake_http.on("POST", path, reply(200, "[virt-viewer]\n"))

    res = qemu_spiceproxy("pve1", 100, session=ticket_session, http=fake_http)

    assert fake_http.calls[0].url == "https://10.1.1.90:8006" + path
    assert res.response == "[virt-viewer]\n"
