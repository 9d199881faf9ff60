"""Unit tests for the machine descriptor and its wire mapping."""

from bigv.provisioning.machine import machine_from_attributes
from bigv.provisioning.types import Machine, NetworkInterface

CREATE_RESPONSE = {
    "virtual_machine": {
        "id": 4711,
        "name": "web1",
        "cores": 2,
        "memory": 8192,
        "power_on": True,
        "autoreboot_on": True,
        "group_id": 12,
        "zone_name": "york",
        "hostname": "web1.default.acme.uk0.bigv.io",
        "last_imaged_with": "",
    },
    "discs": [{"label": "root", "storage_grade": "sata", "size": 25600}],
}


def test_nic_splits_address_families():
    nic = NetworkInterface(ips=["2001:41c8:51:7c7::2", "213.138.100.10"])
    assert nic.ipv4 == "213.138.100.10"
    assert nic.ipv6 == "2001:41c8:51:7c7::2"
    assert NetworkInterface().ipv4 == ""


def test_refresh_from_create_envelope_keeps_requested_os():
    machine = Machine(name="web1", distribution="vivid")
    machine.refresh(CREATE_RESPONSE)

    assert machine.id == 4711
    assert machine.group_id == 12
    assert machine.zone == "york"
    assert machine.distribution == "vivid"
    assert machine.discs[0].size == 25600
    assert machine.interfaces == []


def test_refresh_from_bare_record():
    machine = Machine(name="web1", cores=2)
    machine.refresh(
        {
            "id": 4711,
            "power_on": False,
            "last_imaged_with": "jessie",
            "network_interfaces": [{"label": "", "ips": ["213.138.100.10"], "mac": "fe:ff:00:00:00:01"}],
        }
    )

    assert machine.cores == 2
    assert machine.power_on is False
    assert machine.distribution == "jessie"
    assert machine.primary_address == "213.138.100.10"


def test_to_attributes():
    machine = Machine(name="web1", distribution="vivid", group="default")
    machine.refresh(CREATE_RESPONSE)

    attrs = machine.to_attributes()
    assert attrs["id"] == "4711"
    assert attrs["reboot"] is True
    assert attrs["os"] == "vivid"
    assert attrs["disc_size"] == 25600
    assert attrs["ipv4"] == ""
    assert "root_password" not in attrs


def test_to_attributes_without_id():
    assert Machine(name="web1").to_attributes()["id"] == ""


def test_machine_from_attributes():
    machine = machine_from_attributes(
        {"id": "4711", "name": "web1", "cores": 1, "memory": 4096, "ipv4": "213.138.100.10", "ipv6": "", "disc_size": 25600}
    )

    assert machine.id == 4711
    assert machine.primary_address == "213.138.100.10"
    assert machine.to_attributes()["disc_size"] == 25600
