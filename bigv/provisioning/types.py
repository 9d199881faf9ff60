"""BigV resource descriptors and their JSON / flat-attribute conversions."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

DEFAULT_GROUP = "default"
DEFAULT_ZONE = "york"
NO_OS = "none"
DEFAULT_OS = "vivid"
DEFAULT_DISC_SIZE = 25600  # MiB
ROOT_DISC_LABEL = "root"
DEFAULT_STORAGE_GRADE = "sata"

# Attributes only BigV may set.
COMPUTED_ATTRIBUTES = frozenset({"id", "root_password", "group_id", "hostname"})


@dataclass
class Disc:
    """A disc attached to a machine. Fixed at creation."""

    label: str = ROOT_DISC_LABEL
    storage_grade: str = DEFAULT_STORAGE_GRADE
    size: int = DEFAULT_DISC_SIZE

    def to_json(self) -> dict[str, Any]:
        return {"label": self.label, "storage_grade": self.storage_grade, "size": self.size}

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> Disc:
        return cls(
            label=data.get("label", ROOT_DISC_LABEL),
            storage_grade=data.get("storage_grade", DEFAULT_STORAGE_GRADE),
            size=data.get("size", 0),
        )


@dataclass
class NetworkInterface:
    """A NIC as reported by BigV after creation."""

    label: str = ""
    ips: list[str] = field(default_factory=list)
    mac: str = ""

    @property
    def ipv4(self) -> str:
        return next((ip for ip in self.ips if "." in ip), "")

    @property
    def ipv6(self) -> str:
        return next((ip for ip in self.ips if ":" in ip), "")

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> NetworkInterface:
        return cls(label=data.get("label", ""), ips=list(data.get("ips") or []), mac=data.get("mac", ""))


@dataclass
class ImageSpec:
    """What to image a new machine with. Never read back except the distribution."""

    distribution: str = DEFAULT_OS
    root_password: str = ""
    ssh_public_key: str = ""
    firstboot_script: str = ""

    def to_json(self) -> dict[str, Any]:
        data = {"distribution": self.distribution, "root_password": self.root_password}
        if self.ssh_public_key:
            data["ssh_public_key"] = self.ssh_public_key
        if self.firstboot_script:
            data["firstboot_script"] = self.firstboot_script
        return data


@dataclass
class Machine:
    """Best-known state of one virtual machine."""

    name: str
    id: int | None = None
    cores: int = 0
    memory: int = 0
    power_on: bool = False
    autoreboot_on: bool = False
    group: str = ""
    group_id: int | None = None
    zone: str = ""
    distribution: str = ""
    hostname: str = ""
    discs: list[Disc] = field(default_factory=list)
    interfaces: list[NetworkInterface] = field(default_factory=list)

    @property
    def primary_interface(self) -> NetworkInterface | None:
        """The first NIC is treated as the primary one."""
        return self.interfaces[0] if self.interfaces else None

    @property
    def primary_address(self) -> str:
        nic = self.primary_interface
        if nic is None:
            return ""
        return nic.ipv4 or nic.ipv6

    def refresh(self, data: dict[str, Any]) -> None:
        """Merge a BigV response into this descriptor.

        Accepts the create envelope (``{"virtual_machine": ..., "discs": ...}``)
        as well as the bare record returned by reads and updates. Fields absent
        from the response keep their previous value.
        """
        record = data.get("virtual_machine", data)
        if record.get("id") is not None:
            self.id = record["id"]
        for attr, key in (
            ("name", "name"),
            ("cores", "cores"),
            ("memory", "memory"),
            ("power_on", "power_on"),
            ("autoreboot_on", "autoreboot_on"),
            ("group_id", "group_id"),
            ("zone", "zone_name"),
            ("hostname", "hostname"),
        ):
            if record.get(key) is not None:
                setattr(self, attr, record[key])
        # Empty in the create response; keep what we sent.
        if record.get("last_imaged_with"):
            self.distribution = record["last_imaged_with"]

        discs = data.get("discs") or record.get("discs")
        if discs:
            self.discs = [Disc.from_json(d) for d in discs]
        nics = record.get("network_interfaces") or data.get("network_interfaces")
        if nics:
            self.interfaces = [NetworkInterface.from_json(n) for n in nics]

    def to_attributes(self) -> dict[str, Any]:
        """Flat attribute mapping exposed to callers."""
        nic = self.primary_interface
        root = next((d for d in self.discs if d.label == ROOT_DISC_LABEL), self.discs[0] if self.discs else None)
        return {
            "id": str(self.id) if self.id is not None else "",
            "name": self.name,
            "cores": self.cores,
            "memory": self.memory,
            "power_on": self.power_on,
            "reboot": self.autoreboot_on,
            "group": self.group,
            "group_id": self.group_id,
            "zone": self.zone,
            "os": self.distribution,
            "hostname": self.hostname,
            "ipv4": nic.ipv4 if nic else "",
            "ipv6": nic.ipv6 if nic else "",
            "disc_size": root.size if root else 0,
        }


@dataclass
class CreateRequest:
    """Payload for ``vm_create``: machine, one root disc, image and optional IPs."""

    machine: Machine
    disc: Disc
    image: ImageSpec
    ipv4: str = ""
    ipv6: str = ""

    def to_json(self) -> dict[str, Any]:
        vm = {
            "name": self.machine.name,
            "cores": self.machine.cores,
            "memory": self.machine.memory,
            "power_on": self.machine.power_on,
            "autoreboot_on": self.machine.autoreboot_on,
        }
        if self.machine.zone:
            vm["zone_name"] = self.machine.zone
        payload = {
            "virtual_machine": vm,
            "discs": [self.disc.to_json()],
            "reimage": self.image.to_json(),
        }
        ips = {k: v for k, v in (("ipv4", self.ipv4), ("ipv6", self.ipv6)) if v}
        if ips:
            payload["ips"] = ips
        return payload
