"""BigV virtual machine lifecycle: create, read, update, delete, exists.

BigV accepts a create with 202 and then spends minutes imaging and booting
the machine. ``MachineProvisioner.create`` turns that into one call that
returns once the machine is provisioned, powered and answering SSH.
"""

import logging
import secrets

from bigv.provisioning.capacity import reconcile
from bigv.provisioning.errors import (
    AuthorizationError,
    BigVError,
    ComputedAttributeError,
    ImageError,
    RemoteFaultError,
    ValidationError,
)
from bigv.provisioning.gate import AdmissionGate
from bigv.provisioning.polling import Clock, poll_until
from bigv.provisioning.ssh import wait_for_ssh
from bigv.provisioning.state import Provisioning, State
from bigv.provisioning.types import (
    COMPUTED_ATTRIBUTES,
    DEFAULT_DISC_SIZE,
    DEFAULT_GROUP,
    DEFAULT_OS,
    DEFAULT_ZONE,
    NO_OS,
    CreateRequest,
    Disc,
    ImageSpec,
    Machine,
    NetworkInterface,
)
from bigv.redact import register_secret

logger = logging.getLogger(__name__)

POLL_INTERVAL = 5  # seconds
PROVISION_TIMEOUT = 1200  # seconds, per wait phase

PASSWORD_LENGTH = 20
PASSWORD_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789@%&-_=+:~"

ATTRIBUTES = frozenset(
    {
        "name",
        "cores",
        "memory",
        "power_on",
        "reboot",
        "group",
        "zone",
        "os",
        "ipv4",
        "ipv6",
        "disc_size",
        "ssh_public_key",
        "firstboot_script",
    }
)
# Changing any of these means a new machine.
IMMUTABLE_ATTRIBUTES = frozenset(
    {"name", "group", "zone", "os", "ipv4", "ipv6", "disc_size", "ssh_public_key", "firstboot_script"}
)


def random_password(length=PASSWORD_LENGTH):
    return "".join(secrets.choice(PASSWORD_ALPHABET) for _ in range(length))


def _check_attribute_names(attrs, operation, resource):
    """Reject computed and unknown attribute names.

    ``read()`` output includes the computed ``id``, ``group_id`` and
    ``hostname``, so it cannot be passed back to ``create()`` or ``update()``
    as is; callers pick the attributes they want to set.
    """
    computed = sorted(COMPUTED_ATTRIBUTES & set(attrs))
    if computed:
        raise ComputedAttributeError(f"computed attributes cannot be set: {', '.join(computed)}", operation=operation, resource=resource)
    unknown = sorted(set(attrs) - ATTRIBUTES)
    if unknown:
        raise ValidationError(f"unknown attributes: {', '.join(unknown)}", operation=operation, resource=resource)


def _parse(resp):
    """Response body as a dict, or None if it isn't one."""
    try:
        data = resp.json()
    except ValueError:
        return None
    return data if isinstance(data, dict) else None


def _expect(resp, statuses, operation, resource):
    """Raise unless *resp* has one of the accepted *statuses*."""
    if resp.status_code in statuses:
        return
    if resp.status_code == 401:
        raise AuthorizationError("credentials rejected (HTTP 401 after reauthentication)", operation=operation, resource=resource)
    raise RemoteFaultError(resp.status_code, resp.text, operation=operation, resource=resource)


def build_create_request(attrs, group=DEFAULT_GROUP, zone=DEFAULT_ZONE, password=None):
    """Validate *attrs* and turn them into a ``vm_create`` payload.

    Nothing here touches the network; every rejection is a ValidationError.
    """
    name = attrs.get("name") or ""
    _check_attribute_names(attrs, "create", name)
    if not name:
        raise ValidationError("a machine name is required", operation="create")

    distribution = attrs.get("os") or DEFAULT_OS
    ssh_public_key = attrs.get("ssh_public_key") or ""
    if ssh_public_key and distribution == NO_OS:
        raise ImageError("an SSH public key cannot be installed without an operating system (os = none)", operation="create", resource=name)

    try:
        cores, memory = reconcile(attrs.get("cores"), attrs.get("memory"))
    except ValidationError as e:
        e.operation, e.resource = "create", name
        raise

    machine = Machine(
        name=name,
        cores=cores,
        memory=memory,
        power_on=bool(attrs.get("power_on", True)),
        autoreboot_on=bool(attrs.get("reboot", True)),
        group=attrs.get("group") or group,
        zone=attrs.get("zone") or zone,
        distribution=distribution,
    )
    return CreateRequest(
        machine=machine,
        disc=Disc(size=attrs.get("disc_size") or DEFAULT_DISC_SIZE),
        image=ImageSpec(
            distribution=distribution,
            root_password=password or random_password(),
            ssh_public_key=ssh_public_key,
            firstboot_script=attrs.get("firstboot_script") or "",
        ),
        ipv4=attrs.get("ipv4") or "",
        ipv6=attrs.get("ipv6") or "",
    )


def machine_from_attributes(attrs):
    """Rebuild a descriptor from a flat attribute mapping."""
    ips = [ip for ip in (attrs.get("ipv4"), attrs.get("ipv6")) if ip]
    machine = Machine(
        name=attrs.get("name", ""),
        cores=attrs.get("cores", 0),
        memory=attrs.get("memory", 0),
        power_on=bool(attrs.get("power_on", False)),
        autoreboot_on=bool(attrs.get("reboot", False)),
        group=attrs.get("group", ""),
        group_id=attrs.get("group_id"),
        zone=attrs.get("zone", ""),
        distribution=attrs.get("os", ""),
        hostname=attrs.get("hostname", ""),
    )
    if attrs.get("id"):
        machine.id = int(attrs["id"])
    if attrs.get("disc_size"):
        machine.discs = [Disc(size=attrs["disc_size"])]
    if ips:
        machine.interfaces = [NetworkInterface(ips=ips)]
    return machine


class MachineProvisioner:
    """The five lifecycle operations, each taking and returning flat attributes.

    Operations on different machines may run concurrently on one provisioner;
    they share only the client's session and the admission gate.
    """

    def __init__(
        self,
        client,
        group=DEFAULT_GROUP,
        zone=DEFAULT_ZONE,
        gate=None,
        clock=None,
        poll_interval=POLL_INTERVAL,
        timeout=PROVISION_TIMEOUT,
        wait_ssh=True,
        ssh_waiter=wait_for_ssh,
    ):
        self.client = client
        self.group = group
        self.zone = zone
        self.gate = gate or AdmissionGate()
        self.clock = clock or Clock()
        self.poll_interval = poll_interval
        self.timeout = timeout
        self.wait_ssh = wait_ssh
        self._ssh_waiter = ssh_waiter

    def _url(self, group, path):
        return self.client.group_url(group or self.group, path)

    # ── Create ─────────────────────────────────────────────────────

    async def create(self, attrs):
        """Create a machine and wait until it is usable. Returns its id."""
        result = await self.provision(attrs)
        return result["id"]

    async def provision(self, attrs):
        """Create a machine and wait until it is usable.

        Returns:
            The attribute mapping of the new machine, including the generated
            ``root_password``.
        """
        request = build_create_request(attrs, group=self.group, zone=self.zone)
        machine = request.machine
        name = machine.name
        password = request.image.root_password
        register_secret(password)
        wants_power = machine.power_on
        progress = Provisioning(name)

        def last_known():
            return {**machine.to_attributes(), "group": machine.group, "root_password": password}

        url = self._url(machine.group, "/vm_create")
        logger.info(f"Creating BigV VM '{name}' ({machine.cores} cores, {machine.memory} MiB, {request.image.distribution}) in group '{machine.group}'...")
        logger.debug(f"VM profile: {request.to_json()}")

        try:
            async with self.gate.admit(name):
                resp = await self.client.execute("POST", url, json_body=request.to_json(), operation="create", resource=name)
            _expect(resp, {202}, "create", name)
            progress.advance(State.SUBMITTED)
            data = _parse(resp)
            if data:
                machine.refresh(data)
            logger.info(f"Create accepted for '{name}' (id={machine.id}). Waiting for provisioning (timeout: {self.timeout}s)...")

            await self._wait_provisioned(machine, last_known)
            progress.advance(State.PROVISIONED)
            logger.info(f"VM '{name}' is provisioned.")

            if wants_power:
                await self._wait_powered(machine, last_known)
                progress.advance(State.POWERED)
                logger.info(f"VM '{name}' is powered on.")

            # A machine left powered off never answers SSH.
            if self.wait_ssh and wants_power and request.image.distribution != NO_OS:
                host = machine.primary_address or request.ipv4 or request.ipv6
                if not host:
                    raise BigVError("no network address discovered to check SSH against", operation="create", resource=name)
                await self._ssh_waiter(host, password, timeout=self.timeout, interval=self.poll_interval, clock=self.clock)
                progress.advance(State.NETWORK_READY)
                logger.info(f"VM '{name}' accepts SSH on {host}.")
        except BigVError as e:
            submitted = progress.state is not State.ABSENT
            progress.fail()
            if submitted and e.last_known is None:
                e.last_known = last_known()
            raise

        logger.info(f"Created BigV VM '{name}', id: {machine.id}")
        return last_known()

    async def _fetch_overview(self, machine, operation):
        """Read *machine* by name and refresh it from any parseable response."""
        resp = await self.client.execute(
            "GET",
            self._url(machine.group, f"/virtual_machines/{machine.name}"),
            params={"view": "overview"},
            operation=operation,
            resource=machine.name,
        )
        data = _parse(resp)
        if data:
            machine.refresh(data)
        return resp

    async def _wait_provisioned(self, machine, last_known):
        async def _check():
            resp = await self._fetch_overview(machine, "wait for provisioning")
            if resp.status_code == 202:
                return False
            _expect(resp, {200}, "wait for provisioning", machine.name)
            return True

        return await poll_until(
            _check,
            clock=self.clock,
            interval=self.poll_interval,
            timeout=self.timeout,
            description=f"VM '{machine.name}' to be provisioned",
            resource=machine.name,
            last_known=last_known,
        )

    async def _wait_powered(self, machine, last_known):
        async def _check():
            resp = await self._fetch_overview(machine, "wait for power on")
            _expect(resp, {200, 202}, "wait for power on", machine.name)
            return machine.power_on

        return await poll_until(
            _check,
            clock=self.clock,
            interval=self.poll_interval,
            timeout=self.timeout,
            description=f"VM '{machine.name}' to power on",
            resource=machine.name,
            last_known=last_known,
        )

    # ── Read / update / delete / exists ───────────────────────────

    async def read(self, identifier, group=None):
        """Current attributes of the machine with id or name *identifier*."""
        identifier = str(identifier)
        machine = Machine(name=identifier, group=group or self.group)
        resp = await self._fetch_overview(machine, "read")
        _expect(resp, {200}, "read", identifier)
        if _parse(resp) is None:
            raise BigVError(f"unparseable response body: {resp.text[:200]}", operation="read", resource=identifier)
        return {**machine.to_attributes(), "group": machine.group}

    async def update(self, identifier, changes, current=None, group=None):
        """Apply *changes* (only the attributes that changed) to a machine.

        Cores and memory are always sent as a pair, as are the power and
        reboot flags. Resizing power-cycles the machine unless *changes* sets
        ``power_on`` itself.

        Args:
            current: the machine's attributes if already known; read otherwise.
            group: group holding the machine; defaults to the group in
                *current*, then the provisioner's group.

        Returns:
            The updated attributes, or *current* as given when nothing
            mutable changed.
        """
        identifier = str(identifier)
        _check_attribute_names(changes, "update", identifier)
        immutable = sorted(IMMUTABLE_ATTRIBUTES & set(changes))
        if immutable:
            raise ValidationError(f"cannot change {', '.join(immutable)} without re-creating the machine", operation="update", resource=identifier)

        payload = {}
        resize = "cores" in changes or "memory" in changes
        if resize:
            try:
                payload["cores"], payload["memory"] = reconcile(changes.get("cores"), changes.get("memory"))
            except ValidationError as e:
                e.operation, e.resource = "update", identifier
                raise

        if not payload and "power_on" not in changes and "reboot" not in changes:
            logger.info(f"Nothing to update for VM '{identifier}'.")
            return current
        if current is None:
            current = await self.read(identifier, group=group)

        if "power_on" in changes or "reboot" in changes:
            payload["power_on"] = bool(changes.get("power_on", current.get("power_on")))
            payload["autoreboot_on"] = bool(changes.get("reboot", current.get("reboot")))
        if resize and "power_on" not in changes:
            # A resize only takes effect after a restart.
            payload["power_on"] = False
            payload["autoreboot_on"] = True

        machine = machine_from_attributes(current)
        group = group or machine.group or self.group
        machine.group = group
        url = self._url(group, f"/virtual_machines/{identifier}")
        logger.info(f"Requesting VM update: {url}")
        logger.debug(f"VM profile: {payload}")

        resp = await self.client.execute("PUT", url, json_body=payload, operation="update", resource=identifier)
        data = _parse(resp)
        if data:
            machine.refresh(data)
        _expect(resp, {200}, "update", identifier)
        logger.info(f"Updated BigV VM '{machine.name}', id: {machine.id}")
        return {**machine.to_attributes(), "group": group}

    async def delete(self, identifier, group=None):
        """Delete and purge a machine."""
        identifier = str(identifier)
        logger.info(f"Deleting BigV VM '{identifier}'...")
        resp = await self.client.execute(
            "DELETE",
            self._url(group, f"/virtual_machines/{identifier}"),
            params={"purge": "true"},
            operation="delete",
            resource=identifier,
        )
        _expect(resp, {204}, "delete", identifier)
        logger.info(f"VM '{identifier}' deleted.")
        return True

    async def exists(self, identifier, group=None):
        """True if BigV knows the machine, False on 404."""
        identifier = str(identifier)
        resp = await self.client.execute(
            "GET",
            self._url(group, f"/virtual_machines/{identifier}"),
            operation="exists",
            resource=identifier,
        )
        if resp.status_code == 404:
            return False
        _expect(resp, {200, 202}, "exists", identifier)
        return True
