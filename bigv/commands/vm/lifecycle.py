"""BigV VM CLI handlers."""

import asyncio
import logging
import os
import sys
from pathlib import Path

import yaml

from bigv.config import ConfigError, ProviderConfig
from bigv.provisioning.client import BigVClient
from bigv.provisioning.errors import BigVError
from bigv.provisioning.machine import PROVISION_TIMEOUT, MachineProvisioner, build_create_request
from bigv.provisioning.types import DEFAULT_GROUP, DEFAULT_ZONE

logger = logging.getLogger(__name__)

# Flag name -> attribute name for the create command
_CREATE_FLAGS = {
    "name": "name",
    "cores": "cores",
    "memory": "memory",
    "os": "os",
    "disc_size": "disc_size",
    "ipv4": "ipv4",
    "ipv6": "ipv6",
    "zone": "zone",
    "group": "group",
    "power_on": "power_on",
    "reboot": "reboot",
    "firstboot_script": "firstboot_script",
}


def load_resource_file(path):
    """Read a YAML resource file holding a flat attribute mapping."""
    with open(path) as f:
        attrs = yaml.safe_load(f) or {}
    if not isinstance(attrs, dict):
        raise ValueError(f"{path}: expected a mapping of VM attributes")
    return attrs


def collect_create_attributes(args):
    """Merge the resource file (if any) with explicit flags; flags win."""
    attrs = load_resource_file(args.file) if args.file else {}
    for flag, attr in _CREATE_FLAGS.items():
        value = getattr(args, flag, None)
        if value is not None:
            attrs[attr] = value
    if args.ssh_key:
        attrs["ssh_public_key"] = Path(args.ssh_key).expanduser().read_text().strip()
    return attrs


def _resolve_config(args):
    try:
        return ProviderConfig.resolve(
            account=args.account,
            user=args.user,
            group=getattr(args, "default_group", None),
            zone=getattr(args, "default_zone", None),
            api_url=args.api_url,
        )
    except ConfigError as e:
        logger.error(f"Error: {e}")
        sys.exit(1)


async def _run(args, operation):
    """Build a provisioner from *args*, run *operation* on it, close the client."""
    config = _resolve_config(args)
    async with BigVClient(config.account, config.user, config.password, api_url=config.api_url, auth_url=config.auth_url) as client:
        provisioner = MachineProvisioner(
            client,
            group=config.group,
            zone=config.zone,
            timeout=getattr(args, "timeout", PROVISION_TIMEOUT),
            wait_ssh=not getattr(args, "no_wait_ssh", False),
        )
        try:
            return await operation(provisioner)
        except BigVError as e:
            logger.error(f"Error: {e}")
            sys.exit(1)


def _log_attributes(attrs):
    for line in yaml.safe_dump(attrs, sort_keys=True).splitlines():
        logger.info(f"  {line}")


# ── CLI handlers ───────────────────────────────────────────────────


def handle_create(args):
    """CLI handler for 'vm create'."""
    asyncio.run(_handle_create(args))


async def _handle_create(args):
    attrs = collect_create_attributes(args)

    if args.dry_run:
        try:
            request = build_create_request(
                attrs,
                group=args.default_group or os.environ.get("BIGV_GROUP", DEFAULT_GROUP),
                zone=args.default_zone or os.environ.get("BIGV_ZONE", DEFAULT_ZONE),
            )
        except BigVError as e:
            logger.error(f"Error: {e}")
            sys.exit(1)
        payload = request.to_json()
        payload["reimage"]["root_password"] = "***"
        logger.info(f"[dry-run] POST /accounts/<account>/groups/{request.machine.group}/vm_create")
        logger.info(f"[dry-run] payload:\n{yaml.safe_dump(payload, sort_keys=False)}")
        return

    result = await _run(args, lambda p: p.provision(attrs))
    logger.info(f"VM '{result['name']}' ready (id={result['id']}).")
    _log_attributes({k: v for k, v in result.items() if k != "root_password"})
    if args.output:
        Path(args.output).write_text(yaml.safe_dump(result, sort_keys=True))
        logger.info(f"Attributes (including root password) written to {args.output}")


def handle_show(args):
    """CLI handler for 'vm show'."""
    asyncio.run(_handle_show(args))


async def _handle_show(args):
    result = await _run(args, lambda p: p.read(args.machine, group=args.group))
    _log_attributes(result)


def handle_update(args):
    """CLI handler for 'vm update'."""
    asyncio.run(_handle_update(args))


async def _handle_update(args):
    changes = {}
    for attr in ("cores", "memory", "power_on", "reboot"):
        value = getattr(args, attr)
        if value is not None:
            changes[attr] = value
    if not changes:
        logger.error("Error: nothing to update. Use --cores, --memory, --power-on/--power-off or --reboot/--no-reboot.")
        sys.exit(1)

    result = await _run(args, lambda p: p.update(args.machine, changes, group=args.group))
    _log_attributes(result)


def handle_delete(args):
    """CLI handler for 'vm delete'."""
    asyncio.run(_handle_delete(args))


async def _handle_delete(args):
    await _run(args, lambda p: p.delete(args.machine, group=args.group))


def handle_exists(args):
    """CLI handler for 'vm exists'. Exit status 0 if the machine exists, 1 otherwise."""
    found = asyncio.run(_run(args, lambda p: p.exists(args.machine, group=args.group)))
    logger.info(f"VM '{args.machine}' {'exists' if found else 'does not exist'}.")
    if not found:
        sys.exit(1)


# ── Registration ───────────────────────────────────────────────────


def _add_common_arguments(parser):
    parser.add_argument("--account", default=None, help="BigV account (fallback: BIGV_ACCOUNT env var)")
    parser.add_argument("--user", default=None, help="BigV user (fallback: BIGV_USER env var; password from BIGV_PASSWORD)")
    parser.add_argument("--api-url", default=None, help="API base URL (fallback: BIGV_API_URL env var)")


def _add_machine_arguments(parser):
    parser.add_argument("machine", help="VM name or id")
    parser.add_argument("--group", default=None, help="Group holding the VM (fallback: BIGV_GROUP env var, then 'default')")
    parser.set_defaults(default_group=None, default_zone=None)


def register_create_action(subparsers):
    """Register 'vm create'."""
    parser = subparsers.add_parser("create", help="Create a BigV VM and wait until it accepts SSH")
    parser.add_argument("--file", "-f", default=None, help="YAML resource file with VM attributes")
    parser.add_argument("--name", default=None, help="VM name")
    parser.add_argument("--cores", type=int, default=None, help="Core count (derived from --memory if omitted)")
    parser.add_argument("--memory", type=int, default=None, help="Memory in MiB (derived from --cores if omitted)")
    parser.add_argument("--os", default=None, help="Distribution to image with, or 'none'")
    parser.add_argument("--disc-size", type=int, default=None, help="Root disc size in MiB (default: 25600)")
    parser.add_argument("--ipv4", default=None, help="Explicit IPv4 address")
    parser.add_argument("--ipv6", default=None, help="Explicit IPv6 address")
    parser.add_argument("--zone", default=None, help="Zone for this VM")
    parser.add_argument("--group", default=None, help="Group for this VM")
    parser.add_argument("--power-off", dest="power_on", action="store_false", default=None, help="Leave the VM powered off")
    parser.add_argument("--no-reboot", dest="reboot", action="store_false", default=None, help="Do not restart on power loss")
    parser.add_argument("--ssh-key", default=None, help="Path to SSH public key file to install")
    parser.add_argument("--firstboot-script", default=None, help="Script run on first boot")
    parser.add_argument("--default-group", default=None, help="Group when none is given (fallback: BIGV_GROUP env var)")
    parser.add_argument("--default-zone", default=None, help="Zone when none is given (fallback: BIGV_ZONE env var)")
    parser.add_argument("--timeout", type=int, default=PROVISION_TIMEOUT, help=f"Seconds per wait phase (default: {PROVISION_TIMEOUT})")
    parser.add_argument("--no-wait-ssh", action="store_true", help="Return once powered, without waiting for SSH")
    parser.add_argument("--output", "-o", default=None, help="Write resulting attributes (with root password) to this YAML file")
    parser.add_argument("--dry-run", action="store_true", help="Print the create payload without sending it")
    _add_common_arguments(parser)
    parser.set_defaults(func=handle_create)


def register_show_action(subparsers):
    """Register 'vm show'."""
    parser = subparsers.add_parser("show", help="Show a BigV VM's attributes")
    _add_machine_arguments(parser)
    _add_common_arguments(parser)
    parser.set_defaults(func=handle_show)


def register_update_action(subparsers):
    """Register 'vm update'."""
    parser = subparsers.add_parser("update", help="Resize or power a BigV VM")
    _add_machine_arguments(parser)
    parser.add_argument("--cores", type=int, default=None, help="New core count")
    parser.add_argument("--memory", type=int, default=None, help="New memory in MiB")
    power = parser.add_mutually_exclusive_group()
    power.add_argument("--power-on", dest="power_on", action="store_true", default=None, help="Power the VM on")
    power.add_argument("--power-off", dest="power_on", action="store_false", default=None, help="Power the VM off")
    reboot = parser.add_mutually_exclusive_group()
    reboot.add_argument("--reboot", dest="reboot", action="store_true", default=None, help="Restart on power loss")
    reboot.add_argument("--no-reboot", dest="reboot", action="store_false", default=None, help="Stay off on power loss")
    _add_common_arguments(parser)
    parser.set_defaults(func=handle_update)


def register_delete_action(subparsers):
    """Register 'vm delete'."""
    parser = subparsers.add_parser("delete", help="Delete and purge a BigV VM")
    _add_machine_arguments(parser)
    _add_common_arguments(parser)
    parser.set_defaults(func=handle_delete)


def register_exists_action(subparsers):
    """Register 'vm exists'."""
    parser = subparsers.add_parser("exists", help="Check whether a BigV VM exists")
    _add_machine_arguments(parser)
    _add_common_arguments(parser)
    parser.set_defaults(func=handle_exists)
