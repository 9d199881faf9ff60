"""VM lifecycle management: create/show/update/delete BigV machines."""


def register_vm_command(subparsers):
    """Register the 'vm' command with one subparser per lifecycle action."""
    from bigv.commands.vm.lifecycle import (
        register_create_action,
        register_delete_action,
        register_exists_action,
        register_show_action,
        register_update_action,
    )

    vm_parser = subparsers.add_parser("vm", help="Manage BigV virtual machines")
    action_subparsers = vm_parser.add_subparsers(dest="action", required=True)

    register_create_action(action_subparsers)
    register_show_action(action_subparsers)
    register_update_action(action_subparsers)
    register_delete_action(action_subparsers)
    register_exists_action(action_subparsers)
