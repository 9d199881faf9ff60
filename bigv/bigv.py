#!/usr/bin/env python3
"""BigV VM provisioning: CLI entrypoint."""

import argparse

from bigv.commands.vm import register_vm_command
from bigv.logging_setup import setup_cli_logging


def main(argv=None):
    parser = argparse.ArgumentParser(description="BigV virtual machine provisioning")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log requests and state transitions")
    subparsers = parser.add_subparsers(dest="command", required=True)

    register_vm_command(subparsers)

    args = parser.parse_args(argv)
    setup_cli_logging(verbose=args.verbose)
    args.func(args)


if __name__ == "__main__":
    main()
