"""
jobrelay CLI: Command-line interface for submitting and inspecting jobs.

Provides commands for:
- submit: Submit a job descriptor and wait for its output
- jobs: List jobs recorded in the store
"""

from __future__ import annotations

import argparse
import json
import sys
import time
import tomllib
from dataclasses import replace
from pathlib import Path
from typing import Any

from jobrelay.config import (
    DEFAULT_MYPROXY_PORT,
    LoggingSettings,
    Settings,
    load_settings,
    parse_host_port,
    parse_voms_address,
)
from jobrelay.errors import JobRelayError
from jobrelay.proxy import GridUserCredentials, MyproxyServer, VomsServer
from jobrelay.types import JobDescriptor, JobStatus


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="jobrelay",
        description="jobrelay: Submit jobs to pluggable execution backends",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # submit
    submit_parser = subparsers.add_parser(
        "submit",
        help="Submit a job descriptor (JSON or TOML)",
    )
    submit_parser.add_argument(
        "descriptor",
        help="Path to the job descriptor file",
    )
    submit_parser.add_argument(
        "--version",
        dest="job_version",
        help="Execution version (GRID or LOCAL; default from config)",
    )
    submit_parser.add_argument(
        "--target", "-t",
        help="Execution target (e.g. slurm, local; default from config)",
    )
    submit_parser.add_argument(
        "--dn",
        help="Certificate DN for proxy delegation",
    )
    submit_parser.add_argument(
        "--login",
        help="MyProxy login",
    )
    submit_parser.add_argument(
        "--password-stdin",
        action="store_true",
        help="Read the MyProxy passphrase from stdin",
    )
    submit_parser.add_argument(
        "--myproxy",
        help="MyProxy server as host[:port]",
    )
    submit_parser.add_argument(
        "--voms",
        help="VOMS server as vo@host[:port]",
    )
    submit_parser.add_argument(
        "--no-wait",
        action="store_true",
        help="Print the job handle and exit without waiting",
    )
    submit_parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Give up waiting after this many seconds",
    )

    # jobs
    jobs_parser = subparsers.add_parser(
        "jobs",
        help="List recorded jobs",
    )
    jobs_parser.add_argument(
        "--status",
        choices=[s.value for s in JobStatus],
        help="Only show jobs with this status",
    )
    jobs_parser.add_argument(
        "--json",
        action="store_true",
        dest="json_output",
        help="Output as JSON",
    )

    args = parser.parse_args(argv)

    try:
        settings = load_settings()
    except (OSError, TypeError, ValueError, tomllib.TOMLDecodeError) as e:
        print(f"Error: invalid configuration: {e}", file=sys.stderr)
        return 1

    if args.verbose:
        settings = replace(
            settings,
            logging=LoggingSettings(level="DEBUG", file=settings.logging.file),
        )

    if args.command == "submit":
        return handle_submit(args, settings)
    elif args.command == "jobs":
        return handle_jobs(args, settings)
    else:
        parser.print_help()
        return 0


def _servers(args: argparse.Namespace) -> tuple[MyproxyServer | None, VomsServer | None]:
    """
    Delegation servers given on the command line.

    Raises:
        ValueError: If an address is malformed.
    """
    myproxy = None
    if args.myproxy:
        myproxy = MyproxyServer(*parse_host_port(args.myproxy, DEFAULT_MYPROXY_PORT))
    voms = None
    if args.voms:
        voms = VomsServer(*parse_voms_address(args.voms))
    return myproxy, voms


def load_descriptor(path: Path) -> JobDescriptor:
    """
    Read a job descriptor from a JSON or TOML file.

    Raises:
        ValueError: If the file cannot be parsed or lacks an executable.
    """
    if path.suffix == ".toml":
        with open(path, "rb") as f:
            data: dict[str, Any] = tomllib.load(f)
    else:
        data = json.loads(path.read_text(encoding="utf-8"))
    return JobDescriptor.from_dict(data)


def _credentials(args: argparse.Namespace) -> GridUserCredentials | None:
    password = None
    if args.password_stdin:
        password = sys.stdin.readline().rstrip("\n")
    if not (args.dn or args.login or password):
        return None
    return GridUserCredentials(dn=args.dn, login=args.login, password=password)


def handle_submit(args: argparse.Namespace, settings: Settings) -> int:
    """Handle the submit command."""
    from jobrelay.coordinator import Client, get_instance
    from jobrelay.display import display_outputs

    try:
        descriptor = load_descriptor(Path(args.descriptor))
    except (OSError, ValueError, tomllib.TOMLDecodeError) as e:
        print(f"Error: cannot read descriptor {args.descriptor}: {e}", file=sys.stderr)
        return 1

    try:
        myproxy, voms = _servers(args)
    except ValueError as e:
        print(f"Error: invalid delegation server: {e}", file=sys.stderr)
        return 1

    try:
        coordinator = get_instance(args.job_version, args.target, settings=settings)
    except JobRelayError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    client = Client("cli")
    try:
        handle = coordinator.submit(client, descriptor, _credentials(args), myproxy, voms)
        print(f"Submitted {handle}")
        if args.no_wait:
            return 0

        deadline = None if args.timeout is None else time.monotonic() + args.timeout
        outputs = []
        while not outputs:
            remaining = None if deadline is None else deadline - time.monotonic()
            if remaining is not None and remaining <= 0:
                print(f"Error: timed out waiting for {handle}", file=sys.stderr)
                return 1
            if not client.wait(timeout=remaining):
                continue
            outputs = coordinator.get_finished_jobs()
            coordinator.wait_for_notification()

        display_outputs(outputs)
        return 0 if all(output.succeeded for output in outputs) else 1
    except JobRelayError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        coordinator.terminate()


def handle_jobs(args: argparse.Namespace, settings: Settings) -> int:
    """Handle the jobs command."""
    from jobrelay.display import display_records
    from jobrelay.schema import dump_job_record
    from jobrelay.store.locator import create_store

    try:
        store = create_store(settings.store_locator)
    except (OSError, ValueError, ImportError) as e:
        print(f"Error: cannot open store {settings.store_locator}: {e}", file=sys.stderr)
        return 1

    try:
        status = JobStatus(args.status) if args.status else None
        records = store.list_jobs(status)
    finally:
        store.close()

    if args.json_output:
        print(json.dumps([dump_job_record(r) for r in records], indent=2))
    else:
        display_records(records)
    return 0


if __name__ == "__main__":
    sys.exit(main())
