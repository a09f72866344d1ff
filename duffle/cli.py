"""The ``duffle`` command line."""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from typing import IO, Any, Sequence

from duffle.credentials import (
    CredentialError,
    CredentialStrategy,
    Source,
    add_credential_sets,
    find_credential_set,
    format_credentials,
    gen_credential_set,
    gen_empty_credentials,
    list_credential_sets,
    remove_credential_sets,
)
from duffle.workspace import DuffleHome, default_home, initialize

VERSION = "0.1.0"

_CREDENTIALS_DESC = """\
Manages credential sets.

A credential set (credentialset) is a collection of credentialing information. It assigns a
name to place where a credential can be found. Credential sets are used to inject credentials
into an invocation image during operations such as install or upgrade.

A credential set can retrieve actual credentials from the following four sources:

    - a hard-coded value
    - an environment variable in the local environment
    - a file on the local file system
    - a command executed on the local system
"""

_INIT_DESC = """\
Explicitly control the creation of the Duffle environment.

This command will create a subdirectory in your home directory, and use that directory for
storing configuration, preferences, and persistent data.
"""

_SOURCE_FIELDS = {
    "specific value": "value",
    "environment variable": "env",
    "file path": "path",
    "shell command": "command",
}
_DEFAULT_SOURCE = "environment variable"


def show_version(out: IO[str]) -> None:
    """Print the version of this command line."""
    print(VERSION, file=out)


def _prompt_credential(name: str) -> CredentialStrategy:
    options = list(_SOURCE_FIELDS)
    print(f'Choose a source for "{name}":')
    for number, option in enumerate(options, 1):
        print(f"  {number}) {option}")
    choice = input(f"Source [{_DEFAULT_SOURCE}]: ").strip()
    if not choice:
        chosen = _DEFAULT_SOURCE
    elif choice.isdigit() and 1 <= int(choice) <= len(options):
        chosen = options[int(choice) - 1]
    elif choice in _SOURCE_FIELDS:
        chosen = choice
    else:
        raise ValueError(f"invalid source choice: {choice}")
    value = input(f'Enter a value for "{name}": ')
    return CredentialStrategy(name=name, source=Source(**{_SOURCE_FIELDS[chosen]: value}))


def _load_bundle_credentials(path: str) -> list[str]:
    try:
        with open(path, encoding="utf-8") as handle:
            data: Any = json.load(handle)
    except (OSError, ValueError) as err:
        raise ValueError(f"cannot load bundle: {err}") from err
    if not isinstance(data, dict):
        raise ValueError("cannot load bundle: not a JSON object")
    credentials = data.get("credentials") or {}
    if not isinstance(credentials, dict):
        raise ValueError("cannot load bundle: credentials must be an object")
    return list(credentials)


def _run_init(args: argparse.Namespace, home: DuffleHome, out: IO[str]) -> None:
    initialize(home, out, dry_run=args.dry_run, verbose=True)


def _run_version(args: argparse.Namespace, home: DuffleHome, out: IO[str]) -> None:
    show_version(out)


def _run_credentials_list(args: argparse.Namespace, home: DuffleHome, out: IO[str]) -> None:
    list_credential_sets(home.credentials(), out, short=args.short)


def _run_credentials_add(args: argparse.Namespace, home: DuffleHome, out: IO[str]) -> None:
    if not args.paths:
        raise ValueError("This command requires at least 1 argument: path to credential set")
    add_credential_sets(args.paths, home.credentials())


def _run_credentials_remove(args: argparse.Namespace, home: DuffleHome, out: IO[str]) -> None:
    if not args.names:
        raise ValueError("This command requires at least 1 argument: name of credential set")
    remove_credential_sets(args.names, home.credentials(), out)


def _run_credentials_show(args: argparse.Namespace, home: DuffleHome, out: IO[str]) -> None:
    cs = find_credential_set(home.credentials(), args.name)
    out.write(format_credentials(cs, unredacted=args.unredacted))


def _run_credentials_generate(args: argparse.Namespace, home: DuffleHome, out: IO[str]) -> None:
    if not args.name:
        raise ValueError(
            "This command requires at least one argument: NAME (name for the credentialset). "
            "It also requires a bundle file (using -f)"
        )
    if not args.file:
        raise ValueError(
            "required arguments are NAME (name for the credentialset) and BUNDLE "
            "(CNAB bundle name) or file"
        )
    names = _load_bundle_credentials(args.file)
    generator = gen_empty_credentials if args.no_prompt else _prompt_credential
    cs = gen_credential_set(args.name, names, generator)
    data = cs.to_yaml()
    if args.dry_run:
        out.write(data)
        return
    dest = os.path.join(home.credentials(), args.name + ".yaml")
    fd = os.open(dest, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "w", encoding="utf-8") as handle:
        handle.write(data)


def _add_credentials_parser(commands: argparse._SubParsersAction) -> None:
    creds = commands.add_parser(
        "credentials",
        aliases=["creds", "credential", "cred"],
        help="manage credential sets",
        description=_CREDENTIALS_DESC,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    sub = creds.add_subparsers(dest="subcommand")

    ls = sub.add_parser("list", aliases=["ls"], help="list credential sets")
    ls.add_argument("-s", "--short", action="store_true", help="output shorter listing format")
    ls.set_defaults(handler=_run_credentials_list)

    rm = sub.add_parser("remove", aliases=["rm"], help="remove one or more credential set")
    rm.add_argument("names", nargs="*", metavar="NAME")
    rm.set_defaults(handler=_run_credentials_remove)

    add = sub.add_parser("add", help="add one or more credential sets")
    add.add_argument("paths", nargs="*", metavar="PATH")
    add.set_defaults(handler=_run_credentials_add)

    show = sub.add_parser("show", help="show credential set")
    show.add_argument("name", metavar="NAME")
    show.add_argument(
        "--unredacted",
        action="store_true",
        help="Print the secret values without redacting them",
    )
    show.set_defaults(handler=_run_credentials_show)

    gen = sub.add_parser(
        "generate", aliases=["gen"], help="generate a credentialset from a bundle"
    )
    gen.add_argument("name", nargs="?", metavar="NAME")
    gen.add_argument("-f", "--file", default="", help="path to bundle.json")
    gen.add_argument(
        "--dry-run",
        action="store_true",
        help="show prompts and result, but don't create credential set",
    )
    gen.add_argument(
        "-q",
        "--no-prompt",
        action="store_true",
        help="do not prompt for input, but generate a stub credentialset",
    )
    gen.set_defaults(handler=_run_credentials_generate)


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for every command."""
    parser = argparse.ArgumentParser(prog="duffle", description="The CNAB installer")
    parser.add_argument(
        "--home",
        default=default_home(),
        help="location of your Duffle config. Overrides $DUFFLE_HOME",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="enable verbose output")
    parser.set_defaults(handler=None, preflight=True)

    commands = parser.add_subparsers(dest="command")

    init = commands.add_parser(
        "init",
        help="set up local environment to work with duffle",
        description=_INIT_DESC,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    init.add_argument(
        "--dry-run",
        action="store_true",
        help="go through all the steps without actually installing anything",
    )
    init.set_defaults(handler=_run_init, preflight=False)

    version = commands.add_parser("version", help="print current version of the Duffle CLI")
    version.set_defaults(handler=_run_version, preflight=False)

    _add_credentials_parser(commands)
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Run the command line and return its exit status."""
    parser = build_parser()
    try:
        args = parser.parse_args(argv)
    except SystemExit as exc:
        return exc.code if isinstance(exc.code, int) else (0 if exc.code is None else 1)

    out = sys.stdout
    if args.verbose:
        logging.basicConfig(level=logging.DEBUG)

    if args.handler is None:
        parser.print_help(out)
        return 0

    home = DuffleHome(os.path.expandvars(args.home))
    if args.preflight:
        try:
            initialize(home, out, verbose=False)
        except OSError as err:
            print(f"pre-flight check failed: {err}", file=sys.stderr)
            return 1

    try:
        args.handler(args, home, out)
    except (CredentialError, OSError, ValueError) as err:
        print(f"Error: {err}", file=sys.stderr)
        return 1
    return 0