"""The local duffle home directory: its layout, set-up and repository checks."""

from __future__ import annotations

import os
import re
import sys
from dataclasses import dataclass
from typing import IO, Iterable

HOME_ENV_VAR = "DUFFLE_HOME"

_INVALID_REPOSITORY_CHARS = ':@" '
_DNS1123_LABEL = r"[a-z0-9]([-a-z0-9]*[a-z0-9])?"
_DNS1123_SUBDOMAIN = re.compile(rf"{_DNS1123_LABEL}(\.{_DNS1123_LABEL})*")
_DNS1123_SUBDOMAIN_MAX_LENGTH = 253
_DECIMAL = re.compile(r"[+-]?[0-9]+")


@dataclass(frozen=True)
class DuffleHome:
    """Paths inside a duffle home directory."""

    path: str

    def __str__(self) -> str:
        return self.path

    def _join(self, *parts: str) -> str:
        return os.path.join(self.path, *parts)

    def bundles(self) -> str:
        return self._join("bundles")

    def logs(self) -> str:
        return self._join("logs")

    def plugins(self) -> str:
        return self._join("plugins")

    def claims(self) -> str:
        return self._join("claims")

    def credentials(self) -> str:
        return self._join("credentials")

    def repositories(self) -> str:
        return self._join("repositories.json")


def default_home() -> str:
    """The home directory: ``$DUFFLE_HOME``, else ``.duffle`` in the user's home."""
    configured = os.environ.get(HOME_ENV_VAR)
    if configured:
        return configured
    base = os.environ.get("HOME", "")
    if not base and sys.platform.startswith("win"):
        base = os.environ.get("USERPROFILE", "")
    return os.path.join(base, ".duffle")


def ensure_directories(dirs: Iterable[str]) -> None:
    """Create each directory that is missing; fail if a path is not a directory."""
    for directory in dirs:
        try:
            is_dir = os.path.isdir(directory)
            os.stat(directory)
        except OSError:
            try:
                os.makedirs(directory, 0o755, exist_ok=True)
            except OSError as err:
                raise OSError(f"Could not create {directory}: {err}") from err
            continue
        if not is_dir:
            raise NotADirectoryError(f"{directory} must be a directory")


def ensure_files(files: Iterable[str]) -> None:
    """Create each file that is missing, leaving existing files untouched."""
    for name in files:
        fd = os.open(name, os.O_RDONLY | os.O_CREAT, 0o666)
        os.close(fd)


def _ohai(out: IO[str], message: str) -> None:
    print(f"==> {message}", file=out)


def initialize(
    home: DuffleHome, out: IO[str], dry_run: bool = False, verbose: bool = True
) -> None:
    """Create the directories and files that make up ``home``."""
    dirs = [
        str(home),
        home.bundles(),
        home.logs(),
        home.plugins(),
        home.claims(),
        home.credentials(),
    ]
    files = [home.repositories()]

    if verbose:
        _ohai(out, "The following new directories will be created:")
        print("\n".join(dirs), file=out)
    if not dry_run:
        ensure_directories(dirs)

    if verbose:
        _ohai(out, "The following new files will be created:")
        print("\n".join(files), file=out)
    if not dry_run:
        ensure_files(files)


def _dns1123_subdomain_errors(value: str) -> list[str]:
    errors = []
    if len(value) > _DNS1123_SUBDOMAIN_MAX_LENGTH:
        errors.append(f"must be no more than {_DNS1123_SUBDOMAIN_MAX_LENGTH} characters")
    if not _DNS1123_SUBDOMAIN.fullmatch(value):
        errors.append(
            "a DNS-1123 subdomain must consist of lower case alphanumeric characters, "
            "'-' or '.', and must start and end with an alphanumeric character "
            "(e.g. 'example.com', regex used for validation is "
            f"'{_DNS1123_SUBDOMAIN.pattern}')"
        )
    return errors


def validate_repository(repo: str) -> None:
    """Raise ``ValueError`` unless ``repo`` is a usable repository prefix."""
    if repo.endswith("/") or "//" in repo:
        raise ValueError(f"invalid repository: trailing '/' and '//' not allowed: {repo}")

    authority, *path_parts = repo.split("/")

    authority_parts = authority.split(":")
    if len(authority_parts) > 2:
        raise ValueError(f"invalid repository hostname: {authority}")
    errors = _dns1123_subdomain_errors(authority_parts[0])
    if errors:
        raise ValueError(f"invalid repository hostname: {'; '.join(errors)}")
    if len(authority_parts) == 2:
        port_text = authority_parts[1]
        if not _DECIMAL.fullmatch(port_text):
            raise ValueError(f"invalid repository port number: {port_text}")
        port = int(port_text)
        if not 1 <= port <= 65535:
            raise ValueError(
                "invalid repository port number: must be between 1 and 65535, inclusive"
            )

    for part in path_parts:
        if any(ch in part for ch in _INVALID_REPOSITORY_CHARS):
            raise ValueError(
                f"invalid repository: characters '{_INVALID_REPOSITORY_CHARS}' "
                f"not allowed: {repo}"
            )