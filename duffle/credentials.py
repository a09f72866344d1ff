"""Credential sets: loading, resolving, storing and listing them."""

from __future__ import annotations

import os
import shutil
import subprocess
from dataclasses import dataclass, field
from typing import IO, Any, Callable, Iterable

import yaml

_FORBIDDEN_NAME_CHARS = "./\\"
_LIST_MAX_COL_WIDTH = 80


class CredentialError(Exception):
    """Raised when a credential set cannot be loaded, resolved or stored."""


@dataclass
class Source:
    """Where the value of one credential comes from."""

    value: str = ""
    env: str = ""
    path: str = ""
    command: str = ""

    def to_dict(self) -> dict[str, str]:
        """Serialise with keys in sorted order, leaving out empty fields."""
        data = {"command": self.command, "env": self.env, "path": self.path, "value": self.value}
        return {key: val for key, val in data.items() if val}

    @classmethod
    def _from_data(cls, data: Any) -> Source:
        if data is None:
            return cls()
        if not isinstance(data, dict):
            raise CredentialError("credential source must be a mapping")
        values: dict[str, str] = {}
        for key in ("value", "env", "path", "command"):
            item = data.get(key, "")
            if item is None:
                item = ""
            if not isinstance(item, str):
                raise CredentialError(f"credential source field {key!r} must be a string")
            values[key] = item
        return cls(**values)


@dataclass
class CredentialStrategy:
    """A named credential and the source that supplies it."""

    name: str
    source: Source = field(default_factory=Source)

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "source": self.source.to_dict()}

    def resolve(self) -> str:
        """Return the credential's value: command, then path, then env, then value."""
        src = self.source
        if src.command:
            try:
                result = subprocess.run(
                    ["sh", "-c", src.command],
                    stdout=subprocess.PIPE,
                    stderr=subprocess.STDOUT,
                    check=True,
                )
            except (OSError, subprocess.CalledProcessError) as err:
                raise CredentialError(f"credential {self.name!r}: {err}") from err
            return result.stdout.decode(errors="replace")
        if src.path:
            try:
                with open(os.path.expandvars(src.path), encoding="utf-8") as handle:
                    return handle.read()
            except OSError as err:
                raise CredentialError(f"credential {self.name!r}: {err}") from err
        if src.env and src.env in os.environ:
            return os.environ[src.env]
        return src.value


@dataclass
class CredentialSet:
    """A named collection of credential strategies."""

    name: str
    credentials: list[CredentialStrategy] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "credentials": [c.to_dict() for c in self.credentials]}

    def to_yaml(self) -> str:
        return yaml.safe_dump(self.to_dict(), default_flow_style=False, sort_keys=False)

    def resolve(self) -> dict[str, str]:
        """Resolve every credential to its value, keyed by credential name."""
        return {cred.name: cred.resolve() for cred in self.credentials}


@dataclass(frozen=True)
class CredentialListItem:
    """A credential set found on disk."""

    name: str
    path: str


def load_credential_set(path: str) -> CredentialSet:
    """Read and parse a credential set file."""
    try:
        with open(path, encoding="utf-8") as handle:
            data = yaml.safe_load(handle)
    except (OSError, UnicodeDecodeError, yaml.YAMLError) as err:
        raise CredentialError(f"cannot load credential set {path}: {err}") from err
    if data is None:
        return CredentialSet(name="")
    if not isinstance(data, dict):
        raise CredentialError(f"cannot load credential set {path}: not a mapping")
    name = data.get("name") or ""
    if not isinstance(name, str):
        raise CredentialError(f"cannot load credential set {path}: name must be a string")
    entries = data.get("credentials") or []
    if not isinstance(entries, list):
        raise CredentialError(f"cannot load credential set {path}: credentials must be a list")
    strategies = []
    for entry in entries:
        if not isinstance(entry, dict):
            raise CredentialError(f"cannot load credential set {path}: malformed credential")
        cred_name = entry.get("name") or ""
        if not isinstance(cred_name, str):
            raise CredentialError(f"cannot load credential set {path}: malformed credential name")
        strategies.append(CredentialStrategy(cred_name, Source._from_data(entry.get("source"))))
    return CredentialSet(name=name, credentials=strategies)


def file_name_matches_set_name(path: str, name: str) -> None:
    """Raise unless the file's name, without extension, equals ``name``."""
    parts = os.path.basename(path).split(".")
    if len(parts) <= 1:
        raise CredentialError(f"{path} does not have valid .yaml/.yml file extension")
    computed = ".".join(parts[:-1])
    if computed != name:
        raise CredentialError(
            f"file name ({computed}) does not match credential set name ({name})"
        )


def copy_credential_set_file(dest: str, path: str) -> None:
    """Copy a credential set file to ``dest``, readable only by its owner."""
    with open(path, "rb") as source:
        fd = os.open(dest, os.O_RDWR | os.O_CREAT, 0o600)
        with os.fdopen(fd, "wb") as target:
            shutil.copyfileobj(source, target)


def add_credential_set(dest: str, path: str) -> None:
    """Validate the credential set at ``path`` and copy it to ``dest``."""
    try:
        cs = load_credential_set(path)
    except CredentialError:
        raise CredentialError(f"{path} is not a valid credential set") from None
    file_name_matches_set_name(path, cs.name)
    if _exists(dest):
        raise CredentialError(f"Credential set ({cs.name}) already exists")
    copy_credential_set_file(dest, path)


def add_credential_sets(paths: Iterable[str], credentials_dir: str) -> None:
    """Add each file in ``paths``; all problems are reported together."""
    errors: list[str] = []
    for path in paths:
        try:
            is_dir = os.path.isdir(path)
            if not os.path.exists(path):
                os.stat(path)
        except FileNotFoundError:
            errors.append(f"File ({path}) does not exist")
            continue
        except OSError as err:
            errors.append(str(err))
            continue
        if is_dir:
            errors.append(f"{path} is a directory. Enter path to a credential set file")
            continue
        dest = os.path.join(credentials_dir, os.path.basename(path))
        try:
            add_credential_set(dest, path)
        except (CredentialError, OSError) as err:
            errors.append(str(err))
    if errors:
        raise CredentialError("\n".join(errors))


def _walk_files(directory: str) -> Iterable[str]:
    try:
        entries = sorted(os.scandir(directory), key=lambda e: e.name)
    except OSError:
        return
    for entry in entries:
        if entry.is_dir():
            yield from _walk_files(entry.path)
        else:
            yield entry.path


def find_credential_sets(directory: str) -> list[CredentialListItem]:
    """Return every loadable credential set under ``directory``, in path order."""
    found = []
    for path in _walk_files(directory):
        try:
            cs = load_credential_set(path)
        except CredentialError:
            continue
        found.append(CredentialListItem(name=cs.name, path=path))
    return found


def find_credential_set(directory: str, name: str) -> CredentialSet:
    """Load the credential set ``<name>.yaml`` from ``directory``."""
    return load_credential_set(os.path.join(directory, f"{name}.yaml"))


def _wrap(cell: str, width: int) -> list[str]:
    if not cell:
        return [""]
    return [cell[i : i + width] for i in range(0, len(cell), width)]


def _format_table(rows: list[tuple[str, ...]], max_width: int) -> str:
    wrapped = [[_wrap(str(cell), max_width) for cell in row] for row in rows]
    widths = [
        max(len(piece) for row in wrapped for piece in row[col])
        for col in range(len(rows[0]))
    ]
    lines = []
    for row in wrapped:
        height = max(len(cell) for cell in row)
        for line_no in range(height):
            pieces = [
                (cell[line_no] if line_no < len(cell) else "").ljust(width)
                for cell, width in zip(row, widths)
            ]
            lines.append("\t".join(pieces).rstrip())
    return "\n".join(lines)


def list_credential_sets(directory: str, out: IO[str], short: bool = False) -> None:
    """Write the credential sets in ``directory`` to ``out``."""
    creds = find_credential_sets(directory)
    if short:
        for item in creds:
            print(item.name, file=out)
        return
    rows = [("NAME", "PATH")] + [(item.name, item.path) for item in creds]
    print(_format_table(rows, _LIST_MAX_COL_WIDTH), file=out)


def remove_credential_sets(names: Iterable[str], directory: str, out: IO[str]) -> None:
    """Delete the named credential sets; all failures are reported together."""
    paths = {item.name: item.path for item in find_credential_sets(directory)}
    errors: list[str] = []
    not_found: list[str] = []
    for name in names:
        path = paths.get(name)
        if path is None:
            not_found.append(name)
            continue
        try:
            os.remove(path)
        except OSError as err:
            errors.append(f"Failed to remove credential set {name}: {err}")
        else:
            print(f"Removed credential set: {name}", file=out)
    if not_found:
        errors.append(f"Unable to find credential set(s): {', '.join(not_found)}")
    if errors:
        raise CredentialError("\n".join(errors))


def format_credentials(credential_set: CredentialSet, unredacted: bool = False) -> str:
    """Render a credential set as YAML, hiding literal values unless asked not to."""
    creds = credential_set.credentials
    if not unredacted:
        creds = [
            CredentialStrategy(
                c.name,
                Source(
                    value="REDACTED" if c.source.value else "",
                    env=c.source.env,
                    path=c.source.path,
                    command=c.source.command,
                ),
            )
            for c in creds
        ]
    name_part = yaml.safe_dump({"name": credential_set.name}, default_flow_style=False)
    if creds:
        body = yaml.safe_dump(
            [c.to_dict() for c in creds], default_flow_style=False, sort_keys=False
        )
    else:
        body = "[]\n"
    return f"{name_part}credentials:\n{body}"


def gen_empty_credentials(name: str) -> CredentialStrategy:
    """A stub credential whose value is the placeholder ``EMPTY``."""
    return CredentialStrategy(name=name, source=Source(value="EMPTY"))


def gen_credential_set(
    name: str,
    credential_names: Iterable[str] | None,
    generator: Callable[[str], CredentialStrategy],
) -> CredentialSet:
    """Build a credential set named ``name`` with one generated entry per credential."""
    if any(ch in name for ch in _FORBIDDEN_NAME_CHARS):
        raise CredentialError(
            f"credentialset name '{name}' cannot contain the following characters: './\\'"
        )
    return CredentialSet(
        name=name,
        credentials=[generator(cred) for cred in sorted(credential_names or ())],
    )


def _exists(path: str) -> bool:
    try:
        os.stat(path)
    except FileNotFoundError:
        return False
    except OSError:
        return True
    return True


def file_exists(path: str) -> bool:
    """True unless ``path`` definitely does not exist."""
    return _exists(path)


def find_creds(cred_dir: str, file: str) -> str:
    """Map a credential set name or path to the file that holds it."""
    if file_exists(file):
        return file
    candidate = os.path.join(cred_dir, file + ".yaml")
    if file_exists(candidate):
        return candidate
    return os.path.join(cred_dir, file + ".yml")


def load_credentials(files: Iterable[str], cred_dir: str) -> dict[str, str]:
    """Resolve the given credential sets in order; later sets win."""
    creds: dict[str, str] = {}
    for file in files:
        cs = load_credential_set(find_creds(cred_dir, file))
        creds.update(cs.resolve())
    return creds