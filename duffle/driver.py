"""Drivers that run invocation images through external commands."""

from __future__ import annotations

import json
import os
import subprocess
import sys
import threading
from dataclasses import dataclass, field
from typing import IO, Any, Protocol

RELOCATION_MAPPING_PATH = "/cnab/app/relocation-mapping.json"


class DriverError(Exception):
    """Raised when a driver cannot run an operation."""


@dataclass
class Operation:
    """An action to be carried out on an invocation image."""

    installation: str = ""
    revision: str = ""
    action: str = ""
    parameters: dict[str, Any] = field(default_factory=dict)
    image: str = ""
    image_type: str = ""
    environment: dict[str, str] = field(default_factory=dict)
    files: dict[str, str] = field(default_factory=dict)
    out: IO[str] | None = field(default=None, repr=False, compare=False)

    def to_dict(self) -> dict[str, Any]:
        """Serialise everything but the output stream."""
        return {
            "installation_name": self.installation,
            "revision": self.revision,
            "action": self.action,
            "parameters": dict(self.parameters),
            "image": self.image,
            "image_type": self.image_type,
            "environment": dict(self.environment),
            "files": dict(self.files),
        }


class Driver(Protocol):
    def run(self, operation: Operation) -> None: ...

    def handles(self, image_type: str) -> bool: ...


class CommandDriver:
    """A driver implemented by a ``duffle-<name>`` command on the PATH."""

    def __init__(self, name: str) -> None:
        self.name = name

    def cli_name(self) -> str:
        return "duffle-" + self.name.lower()

    def handles(self, image_type: str) -> bool:
        """Ask the command, via ``--handles``, whether it supports ``image_type``."""
        try:
            result = subprocess.run(
                [self.cli_name(), "--handles"],
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                check=True,
            )
        except (OSError, subprocess.CalledProcessError) as err:
            print(f"{self.cli_name()} --handles: {err}", end="")
            return False
        types = result.stdout.decode(errors="replace").split(",")
        return any(image_type == t.strip() for t in types)

    def run(self, operation: Operation) -> None:
        """Run the command, passing the operation as JSON on its stdin."""
        env = dict(os.environ)
        env.update(operation.environment)
        # Lets shell drivers know which variables were added for them.
        env["DUFFLE_VARS"] = ",".join(operation.environment)
        data = json.dumps(operation.to_dict()).encode()
        out = operation.out if operation.out is not None else sys.stdout

        try:
            process = subprocess.Popen(
                [self.cli_name()],
                cwd=os.getcwd(),
                env=env,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
            )
        except OSError as err:
            raise DriverError(f"Start of driver ({self.name}) failed: {err}") from err

        lock = threading.Lock()

        def copy(stream: IO[bytes]) -> None:
            for line in stream:
                with lock:
                    out.write(line.decode(errors="replace"))

        copiers = [
            threading.Thread(target=copy, args=(stream,), daemon=True)
            for stream in (process.stdout, process.stderr)
        ]
        for thread in copiers:
            thread.start()
        try:
            process.stdin.write(data)
        except BrokenPipeError:
            pass
        finally:
            process.stdin.close()
        code = process.wait()
        for thread in copiers:
            thread.join()
        process.stdout.close()
        process.stderr.close()
        if code != 0:
            raise DriverError(f"driver ({self.name}) exited with status {code}")


class DriverWithRelocationMapping:
    """Wraps a driver so a relocation mapping is mounted and applied."""

    def __init__(self, driver: Driver, relocation_mapping: str = "") -> None:
        self.driver = driver
        self.relocation_mapping = relocation_mapping

    def run(self, operation: Operation) -> None:
        if self.relocation_mapping:
            operation.files[RELOCATION_MAPPING_PATH] = self.relocation_mapping
            operation.image = self.relocate_image(operation.image)
        self.driver.run(operation)

    def handles(self, image_type: str) -> bool:
        return self.driver.handles(image_type)

    def relocate_image(self, image: str) -> str:
        """Return the relocated name of ``image`` from the mapping."""
        try:
            mapping = json.loads(self.relocation_mapping)
        except json.JSONDecodeError as err:
            raise DriverError(f"failed to unmarshal relocation mapping: {err}") from err
        if not isinstance(mapping, dict):
            raise DriverError("failed to unmarshal relocation mapping: not a JSON object")
        try:
            return mapping[image]
        except KeyError:
            raise DriverError(
                f"invocation image {image} not present in relocation mapping {mapping}"
            ) from None


def load_relocation_mapping(path: str) -> str:
    """Read a relocation mapping file; an empty path gives an empty mapping."""
    if not path:
        return ""
    try:
        with open(path, encoding="utf-8") as handle:
            return handle.read()
    except OSError as err:
        raise DriverError(f"failed to read relocation mapping from {path}: {err}") from err