"""Build status summaries, build errors and build identifiers."""

from __future__ import annotations

import secrets
import time
from dataclasses import dataclass
from enum import IntEnum
from typing import Any

_CROCKFORD = "0123456789ABCDEFGHJKMNPQRSTVWXYZ"


class SummaryStatusCode(IntEnum):
    """Possible states of a build."""

    UNKNOWN = 0
    LOGGING = 1
    STARTED = 2
    ONGOING = 3
    SUCCESS = 4
    FAILURE = 5


@dataclass
class Summary:
    """The message produced while running a build."""

    stage_desc: str = ""
    status_text: str = ""
    status_code: SummaryStatusCode = SummaryStatusCode.UNKNOWN
    build_id: str = ""

    def to_dict(self) -> dict[str, Any]:
        """Serialise to a dict, leaving out empty fields."""
        data: dict[str, Any] = {}
        if self.stage_desc:
            data["stage_desc"] = self.stage_desc
        if self.status_text:
            data["status_text"] = self.status_text
        if self.status_code:
            data["status_code"] = int(self.status_code)
        if self.build_id:
            data["build_id"] = self.build_id
        return data


class DockerfileNotExistError(Exception):
    """Raised when no Dockerfile exists during a build."""

    def __init__(self, message: str = "Dockerfile does not exist") -> None:
        super().__init__(message)


def new_ulid() -> str:
    """Return a new ULID: a 48-bit millisecond timestamp and 80 random bits."""
    timestamp = time.time_ns() // 1_000_000
    value = (timestamp & ((1 << 48) - 1)) << 80 | secrets.randbits(80)
    return "".join(_CROCKFORD[(value >> (5 * shift)) & 31] for shift in reversed(range(26)))