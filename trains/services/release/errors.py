from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

ReleaseErrorKind = Literal[
    "gh_missing",
    "gh_auth_required",
    "npm_missing",
    "invalid_input",
    "invalid_config",
    "invalid_version",
    "invalid_trains",
    "invalid_staging_commit",
    "pull_request_closed",
    "missing_build_output",
    "build_failed",
    "publish_failed",
    "no_lts_branches",
    "host_failed",
    "registry_failed",
    "package_not_found",
    "io_failed",
]


@dataclass(frozen=True, slots=True)
class ReleaseError:
    """Canonical release error payload.

    ``kind`` is stable and drives the CLI exit code; ``message`` and ``hint``
    are for the operator.
    """

    kind: ReleaseErrorKind
    message: str
    hint: str | None = None

    def pretty(self) -> str:
        if self.hint:
            return f"{self.message} (hint: {self.hint})"
        return self.message
