"""Error presentation utilities.

Release errors are printed the same way by every command, and their kind
maps onto a stable exit code.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from trains.core.errors import ErrorCode
from trains.output.console import Style

if TYPE_CHECKING:
    from trains.output.console import ConsoleProtocol
    from trains.services.release.errors import ReleaseError

__all__ = ["print_release_error", "release_error_code"]


def print_release_error(error: ReleaseError, console: ConsoleProtocol) -> None:
    console.error(error.message)
    if error.hint:
        console.print(f"hint: {error.hint}", Style.DIM)


def release_error_code(error: ReleaseError) -> ErrorCode:
    """Get exit code for a release error."""
    match error.kind:
        case "gh_missing" | "gh_auth_required" | "npm_missing":
            return ErrorCode.ENV_ERROR
        case "missing_build_output" | "build_failed" | "invalid_staging_commit":
            return ErrorCode.BUILD_ERROR
        case "host_failed" | "registry_failed" | "package_not_found" | "publish_failed":
            return ErrorCode.NETWORK_ERROR
        case "io_failed":
            return ErrorCode.IO_ERROR
        case _:
            return ErrorCode.USER_ERROR
