"""Process exit codes for the release CLI."""

from enum import IntEnum

__all__ = ["ErrorCode"]


class ErrorCode(IntEnum):
    """Exit codes for CLI commands.

    Values are stable since CI jobs branch on them:
    - 0: Success
    - 1: User error (bad selection, invalid config, invalid release trains)
    - 2: Environment error (gh/npm missing or unauthenticated)
    - 3: Build error (release output missing or stale staging commit)
    - 4: Network error (host or registry call failed)
    - 5: I/O error (local files could not be read or written)
    """

    OK = 0
    USER_ERROR = 1
    ENV_ERROR = 2
    BUILD_ERROR = 3
    NETWORK_ERROR = 4
    IO_ERROR = 5

    def __str__(self) -> str:
        return self.name.lower().replace("_", " ")

    @property
    def is_success(self) -> bool:
        return self == ErrorCode.OK
