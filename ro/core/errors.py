"""Process exit codes.

A release run reports one exit status for the whole fan-out; the value is
taken from the first failed channel. Values are stable and used by CI.
"""

from enum import IntEnum

__all__ = ["ErrorCode"]


class ErrorCode(IntEnum):
    """Exit codes for CLI commands.

    - 0: Success (every channel succeeded or was skipped by its gate)
    - 1: User error (bad arguments, invalid tag, invalid config)
    - 2: Environment error (missing toolchain, unsupported target, auth)
    - 3: Build error (a toolchain ran and failed)
    - 4: Network error (registry or host unreachable)
    - 5: I/O error (missing output, git failure)
    - 6: Publish error (registry rejected a package)
    - 7: Internal error (a channel crashed)
    """

    OK = 0
    USER_ERROR = 1
    ENV_ERROR = 2
    BUILD_ERROR = 3
    NETWORK_ERROR = 4
    IO_ERROR = 5
    PUBLISH_ERROR = 6
    INTERNAL_ERROR = 7

    def __str__(self) -> str:
        return self.name.lower().replace("_", " ")

    @property
    def is_success(self) -> bool:
        return self == ErrorCode.OK

    @property
    def is_error(self) -> bool:
        return self != ErrorCode.OK
