"""Error taxonomy for the accelerator runtime.

Runtime failures carry a numeric ``ErrorCode`` plus the runtime's error
string, mirroring how a driver API reports status. Range validation is a
caller logic error and derives from ``ValueError`` instead.
"""

from __future__ import annotations

from enum import IntEnum


class ErrorCode(IntEnum):
    SUCCESS = 0
    INVALID_VALUE = 1
    INVALID_CONFIGURATION = 9
    INVALID_RESOURCE_HANDLE = 400
    ILLEGAL_ADDRESS = 700
    LAUNCH_FAILURE = 719
    NOT_PERMITTED = 800


_ERROR_STRINGS = {
    ErrorCode.SUCCESS: "no error",
    ErrorCode.INVALID_VALUE: "invalid argument",
    ErrorCode.INVALID_CONFIGURATION: "invalid configuration argument",
    ErrorCode.INVALID_RESOURCE_HANDLE: "invalid resource handle",
    ErrorCode.ILLEGAL_ADDRESS: "an illegal memory access was encountered",
    ErrorCode.LAUNCH_FAILURE: "unspecified launch failure",
    ErrorCode.NOT_PERMITTED: "operation not permitted",
}


def error_string(code: ErrorCode | int) -> str:
    try:
        return _ERROR_STRINGS[ErrorCode(code)]
    except ValueError:
        return "unrecognized error code"


class AccelError(RuntimeError):
    """Base error for failures reported by the runtime."""

    default_code = ErrorCode.LAUNCH_FAILURE

    def __init__(self, message: str, code: ErrorCode | None = None):
        super().__init__(message)
        self.code = ErrorCode(code if code is not None else self.default_code)

    @property
    def error_string(self) -> str:
        return error_string(self.code)


class InvalidRangeError(ValueError):
    """Raised when an iteration domain can never reach its end."""


class LaunchError(AccelError):
    """Raised when a kernel or graph could not be launched."""


class LaunchConfigError(LaunchError):
    """Raised when grid/block dimensions are not launchable."""

    default_code = ErrorCode.INVALID_CONFIGURATION


class LaunchContextError(LaunchError):
    """Raised when a nested graph launch uses an illegal launch stream."""

    default_code = ErrorCode.NOT_PERMITTED


class KernelExecutionError(LaunchError):
    """Raised when queued work failed while a stream was being drained."""


class TransferError(AccelError):
    """Raised when a blocking memory transfer cannot be performed."""

    default_code = ErrorCode.INVALID_VALUE


class IllegalAddressError(AccelError):
    """Raised when storage is touched from a memory domain that cannot see it."""

    default_code = ErrorCode.ILLEGAL_ADDRESS
