"""Base error type for znx.

Every failure a command can report derives from ZnxError so the CLI can
render it uniformly. Concrete errors live next to the code that raises them.
"""


class ZnxError(Exception):
    """Base exception for all reported znx errors.

    Attributes:
        message: Human-readable description.
        error_code: Stable code for programmatic handling.
    """

    def __init__(self, message: str, error_code: str) -> None:
        super().__init__(message)
        self.message = message
        self.error_code = error_code


class PrivilegeError(ZnxError):
    """The caller cannot mount or format devices."""

    def __init__(self) -> None:
        super().__init__(
            "This command must be run as root.", error_code="PRIVILEGE_REQUIRED"
        )


__all__ = ["PrivilegeError", "ZnxError"]
