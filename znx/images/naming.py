"""Image names.

An image is addressed as ``<vendor>/<name>``; each segment is made of
letters, digits, '_' and '-'. The name doubles as the slot's relative path
under the repository root, so validation happens before any filesystem use.
"""

import re
from dataclasses import dataclass
from pathlib import PurePosixPath

from znx.errors import ZnxError

_SEGMENT = r"[A-Za-z0-9_-]+"
IMAGE_NAME_PATTERN = re.compile(rf"({_SEGMENT})/({_SEGMENT})")


class InvalidImageNameError(ZnxError):
    """Image name does not match <vendor>/<name>."""

    def __init__(self, value: str) -> None:
        super().__init__(
            f"Invalid image name: {value!r}. Expected <vendor>/<name> using "
            "letters, digits, '_' and '-'.",
            error_code="INVALID_IMAGE_NAME",
        )
        self.value = value


@dataclass(frozen=True, order=True)
class ImageName:
    """A validated ``<vendor>/<name>`` pair."""

    vendor: str
    name: str

    def __post_init__(self) -> None:
        if not IMAGE_NAME_PATTERN.fullmatch(f"{self.vendor}/{self.name}"):
            raise InvalidImageNameError(f"{self.vendor}/{self.name}")

    @classmethod
    def parse(cls, value: str) -> "ImageName":
        """Parse ``vendor/name``.

        Raises:
            InvalidImageNameError: If the value is malformed.
        """
        match = IMAGE_NAME_PATTERN.fullmatch(value)
        if not match:
            raise InvalidImageNameError(value)
        return cls(vendor=match.group(1), name=match.group(2))

    @property
    def relative_path(self) -> PurePosixPath:
        return PurePosixPath(self.vendor, self.name)

    def __str__(self) -> str:
        return f"{self.vendor}/{self.name}"


__all__ = ["IMAGE_NAME_PATTERN", "ImageName", "InvalidImageNameError"]
