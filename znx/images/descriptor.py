"""Update descriptor embedded in image files.

Images carry the locator of their next update inside the ISO 9660 primary
volume descriptor's application-use field: 512 bytes at offset 33651. The
field is NUL padded and may be prefixed with a transport tag such as
``zsync|``.
"""

import logging
from pathlib import Path

from znx.errors import ZnxError

logger = logging.getLogger(__name__)

DESCRIPTOR_OFFSET = 33651
DESCRIPTOR_LENGTH = 512

# Transport tags that may precede the locator
_TRANSPORT_TAGS = ("zsync|",)


class MissingUpdateInfoError(ZnxError):
    """Image carries no update locator."""

    def __init__(self, image_path: Path | str) -> None:
        super().__init__(
            f"No update information found in {image_path}",
            error_code="MISSING_UPDATE_INFO",
        )
        self.image_path = str(image_path)


def parse_descriptor(raw: bytes) -> str:
    """Decode a raw descriptor field into a locator (may be empty)."""
    text = raw.replace(b"\x00", b"").decode("utf-8", errors="replace").strip()
    for tag in _TRANSPORT_TAGS:
        if text.startswith(tag):
            text = text[len(tag) :].strip()
    return text


def read_update_locator(image_path: Path) -> str:
    """Read the update locator from ``image_path``.

    Args:
        image_path: Image file (the active generation of a slot).

    Returns:
        The update locator.

    Raises:
        MissingUpdateInfoError: The field is empty or the file is too short.
        OSError: The file cannot be read.
    """
    with image_path.open("rb") as f:
        f.seek(DESCRIPTOR_OFFSET)
        raw = f.read(DESCRIPTOR_LENGTH)

    locator = parse_descriptor(raw)
    if not locator:
        raise MissingUpdateInfoError(image_path)

    logger.debug("Update locator for %s: %s", image_path, locator)
    return locator


__all__ = [
    "DESCRIPTOR_LENGTH",
    "DESCRIPTOR_OFFSET",
    "MissingUpdateInfoError",
    "parse_descriptor",
    "read_update_locator",
]
