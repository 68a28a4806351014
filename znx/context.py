"""Per-invocation command context.

A CommandContext is built once from the command line and passed to every
lifecycle operation. Only the mount directory changes after construction,
and only once: from unset to bound when the data volume is mounted.
"""

from dataclasses import dataclass, field
from pathlib import Path

from znx.config import Settings, get_settings
from znx.images.naming import ImageName


@dataclass
class CommandContext:
    """Inputs shared by the steps of one command.

    Attributes:
        device: Device path as given by the caller.
        image: Image name for slot commands, None for device commands.
        settings: Effective settings.
    """

    device: str
    image: ImageName | None = None
    settings: Settings = field(default_factory=get_settings)
    _mount_dir: Path | None = field(default=None, init=False, repr=False)

    @classmethod
    def create(
        cls,
        device: str,
        image: str | None = None,
        settings: Settings | None = None,
    ) -> "CommandContext":
        """Build a context, validating the image name if one is given.

        Raises:
            InvalidImageNameError: The image name is malformed.
        """
        return cls(
            device=device,
            image=ImageName.parse(image) if image is not None else None,
            settings=settings or get_settings(),
        )

    @property
    def mount_dir(self) -> Path:
        if self._mount_dir is None:
            raise RuntimeError("Data volume is not mounted")
        return self._mount_dir

    @property
    def is_bound(self) -> bool:
        return self._mount_dir is not None

    def bind_mount(self, mount_dir: Path) -> None:
        """Record where the data volume is mounted. Allowed once."""
        if self._mount_dir is not None:
            raise RuntimeError(f"Mount directory already bound to {self._mount_dir}")
        self._mount_dir = mount_dir

    def require_image(self) -> ImageName:
        if self.image is None:
            raise RuntimeError("This command needs an image name")
        return self.image


__all__ = ["CommandContext"]
