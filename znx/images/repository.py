"""Image repository and image slots.

The repository is the ``boot_images`` directory on a mounted data volume.
Each deployed image owns one slot directory, ``<vendor>/<name>``, holding up
to two generations:

- ``image.iso``         the active generation, booted and used as the seed
                        for the next update
- ``image.iso.zs-old``  the backup generation, the active file preserved by
                        the last update

Slot transitions::

    Absent   --deploy--> SingleGen --update--> DualGen --update--> DualGen
    DualGen  --revert--> SingleGen
    DualGen  --clean---> SingleGen --clean--> SingleGen
    any      --remove--> Absent

New generations are always written to a staging file in the slot and moved
into place with os.replace, so a failed transfer never touches the active
file.
"""

from __future__ import annotations

import logging
import os
import shutil
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path

from znx.config import Settings, get_settings
from znx.errors import ZnxError
from znx.images.descriptor import read_update_locator
from znx.images.fetch import FetchError, IncrementalFetch, SourceFetcher, make_fetcher
from znx.images.naming import IMAGE_NAME_PATTERN, ImageName
from znx.types import SlotState

logger = logging.getLogger(__name__)

REPOSITORY_DIR = "boot_images"
ACTIVE_NAME = "image.iso"
# Suffix the zsync engine gives a preserved previous output
BACKUP_SUFFIX = ".zs-old"
STAGING_SUFFIX = ".new"


class SlotError(ZnxError):
    """Base exception for slot state errors."""


class AlreadyDeployedError(SlotError):
    """A slot with this name already exists."""

    def __init__(self, name: ImageName) -> None:
        super().__init__(
            f"Image {name} is already deployed.", error_code="ALREADY_DEPLOYED"
        )
        self.name = name


class NotDeployedError(SlotError):
    """No slot (or no active generation) exists for this name."""

    def __init__(self, name: ImageName) -> None:
        super().__init__(f"Image {name} is not deployed.", error_code="NOT_DEPLOYED")
        self.name = name


class RevertFailedError(SlotError):
    """The slot has no backup generation to revert to."""

    def __init__(self, name: ImageName) -> None:
        super().__init__(
            f"Image {name} has no backup to revert to.", error_code="REVERT_FAILED"
        )
        self.name = name


class DeployFailedError(SlotError):
    """Fetching the first generation failed; the slot was removed."""

    def __init__(self, name: ImageName, reason: str) -> None:
        super().__init__(
            f"Failed to deploy {name}: {reason}", error_code="DEPLOY_FAILED"
        )
        self.name = name


class UpdateFailedError(SlotError):
    """Syncing a new generation failed; the active generation is intact."""

    def __init__(self, name: ImageName, reason: str) -> None:
        super().__init__(
            f"Failed to update {name}: {reason}", error_code="UPDATE_FAILED"
        )
        self.name = name


class SlotAccessError(SlotError):
    """A slot file could not be read, moved or deleted."""

    def __init__(self, name: ImageName, action: str, error: OSError) -> None:
        super().__init__(
            f"Failed to {action} {name}: {error.strerror or error}",
            error_code="SLOT_IO_ERROR",
        )
        self.name = name


@dataclass(frozen=True)
class ImageSlot:
    """On-disk view of one image slot."""

    name: ImageName
    path: Path

    @property
    def active_path(self) -> Path:
        return self.path / ACTIVE_NAME

    @property
    def backup_path(self) -> Path:
        return self.path / (ACTIVE_NAME + BACKUP_SUFFIX)

    @property
    def staging_path(self) -> Path:
        return self.path / (ACTIVE_NAME + STAGING_SUFFIX)

    def exists(self) -> bool:
        return self.path.is_dir()

    def has_active(self) -> bool:
        return self.active_path.is_file()

    def has_backup(self) -> bool:
        return self.backup_path.is_file()

    @property
    def state(self) -> SlotState:
        if not self.exists():
            return SlotState.ABSENT
        if not self.has_active():
            return SlotState.EMPTY
        if self.has_backup():
            return SlotState.DUAL_GEN
        return SlotState.SINGLE_GEN


class SlotListing:
    """Names of all slots under a repository root.

    Each iteration rescans the directory, so a listing can be iterated
    any number of times and always reflects the current tree.
    """

    def __init__(self, root: Path) -> None:
        self.root = root

    def __iter__(self) -> Iterator[ImageName]:
        if not self.root.is_dir():
            return
        for vendor_dir in sorted(self.root.iterdir()):
            if not vendor_dir.is_dir():
                continue
            for slot_dir in sorted(vendor_dir.iterdir()):
                if not slot_dir.is_dir():
                    continue
                if IMAGE_NAME_PATTERN.fullmatch(f"{vendor_dir.name}/{slot_dir.name}"):
                    yield ImageName(vendor_dir.name, slot_dir.name)
                else:
                    logger.debug("Skipping foreign directory %s", slot_dir)


class ImageRepository:
    """Slot storage rooted at ``boot_images`` on a mounted data volume."""

    def __init__(self, root: Path, settings: Settings | None = None) -> None:
        self.root = root
        self.settings = settings or get_settings()

    @classmethod
    def on_volume(
        cls, mount_dir: Path, settings: Settings | None = None
    ) -> ImageRepository:
        """Return the repository of a mounted data volume."""
        return cls(mount_dir / REPOSITORY_DIR, settings=settings)

    def slot(self, name: ImageName) -> ImageSlot:
        return ImageSlot(name=name, path=self.root / name.relative_path)

    def exists(self, name: ImageName) -> bool:
        return self.slot(name).exists()

    def create(self, name: ImageName) -> ImageSlot:
        """Create an empty slot directory.

        Raises:
            AlreadyDeployedError: The slot directory already exists.
        """
        slot = self.slot(name)
        try:
            slot.path.mkdir(parents=True)
        except FileExistsError:
            raise AlreadyDeployedError(name) from None
        logger.debug("Created slot %s", slot.path)
        return slot

    def deploy(self, name: ImageName, source: str | SourceFetcher) -> ImageSlot:
        """Create a slot and fetch its first active generation.

        Args:
            name: Image name.
            source: Source locator or a ready fetcher.

        Returns:
            The deployed slot.

        Raises:
            AlreadyDeployedError: The slot already exists.
            DeployFailedError: The fetch failed; the slot no longer exists.
        """
        slot = self.create(name)
        fetcher = (
            source
            if isinstance(source, SourceFetcher)
            else make_fetcher(source, self.settings)
        )
        logger.info("Deploying %s with %r", name, fetcher)

        try:
            fetcher.fetch(slot.staging_path)
            os.replace(slot.staging_path, slot.active_path)
        except (FetchError, OSError) as e:
            self._discard(slot)
            reason = e.message if isinstance(e, FetchError) else str(e)
            raise DeployFailedError(name, reason) from e
        except BaseException:
            self._discard(slot)
            raise

        return slot

    def update(self, name: ImageName) -> ImageSlot:
        """Sync a new active generation, keeping the current one as backup.

        An existing backup is replaced.

        Raises:
            NotDeployedError: The slot has no active generation.
            MissingUpdateInfoError: The active image has no update locator.
            UpdateFailedError: The sync failed; the active file is unchanged.
            SlotAccessError: The active image could not be read.
        """
        slot = self.slot(name)
        if not slot.has_active():
            raise NotDeployedError(name)

        try:
            locator = read_update_locator(slot.active_path)
        except OSError as e:
            raise SlotAccessError(name, "read", e) from e
        fetcher = IncrementalFetch(
            locator,
            seed=slot.active_path,
            zsync_bin=self.settings.zsync_bin,
            timeout=self.settings.command_timeout,
        )
        logger.info("Updating %s from %s", name, locator)

        # zsync would keep a leftover output as *.new.zs-old
        slot.staging_path.unlink(missing_ok=True)
        try:
            fetcher.fetch(slot.staging_path)
        except FetchError as e:
            slot.staging_path.unlink(missing_ok=True)
            raise UpdateFailedError(name, e.message) from e
        except BaseException:
            slot.staging_path.unlink(missing_ok=True)
            raise

        if slot.has_backup():
            logger.warning("Discarding previous backup of %s", name)

        try:
            os.replace(slot.active_path, slot.backup_path)
        except OSError as e:
            slot.staging_path.unlink(missing_ok=True)
            raise UpdateFailedError(name, str(e)) from e
        try:
            os.replace(slot.staging_path, slot.active_path)
        except OSError as e:
            os.replace(slot.backup_path, slot.active_path)
            slot.staging_path.unlink(missing_ok=True)
            raise UpdateFailedError(name, str(e)) from e

        return slot

    def revert(self, name: ImageName) -> ImageSlot:
        """Make the backup generation active, discarding the current one.

        Raises:
            NotDeployedError: The slot does not exist.
            RevertFailedError: There is no backup generation.
            SlotAccessError: The backup could not be moved into place.
        """
        slot = self.slot(name)
        if not slot.exists():
            raise NotDeployedError(name)
        if not slot.has_backup():
            raise RevertFailedError(name)

        try:
            os.replace(slot.backup_path, slot.active_path)
        except OSError as e:
            raise SlotAccessError(name, "revert", e) from e
        logger.info("Reverted %s to its backup generation", name)
        return slot

    def clean(self, name: ImageName) -> bool:
        """Remove the backup generation if there is one.

        Returns:
            True if a backup was removed, False if there was none.

        Raises:
            NotDeployedError: The slot does not exist.
            SlotAccessError: The backup could not be deleted.
        """
        slot = self.slot(name)
        if not slot.exists():
            raise NotDeployedError(name)
        if not slot.has_backup():
            logger.debug("No backup to clean for %s", name)
            return False

        try:
            slot.backup_path.unlink()
        except OSError as e:
            raise SlotAccessError(name, "clean", e) from e
        logger.info("Removed backup generation of %s", name)
        return True

    def remove(self, name: ImageName) -> None:
        """Delete a slot and all its generations.

        Raises:
            NotDeployedError: The slot does not exist.
            SlotAccessError: The slot could not be deleted.
        """
        slot = self.slot(name)
        if not slot.exists():
            raise NotDeployedError(name)
        try:
            shutil.rmtree(slot.path)
        except OSError as e:
            raise SlotAccessError(name, "remove", e) from e
        self._prune_vendor(slot)
        logger.info("Removed %s", name)

    def list(self) -> SlotListing:
        """Return the names of all slots in the repository."""
        return SlotListing(self.root)

    def _discard(self, slot: ImageSlot) -> None:
        shutil.rmtree(slot.path, ignore_errors=True)
        self._prune_vendor(slot)
        logger.debug("Discarded slot %s", slot.path)

    def _prune_vendor(self, slot: ImageSlot) -> None:
        vendor_dir = slot.path.parent
        try:
            vendor_dir.rmdir()
        except OSError:
            # Not empty: other images of this vendor remain
            pass


__all__ = [
    "ACTIVE_NAME",
    "BACKUP_SUFFIX",
    "REPOSITORY_DIR",
    "AlreadyDeployedError",
    "DeployFailedError",
    "ImageRepository",
    "ImageSlot",
    "NotDeployedError",
    "RevertFailedError",
    "SlotAccessError",
    "SlotError",
    "SlotListing",
    "UpdateFailedError",
]
