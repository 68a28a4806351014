"""Lifecycle controller.

Each public function implements one command. Slot commands run in the same
order: preflight checks, mount the data volume, perform one slot
transition, unmount. The unmount is part of the ``with`` scope around the
whole command body, so it happens whatever the outcome.
"""

import logging
from collections.abc import Iterator
from contextlib import contextmanager

from znx.context import CommandContext
from znx.device.device import require_root, validate_device
from znx.device.initializer import initialize_device
from znx.device.mount import ScopedMount
from znx.images.repository import ImageRepository
from znx.types import OperationResult

logger = logging.getLogger(__name__)


def preflight(ctx: CommandContext) -> None:
    """Check privileges and the device before anything is touched.

    Raises:
        PrivilegeError: Not running as root.
        DeviceError: The device is missing, not a block device, or a
            partition.
    """
    require_root()
    validate_device(ctx.device, check_system_device=False)


@contextmanager
def mounted_repository(ctx: CommandContext) -> Iterator[ImageRepository]:
    """Mount the data volume of ``ctx.device`` and yield its repository.

    Raises:
        NotManagedError: The device has no ZNX_DATA volume.
    """
    with ScopedMount(ctx.device, settings=ctx.settings) as mount_dir:
        ctx.bind_mount(mount_dir)
        yield ImageRepository.on_volume(mount_dir, ctx.settings)


def init_device(ctx: CommandContext) -> OperationResult:
    """Partition and format the device."""
    require_root()
    initialize_device(ctx.device, ctx.settings)
    return OperationResult(
        success=True,
        message=f"Initialized {ctx.device}",
        details={"device": ctx.device},
    )


def deploy_image(ctx: CommandContext, source: str) -> OperationResult:
    """Deploy ``source`` as the first generation of ``ctx.image``."""
    name = ctx.require_image()
    preflight(ctx)
    with mounted_repository(ctx) as repo:
        slot = repo.deploy(name, source)
        size = slot.active_path.stat().st_size
    return OperationResult(
        success=True,
        message=f"Deployed {name}",
        details={"image": str(name), "source": source, "size_bytes": size},
    )


def update_image(ctx: CommandContext) -> OperationResult:
    """Sync a new generation of ``ctx.image``."""
    name = ctx.require_image()
    preflight(ctx)
    with mounted_repository(ctx) as repo:
        repo.update(name)
    return OperationResult(
        success=True, message=f"Updated {name}", details={"image": str(name)}
    )


def revert_image(ctx: CommandContext) -> OperationResult:
    """Make the backup generation of ``ctx.image`` active."""
    name = ctx.require_image()
    preflight(ctx)
    with mounted_repository(ctx) as repo:
        repo.revert(name)
    return OperationResult(
        success=True, message=f"Reverted {name}", details={"image": str(name)}
    )


def clean_image(ctx: CommandContext) -> OperationResult:
    """Delete the backup generation of ``ctx.image``."""
    name = ctx.require_image()
    preflight(ctx)
    with mounted_repository(ctx) as repo:
        removed = repo.clean(name)
    message = f"Cleaned {name}" if removed else f"Nothing to clean for {name}"
    return OperationResult(
        success=True,
        message=message,
        details={"image": str(name), "backup_removed": removed},
    )


def remove_image(ctx: CommandContext) -> OperationResult:
    """Delete the slot of ``ctx.image``."""
    name = ctx.require_image()
    preflight(ctx)
    with mounted_repository(ctx) as repo:
        repo.remove(name)
    return OperationResult(
        success=True, message=f"Removed {name}", details={"image": str(name)}
    )


def list_images(ctx: CommandContext) -> OperationResult:
    """List deployed images with their generation state."""
    preflight(ctx)
    with mounted_repository(ctx) as repo:
        images = [
            {"name": str(name), "state": repo.slot(name).state.value}
            for name in repo.list()
        ]
    return OperationResult(
        success=True,
        message=f"{len(images)} image(s) deployed",
        details={"images": images},
    )


__all__ = [
    "clean_image",
    "deploy_image",
    "init_device",
    "list_images",
    "mounted_repository",
    "preflight",
    "remove_image",
    "revert_image",
    "update_image",
]
