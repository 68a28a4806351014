"""Device initialization.

Wipes a raw device and lays out the two volumes every managed device has:

  1. ZNX_BOOT  EFI system partition, FAT32, bootloader files
  2. ZNX_DATA  remaining space, btrfs, user data and image slots

A failure part way through is not rolled back; the device is left as the
failing step found it and must be initialized again.
"""

import logging
import shutil
from pathlib import Path

from znx.config import Settings, get_settings
from znx.device.command import CommandError, run_command
from znx.device.device import BOOT_LABEL, DATA_LABEL, partition_path, validate_device
from znx.device.mount import MountError, ScopedMount
from znx.errors import ZnxError

logger = logging.getLogger(__name__)

# Directories created on a fresh data volume
DATA_SKELETON = ("data/etc", "data/home", "boot_images")

# GPT type codes (sgdisk shorthand)
ESP_TYPE = "EF00"
LINUX_FS_TYPE = "8300"


class InitFailedError(ZnxError):
    """A step of device initialization failed."""

    def __init__(self, device_path: str, step: str, reason: str) -> None:
        super().__init__(
            f"Failed to initialize {device_path} ({step}): {reason}",
            error_code="INIT_FAILED",
        )
        self.device_path = device_path
        self.step = step


def partition_commands(device_path: str, boot_size_mib: int) -> list[list[str]]:
    """Commands that wipe the device and create the GPT layout."""
    return [
        ["wipefs", "--all", "--force", device_path],
        ["sgdisk", "--zap-all", device_path],
        [
            "sgdisk",
            f"--new=1:0:+{boot_size_mib}M",
            f"--typecode=1:{ESP_TYPE}",
            f"--change-name=1:{BOOT_LABEL}",
            "--new=2:0:0",
            f"--typecode=2:{LINUX_FS_TYPE}",
            f"--change-name=2:{DATA_LABEL}",
            device_path,
        ],
        ["partprobe", device_path],
    ]


def format_commands(boot_partition: str, data_partition: str) -> list[list[str]]:
    """Commands that create the boot and data filesystems."""
    return [
        ["mkfs.vfat", "-F", "32", "-n", BOOT_LABEL, boot_partition],
        ["mkfs.btrfs", "-f", "-L", DATA_LABEL, data_partition],
    ]


def seed_boot_volume(root: Path, bootloader_dir: Path) -> None:
    """Copy the bootloader files onto a mounted boot volume."""
    if not bootloader_dir.is_dir():
        raise FileNotFoundError(f"Bootloader directory not found: {bootloader_dir}")
    shutil.copytree(bootloader_dir, root, dirs_exist_ok=True)


def seed_data_volume(root: Path) -> None:
    """Create the empty directory skeleton on a mounted data volume."""
    for relative in DATA_SKELETON:
        (root / relative).mkdir(parents=True, exist_ok=True)


def initialize_device(device_path: str, settings: Settings | None = None) -> None:
    """Partition, format and seed ``device_path``.

    Args:
        device_path: Whole device to initialize. All data on it is lost.
        settings: Optional settings; uses defaults if not provided.

    Raises:
        DeviceMountedError: A partition of the device is mounted.
        InitFailedError: Any partitioning, formatting or seeding step failed.
    """
    settings = settings or get_settings()
    validate_device(device_path, check_mount=True)

    boot_partition = partition_path(device_path, 1)
    data_partition = partition_path(device_path, 2)

    logger.info("Initializing %s", device_path)
    steps = partition_commands(device_path, settings.boot_size_mib) + format_commands(
        boot_partition, data_partition
    )
    for cmd in steps:
        try:
            run_command(cmd, timeout=settings.command_timeout)
        except CommandError as e:
            raise InitFailedError(device_path, cmd[0], e.message) from e

    try:
        with ScopedMount(
            device_path, partition=boot_partition, settings=settings
        ) as boot_root:
            seed_boot_volume(boot_root, settings.bootloader_dir)
        with ScopedMount(
            device_path, partition=data_partition, settings=settings
        ) as data_root:
            seed_data_volume(data_root)
    except (MountError, OSError) as e:
        raise InitFailedError(device_path, "seed", str(e)) from e

    logger.info("Initialized %s", device_path)


__all__ = [
    "DATA_SKELETON",
    "InitFailedError",
    "format_commands",
    "initialize_device",
    "partition_commands",
    "seed_boot_volume",
    "seed_data_volume",
]
