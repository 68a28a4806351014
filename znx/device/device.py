"""Block device inspection and validation.

This module answers questions about the target device before any command
touches it:
- Does the path exist and is it a whole block device?
- Is it the system root device?
- Which of its partitions are mounted, and where?
- Which partitions does it have, and with which labels?
"""

import json
import logging
import os
import re
import stat
from dataclasses import dataclass, field
from pathlib import Path

from znx.device.command import CommandError, run_command
from znx.errors import PrivilegeError, ZnxError

logger = logging.getLogger(__name__)

PROC_MOUNTS = "/proc/mounts"

# Partition labels are identifiers, matched exactly during discovery.
BOOT_LABEL = "ZNX_BOOT"
DATA_LABEL = "ZNX_DATA"


@dataclass
class Partition:
    """A partition of a block device as reported by lsblk."""

    path: str
    label: str | None = None
    fstype: str | None = None


@dataclass
class DeviceInfo:
    """Information about a validated block device.

    Attributes:
        path: Absolute path to the device (e.g., '/dev/sdb').
        is_mounted: Whether any partitions on this device are mounted.
        mount_points: Mount points of the device's partitions.
    """

    path: str
    is_mounted: bool = False
    mount_points: list[str] = field(default_factory=list)


class DeviceError(ZnxError):
    """Base exception for device errors."""


class DeviceNotFoundError(DeviceError):
    """Device path does not exist."""

    def __init__(self, device_path: str) -> None:
        super().__init__(
            f"Device not found: {device_path}", error_code="DEVICE_NOT_FOUND"
        )
        self.device_path = device_path


class NotBlockDeviceError(DeviceError):
    """Path exists but is not a block device."""

    def __init__(self, device_path: str) -> None:
        super().__init__(
            f"Not a block device: {device_path}", error_code="NOT_BLOCK_DEVICE"
        )
        self.device_path = device_path


class PartitionDeviceError(DeviceError):
    """Device appears to be a partition, not a whole device."""

    def __init__(self, device_path: str) -> None:
        super().__init__(
            f"{device_path} is a partition. "
            "Pass the whole device (e.g., /dev/sdb, /dev/mmcblk0).",
            error_code="PARTITION_NOT_ALLOWED",
        )
        self.device_path = device_path


class SystemDeviceError(DeviceError):
    """Device holds the running system's root filesystem."""

    def __init__(self, device_path: str) -> None:
        super().__init__(
            f"{device_path} holds the system root filesystem. Refusing to touch it.",
            error_code="SYSTEM_DEVICE",
        )
        self.device_path = device_path


class DeviceMountedError(DeviceError):
    """Device or its partitions are mounted."""

    def __init__(self, device_path: str, mount_points: list[str]) -> None:
        super().__init__(
            f"Device {device_path} has mounted partitions: "
            f"{', '.join(mount_points)}. Unmount them first.",
            error_code="DEVICE_MOUNTED",
        )
        self.device_path = device_path
        self.mount_points = mount_points


# Whole-device name patterns whose partitions take a 'p' separator
# (/dev/mmcblk0p1, /dev/nvme0n1p1, /dev/loop0p1).
_P_SEPARATED = re.compile(r"^/dev/(mmcblk\d+|nvme\d+n\d+|loop\d+)$")

# Partition path patterns, group 1 is the whole device.
_PARTITION_PATTERNS = (
    re.compile(r"^(/dev/[shv]d[a-z]+)\d+$"),
    re.compile(r"^(/dev/nvme\d+n\d+)p\d+$"),
    re.compile(r"^(/dev/mmcblk\d+)p\d+$"),
    re.compile(r"^(/dev/loop\d+)p\d+$"),
)


def is_partition_path(device_path: str) -> bool:
    """Check if a device path names a partition (e.g., /dev/sdb1)."""
    return any(p.match(device_path) for p in _PARTITION_PATTERNS)


def whole_device(partition: str) -> str:
    """Return the whole device for a partition path, or the path unchanged."""
    for pattern in _PARTITION_PATTERNS:
        match = pattern.match(partition)
        if match:
            return match.group(1)
    return partition


def partition_path(device_path: str, number: int) -> str:
    """Return the kernel name of partition ``number`` on ``device_path``.

    >>> partition_path("/dev/sdb", 2)
    '/dev/sdb2'
    >>> partition_path("/dev/mmcblk0", 1)
    '/dev/mmcblk0p1'
    """
    if _P_SEPARATED.match(device_path):
        return f"{device_path}p{number}"
    return f"{device_path}{number}"


def is_block_device(device_path: str) -> bool:
    """Check if a path is a block device."""
    try:
        return stat.S_ISBLK(os.stat(device_path).st_mode)
    except OSError:
        return False


def _unescape_mount_field(value: str) -> str:
    """Decode the octal escapes (\\040 for space, ...) used in /proc/mounts."""
    return re.sub(r"\\([0-7]{3})", lambda m: chr(int(m.group(1), 8)), value)


def read_mount_table() -> list[tuple[str, str]]:
    """Return (source, mount point) pairs from /proc/mounts."""
    entries: list[tuple[str, str]] = []
    try:
        with open(PROC_MOUNTS) as f:
            for line in f:
                parts = line.split()
                if len(parts) >= 2:
                    entries.append(
                        (
                            _unescape_mount_field(parts[0]),
                            _unescape_mount_field(parts[1]),
                        )
                    )
    except OSError:
        logger.warning("Could not read %s, assuming nothing is mounted", PROC_MOUNTS)
    return entries


def get_mount_points(device_path: str) -> list[str]:
    """Get mount points of a device and all of its partitions."""
    return [
        mount_point
        for source, mount_point in read_mount_table()
        if source == device_path or whole_device(source) == device_path
    ]


def is_mount_point(path: str | Path) -> bool:
    """Check whether ``path`` is currently an active mount point."""
    # /proc/mounts lists canonical paths
    target = os.path.realpath(path)
    return any(mount_point == target for _, mount_point in read_mount_table())


def get_root_device() -> str | None:
    """Return the whole device holding '/', or None if unknown."""
    for source, mount_point in read_mount_table():
        if mount_point == "/":
            return whole_device(source)
    return None


def list_partitions(device_path: str) -> list[Partition]:
    """List the partitions of a device with their filesystem labels.

    Args:
        device_path: Whole device path.

    Returns:
        Partitions in kernel order.

    Raises:
        CommandError: If lsblk fails.
    """
    result = run_command(
        [
            "lsblk",
            "--json",
            "--paths",
            "--output",
            "NAME,LABEL,FSTYPE,TYPE",
            device_path,
        ]
    )
    try:
        data = json.loads(result.stdout)
    except json.JSONDecodeError as e:
        raise CommandError(
            f"Unparseable lsblk output for {device_path}",
            command=["lsblk", device_path],
            error_code="LSBLK_OUTPUT",
        ) from e

    partitions: list[Partition] = []
    for disk in data.get("blockdevices", []):
        for child in disk.get("children", []):
            if child.get("type") != "part":
                continue
            partitions.append(
                Partition(
                    path=child["name"],
                    label=child.get("label"),
                    fstype=child.get("fstype"),
                )
            )
    return partitions


def require_root() -> None:
    """Raise PrivilegeError unless running with an effective uid of 0."""
    if os.geteuid() != 0:
        raise PrivilegeError()


def validate_device(
    device_path: str,
    *,
    check_mount: bool = False,
    check_system_device: bool = True,
) -> DeviceInfo:
    """Validate a device path before operating on it.

    1. The path exists
    2. It is a block device
    3. It is a whole device, not a partition
    4. Optionally, it is not the system root device
    5. Optionally, none of its partitions are mounted

    Args:
        device_path: Path to the device.
        check_mount: Refuse devices with mounted partitions.
        check_system_device: Refuse the device holding '/'.

    Returns:
        DeviceInfo for the device.

    Raises:
        DeviceNotFoundError: Device path does not exist.
        NotBlockDeviceError: Path is not a block device.
        PartitionDeviceError: Path is a partition.
        SystemDeviceError: Device is the system root device.
        DeviceMountedError: Device is mounted and check_mount is set.
    """
    device_path = os.path.abspath(device_path)
    logger.debug("Validating device: %s", device_path)

    if not os.path.exists(device_path):
        raise DeviceNotFoundError(device_path)

    if not is_block_device(device_path):
        raise NotBlockDeviceError(device_path)

    if is_partition_path(device_path):
        raise PartitionDeviceError(device_path)

    if check_system_device and get_root_device() == device_path:
        raise SystemDeviceError(device_path)

    mount_points = get_mount_points(device_path)
    if check_mount and mount_points:
        raise DeviceMountedError(device_path, mount_points)

    logger.info("Device validated: %s (mounted=%s)", device_path, bool(mount_points))
    return DeviceInfo(
        path=device_path,
        is_mounted=bool(mount_points),
        mount_points=mount_points,
    )


__all__ = [
    "BOOT_LABEL",
    "DATA_LABEL",
    "DeviceError",
    "DeviceInfo",
    "DeviceMountedError",
    "DeviceNotFoundError",
    "NotBlockDeviceError",
    "Partition",
    "PartitionDeviceError",
    "SystemDeviceError",
    "get_mount_points",
    "get_root_device",
    "is_block_device",
    "is_mount_point",
    "is_partition_path",
    "list_partitions",
    "partition_path",
    "read_mount_table",
    "require_root",
    "validate_device",
    "whole_device",
]
