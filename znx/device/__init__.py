"""Device handling: validation, scoped mounts and initialization."""

from znx.device.command import CommandError, run_command
from znx.device.device import (
    BOOT_LABEL,
    DATA_LABEL,
    DeviceError,
    DeviceInfo,
    DeviceMountedError,
    DeviceNotFoundError,
    NotBlockDeviceError,
    PartitionDeviceError,
    SystemDeviceError,
    require_root,
    validate_device,
)
from znx.device.initializer import InitFailedError, initialize_device
from znx.device.mount import MountError, NotManagedError, ScopedMount

__all__ = [
    "BOOT_LABEL",
    "DATA_LABEL",
    # Commands
    "CommandError",
    "run_command",
    # Validation
    "DeviceError",
    "DeviceInfo",
    "DeviceMountedError",
    "DeviceNotFoundError",
    "NotBlockDeviceError",
    "PartitionDeviceError",
    "SystemDeviceError",
    "require_root",
    "validate_device",
    # Mounting
    "MountError",
    "NotManagedError",
    "ScopedMount",
    # Initialization
    "InitFailedError",
    "initialize_device",
]
