"""Scoped mounting of a managed device's volumes.

A ScopedMount owns one temporary mount point for the lifetime of a command.
Once acquired, the mount is released on every exit path: normal return,
any exception, and SIGINT/SIGTERM/SIGHUP (converted to SystemExit while the
scope is active so that ``__exit__`` runs).

Example:
    with ScopedMount("/dev/sdb") as root:
        print(sorted(p.name for p in root.iterdir()))
"""

from __future__ import annotations

import logging
import signal
import tempfile
import threading
import time
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from types import FrameType, TracebackType

from znx.config import Settings, get_settings
from znx.device.command import CommandError, run_command
from znx.device.device import DATA_LABEL, DeviceError, is_mount_point, list_partitions
from znx.errors import ZnxError

logger = logging.getLogger(__name__)

_GUARDED_SIGNALS = (signal.SIGINT, signal.SIGTERM, signal.SIGHUP)


class MountError(ZnxError):
    """Mounting or unmounting failed."""

    def __init__(self, message: str) -> None:
        super().__init__(message, error_code="MOUNT_ERROR")


class NotManagedError(DeviceError):
    """Device has no mountable volume labelled ZNX_DATA."""

    def __init__(self, device_path: str) -> None:
        super().__init__(
            f"Unable to mount the {DATA_LABEL} volume of {device_path}. "
            "Is the device initialized?",
            error_code="NOT_MANAGED",
        )
        self.device_path = device_path


def mount_partition(partition: str, target: Path) -> None:
    """Mount ``partition`` on ``target``.

    Raises:
        CommandError: If mount fails.
    """
    run_command(["mount", partition, str(target)])
    logger.info("Mounted %s at %s", partition, target)


def unmount(target: Path, *, retries: int, interval: float) -> bool:
    """Unmount ``target`` until it is no longer a mount point.

    The first attempt is a plain unmount; later attempts force it. A target
    that is not mounted counts as success.

    Args:
        target: Mount point.
        retries: Maximum number of unmount attempts.
        interval: Seconds to sleep between attempts.

    Returns:
        True once ``target`` is not mounted, False if still mounted after
        all attempts.
    """
    for attempt in range(retries):
        if not is_mount_point(target):
            return True
        cmd = ["umount", str(target)] if attempt == 0 else ["umount", "-f", str(target)]
        try:
            run_command(cmd)
        except CommandError as e:
            logger.warning("Unmount attempt %d of %s failed: %s", attempt + 1, target, e)
        if not is_mount_point(target):
            logger.info("Unmounted %s", target)
            return True
        time.sleep(interval)
    return not is_mount_point(target)


def _exit_on_signal(signum: int, frame: FrameType | None) -> None:
    logger.warning("Received %s, releasing mount", signal.Signals(signum).name)
    raise SystemExit(128 + signum)


@contextmanager
def _signals_ignored() -> Iterator[None]:
    """Ignore the guarded signals until the block ends."""
    if threading.current_thread() is not threading.main_thread():
        yield
        return
    previous = {
        signum: signal.signal(signum, signal.SIG_IGN) for signum in _GUARDED_SIGNALS
    }
    try:
        yield
    finally:
        for signum, handler in previous.items():
            signal.signal(signum, handler)


class ScopedMount:
    """Temporary mount of one volume of a device.

    By default the first partition labelled ZNX_DATA is mounted. Passing
    ``partition`` mounts that partition instead.

    Attributes:
        device: Whole device path.
        mount_dir: Bound mount point, or None while not acquired.
    """

    def __init__(
        self,
        device: str,
        *,
        partition: str | None = None,
        label: str = DATA_LABEL,
        settings: Settings | None = None,
    ) -> None:
        self.device = device
        self.partition = partition
        self.label = label
        self.settings = settings or get_settings()
        self.mount_dir: Path | None = None
        self._saved_handlers: dict[int, object] = {}

    def _candidates(self) -> list[str]:
        if self.partition is not None:
            return [self.partition]
        return [p.path for p in list_partitions(self.device) if p.label == self.label]

    def acquire(self) -> Path:
        """Mount the volume on a fresh private directory and return it.

        Raises:
            MountError: Already acquired, or an explicit partition would not
                mount.
            NotManagedError: No partition with the label mounted.
        """
        if self.mount_dir is not None:
            raise MountError(f"{self.mount_dir} is already mounted for {self.device}")

        tmp_parent = str(self.settings.tmp_dir) if self.settings.tmp_dir else None
        self.mount_dir = Path(tempfile.mkdtemp(prefix="znx-", dir=tmp_parent))

        try:
            for candidate in self._candidates():
                try:
                    mount_partition(candidate, self.mount_dir)
                    break
                except CommandError as e:
                    logger.warning("Could not mount %s: %s", candidate, e)

            if not is_mount_point(self.mount_dir):
                if self.partition is not None:
                    raise MountError(f"Unable to mount {self.partition}")
                raise NotManagedError(self.device)
        except BaseException:
            self.release()
            raise

        return self.mount_dir

    def release(self) -> None:
        """Unmount and remove the mount point. Safe to call repeatedly.

        Guarded signals are ignored until the release is done, so a repeated
        interrupt cannot leave the volume mounted.

        Raises:
            MountError: The mount point is still mounted after all retries.
        """
        mount_dir = self.mount_dir
        if mount_dir is None:
            return

        with _signals_ignored():
            if not unmount(
                mount_dir,
                retries=self.settings.unmount_retries,
                interval=self.settings.unmount_retry_interval,
            ):
                raise MountError(f"Unable to unmount {mount_dir}")

            try:
                mount_dir.rmdir()
            except FileNotFoundError:
                pass
            except OSError as e:
                raise MountError(
                    f"Unable to remove mount point {mount_dir}: {e}"
                ) from e

        self.mount_dir = None

    def _install_signal_handlers(self) -> None:
        if threading.current_thread() is not threading.main_thread():
            return
        for signum in _GUARDED_SIGNALS:
            self._saved_handlers[signum] = signal.signal(signum, _exit_on_signal)

    def _restore_signal_handlers(self) -> None:
        for signum, handler in self._saved_handlers.items():
            signal.signal(signum, handler)  # type: ignore[arg-type]
        self._saved_handlers.clear()

    def __enter__(self) -> Path:
        self._install_signal_handlers()
        try:
            return self.acquire()
        except BaseException:
            self._restore_signal_handlers()
            raise

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        try:
            self.release()
        except MountError:
            if exc_type is None:
                raise
            # The command's own error is the one reported.
            logger.exception("Release failed while handling %s", exc_type.__name__)
        finally:
            self._restore_signal_handlers()


__all__ = [
    "MountError",
    "NotManagedError",
    "ScopedMount",
    "mount_partition",
    "unmount",
]
