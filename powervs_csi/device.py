"""Linux multipath devices backing PowerVS volumes."""

from __future__ import annotations

import abc
import logging
import os
import subprocess
import threading
import time
from dataclasses import dataclass

from . import multipath
from .multipath import MultipathError

logger = logging.getLogger(__name__)

SCSI_HOST_PATH = "/sys/class/scsi_host"
SCAN_LOCK = threading.Lock()
SCAN_WAIT_LIMIT = 60.0
SCAN_POLL_INTERVAL = 5.0
CLEANUP_MAX_TRIES = 10
CLEANUP_RETRY_INTERVAL = 5.0
DISCOVERY_ATTEMPTS = 11


class DeviceError(RuntimeError):
    """A Linux device could not be found, created or inspected."""


class LinuxDevice(abc.ABC):
    """A block device on the host identified by its WWN."""

    mapper: str

    @abc.abstractmethod
    def delete_device(self) -> None:
        """Remove the device from the host."""

    @abc.abstractmethod
    def create_device(self) -> None:
        """Discover the device on the host, rescanning as needed."""

    @abc.abstractmethod
    def populate(self, need_active_path: bool) -> None:
        """Look the device up among the host's multipath maps."""


@dataclass
class Device(LinuxDevice):
    """A multipath device identified by WWN."""

    wwn: str
    mapper: str = ""
    slaves: int = 0

    def populate(self, need_active_path: bool) -> None:
        """Find the multipath map for this WWN; stale maps without paths are removed."""
        try:
            proc = subprocess.run(
                [multipath.DMSETUP, "ls", "--target", "multipath"],
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                check=False,
            )
        except OSError as err:
            raise DeviceError(f"failed to retrieve multipath devices: {err}") from err
        out = proc.stdout or ""
        if proc.returncode != 0:
            raise DeviceError(f"failed to retrieve multipath devices: {out}")

        for match in multipath.MAJOR_MINOR_REGEXP.finditer(out):
            result = multipath.find_string_submatch_map(
                match.group(0), multipath.MAJOR_MINOR_REGEXP
            )
            dm_name = "dm-" + result["Minor"]
            try:
                uuid = multipath.get_uuid(dm_name)
            except OSError as err:
                logger.warning("%s", err)
                continue
            map_name = multipath.get_mpath_name(dm_name)

            # Drop the scsi-id prefix of the WWID to get the WWN.
            candidate_wwn = uuid.removeprefix("mpath-")[1:]

            try:
                slaves = multipath.get_paths_count(map_name)
            except (MultipathError, ValueError) as err:
                raise DeviceError(f"unable to count slaves for device {self.wwn}: {err}") from err

            if slaves == 0:
                logger.warning("cleaning mapper %s as no active disks present", map_name)
                try:
                    multipath.multipath_remove_dm_device(map_name)
                except MultipathError:
                    pass
            elif self.wwn.casefold() == candidate_wwn.casefold():
                self.mapper = "/dev/mapper/" + map_name
                self.slaves = slaves
                break

    def delete_device(self) -> None:
        """Remove the multipath map, retrying, and forget it."""
        try:
            retry_cleanup_device(self)
        except MultipathError as err:
            logger.warning("error while deleting multipath device %s: %s", self.mapper, err)
            raise
        self.mapper = ""
        self.slaves = 0

    def create_device(self) -> None:
        """Rescan SCSI hosts until the device shows up with at least one path."""
        try:
            self._create_linux_device()
        except Exception:
            logger.error("unable to create device for wwn %s", self.wwn)
            raise
        if not self.mapper:
            raise DeviceError(f"unable to find the device for wwn {self.wwn}")

    def _create_linux_device(self) -> None:
        for _ in range(DISCOVERY_ATTEMPTS):
            scsi_host_rescan_with_lock()
            # Give the device time to appear after the rescan.
            time.sleep(1)
            self.populate(True)
            if self.slaves > 0:
                return
            time.sleep(5)
        raise DeviceError(f"fc device not found for wwn {self.wwn}")


def retry_cleanup_device(device: Device) -> None:
    """Try to remove the device's multipath map, up to CLEANUP_MAX_TRIES times."""
    last_error: MultipathError | None = None
    for _ in range(CLEANUP_MAX_TRIES):
        try:
            multipath.multipath_remove_dm_device(device.mapper)
            return
        except MultipathError as err:
            last_error = err
        time.sleep(CLEANUP_RETRY_INTERVAL)
    if last_error is not None:
        raise last_error


def scsi_host_rescan() -> None:
    """Ask every SCSI host to rescan its buses."""
    for name in sorted(os.listdir(SCSI_HOST_PATH)):
        scan_file = os.path.join(SCSI_HOST_PATH, name, "scan")
        try:
            with open(scan_file, "w", encoding="ascii") as handle:
                handle.write("- - -")
        except OSError as err:
            raise DeviceError(f"scsi host rescan failed: {err}") from err


def scsi_host_rescan_with_lock() -> bool:
    """Rescan SCSI hosts unless a concurrent rescan is already running.

    A caller that finds a scan in progress waits for it to finish, for at
    most a minute, and does not scan again. Returns True if this call scanned.
    """
    start = time.monotonic()
    scan = True
    while True:
        if SCAN_LOCK.acquire(blocking=False):
            try:
                if scan:
                    multipath.cleanup_orphan_paths()
                    scsi_host_rescan()
                    return True
                return False
            finally:
                SCAN_LOCK.release()
        if time.monotonic() - start > SCAN_WAIT_LIMIT:
            return False
        scan = False
        time.sleep(SCAN_POLL_INTERVAL)


def get_device_wwn(path_name: str) -> str:
    """Return the WWN of a device such as ``/dev/dm-3`` or ``/dev/mapper/mpathb``."""
    if path_name.startswith("/dev/mapper/"):
        path_name = os.path.realpath(path_name, strict=True)
    path_name = path_name.removeprefix("/dev/")
    uuid = multipath.get_uuid(path_name)
    return uuid.removeprefix("mpath-")[1:]