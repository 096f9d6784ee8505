"""Device-mapper multipath helpers and the sysfs files they rely on."""

from __future__ import annotations

import logging
import os
import re
import subprocess

logger = logging.getLogger(__name__)

MULTIPATHD = "multipathd"
DMSETUP = "dmsetup"
MAJOR_MINOR_PATTERN = r"(.*)\((?P<Major>\d+),\s+(?P<Minor>\d+)\)"
ORPHAN_PATHS_PATTERN = (
    r".*\s+(?P<host>\d+):(?P<channel>\d+):(?P<target>\d+):(?P<lun>\d+).*orphan"
)
DEVICE_DOES_NOT_EXIST = "No such device or address"
SCSI_DEVICE_DELETE_PATH = "/sys/class/scsi_device/{host}:{channel}:{target}:{lun}/device/delete"
SYS_BLOCK_PATH = "/sys/block"

SHOW_PATHS_FORMAT = ("show", "paths", "raw", "format", "%w %d %t %i %o %T %z %s %m")
MAJOR_MINOR_REGEXP = re.compile(MAJOR_MINOR_PATTERN)
ORPHAN_PATH_REGEXP = re.compile(ORPHAN_PATHS_PATTERN)

_DEVICE_NUMBER = re.compile(r"[0-9]+:[0-9]+")


class MultipathError(RuntimeError):
    """A multipath or device-mapper operation failed."""


def _run(*args: str) -> tuple[int, str]:
    """Run a command and return its exit code and combined output."""
    try:
        proc = subprocess.run(
            list(args),
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            check=False,
        )
    except OSError as err:
        raise MultipathError(f"failed to run {args[0]}: {err}") from err
    return proc.returncode, proc.stdout or ""


def find_string_submatch_map(s: str, pattern: re.Pattern[str]) -> dict[str, str]:
    """Return the named groups of the first match of ``pattern`` in ``s``."""
    match = pattern.search(s)
    if match is None:
        return {}
    return {name: value or "" for name, value in match.groupdict().items()}


def read_first_line(file_path: str) -> str:
    """Return the first line of a file without its line ending."""
    with open(file_path, "rb") as handle:
        raw = handle.readline()
    line = raw.decode("utf-8", errors="replace").removesuffix("\n")
    return line.removesuffix("\r")


def get_mpath_name(pathname: str) -> str:
    """Return the device-mapper name of a block device such as ``dm-3``."""
    return read_first_line(os.path.join(SYS_BLOCK_PATH, pathname, "dm", "name"))


def get_uuid(pathname: str) -> str:
    """Return the device-mapper UUID of a block device such as ``dm-3``."""
    return read_first_line(os.path.join(SYS_BLOCK_PATH, pathname, "dm", "uuid"))


def delete_sd_device(delete_path: str) -> None:
    """Delete a SCSI device by writing ``1`` to its delete file."""
    try:
        with open(delete_path, "w", encoding="ascii") as handle:
            handle.write("1")
    except OSError as err:
        raise MultipathError(f"error writing to file {delete_path}: {err}") from err


def _count_active_paths(status: str) -> int:
    """Count device paths marked active in ``dmsetup status`` output."""
    active = 0
    after_device = False
    for record in status.split(" "):
        if _DEVICE_NUMBER.search(record):
            after_device = True
        if "A" in record:
            if after_device:
                active += 1
            after_device = False
    return active


def get_paths_count(mapper: str) -> int:
    """Return the number of active paths of a multipath map."""
    code, out = _run(DMSETUP, "status", "--target", "multipath", mapper)
    trimmed = out.removesuffix("\n")
    if code != 0 or (trimmed and is_dmsetup_status_error(trimmed)):
        raise MultipathError(f"error while running dmsetup status command: {trimmed}")
    return _count_active_paths(out)


def is_dmsetup_status_error(msg: str) -> bool:
    """True if the message is empty or reports a failed command."""
    return msg == "" or "Command failed" in msg


def is_multipath_timeout_error(msg: str) -> bool:
    """True if the message reports a multipathd timeout or similar."""
    return "timeout" in msg or "receiving packet" in msg


def is_dmsetup_remove_error(msg: str) -> bool:
    """True unless the remove output is empty, ``ok`` or a missing device."""
    return msg != "" and "ok" not in msg and DEVICE_DOES_NOT_EXIST not in msg


def multipath_disable_queuing(mapper: str) -> None:
    """Disable I/O queueing on a multipath map."""
    code, out = _run(DMSETUP, "message", mapper, "0", "fail_if_no_path")
    if code != 0:
        raise MultipathError(f"dmsetup message failed for {mapper}: {out}")
    if DEVICE_DOES_NOT_EXIST in out:
        raise MultipathError(f"cannot disable queuing: {out}")


def multipath_remove_dm_device(mapper: str) -> None:
    """Remove a multipath map with dmsetup; the root map ``mpatha`` is left alone."""
    if mapper.endswith("mpatha"):
        logger.warning("skipping remove mpatha which is root")
        return

    try:
        multipath_disable_queuing(mapper)
    except MultipathError as err:
        logger.warning("failure while disabling queue for %s: %s", mapper, err)

    code, out = _run(DMSETUP, "remove", "--force", mapper)
    if code != 0:
        raise MultipathError(
            f"failed to remove multipath map for {mapper}, error: exit status {code}"
        )
    if is_dmsetup_remove_error(out):
        raise MultipathError(f"failed to remove device map for {mapper}, error: {out}")


def cleanup_orphan_paths() -> list[str]:
    """Delete SCSI devices that multipathd reports as orphans (best effort).

    Returns the delete paths that were written successfully.
    """
    try:
        code, out = _run(MULTIPATHD, *SHOW_PATHS_FORMAT)
    except MultipathError as err:
        logger.warning("failed to run multipathd %s, err: %s", SHOW_PATHS_FORMAT, err)
        return []
    if code != 0:
        logger.warning("failed to run multipathd %s, err: exit status %d", SHOW_PATHS_FORMAT, code)
        return []
    if is_multipath_timeout_error(out):
        logger.warning("failed to get multipathd %s, out %s", SHOW_PATHS_FORMAT, out)
        return []

    deleted = []
    for match in ORPHAN_PATH_REGEXP.finditer(out):
        result = find_string_submatch_map(match.group(0), ORPHAN_PATH_REGEXP)
        delete_path = SCSI_DEVICE_DELETE_PATH.format(**result)
        try:
            delete_sd_device(delete_path)
        except MultipathError as err:
            logger.warning("error while deleting device: %s", err)
            continue
        deleted.append(delete_path)
    return deleted