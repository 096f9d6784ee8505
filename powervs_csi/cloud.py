"""Cloud-side data types, the Cloud interface and node update scopes."""

from __future__ import annotations

import abc
import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)

GIB = 1 << 30

# PowerVS volume types
VOLUME_TYPE_TIER1 = "tier1"
VOLUME_TYPE_TIER3 = "tier3"
VALID_VOLUME_TYPES = (VOLUME_TYPE_TIER1, VOLUME_TYPE_TIER3)

# Default size of a new volume, in bytes.
DEFAULT_VOLUME_SIZE = 10 * GIB
# Storage tier used for new volumes when none is requested.
DEFAULT_VOLUME_TYPE = VOLUME_TYPE_TIER1

POWERVS_INSTANCE_STATE_SHUTOFF = "SHUTOFF"
POWERVS_INSTANCE_STATE_ACTIVE = "ACTIVE"
# Desired storage pool affinity of a PowerVS instance.
STORAGE_POOL_AFFINITY = False


class NotFoundError(LookupError):
    """A resource was not found."""

    def __init__(self, message: str = "resource was not found") -> None:
        super().__init__(message)


class AlreadyExistsError(Exception):
    """A resource already exists."""

    def __init__(self, message: str = "resource already exists") -> None:
        super().__init__(message)


@dataclass
class Disk:
    """A PowerVS volume."""

    volume_id: str = ""
    disk_type: str = ""
    wwn: str = ""
    name: str = ""
    shareable: bool = False
    capacity_gib: int = 0


@dataclass
class DiskOptions:
    """Parameters for creating a PowerVS volume."""

    shareable: bool = False
    capacity_bytes: int = 0
    volume_type: str = ""


@dataclass
class PVMInstance:
    """A PowerVS virtual machine instance."""

    id: str = ""
    disk_type: str = ""
    name: str = ""


class Cloud(abc.ABC):
    """Operations the driver performs against the PowerVS cloud.

    Methods raise on failure; NotFoundError signals a missing resource.
    """

    @abc.abstractmethod
    def create_disk(self, volume_name: str, disk_options: DiskOptions) -> Disk:
        """Create a volume and return it once available."""

    @abc.abstractmethod
    def delete_disk(self, volume_id: str) -> bool:
        """Delete a volume; return True on success."""

    @abc.abstractmethod
    def attach_disk(self, volume_id: str, node_id: str) -> None:
        """Attach a volume to an instance and wait until it is in use."""

    @abc.abstractmethod
    def detach_disk(self, volume_id: str, node_id: str) -> None:
        """Detach a volume from an instance and wait until it is available."""

    @abc.abstractmethod
    def resize_disk(self, volume_id: str, req_size: int) -> int:
        """Resize a volume to ``req_size`` bytes; return the new size in GiB."""

    @abc.abstractmethod
    def wait_for_volume_state(self, volume_id: str, state: str) -> None:
        """Block until the volume reaches ``state``."""

    @abc.abstractmethod
    def get_disk_by_name(self, name: str) -> Disk:
        """Look a volume up by name."""

    @abc.abstractmethod
    def get_disk_by_id(self, volume_id: str) -> Disk:
        """Look a volume up by ID."""

    @abc.abstractmethod
    def get_pvm_instance_by_name(self, instance_name: str) -> PVMInstance:
        """Look an instance up by server name."""

    @abc.abstractmethod
    def get_pvm_instance_by_id(self, instance_id: str) -> PVMInstance:
        """Look an instance up by ID."""

    @abc.abstractmethod
    def get_pvm_instance_details(self, instance_id: str) -> Any:
        """Return full instance details.

        The result exposes ``pvm_instance_id``, ``status`` and
        ``storage_pool_affinity``.
        """

    @abc.abstractmethod
    def update_storage_pool_affinity(self, instance_id: str) -> None:
        """Set the instance's storage pool affinity to STORAGE_POOL_AFFINITY."""

    @abc.abstractmethod
    def is_attached(self, volume_id: str, node_id: str) -> bool:
        """Return True if the volume is attached to the instance."""


CloudFactory = Callable[[str, str, bool], Cloud]


@dataclass
class NodeUpdateScopeParams:
    """Inputs for building a NodeUpdateScope."""

    service_instance_id: str = ""
    instance_id: str = ""
    zone: str = ""


@dataclass
class NodeUpdateScope:
    """A cloud connection bound to one PowerVS instance."""

    cloud: Optional[Cloud]
    service_instance_id: str
    instance_id: str
    zone: str


def new_node_update_scope(
    params: NodeUpdateScopeParams, cloud_factory: CloudFactory
) -> NodeUpdateScope:
    """Validate ``params`` and open a cloud connection for the instance.

    ``cloud_factory`` is called as ``cloud_factory(service_instance_id, zone, debug)``.
    Raises ValueError when a parameter is missing; factory errors propagate.
    """
    if not params.service_instance_id:
        raise ValueError("ServiceInstanceId is required when creating a NodeUpdateScope")
    if not params.instance_id:
        raise ValueError("InstanceId is required when creating a NodeUpdateScope")
    if not params.zone:
        raise ValueError("zone is required when creating a NodeUpdateScope")

    try:
        cloud = cloud_factory(params.service_instance_id, params.zone, False)
    except Exception as err:
        logger.error("Failed to get powervs cloud: %s", err)
        raise

    return NodeUpdateScope(
        cloud=cloud,
        service_instance_id=params.service_instance_id,
        instance_id=params.instance_id,
        zone=params.zone,
    )