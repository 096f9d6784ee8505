"""Controller that keeps PowerVS instance storage pool affinity disabled."""

from __future__ import annotations

import logging
from typing import Any, Callable

from .cloud import (
    POWERVS_INSTANCE_STATE_ACTIVE,
    POWERVS_INSTANCE_STATE_SHUTOFF,
    STORAGE_POOL_AFFINITY,
    Cloud,
    NodeUpdateScopeParams,
    new_node_update_scope,
)
from .metadata import MetadataError, tokenize_provider_id

logger = logging.getLogger(__name__)


class NodeNotFoundError(LookupError):
    """Raised by a node client when the requested node does not exist."""


class ReconcileError(RuntimeError):
    """Reconciliation failed and should be retried."""


class NodeUpdateReconciler:
    """Reconciles Kubernetes nodes against their PowerVS instances.

    ``client.get_node(name)`` returns the node as a Kubernetes object mapping
    and raises NodeNotFoundError when it is absent. ``cloud_factory`` is
    called as ``cloud_factory(service_instance_id, zone, debug)``.
    """

    def __init__(self, client: Any, cloud_factory: Callable[[str, str, bool], Cloud]) -> None:
        self.client = client
        self.cloud_factory = cloud_factory

    def reconcile(self, name: str, namespace: str = "") -> None:
        """Bring one node's instance to the desired storage pool affinity."""
        request = f"{namespace}/{name}" if namespace else name
        try:
            node = self.client.get_node(name)
        except NodeNotFoundError:
            logger.info("%s: Node not found - do nothing", request)
            return
        except Exception as err:
            raise ReconcileError(f"error getting node: {err}") from err

        provider_id = (node.get("spec") or {}).get("providerID") or ""
        if not provider_id:
            return

        logger.info("PROVIDER-ID: %s", provider_id)
        try:
            metadata = tokenize_provider_id(provider_id)
        except MetadataError as err:
            raise ReconcileError(
                f"failed to tokenize the providerID and err: {err}"
            ) from err

        try:
            scope = new_node_update_scope(
                NodeUpdateScopeParams(
                    service_instance_id=metadata.cloud_instance_id,
                    instance_id=metadata.pvm_instance_id,
                    zone=metadata.zone,
                ),
                self.cloud_factory,
            )
        except Exception as err:
            raise ReconcileError(f"failed to create nodeUpdateScope: {err}") from err

        try:
            instance = scope.cloud.get_pvm_instance_details(scope.instance_id)
        except Exception as err:
            logger.info("Unable to fetch Instance Details %s", err)
            return

        if instance is None:
            return
        affinity = instance.storage_pool_affinity
        logger.info("StoragePoolAffinity: %s", affinity)
        if not affinity:
            return

        if instance.status not in (POWERVS_INSTANCE_STATE_SHUTOFF, POWERVS_INSTANCE_STATE_ACTIVE):
            logger.info(
                "PowerVS instance - %s state not ACTIVE/SHUTOFF yet", instance.pvm_instance_id
            )
            return

        if affinity == STORAGE_POOL_AFFINITY:
            logger.info(
                "PowerVS instance - %s Storage pool affinity already %s",
                instance.pvm_instance_id, STORAGE_POOL_AFFINITY,
            )
            return

        try:
            scope.cloud.update_storage_pool_affinity(scope.instance_id)
        except Exception as err:
            logger.info("unable to update instance StoragePoolAffinity %s", err)
            meta = node.get("metadata") or {}
            node_namespace = meta.get("namespace", namespace)
            node_name = meta.get("name", name)
            raise ReconcileError(
                f"failed to reconcile VSI for IBMPowerVSMachine "
                f"{node_namespace}/{node_name}: {err}"
            ) from err