"""Instance metadata derived from a Kubernetes node's provider ID."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Any, Callable, Mapping

logger = logging.getLogger(__name__)

PROVIDER_ID_VALID_LENGTH = 6
NODE_NAME_ENV = "CSI_NODE_NAME"

_ERR_FORMAT = (
    "invalid ProviderID format - {provider_id}, expected format - "
    "ibmpowervs://<region>/<zone>/<service_instance_id>/<powervs_machine_id>, err: {reason}"
)


class MetadataError(ValueError):
    """Instance metadata could not be determined."""


@dataclass(frozen=True)
class Metadata:
    """Information about the instance the driver runs on."""

    region: str
    zone: str
    cloud_instance_id: str
    pvm_instance_id: str


def tokenize_provider_id(provider_id: str) -> Metadata:
    """Split ``ibmpowervs://<region>/<zone>/<service_instance_id>/<machine_id>``."""
    data = provider_id.split("/")

    def fail(reason: str) -> MetadataError:
        return MetadataError(_ERR_FORMAT.format(provider_id=provider_id, reason=reason))

    if len(data) != PROVIDER_ID_VALID_LENGTH:
        raise fail("invalid length")
    region, zone, cloud_instance_id, pvm_instance_id = data[2:]
    if not region:
        raise fail("region can't be empty")
    if not zone:
        raise fail("zone can't be empty")
    if not cloud_instance_id:
        raise fail("service_instance_id can't be empty")
    if not pvm_instance_id:
        raise fail("powervs_machine_id can't be empty")
    return Metadata(
        region=region,
        zone=zone,
        cloud_instance_id=cloud_instance_id,
        pvm_instance_id=pvm_instance_id,
    )


def _provider_id_of(node: Mapping[str, Any]) -> str:
    spec = node.get("spec") or {}
    return spec.get("providerID") or ""


def get_instance_info_from_provider_id(clientset: Any, node_name: str) -> Metadata:
    """Fetch ``node_name`` through ``clientset.get_node`` and parse its provider ID.

    ``clientset.get_node(name)`` returns the node as a Kubernetes object mapping.
    """
    try:
        node = clientset.get_node(node_name)
    except Exception as err:
        raise MetadataError(f"error getting Node {node_name}: {err}") from err

    provider_id = _provider_id_of(node)
    if not provider_id:
        raise MetadataError(f"ProviderID is empty for the node: {node_name}")
    logger.info("Node Name: %s, Provider ID: %s", node_name, provider_id)
    return tokenize_provider_id(provider_id)


def kubernetes_api_instance_info(clientset: Any) -> Metadata:
    """Resolve metadata for the node named by the CSI_NODE_NAME variable."""
    node_name = os.environ.get(NODE_NAME_ENV, "")
    if not node_name:
        raise MetadataError(f"{NODE_NAME_ENV} env var not set")
    return get_instance_info_from_provider_id(clientset, node_name)


def new_metadata_service(
    k8s_api_client: Callable[[str], Any], kubeconfig: str
) -> Metadata:
    """Build a Kubernetes client with ``k8s_api_client`` and read instance metadata."""
    logger.info("retrieving instance data from kubernetes api")
    try:
        clientset = k8s_api_client(kubeconfig)
    except Exception as err:
        logger.warning("error creating kubernetes api client: %s", err)
        raise MetadataError(
            "error getting instance data from ec2 metadata or kubernetes api"
        ) from err
    logger.info("kubernetes api is available")
    return kubernetes_api_instance_info(clientset)