"""Data models for cluster configuration and state."""

from eks_manager.models.addon import AddonSpec
from eks_manager.models.cluster import (
    ClusterHandle,
    ClusterSpec,
    ClusterState,
    OrphanResource,
    ServiceAccountSpec,
)
from eks_manager.models.nodegroup import NodeGroupSpec

__all__ = [
    "AddonSpec",
    "ClusterHandle",
    "ClusterSpec",
    "ClusterState",
    "NodeGroupSpec",
    "OrphanResource",
    "ServiceAccountSpec",
]
