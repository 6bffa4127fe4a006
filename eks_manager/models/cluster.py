"""Data models for cluster definition and observed state."""

import ipaddress
import re
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from eks_manager.models.addon import AddonSpec
from eks_manager.models.nodegroup import NodeGroupSpec

DEFAULT_LOG_TYPES = ("api", "audit", "authenticator", "controllerManager", "scheduler")


class ClusterState(str, Enum):
    """Lifecycle state of a cluster, always derived from observation."""

    ABSENT = "Absent"
    CREATING = "Creating"
    READY = "Ready"
    DEGRADED = "Degraded"
    DELETING = "Deleting"
    GONE = "Gone"

    @classmethod
    def from_provider_status(cls, status: str | None) -> "ClusterState":
        """Map an EKS cluster status string onto a lifecycle state."""
        if not status:
            return cls.DEGRADED
        mapping = {
            "PENDING": cls.CREATING,
            "CREATING": cls.CREATING,
            "ACTIVE": cls.READY,
            "UPDATING": cls.READY,
            "DELETING": cls.DELETING,
            "FAILED": cls.DEGRADED,
        }
        return mapping.get(status.upper(), cls.DEGRADED)


class ServiceAccountSpec(BaseModel):
    """An IRSA service account bound to a well-known IAM policy."""

    model_config = ConfigDict(frozen=True)

    name: str
    namespace: str = "kube-system"
    policy: str

    def to_eksctl_dict(self) -> dict:
        return {
            "metadata": {"name": self.name, "namespace": self.namespace},
            "wellKnownPolicies": {self.policy: True},
        }


DEFAULT_SERVICE_ACCOUNTS = (
    ServiceAccountSpec(name="aws-load-balancer-controller", policy="awsLoadBalancerController"),
    ServiceAccountSpec(name="cluster-autoscaler", policy="autoScaler"),
)

DEFAULT_MANAGED_ADDONS = (
    AddonSpec(name="vpc-cni"),
    AddonSpec(name="coredns", deployment="coredns"),
    AddonSpec(name="kube-proxy"),
    AddonSpec(name="aws-ebs-csi-driver", policy="ebsCSIController"),
)


class ClusterSpec(BaseModel):
    """Immutable description of the cluster to create."""

    model_config = ConfigDict(frozen=True)

    name: str
    region: str
    version: str = "1.33"
    vpc_cidr: str = "10.0.0.0/16"
    nat_gateway: Literal["HighlyAvailable", "Single", "Disable"] = "HighlyAvailable"
    node_groups: tuple[NodeGroupSpec, ...] = (NodeGroupSpec(),)
    addons: tuple[AddonSpec, ...] = DEFAULT_MANAGED_ADDONS
    service_accounts: tuple[ServiceAccountSpec, ...] = DEFAULT_SERVICE_ACCOUNTS
    with_oidc: bool = True
    log_types: tuple[str, ...] = DEFAULT_LOG_TYPES
    log_retention_days: int = Field(default=7, gt=0)
    tags: dict[str, str] = Field(default_factory=dict)
    ssh_key_name: str | None = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Validate cluster name follows EKS naming rules."""
        if not v:
            raise ValueError("cluster name cannot be empty")
        if len(v) > 100:
            raise ValueError("cluster name cannot exceed 100 characters")
        if not re.match(r"^[a-zA-Z][-a-zA-Z0-9]*$", v):
            raise ValueError(
                f"cluster name '{v}' must start with a letter and contain only "
                "alphanumeric characters and hyphens"
            )
        return v

    @field_validator("region")
    @classmethod
    def validate_region(cls, v: str) -> str:
        if not v:
            raise ValueError("region cannot be empty")
        if not re.match(r"^[a-z]{2}(-[a-z]+)+-\d+$", v):
            raise ValueError(f"region '{v}' is not a valid AWS region (e.g., us-east-1)")
        return v

    @field_validator("version")
    @classmethod
    def validate_version(cls, v: str) -> str:
        if not re.match(r"^\d+\.\d+$", v):
            raise ValueError(f"version '{v}' must look like '1.33'")
        return v

    @field_validator("vpc_cidr")
    @classmethod
    def validate_vpc_cidr(cls, v: str) -> str:
        try:
            ipaddress.IPv4Network(v)
        except ValueError:
            raise ValueError(f"vpc_cidr '{v}' must be a valid CIDR (e.g., 10.0.0.0/16)")
        return v

    @field_validator("node_groups")
    @classmethod
    def validate_node_groups(cls, v: tuple[NodeGroupSpec, ...]) -> tuple[NodeGroupSpec, ...]:
        if not v:
            raise ValueError("at least one node group is required")
        names = [ng.name for ng in v]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ValueError(f"duplicate node group names: {', '.join(duplicates)}")
        return v

    @property
    def desired_nodes(self) -> int:
        return sum(ng.desired_capacity for ng in self.node_groups)


class ClusterHandle(BaseModel):
    """Reference to a cluster as observed by the orchestrator."""

    name: str
    region: str
    state: ClusterState = ClusterState.ABSENT
    history: list[ClusterState] = Field(default_factory=list)
    node_groups: list[dict] = Field(default_factory=list)
    addons: list[str] = Field(default_factory=list)
    kube_context: str | None = None

    def observe(self, state: ClusterState) -> bool:
        """Record an observed state. Returns True if it is a transition."""
        changed = not self.history or self.history[-1] != state
        if changed:
            self.history.append(state)
        self.state = state
        return changed


class OrphanResource(BaseModel):
    """A cloud resource that may have outlived its cluster."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["load-balancer", "security-group", "nat-gateway"]
    identifier: str
    name: str = ""
    matched_on: str
    state: str | None = None
