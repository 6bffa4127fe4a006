"""Data models for managed node group configuration."""

import re

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

DEFAULT_NODE_POLICY_ARNS = (
    "arn:aws:iam::aws:policy/AmazonEKSWorkerNodePolicy",
    "arn:aws:iam::aws:policy/AmazonEKS_CNI_Policy",
    "arn:aws:iam::aws:policy/AmazonEC2ContainerRegistryReadOnly",
    "arn:aws:iam::aws:policy/CloudWatchAgentServerPolicy",
)

DEFAULT_NODE_LABELS = {
    "Environment": "production",
    "ManagedBy": "eksctl",
    "Team": "devops",
}


class NodeGroupSpec(BaseModel):
    """A provider-managed pool of worker machines."""

    model_config = ConfigDict(frozen=True)

    name: str = "workers"
    instance_type: str = "t3a.medium"
    min_size: int = Field(default=1, ge=0)
    max_size: int = Field(default=3, ge=0)
    desired_capacity: int = Field(default=2, ge=0)
    volume_size: int = Field(default=20, gt=0)
    volume_type: str = "gp3"
    volume_encrypted: bool = True
    private_networking: bool = True
    ami_family: str = "AmazonLinux2023"
    labels: dict[str, str] = Field(default_factory=lambda: dict(DEFAULT_NODE_LABELS))
    attach_policy_arns: tuple[str, ...] = DEFAULT_NODE_POLICY_ARNS

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Validate node group name is usable as an eksctl resource name."""
        if not v:
            raise ValueError("node group name cannot be empty")
        if not re.match(r"^[a-zA-Z][-a-zA-Z0-9]*$", v):
            raise ValueError(
                f"node group name '{v}' must start with a letter and contain only "
                "alphanumeric characters and hyphens"
            )
        return v

    @field_validator("instance_type")
    @classmethod
    def validate_instance_type(cls, v: str) -> str:
        """Validate instance type looks like family.size (e.g., t3a.medium)."""
        if not re.match(r"^[a-z0-9-]+\.[a-z0-9]+$", v):
            raise ValueError(f"instance_type '{v}' must look like 't3a.medium'")
        return v

    @field_validator("volume_type")
    @classmethod
    def validate_volume_type(cls, v: str) -> str:
        allowed = ["gp2", "gp3", "io1", "io2", "sc1", "st1"]
        if v not in allowed:
            raise ValueError(f"volume_type must be one of {allowed}, got '{v}'")
        return v

    @model_validator(mode="after")
    def validate_sizes(self) -> "NodeGroupSpec":
        """Validate min <= desired <= max."""
        problems = []
        if self.min_size > self.max_size:
            problems.append(f"min_size ({self.min_size}) > max_size ({self.max_size})")
        if not self.min_size <= self.desired_capacity <= self.max_size:
            problems.append(
                f"desired_capacity ({self.desired_capacity}) outside "
                f"[{self.min_size}, {self.max_size}]"
            )
        if problems:
            raise ValueError("; ".join(problems))
        return self

    def to_eksctl_dict(self) -> dict:
        """Convert to an eksctl managedNodeGroups entry."""
        return {
            "name": self.name,
            "instanceType": self.instance_type,
            "minSize": self.min_size,
            "maxSize": self.max_size,
            "desiredCapacity": self.desired_capacity,
            "volumeSize": self.volume_size,
            "volumeType": self.volume_type,
            "volumeEncrypted": self.volume_encrypted,
            "labels": dict(self.labels),
            "privateNetworking": self.private_networking,
            "amiFamily": self.ami_family,
            "iam": {"attachPolicyARNs": list(self.attach_policy_arns)},
        }
