"""Data models for cluster add-ons."""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

AddonSource = Literal["eks", "helm", "manifest"]


class AddonSpec(BaseModel):
    """An independently versioned cluster component.

    ``source`` selects how the add-on is delivered: as a provider-managed EKS
    add-on, a Helm chart, or a manifest URL applied with kubectl.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    version: str = "latest"
    policy: str | None = None  # IAM capability tag, e.g. "ebsCSIController"
    source: AddonSource = "eks"
    namespace: str = "kube-system"
    deployment: str | None = None
    chart: str | None = None
    repo_name: str | None = None
    repo_url: str | None = None
    values: dict[str, str] = Field(default_factory=dict)
    manifest_url: str | None = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        if not v:
            raise ValueError("add-on name cannot be empty")
        return v

    @field_validator("version")
    @classmethod
    def validate_version(cls, v: str) -> str:
        if not v:
            raise ValueError("add-on version cannot be empty (use 'latest')")
        return v

    @property
    def pinned(self) -> bool:
        return self.version != "latest"

    def problems(self) -> list[str]:
        """List reasons this add-on cannot be installed as described."""
        problems = []
        if self.source == "helm":
            if not self.chart:
                problems.append("helm add-on requires 'chart'")
            if self.repo_name and not self.repo_url:
                problems.append("helm add-on with 'repo_name' requires 'repo_url'")
        if self.source == "manifest" and not self.manifest_url:
            problems.append("manifest add-on requires 'manifest_url'")
        return problems

    def to_eksctl_dict(self) -> dict:
        """Convert to an eksctl ``addons`` entry."""
        result = {"name": self.name, "version": self.version}
        if self.policy:
            result["wellKnownPolicies"] = {self.policy: True}
        return result
