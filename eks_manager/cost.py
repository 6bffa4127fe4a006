"""Rough monthly cost estimate for a cluster spec (us-east-1 on-demand prices)."""

from dataclasses import dataclass

from eks_manager.models.cluster import ClusterSpec

HOURS_PER_MONTH = 730
CONTROL_PLANE_HOURLY = 0.10
GENERIC_NODE_HOURLY = 0.05

NODE_HOURLY_RATES = {
    "t3.small": 0.0208,
    "t3.medium": 0.0416,
    "t3.large": 0.0832,
    "m5.large": 0.096,
}

NOT_INCLUDED = (
    "Data transfer",
    "Additional EBS storage",
    "Load balancers",
    "NAT gateways and other AWS services",
)


@dataclass
class CostEstimate:
    control_plane: float
    nodes: dict[str, float]

    @property
    def total(self) -> float:
        return self.control_plane + sum(self.nodes.values())


def estimate_monthly_cost(spec: ClusterSpec) -> CostEstimate:
    """Estimate monthly cost from desired node counts.

    Instance types without a known rate use a generic hourly estimate.
    """
    nodes = {}
    for ng in spec.node_groups:
        hourly = NODE_HOURLY_RATES.get(ng.instance_type, GENERIC_NODE_HOURLY)
        nodes[ng.name] = hourly * ng.desired_capacity * HOURS_PER_MONTH
    return CostEstimate(control_plane=CONTROL_PLANE_HOURLY * HOURS_PER_MONTH, nodes=nodes)
