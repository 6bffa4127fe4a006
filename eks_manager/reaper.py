"""Discovery of cloud resources left behind by a deleted cluster.

Matching is a heuristic: a resource belongs to the cluster if its name
contains the cluster name or it carries one of the ownership tags eksctl and
the Kubernetes cloud provider apply. Nothing here deletes anything.
"""

from eks_manager.cloud import CloudClient
from eks_manager.logging_config import get_logger
from eks_manager.models.cluster import OrphanResource

logger = get_logger(__name__)

OWNERSHIP_TAG_KEYS = ("alpha.eksctl.io/cluster-name", "eks:cluster-name")


def _tags(resource: dict) -> dict[str, str]:
    return {t["Key"]: t.get("Value", "") for t in resource.get("Tags", [])}


def ownership_tag(tags: dict[str, str], cluster: str) -> str | None:
    """Return the tag key that ties a resource to the cluster, if any."""
    for key in OWNERSHIP_TAG_KEYS:
        if tags.get(key) == cluster:
            return key
    if f"kubernetes.io/cluster/{cluster}" in tags:
        return f"kubernetes.io/cluster/{cluster}"
    return None


class ResourceReaper:
    """Finds load balancers, security groups and NAT gateways tied to a cluster."""

    def __init__(self, cloud: CloudClient | None = None):
        self._cloud = cloud

    def cloud_for(self, region: str) -> CloudClient:
        if self._cloud is None or self._cloud.region != region:
            self._cloud = CloudClient(region)
        return self._cloud

    def find_orphans(self, name: str, region: str) -> list[OrphanResource]:
        """List resources that appear to belong to the named cluster."""
        cloud = self.cloud_for(region)
        logger.info(f"Scanning {region} for resources left by cluster {name}")

        orphans = []
        orphans.extend(self._load_balancers(cloud, name))
        orphans.extend(self._security_groups(cloud, name))
        orphans.extend(self._nat_gateways(cloud, name))

        if orphans:
            logger.warning(f"Found {len(orphans)} possible orphaned resources for {name}")
        else:
            logger.info(f"No orphaned resources found for {name}")
        return orphans

    def _load_balancers(self, cloud: CloudClient, name: str) -> list[OrphanResource]:
        return [
            OrphanResource(
                kind="load-balancer",
                identifier=lb["name"],
                name=lb["name"],
                matched_on="name",
                state=lb.get("state"),
            )
            for lb in cloud.describe_load_balancers()
            if name in lb["name"]
        ]

    def _security_groups(self, cloud: CloudClient, name: str) -> list[OrphanResource]:
        found: dict[str, OrphanResource] = {}
        for group in cloud.describe_security_groups(
            [{"Name": "group-name", "Values": [f"*{name}*"]}]
        ):
            found[group["GroupId"]] = OrphanResource(
                kind="security-group",
                identifier=group["GroupId"],
                name=group.get("GroupName", ""),
                matched_on="name",
            )
        for group in cloud.describe_security_groups(
            [{"Name": "tag-key", "Values": [*OWNERSHIP_TAG_KEYS, f"kubernetes.io/cluster/{name}"]}]
        ):
            key = ownership_tag(_tags(group), name)
            if key and group["GroupId"] not in found:
                found[group["GroupId"]] = OrphanResource(
                    kind="security-group",
                    identifier=group["GroupId"],
                    name=group.get("GroupName", ""),
                    matched_on=f"tag:{key}",
                )
        return list(found.values())

    def _nat_gateways(self, cloud: CloudClient, name: str) -> list[OrphanResource]:
        orphans = []
        for gateway in cloud.describe_nat_gateways(
            [{"Name": "tag:Name", "Values": [f"*{name}*"]}]
        ):
            state = gateway.get("State")
            if state == "deleted":
                continue
            orphans.append(
                OrphanResource(
                    kind="nat-gateway",
                    identifier=gateway["NatGatewayId"],
                    name=_tags(gateway).get("Name", ""),
                    matched_on="tag:Name",
                    state=state,
                )
            )
        return orphans
