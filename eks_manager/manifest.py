"""Rendering of the eksctl ClusterConfig document.

The document is written with ruamel.yaml to a temporary file that only lives
for the duration of a single ``eksctl create cluster`` run.
"""

import io
import os
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from ruamel.yaml import YAML
from ruamel.yaml.comments import CommentedMap

from eks_manager.logging_config import get_logger
from eks_manager.models.cluster import ClusterSpec

logger = get_logger(__name__)

API_VERSION = "eksctl.io/v1alpha5"


def _yaml() -> YAML:
    yaml = YAML()
    yaml.default_flow_style = False
    yaml.indent(mapping=2, sequence=2, offset=0)
    return yaml


def render_cluster_config(spec: ClusterSpec) -> CommentedMap:
    """Render a cluster spec into eksctl's declarative ClusterConfig format."""
    doc = CommentedMap()
    doc["apiVersion"] = API_VERSION
    doc["kind"] = "ClusterConfig"

    metadata = CommentedMap()
    metadata["name"] = spec.name
    metadata["region"] = spec.region
    metadata["version"] = spec.version
    if spec.tags:
        metadata["tags"] = dict(spec.tags)
    doc["metadata"] = metadata

    doc["vpc"] = {"cidr": spec.vpc_cidr, "nat": {"gateway": spec.nat_gateway}}
    doc.yaml_set_comment_before_after_key("vpc", before="Network")

    doc["iam"] = {
        "withOIDC": spec.with_oidc,
        "serviceAccounts": [sa.to_eksctl_dict() for sa in spec.service_accounts],
    }

    node_groups = []
    for ng in spec.node_groups:
        entry = ng.to_eksctl_dict()
        if spec.ssh_key_name:
            entry["ssh"] = {"allow": True, "publicKeyName": spec.ssh_key_name}
        if spec.tags:
            entry["tags"] = dict(spec.tags)
        node_groups.append(entry)
    doc["managedNodeGroups"] = node_groups

    doc["addons"] = [addon.to_eksctl_dict() for addon in spec.addons if addon.source == "eks"]

    doc["cloudWatch"] = {
        "clusterLogging": {
            "enableTypes": list(spec.log_types),
            "logRetentionInDays": spec.log_retention_days,
        }
    }
    return doc


def dump_cluster_config(spec: ClusterSpec) -> str:
    """Return the rendered ClusterConfig as YAML text."""
    stream = io.StringIO()
    _yaml().dump(render_cluster_config(spec), stream)
    return stream.getvalue()


@contextmanager
def transient_cluster_config(spec: ClusterSpec) -> Iterator[Path]:
    """Write the ClusterConfig to a temporary file, removed on exit."""
    fd, name = tempfile.mkstemp(prefix=f"eks-{spec.name}-", suffix=".yaml")
    path = Path(name)
    try:
        with os.fdopen(fd, "w") as f:
            _yaml().dump(render_cluster_config(spec), f)
        logger.info(f"Cluster configuration written to {path}")
        yield path
    finally:
        path.unlink(missing_ok=True)
        logger.debug(f"Removed transient cluster configuration {path}")
