"""Kubernetes control access for a cluster.

Reads go through the official Python client; ``apply`` and
kubeconfig context edits go through kubectl so their semantics match what an
operator would run by hand.
"""

from kubernetes import client, config
from kubernetes.client.rest import ApiException

from eks_manager.exceptions import ExternalCallError
from eks_manager.logging_config import get_logger
from eks_manager.models.cluster import ClusterHandle
from eks_manager.tools import run_tool

logger = get_logger(__name__)


def find_context(cluster_name: str, region: str | None = None) -> str | None:
    """Find the kubeconfig context that points at the named EKS cluster.

    Matches both eksctl-style (``user@name.region.eksctl.io``) and
    aws-cli-style (``arn:aws:eks:region:account:cluster/name``) entries.
    """
    try:
        contexts, _ = config.list_kube_config_contexts()
    except (config.ConfigException, FileNotFoundError) as e:
        logger.debug(f"No kubeconfig available: {e}")
        return None

    for ctx in contexts or []:
        cluster = ctx.get("context", {}).get("cluster", "")
        if cluster.endswith(f":cluster/{cluster_name}"):
            if region is None or f":eks:{region}:" in cluster:
                return ctx["name"]
        elif cluster.startswith(f"{cluster_name}.") and cluster.endswith(".eksctl.io"):
            if region is None or cluster == f"{cluster_name}.{region}.eksctl.io":
                return ctx["name"]
    return None


def require_context(cluster: ClusterHandle) -> str:
    """Return the kubeconfig context bound to the cluster.

    Raises:
        ExternalCallError: If the handle has no context. The kubeconfig's
            current context is never used in its place.
    """
    if not cluster.kube_context:
        raise ExternalCallError(
            f"No kubeconfig context for cluster '{cluster.name}' in {cluster.region}",
            ExternalCallError.API_ERROR,
            details=(
                "Run: eksctl utils write-kubeconfig "
                f"--cluster {cluster.name} --region {cluster.region}"
            ),
        )
    return cluster.kube_context


def delete_context(context: str) -> None:
    """Remove a context from the local kubeconfig."""
    run_tool(["kubectl", "config", "delete-context", context], "Remove kubectl context", timeout=30)


class KubeClient:
    """Kubernetes Control API bound to one kubeconfig context."""

    def __init__(self, context: str | None = None, api_client=None):
        self.context = context
        if api_client is None:
            try:
                api_client = config.new_client_from_config(context=context)
            except (config.ConfigException, FileNotFoundError) as e:
                raise ExternalCallError(
                    f"Failed to load kubeconfig for context '{context}'",
                    ExternalCallError.API_ERROR,
                    output=str(e),
                    details="Run: eksctl utils write-kubeconfig --cluster <name> --region <region>",
                )
        self.core = client.CoreV1Api(api_client)
        self.apps = client.AppsV1Api(api_client)

    def namespace_exists(self, name: str) -> bool:
        try:
            self.core.read_namespace(name)
            return True
        except ApiException as e:
            if e.status == 404:
                return False
            raise

    def get_nodes(self) -> list:
        return self.core.list_node().items

    def get_deployment(self, name: str, namespace: str):
        """Return the deployment, or None if it does not exist."""
        try:
            return self.apps.read_namespaced_deployment(name, namespace)
        except ApiException as e:
            if e.status == 404:
                return None
            raise

    def get_service_accounts(self, namespace: str | None = None) -> list:
        if namespace:
            return self.core.list_namespaced_service_account(namespace).items
        return self.core.list_service_account_for_all_namespaces().items

    def _kubectl(self, *args: str) -> list[str]:
        cmd = ["kubectl"]
        if self.context:
            cmd += ["--context", self.context]
        return cmd + list(args)

    def apply_manifest(self, source: str, step: str = "Apply manifest") -> None:
        """Apply a manifest given by URL or file path (``kubectl apply -f``)."""
        run_tool(self._kubectl("apply", "-f", source), step, timeout=300)

