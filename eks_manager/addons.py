"""Idempotent installation of cluster add-ons.

Add-ons are independent of each other: each one is checked for presence,
installed if missing, and retried with exponential backoff on failures. One
add-on failing never stops the others.
"""

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass

from tenacity import (
    RetryError,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from eks_manager.exceptions import ClusterManagerError, ExternalCallError, PartialFailureError
from eks_manager.kube import KubeClient, require_context
from eks_manager.logging_config import get_logger
from eks_manager.models.addon import AddonSpec
from eks_manager.models.cluster import DEFAULT_MANAGED_ADDONS, ClusterHandle
from eks_manager.provisioner import EksctlProvisioner
from eks_manager.tools import run_tool

logger = get_logger(__name__)

METRICS_SERVER_URL = (
    "https://github.com/kubernetes-sigs/metrics-server/releases/latest/download/components.yaml"
)

ADDITIONAL_COMPONENTS = (
    AddonSpec(
        name="aws-load-balancer-controller",
        source="helm",
        policy="awsLoadBalancerController",
        deployment="aws-load-balancer-controller",
        chart="eks/aws-load-balancer-controller",
        repo_name="eks",
        repo_url="https://aws.github.io/eks-charts",
        values={
            "serviceAccount.create": "false",
            "serviceAccount.name": "aws-load-balancer-controller",
        },
    ),
    AddonSpec(
        name="metrics-server",
        source="manifest",
        deployment="metrics-server",
        manifest_url=METRICS_SERVER_URL,
    ),
)

DEFAULT_ADDONS = DEFAULT_MANAGED_ADDONS + ADDITIONAL_COMPONENTS


class AddonError(ClusterManagerError):
    """Exception raised when a single add-on cannot be installed."""

    pass


@dataclass
class AddonResult:
    """Outcome of installing one add-on."""

    name: str
    ok: bool
    action: str  # "installed", "present", or "failed"
    error: str | None = None
    attempts: int = 0


class AddonInstaller:
    """Installs add-ons onto a ready cluster."""

    def __init__(
        self,
        provisioner: EksctlProvisioner | None = None,
        kube: KubeClient | None = None,
        max_workers: int = 4,
        attempts: int = 3,
        backoff_multiplier: float = 2.0,
        backoff_max: float = 30.0,
    ):
        self.provisioner = provisioner or EksctlProvisioner()
        self._kube = kube
        self._clients: dict[str, KubeClient] = {}
        self.max_workers = max_workers
        self.attempts = attempts
        self.backoff_multiplier = backoff_multiplier
        self.backoff_max = backoff_max

    def kube_for(self, cluster: ClusterHandle) -> KubeClient:
        """Return a client bound to this cluster's own kubeconfig context."""
        context = require_context(cluster)
        if self._kube is not None:
            return self._kube
        if context not in self._clients:
            self._clients[context] = KubeClient(context=context)
        return self._clients[context]

    def install(self, cluster: ClusterHandle, addons: list[AddonSpec]) -> list[AddonResult]:
        """Install every add-on that is not already present.

        Returns:
            One result per add-on, in the order given.

        Raises:
            PartialFailureError: If any add-on failed; carries all results.
        """
        if not addons:
            return []

        logger.info(f"Installing {len(addons)} add-ons on {cluster.name}")
        registered = self._registered_addons(cluster)

        workers = max(1, min(self.max_workers, len(addons)))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="addon") as pool:
            futures = [pool.submit(self._install_one, cluster, a, registered) for a in addons]
            results = [f.result() for f in futures]

        failed = [r for r in results if not r.ok]
        if failed:
            names = ", ".join(r.name for r in failed)
            raise PartialFailureError(
                f"{len(failed)} of {len(results)} add-ons failed: {names}",
                results,
                "\n".join(f"{r.name}: {r.error}" for r in failed),
            )
        logger.info(f"All {len(results)} add-ons are installed on {cluster.name}")
        return results

    def _registered_addons(self, cluster: ClusterHandle) -> set[str] | None:
        try:
            return {
                a.get("Name", "") for a in self.provisioner.list_addons(cluster.name, cluster.region)
            }
        except ExternalCallError as e:
            # Each EKS add-on falls back to its own presence check
            logger.warning(f"Could not list registered add-ons: {e.message}")
            return None

    def _install_one(
        self, cluster: ClusterHandle, addon: AddonSpec, registered: set[str] | None
    ) -> AddonResult:
        problems = addon.problems()
        if problems:
            logger.error(f"Add-on {addon.name} is malformed: {problems}")
            return AddonResult(addon.name, ok=False, action="failed", error="; ".join(problems))

        if addon.source != "eks":
            try:
                require_context(cluster)
            except ExternalCallError as e:
                logger.error(f"Add-on {addon.name} needs cluster access: {e.message}")
                return AddonResult(addon.name, ok=False, action="failed", error=str(e))

        try:
            if self.is_present(cluster, addon, registered):
                logger.info(f"Add-on {addon.name} already present, skipping")
                return AddonResult(addon.name, ok=True, action="present")
        except Exception as e:
            logger.warning(f"Presence check for {addon.name} failed, installing anyway: {e}")

        retrying = Retrying(
            stop=stop_after_attempt(self.attempts),
            wait=wait_exponential(multiplier=self.backoff_multiplier, max=self.backoff_max),
            retry=retry_if_exception_type(ClusterManagerError),
            reraise=False,
        )
        try:
            for attempt in retrying:
                with attempt:
                    self._apply(cluster, addon)
        except RetryError as e:
            error = e.last_attempt.exception()
            message = str(error)
            logger.error(f"Add-on {addon.name} failed after {self.attempts} attempts: {message}")
            return AddonResult(
                addon.name,
                ok=False,
                action="failed",
                error=message,
                attempts=retrying.statistics.get("attempt_number", self.attempts),
            )
        except Exception as e:
            logger.error(f"Add-on {addon.name} failed: {e}", exc_info=True)
            return AddonResult(addon.name, ok=False, action="failed", error=str(e), attempts=1)

        logger.info(f"Add-on {addon.name} installed")
        return AddonResult(
            addon.name,
            ok=True,
            action="installed",
            attempts=retrying.statistics.get("attempt_number", 1),
        )

    def is_present(
        self, cluster: ClusterHandle, addon: AddonSpec, registered: set[str] | None = None
    ) -> bool:
        """Check whether the add-on is already installed."""
        if addon.source == "eks":
            if registered is None:
                registered = {
                    a.get("Name", "")
                    for a in self.provisioner.list_addons(cluster.name, cluster.region)
                }
            return addon.name in registered
        if addon.deployment:
            kube = self.kube_for(cluster)
            return kube.get_deployment(addon.deployment, addon.namespace) is not None
        return False

    def _apply(self, cluster: ClusterHandle, addon: AddonSpec) -> None:
        if addon.source == "eks":
            self.provisioner.create_addon(cluster.name, cluster.region, addon.name, addon.version)
        elif addon.source == "helm":
            self._helm_install(cluster, addon)
        elif addon.source == "manifest":
            self.kube_for(cluster).apply_manifest(addon.manifest_url, f"Install {addon.name}")
        else:
            raise AddonError(f"Unsupported add-on source '{addon.source}' for {addon.name}")

    def _helm_install(self, cluster: ClusterHandle, addon: AddonSpec) -> None:
        step = f"Install {addon.name}"
        if addon.repo_name:
            run_tool(
                ["helm", "repo", "add", addon.repo_name, addon.repo_url, "--force-update"],
                step,
                timeout=120,
            )
            run_tool(["helm", "repo", "update", addon.repo_name], step, timeout=120)

        values = {"clusterName": cluster.name, **addon.values}
        args = [
            "helm",
            "upgrade",
            "--install",
            addon.name,
            addon.chart,
            "--namespace",
            addon.namespace,
            "--wait",
            "--kube-context",
            require_context(cluster),
        ]
        if addon.pinned:
            args += ["--version", addon.version]
        for key, value in values.items():
            args += ["--set", f"{key}={value}"]
        run_tool(args, step, timeout=900)
