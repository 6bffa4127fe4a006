"""Read-only health diagnostics for an existing cluster."""

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Literal

from eks_manager.kube import KubeClient, require_context
from eks_manager.logging_config import get_logger
from eks_manager.models.cluster import ClusterHandle
from eks_manager.provisioner import EksctlProvisioner

logger = get_logger(__name__)

CheckStatus = Literal["pass", "fail", "unknown"]

EXPECTED_CONTROLLERS = ("coredns", "aws-load-balancer-controller")
EXPECTED_ADDONS = ("vpc-cni", "coredns", "kube-proxy", "aws-ebs-csi-driver")
EXPECTED_SERVICE_ACCOUNTS = ("aws-load-balancer-controller", "cluster-autoscaler")


@dataclass
class DiagnosticCheck:
    """Result of one diagnostic check."""

    name: str
    status: CheckStatus
    evidence: str
    remediation: str | None = None


@dataclass
class DiagnosticReport:
    """All diagnostic checks for one cluster."""

    cluster: str
    region: str
    checks: list[DiagnosticCheck] = field(default_factory=list)

    @property
    def healthy(self) -> bool:
        return all(c.status == "pass" for c in self.checks)

    def by_status(self, status: CheckStatus) -> list[DiagnosticCheck]:
        return [c for c in self.checks if c.status == status]


def _lb_controller_hint(cluster: str, region: str) -> str:
    return (
        "Install the controller as an EKS add-on:\n"
        f"  aws eks create-addon --cluster-name {cluster} --addon-name aws-load-balancer-controller "
        f"--region {region} --resolve-conflicts OVERWRITE\n"
        "Or via Helm:\n"
        "  helm repo add eks https://aws.github.io/eks-charts\n"
        "  helm install aws-load-balancer-controller eks/aws-load-balancer-controller "
        f"-n kube-system --set clusterName={cluster} --set serviceAccount.create=true "
        "--set serviceAccount.name=aws-load-balancer-controller"
    )


class DiagnosticsRunner:
    """Runs independent read-only checks and reports every result."""

    def __init__(
        self,
        provisioner: EksctlProvisioner | None = None,
        kube: KubeClient | None = None,
        controllers: tuple[str, ...] = EXPECTED_CONTROLLERS,
        addons: tuple[str, ...] = EXPECTED_ADDONS,
        service_accounts: tuple[str, ...] = EXPECTED_SERVICE_ACCOUNTS,
    ):
        self.provisioner = provisioner or EksctlProvisioner()
        self._kube = kube
        self._clients: dict[str, KubeClient] = {}
        self.controllers = controllers
        self.addons = addons
        self.service_accounts = service_accounts

    def kube_for(self, cluster: ClusterHandle) -> KubeClient:
        """Return a client bound to this cluster's own kubeconfig context."""
        context = require_context(cluster)
        if self._kube is not None:
            return self._kube
        if context not in self._clients:
            self._clients[context] = KubeClient(context=context)
        return self._clients[context]

    def diagnose(self, cluster: ClusterHandle) -> DiagnosticReport:
        """Run every check. A check that raises is reported as ``unknown``."""
        logger.info(f"Diagnosing cluster {cluster.name}")
        checks: list[tuple[str, Callable[[ClusterHandle], DiagnosticCheck]]] = [
            ("namespace kube-system", self._check_system_namespace),
            ("nodes", self._check_nodes),
        ]
        for name in self.controllers:
            checks.append((f"deployment {name}", self._controller_check(name)))
        checks.append(("eks add-ons", self._check_addons))
        checks.append(("irsa service accounts", self._check_service_accounts))

        report = DiagnosticReport(cluster=cluster.name, region=cluster.region)
        for name, check in checks:
            try:
                result = check(cluster)
            except Exception as e:
                logger.warning(f"Diagnostic check '{name}' could not run: {e}")
                result = DiagnosticCheck(
                    name=name,
                    status="unknown",
                    evidence=f"check could not run: {e}",
                    remediation=(
                        "Configure kubectl: eksctl utils write-kubeconfig "
                        f"--cluster {cluster.name} --region {cluster.region}"
                    ),
                )
            logger.debug(f"{result.name}: {result.status} ({result.evidence})")
            report.checks.append(result)
        return report

    def _check_system_namespace(self, cluster: ClusterHandle) -> DiagnosticCheck:
        if self.kube_for(cluster).namespace_exists("kube-system"):
            return DiagnosticCheck("namespace kube-system", "pass", "namespace exists")
        return DiagnosticCheck(
            "namespace kube-system",
            "fail",
            "namespace not found",
            "The control plane may not be fully provisioned; check: eks-mgr status",
        )

    def _check_nodes(self, cluster: ClusterHandle) -> DiagnosticCheck:
        nodes = self.kube_for(cluster).get_nodes()
        ready = [
            n.metadata.name
            for n in nodes
            if any(c.type == "Ready" and c.status == "True" for c in (n.status.conditions or []))
        ]
        evidence = f"{len(ready)}/{len(nodes)} nodes Ready"
        if nodes and len(ready) == len(nodes):
            return DiagnosticCheck("nodes", "pass", evidence)
        return DiagnosticCheck(
            "nodes",
            "fail",
            evidence,
            f"Inspect node groups: eksctl get nodegroup --cluster {cluster.name} "
            f"--region {cluster.region}",
        )

    def _controller_check(self, deployment: str) -> Callable[[ClusterHandle], DiagnosticCheck]:
        def check(cluster: ClusterHandle) -> DiagnosticCheck:
            name = f"deployment {deployment}"
            found = self.kube_for(cluster).get_deployment(deployment, "kube-system")
            hint = (
                _lb_controller_hint(cluster.name, cluster.region)
                if deployment == "aws-load-balancer-controller"
                else f"kubectl -n kube-system describe deployment {deployment}"
            )
            if found is None:
                return DiagnosticCheck(name, "fail", "deployment not found", hint)
            desired = found.spec.replicas or 0
            available = (found.status.available_replicas or 0) if found.status else 0
            evidence = f"{available}/{desired} replicas available"
            if desired > 0 and available >= desired:
                return DiagnosticCheck(name, "pass", evidence)
            return DiagnosticCheck(name, "fail", evidence, hint)

        return check

    def _check_addons(self, cluster: ClusterHandle) -> DiagnosticCheck:
        registered = {
            a.get("Name", "") for a in self.provisioner.list_addons(cluster.name, cluster.region)
        }
        missing = [a for a in self.addons if a not in registered]
        evidence = f"registered: {', '.join(sorted(registered)) or 'none'}"
        if not missing:
            return DiagnosticCheck("eks add-ons", "pass", evidence)
        return DiagnosticCheck(
            "eks add-ons",
            "fail",
            f"{evidence}; missing: {', '.join(missing)}",
            "\n".join(
                f"eksctl create addon --cluster {cluster.name} --region {cluster.region} --name {a}"
                for a in missing
            ),
        )

    def _check_service_accounts(self, cluster: ClusterHandle) -> DiagnosticCheck:
        accounts = self.kube_for(cluster).get_service_accounts("kube-system")
        present = {sa.metadata.name for sa in accounts}
        missing = [n for n in self.service_accounts if n not in present]
        if not missing:
            return DiagnosticCheck(
                "irsa service accounts", "pass", f"found: {', '.join(self.service_accounts)}"
            )
        return DiagnosticCheck(
            "irsa service accounts",
            "fail",
            f"missing: {', '.join(missing)}",
            f"eksctl create iamserviceaccount --cluster {cluster.name} --region {cluster.region} "
            "--namespace kube-system --name <account> --attach-policy-arn <arn> --approve",
        )
