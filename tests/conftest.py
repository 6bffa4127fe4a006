"""Pytest configuration and shared fixtures."""

from types import SimpleNamespace

import pytest
from hypothesis import Verbosity, settings

from eks_manager.exceptions import ExternalCallError
from eks_manager.models.cluster import ClusterHandle, ClusterState
from eks_manager.provisioner import EksctlProvisioner

# Configure Hypothesis for property-based testing
settings.register_profile("default", max_examples=100, verbosity=Verbosity.normal)
settings.register_profile("ci", max_examples=1000, verbosity=Verbosity.verbose)
settings.register_profile("dev", max_examples=10, verbosity=Verbosity.verbose)

# Load the default profile
settings.load_profile("default")


class FakeRun:
    """Stand-in for a background eksctl process."""

    def __init__(self, finished=True, error: ExternalCallError | None = None):
        self.finished = finished
        self.error = error
        self.terminated = False
        self.closed = False

    def check(self) -> bool:
        if self.error is not None:
            raise self.error
        return self.finished

    def terminate(self) -> None:
        self.terminated = True

    def close(self) -> None:
        self.closed = True


class FakeProvisioner:
    """Scripted provisioning API.

    ``statuses`` is consumed one entry per describe call; the last entry
    repeats. ``None`` means the cluster does not exist.
    """

    status_of = staticmethod(EksctlProvisioner.status_of)

    def __init__(self, statuses=(None,), node_groups=None, addons=(), failing_addons=()):
        self.statuses = list(statuses)
        self.node_groups = (
            node_groups if node_groups is not None else [{"Name": "workers", "Status": "ACTIVE"}]
        )
        self.addons = [{"Name": a} for a in addons]
        self.failing_addons = set(failing_addons)
        self.calls = []
        self.run = FakeRun()
        self.config_text = None

    def describe(self, name, region):
        self.calls.append(("describe", name, region))
        status = self.statuses.pop(0) if len(self.statuses) > 1 else self.statuses[0]
        if status is None:
            return None
        return {"Name": name, "Region": region, "Status": status}

    def list_node_groups(self, name, region):
        self.calls.append(("list_node_groups", name, region))
        return list(self.node_groups)

    def list_addons(self, name, region):
        self.calls.append(("list_addons", name, region))
        return list(self.addons)

    def create(self, config_path):
        self.calls.append(("create", str(config_path)))
        self.config_text = config_path.read_text()
        return self.run

    def delete(self, name, region):
        self.calls.append(("delete", name, region))
        return self.run

    def create_addon(self, cluster, region, name, version):
        self.calls.append(("create_addon", name, version))
        if name in self.failing_addons:
            raise ExternalCallError(
                f"Install add-on {name} failed", ExternalCallError.NON_ZERO_EXIT, output="boom"
            )

    def write_kubeconfig(self, name, region):
        self.calls.append(("write_kubeconfig", name, region))

    def count(self, op, name=None):
        return sum(1 for c in self.calls if c[0] == op and (name is None or name in c))


def make_deployment(desired=2, available=2):
    return SimpleNamespace(
        spec=SimpleNamespace(replicas=desired),
        status=SimpleNamespace(available_replicas=available),
    )


def make_node(name, ready=True):
    condition = SimpleNamespace(type="Ready", status="True" if ready else "False")
    return SimpleNamespace(
        metadata=SimpleNamespace(name=name), status=SimpleNamespace(conditions=[condition])
    )


class FakeKube:
    """Kubernetes Control API backed by in-memory objects."""

    def __init__(self, deployments=None, nodes=None, service_accounts=(), namespaces=("kube-system",)):
        self.deployments = dict(deployments or {})
        self.nodes = list(nodes if nodes is not None else [make_node("node-1")])
        self.service_accounts = [
            SimpleNamespace(metadata=SimpleNamespace(name=n)) for n in service_accounts
        ]
        self.namespaces = set(namespaces)
        self.applied = []

    def namespace_exists(self, name):
        return name in self.namespaces

    def get_nodes(self):
        return self.nodes

    def get_deployment(self, name, namespace):
        return self.deployments.get(name)

    def get_service_accounts(self, namespace=None):
        return self.service_accounts

    def apply_manifest(self, source, step="Apply manifest"):
        self.applied.append(source)


class FakeCloud:
    """Cloud inventory returning canned resources."""

    def __init__(
        self,
        region="us-east-1",
        load_balancers=(),
        security_groups=(),
        nat_gateways=(),
        identity=None,
        identity_error=None,
    ):
        self.region = region
        self.load_balancers = list(load_balancers)
        self.security_groups = list(security_groups)
        self.nat_gateways = list(nat_gateways)
        self.identity = identity or {
            "account": "123456789012",
            "arn": "arn:aws:iam::123456789012:user/ci",
            "user_id": "AIDAEXAMPLE",
        }
        self.identity_error = identity_error
        self.filters = []

    def caller_identity(self):
        if self.identity_error is not None:
            raise self.identity_error
        return self.identity

    def describe_load_balancers(self):
        return self.load_balancers

    def describe_security_groups(self, filters):
        self.filters.append(filters)
        if filters[0]["Name"] == "group-name":
            return [g for g in self.security_groups if g.get("_by") == "name"]
        return [g for g in self.security_groups if g.get("_by") == "tag"]

    def describe_nat_gateways(self, filters):
        return self.nat_gateways


@pytest.fixture
def ready_handle():
    """A cluster handle as returned by a successful create."""
    handle = ClusterHandle(name="demo", region="us-east-1", kube_context="demo-context")
    handle.observe(ClusterState.READY)
    return handle


@pytest.fixture
def no_kubeconfig(monkeypatch):
    """Keep orchestrator tests away from the real kubeconfig."""
    removed = []
    monkeypatch.setattr("eks_manager.orchestrator.find_context", lambda name, region=None: None)
    monkeypatch.setattr("eks_manager.orchestrator.delete_context", removed.append)
    return removed


@pytest.fixture
def aws_credentials(monkeypatch):
    """Mocked AWS credentials for moto."""
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
    monkeypatch.setenv("AWS_SECURITY_TOKEN", "testing")
    monkeypatch.setenv("AWS_SESSION_TOKEN", "testing")
    monkeypatch.setenv("AWS_DEFAULT_REGION", "us-east-1")
