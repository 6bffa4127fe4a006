"""Cluster lifecycle orchestration.

States are never asserted by this module; every transition recorded on a
:class:`ClusterHandle` comes from describing the cluster through the
provisioning API::

    Absent --create--> Creating --(converge)--> Ready
    Ready  --delete--> Deleting --(converge)--> Gone

A polling timeout leaves the handle in ``Degraded`` and raises
:class:`ClusterTimeoutError`. Nothing is retried automatically.
"""

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

from eks_manager.exceptions import (
    ClusterAlreadyExistsError,
    ClusterNotFoundError,
    ClusterTimeoutError,
    ExternalCallError,
    OperationCancelledError,
)
from eks_manager.kube import delete_context, find_context
from eks_manager.logging_config import get_logger
from eks_manager.manifest import transient_cluster_config
from eks_manager.models.cluster import ClusterHandle, ClusterSpec, ClusterState
from eks_manager.provisioner import EksctlProvisioner, ProvisioningRun

logger = get_logger(__name__)

CONFIRMATION_TOKEN = "DELETE"
DEFAULT_CREATE_TIMEOUT = 40 * 60
DEFAULT_DELETE_TIMEOUT = 30 * 60
DEFAULT_POLL_INTERVAL = 20


@dataclass
class DeleteResult:
    """Outcome of a delete request."""

    name: str
    region: str
    cancelled: bool
    handle: ClusterHandle | None = None


class ClusterOrchestrator:
    """Drives create/delete through the provisioning API and polls for convergence."""

    def __init__(
        self,
        provisioner: EksctlProvisioner | None = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        create_timeout: float = DEFAULT_CREATE_TIMEOUT,
        delete_timeout: float = DEFAULT_DELETE_TIMEOUT,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.provisioner = provisioner or EksctlProvisioner()
        self.poll_interval = poll_interval
        self.create_timeout = create_timeout
        self.delete_timeout = delete_timeout
        self.clock = clock

    def observe(self, name: str, region: str) -> ClusterState:
        """Derive the cluster's current state from the provisioning API."""
        description = self.provisioner.describe(name, region)
        if description is None:
            return ClusterState.ABSENT
        return ClusterState.from_provider_status(self.provisioner.status_of(description))

    def status(self, name: str, region: str) -> ClusterHandle:
        """Observe the cluster along with its node groups and add-ons."""
        handle = ClusterHandle(name=name, region=region)
        handle.observe(self.observe(name, region))
        if handle.state not in (ClusterState.ABSENT, ClusterState.GONE):
            handle.node_groups = self.provisioner.list_node_groups(name, region)
            if handle.state == ClusterState.READY:
                handle.addons = sorted(
                    a.get("Name", "") for a in self.provisioner.list_addons(name, region)
                )
            handle.kube_context = find_context(name, region)
        return handle

    def create(
        self,
        spec: ClusterSpec,
        timeout: float | None = None,
        cancel: threading.Event | None = None,
    ) -> ClusterHandle:
        """Create the cluster and wait until it and its node groups are ready.

        Raises:
            ClusterAlreadyExistsError: If name+region already exists.
            ClusterTimeoutError: If it does not converge in time (state Degraded).
            OperationCancelledError: If ``cancel`` is set while waiting.
            ExternalCallError: If eksctl fails.
        """
        handle = ClusterHandle(name=spec.name, region=spec.region)
        state = self.observe(spec.name, spec.region)
        if state != ClusterState.ABSENT:
            logger.warning(f"Cluster {spec.name} already exists in {spec.region} ({state.value})")
            raise ClusterAlreadyExistsError(
                f"Cluster '{spec.name}' already exists in {spec.region} (state: {state.value})",
                "Choose a different --cluster-name, or inspect it with: eks-mgr status",
            )
        handle.observe(state)

        timeout = self.create_timeout if timeout is None else timeout
        logger.info(f"Creating cluster {spec.name} in {spec.region} (timeout {timeout:.0f}s)")
        with transient_cluster_config(spec) as config_path:
            run = self.provisioner.create(config_path)
            try:
                self.wait_ready(
                    spec.name,
                    spec.region,
                    timeout,
                    cancel=cancel,
                    run=run,
                    handle=handle,
                    node_groups=[ng.name for ng in spec.node_groups],
                )
            except ClusterTimeoutError:
                run.terminate()
                raise
            finally:
                run.close()

        try:
            self.provisioner.write_kubeconfig(spec.name, spec.region)
        except ExternalCallError as e:
            logger.warning(f"Could not write kubeconfig: {e.message}")
        handle.kube_context = find_context(spec.name, spec.region)
        logger.info(f"Cluster {spec.name} is ready")
        return handle

    def wait_ready(
        self,
        name: str,
        region: str,
        timeout: float,
        cancel: threading.Event | None = None,
        run: ProvisioningRun | None = None,
        handle: ClusterHandle | None = None,
        node_groups: list[str] | None = None,
    ) -> ClusterHandle:
        """Poll until the cluster is Ready.

        Ready means the control plane is ACTIVE, the expected node groups (or
        every listed one) are ACTIVE, and ``run`` (if given) finished cleanly.
        """
        handle = handle or ClusterHandle(name=name, region=region)

        def ready(state: ClusterState) -> bool:
            return state == ClusterState.READY and self._node_groups_active(
                name, region, node_groups
            )

        return self._converge(handle, timeout, cancel, run, ready, "become ready")

    def delete(
        self,
        name: str,
        region: str,
        confirm: str | None,
        timeout: float | None = None,
        cancel: threading.Event | None = None,
    ) -> DeleteResult:
        """Delete the cluster once the caller supplies the confirmation token.

        Returns a cancelled result, without touching anything, unless
        ``confirm`` is exactly ``"DELETE"``.

        Raises:
            ClusterNotFoundError: If the cluster does not exist.
            ClusterTimeoutError: If deletion does not converge in time.
            ExternalCallError: If eksctl fails.
        """
        if confirm != CONFIRMATION_TOKEN:
            logger.info(f"Deletion of {name} cancelled: confirmation token not supplied")
            return DeleteResult(name=name, region=region, cancelled=True)

        handle = ClusterHandle(name=name, region=region)
        state = self.observe(name, region)
        if state == ClusterState.ABSENT:
            raise ClusterNotFoundError(
                f"Cluster '{name}' not found in region '{region}'",
                f"List clusters with: eksctl get cluster --region {region}",
            )
        handle.observe(state)
        handle.node_groups = self.provisioner.list_node_groups(name, region)
        logger.info(
            f"Deleting cluster {name} with node groups: "
            f"{', '.join(ng.get('Name', '?') for ng in handle.node_groups) or 'none'}"
        )

        timeout = self.delete_timeout if timeout is None else timeout
        run = self.provisioner.delete(name, region)
        try:
            self._converge(
                handle,
                timeout,
                cancel,
                run,
                lambda s: s == ClusterState.GONE,
                "be deleted",
                absent_as=ClusterState.GONE,
            )
        except ClusterTimeoutError:
            run.terminate()
            raise
        finally:
            run.close()

        self._forget_kube_context(name, region)
        logger.info(f"Cluster {name} deleted")
        return DeleteResult(name=name, region=region, cancelled=False, handle=handle)

    def _node_groups_active(self, name: str, region: str, expected: list[str] | None) -> bool:
        groups = self.provisioner.list_node_groups(name, region)
        statuses = {g.get("Name"): str(g.get("Status", "")).upper() for g in groups}
        names = expected if expected is not None else list(statuses)
        if not names:
            return expected is not None
        return all(statuses.get(n) == "ACTIVE" for n in names)

    def _converge(
        self,
        handle: ClusterHandle,
        timeout: float,
        cancel: threading.Event | None,
        run: ProvisioningRun | None,
        done: Callable[[ClusterState], bool],
        goal: str,
        absent_as: ClusterState = ClusterState.ABSENT,
    ) -> ClusterHandle:
        cancel = cancel or threading.Event()
        deadline = self.clock() + timeout

        while True:
            if cancel.is_set():
                raise OperationCancelledError(
                    f"Waiting for cluster {handle.name} to {goal} was cancelled",
                    "The provisioning stack may still be running; check: eks-mgr status",
                    state=handle.state,
                )

            finished = run.check() if run is not None else True
            state = self.observe(handle.name, handle.region)
            if state == ClusterState.ABSENT:
                state = absent_as
            if handle.observe(state):
                logger.info(f"Cluster {handle.name}: {state.value}")

            if finished and done(state):
                return handle
            if state == ClusterState.DEGRADED and finished:
                raise ExternalCallError(
                    f"Cluster {handle.name} is in a failed state",
                    ExternalCallError.API_ERROR,
                    details="Inspect the CloudFormation stacks for eksctl-"
                    f"{handle.name}-* in {handle.region}",
                )

            remaining = deadline - self.clock()
            if remaining <= 0:
                handle.observe(ClusterState.DEGRADED)
                raise ClusterTimeoutError(
                    f"Cluster {handle.name} did not {goal} within {timeout:.0f}s",
                    "Provisioning may still be in progress; check: eks-mgr status",
                    state=ClusterState.DEGRADED,
                )
            logger.debug(f"Cluster {handle.name} is {state.value}; polling again")
            cancel.wait(min(self.poll_interval, remaining))

    def _forget_kube_context(self, name: str, region: str) -> None:
        context = find_context(name, region)
        if not context:
            return
        try:
            delete_context(context)
            logger.info(f"Removed kubectl context {context}")
        except ExternalCallError as e:
            logger.warning(f"Could not remove kubectl context {context}: {e.message}")
