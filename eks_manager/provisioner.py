"""Cluster provisioning through the eksctl CLI."""

import json
import subprocess
import tempfile
from pathlib import Path

from eks_manager.exceptions import ExternalCallError
from eks_manager.logging_config import get_logger
from eks_manager.tools import INSTALL_HINTS, run_tool

logger = get_logger(__name__)

NOT_FOUND_MARKERS = ("ResourceNotFoundException", "No cluster found")


class ProvisioningRun:
    """A long-running eksctl invocation started in the background."""

    def __init__(self, args: list[str], step: str):
        self.args = args
        self.step = step
        logger.debug(f"Starting: {' '.join(args)}")
        # eksctl is chatty for tens of minutes; a pipe would fill up and block it
        self._log = tempfile.TemporaryFile(mode="w+")
        try:
            self._process = subprocess.Popen(
                args,
                stdout=self._log,
                stderr=subprocess.STDOUT,
                text=True,
            )
        except FileNotFoundError:
            self._log.close()
            raise ExternalCallError(
                f"{step} failed: '{args[0]}' is not installed or not in PATH",
                ExternalCallError.TOOL_NOT_FOUND,
                details=INSTALL_HINTS.get(args[0]),
            )

    def poll(self) -> int | None:
        """Return the exit code, or None while the run is in progress."""
        return self._process.poll()

    @property
    def output(self) -> str:
        """Everything the process wrote, once it has exited."""
        # The child shares the file offset, so only rewind after it exits
        if self._log.closed or self._process.poll() is None:
            return ""
        self._log.flush()
        self._log.seek(0)
        return self._log.read()

    def close(self) -> None:
        self._log.close()

    def check(self) -> bool:
        """Return True once finished successfully; raise if it failed."""
        code = self.poll()
        if code is None:
            return False
        if code != 0:
            raise ExternalCallError(
                f"{self.step} failed: eksctl exited with code {code}",
                ExternalCallError.NON_ZERO_EXIT,
                output=self.output[-4000:],
            )
        return True

    def terminate(self) -> None:
        """Stop the local eksctl process. CloudFormation stacks keep running."""
        if self._process.poll() is None:
            logger.warning(f"Terminating eksctl process for step: {self.step}")
            self._process.terminate()
            try:
                self._process.wait(timeout=30)
            except subprocess.TimeoutExpired:
                self._process.kill()


class EksctlProvisioner:
    """Cluster Provisioning API backed by eksctl."""

    def __init__(self, binary: str = "eksctl", timeout: float = 120):
        self.binary = binary
        self.timeout = timeout

    def _get_json(self, args: list[str], step: str) -> list[dict]:
        result = run_tool([self.binary, *args, "-o", "json"], step, timeout=self.timeout)
        try:
            data = json.loads(result.stdout or "[]")
        except json.JSONDecodeError as e:
            logger.error(f"Failed to parse eksctl JSON output: {e}")
            raise ExternalCallError(
                f"{step} failed: eksctl returned invalid JSON",
                ExternalCallError.BAD_OUTPUT,
                output=result.stdout,
            )
        if isinstance(data, dict):
            data = [data]
        return data or []

    def describe(self, name: str, region: str) -> dict | None:
        """Describe a cluster. Returns None if it does not exist."""
        try:
            clusters = self._get_json(
                ["get", "cluster", "--name", name, "--region", region], "Describe cluster"
            )
        except ExternalCallError as e:
            if e.reason == ExternalCallError.NON_ZERO_EXIT and any(
                marker in e.output for marker in NOT_FOUND_MARKERS
            ):
                logger.debug(f"Cluster {name} not found in {region}")
                return None
            raise
        for cluster in clusters:
            cluster_name = cluster.get("Name") or cluster.get("metadata", {}).get("name")
            if cluster_name == name:
                return cluster
        return None

    @staticmethod
    def status_of(description: dict) -> str | None:
        """Extract the provider status string from a cluster description."""
        status = description.get("Status")
        if status is None and isinstance(description.get("status"), dict):
            status = description["status"].get("status")
        return status

    def list_node_groups(self, name: str, region: str) -> list[dict]:
        return self._get_json(
            ["get", "nodegroup", "--cluster", name, "--region", region], "List node groups"
        )

    def list_addons(self, name: str, region: str) -> list[dict]:
        return self._get_json(
            ["get", "addon", "--cluster", name, "--region", region], "List add-ons"
        )

    def create(self, config_path: Path) -> ProvisioningRun:
        """Start ``eksctl create cluster`` from a ClusterConfig file."""
        return ProvisioningRun(
            [self.binary, "create", "cluster", "-f", str(config_path)], "Create cluster"
        )

    def delete(self, name: str, region: str) -> ProvisioningRun:
        """Start ``eksctl delete cluster`` for the named cluster."""
        return ProvisioningRun(
            [self.binary, "delete", "cluster", "--name", name, "--region", region, "--wait"],
            "Delete cluster",
        )

    def create_addon(self, cluster: str, region: str, name: str, version: str) -> None:
        """Install a provider-managed add-on."""
        run_tool(
            [
                self.binary,
                "create",
                "addon",
                "--cluster",
                cluster,
                "--region",
                region,
                "--name",
                name,
                "--version",
                version,
                "--force",
            ],
            f"Install add-on {name}",
            timeout=900,
        )

    def write_kubeconfig(self, name: str, region: str) -> None:
        """Write or refresh the kubeconfig entry for the cluster."""
        run_tool(
            [self.binary, "utils", "write-kubeconfig", "--cluster", name, "--region", region],
            "Configure kubectl",
            timeout=self.timeout,
        )
