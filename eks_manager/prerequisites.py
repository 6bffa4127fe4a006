"""Verification of external tools and cloud credentials.

Runs before any mutating step so that a missing tool or expired credential is
reported up front instead of leaving a cluster half-created.
"""

import shutil
import subprocess
from collections.abc import Iterable
from dataclasses import dataclass, field

from eks_manager.cloud import CloudClient
from eks_manager.exceptions import CredentialsError, PrerequisiteError
from eks_manager.logging_config import get_logger
from eks_manager.tools import INSTALL_HINTS

logger = get_logger(__name__)

VERSION_COMMANDS = {
    "eksctl": ["eksctl", "version"],
    "kubectl": ["kubectl", "version", "--client"],
    "aws": ["aws", "--version"],
    "helm": ["helm", "version", "--short"],
}

REQUIRED_TOOLS = frozenset({"eksctl", "kubectl"})
OPTIONAL_TOOLS = frozenset({"helm", "aws"})


@dataclass
class ToolStatus:
    """Presence and version of one external tool."""

    name: str
    present: bool
    version: str | None = None
    required: bool = True

    @property
    def hint(self) -> str:
        return INSTALL_HINTS.get(self.name, f"Install '{self.name}' and add it to PATH")


@dataclass
class CheckReport:
    """Outcome of a prerequisite check."""

    tools: list[ToolStatus] = field(default_factory=list)
    identity: dict | None = None
    credentials_error: CredentialsError | None = None

    @property
    def missing(self) -> list[ToolStatus]:
        return [t for t in self.tools if t.required and not t.present]

    @property
    def warnings(self) -> list[ToolStatus]:
        return [t for t in self.tools if not t.required and not t.present]

    @property
    def ok(self) -> bool:
        return not self.missing and self.credentials_error is None

    def raise_for_failures(self) -> None:
        """Raise PrerequisiteError describing every failed prerequisite."""
        if self.ok:
            return
        if self.credentials_error and not self.missing:
            raise self.credentials_error

        problems = [f"missing tool: {t.name}" for t in self.missing]
        hints = [t.hint for t in self.missing]
        if self.credentials_error:
            problems.append(f"credentials: {self.credentials_error.message}")
            if self.credentials_error.details:
                hints.append(self.credentials_error.details)
        raise PrerequisiteError("Prerequisites not met: " + "; ".join(problems), "\n".join(hints))


def tool_version(name: str) -> str | None:
    """Return the first line of the tool's version output, or None if it fails."""
    cmd = VERSION_COMMANDS.get(name, [name, "--version"])
    try:
        result = subprocess.run(cmd, capture_output=True, text=True, timeout=15)
    except (OSError, subprocess.TimeoutExpired) as e:
        logger.debug(f"Could not read {name} version: {e}")
        return None
    output = (result.stdout or result.stderr).strip()
    return output.splitlines()[0] if output else "unknown"


class PrerequisiteChecker:
    """Checks tools and credentials needed before orchestrating a cluster."""

    def __init__(self, region: str, cloud: CloudClient | None = None):
        self.region = region
        self._cloud = cloud

    @property
    def cloud(self) -> CloudClient:
        if self._cloud is None:
            self._cloud = CloudClient(self.region)
        return self._cloud

    def check(
        self,
        required_tools: Iterable[str] = REQUIRED_TOOLS,
        require_credentials: bool = True,
        optional_tools: Iterable[str] = (),
    ) -> CheckReport:
        """Check every tool and, optionally, credentials.

        Never raises for a failed prerequisite; failures are recorded on the
        returned report.
        """
        report = CheckReport()
        required = set(required_tools)
        for name in sorted(required | set(optional_tools)):
            is_required = name in required
            if shutil.which(name) is None:
                level = logger.error if is_required else logger.warning
                level(f"{name} not found in PATH")
                report.tools.append(ToolStatus(name=name, present=False, required=is_required))
                continue
            version = tool_version(name)
            logger.info(f"{name} is installed: {version}")
            report.tools.append(
                ToolStatus(name=name, present=True, version=version, required=is_required)
            )

        if require_credentials:
            try:
                report.identity = self.cloud.caller_identity()
                logger.info(f"AWS account: {report.identity.get('account')}")
            except CredentialsError as e:
                logger.error(f"Credential check failed: {e.message}")
                report.credentials_error = e

        return report
