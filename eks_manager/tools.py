"""Thin wrapper for invoking external command-line tools."""

import subprocess
from collections.abc import Sequence

from eks_manager.exceptions import ExternalCallError
from eks_manager.logging_config import get_logger

logger = get_logger(__name__)

INSTALL_HINTS = {
    "eksctl": "Install eksctl: https://eksctl.io/introduction/#installation",
    "kubectl": "Install kubectl: https://kubernetes.io/docs/tasks/tools/",
    "aws": "Install AWS CLI v2: https://docs.aws.amazon.com/cli/latest/userguide/getting-started-install.html",
    "helm": "Install Helm: https://helm.sh/docs/intro/install/",
}


def run_tool(
    args: Sequence[str],
    step: str,
    timeout: float | None = 300,
    input: str | None = None,
) -> subprocess.CompletedProcess:
    """Run an external tool and return its completed process.

    Args:
        args: Command and arguments, e.g. ``["eksctl", "get", "cluster"]``
        step: Human-readable name of the workflow step, used in errors
        timeout: Seconds to wait before giving up
        input: Optional text passed on stdin

    Returns:
        The completed process (return code 0)

    Raises:
        ExternalCallError: If the tool is missing, times out, or exits non-zero.
    """
    tool = args[0]
    logger.debug(f"Running: {' '.join(args)}")

    try:
        result = subprocess.run(
            list(args),
            capture_output=True,
            text=True,
            check=True,
            timeout=timeout,
            input=input,
        )
    except FileNotFoundError:
        logger.error(f"{tool} binary not found in PATH")
        raise ExternalCallError(
            f"{step} failed: '{tool}' is not installed or not in PATH",
            ExternalCallError.TOOL_NOT_FOUND,
            details=INSTALL_HINTS.get(tool, f"Ensure the '{tool}' command is in your PATH"),
        )
    except subprocess.TimeoutExpired:
        logger.error(f"{tool} timed out after {timeout} seconds")
        raise ExternalCallError(
            f"{step} failed: '{tool}' did not respond within {timeout} seconds",
            ExternalCallError.TIMEOUT,
        )
    except subprocess.CalledProcessError as e:
        logger.error(f"{tool} failed with return code {e.returncode}: {e.stderr}")
        raise ExternalCallError(
            f"{step} failed: '{' '.join(args[:3])}' exited with code {e.returncode}",
            ExternalCallError.NON_ZERO_EXIT,
            output=e.stderr or e.stdout or "",
        )

    logger.debug(f"{tool} completed with return code {result.returncode}")
    return result
