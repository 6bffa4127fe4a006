"""Custom exceptions for the EKS cluster manager."""


class ClusterManagerError(Exception):
    """Base exception for all cluster manager errors."""

    exit_code = 2

    def __init__(self, message: str, details: str = None):
        """Initialize the exception.

        Args:
            message: Main error message
            details: Additional details or suggestions
        """
        self.message = message
        self.details = details
        super().__init__(self.format_message())

    def format_message(self) -> str:
        """Format the complete error message.

        Returns:
            Formatted error message with details
        """
        if self.details:
            return f"{self.message}\n\nDetails: {self.details}"
        return self.message


class ValidationError(ClusterManagerError):
    """Exception raised when a cluster definition breaks its validation rules."""

    exit_code = 1

    def __init__(self, violations: list[str], details: str = None):
        self.violations = list(violations)
        message = "Invalid cluster configuration: " + "; ".join(self.violations)
        super().__init__(message, details)


class ConfigurationError(ClusterManagerError):
    """Exception raised for unreadable or malformed configuration sources."""

    exit_code = 1


class PrerequisiteError(ClusterManagerError):
    """Exception raised when a required tool or credential is unavailable."""

    exit_code = 1


class CredentialsError(PrerequisiteError):
    """Exception raised when cloud credentials cannot be verified."""

    pass


class ClusterAlreadyExistsError(ClusterManagerError):
    """Exception raised when creating a cluster whose name is already taken."""

    exit_code = 1


class ClusterNotFoundError(ClusterManagerError):
    """Exception raised when the requested cluster does not exist."""

    exit_code = 1


class ClusterTimeoutError(ClusterManagerError):
    """Exception raised when a cluster does not converge within the allowed time."""

    exit_code = 3

    def __init__(self, message: str, details: str = None, state=None):
        self.state = state
        super().__init__(message, details)


class OperationCancelledError(ClusterTimeoutError):
    """Exception raised when a caller cancels a long-running wait."""

    pass


class PartialFailureError(ClusterManagerError):
    """Exception raised when some independent steps failed and others succeeded."""

    exit_code = 2

    def __init__(self, message: str, results: list, details: str = None):
        self.results = list(results)
        super().__init__(message, details)

    @property
    def failures(self) -> list:
        return [r for r in self.results if not r.ok]

    @property
    def successes(self) -> list:
        return [r for r in self.results if r.ok]


class ExternalCallError(ClusterManagerError):
    """Exception raised when an external CLI or cloud API call fails.

    The ``reason`` attribute carries a structured code while ``output`` keeps
    the collaborator's own error text verbatim.
    """

    TOOL_NOT_FOUND = "tool-not-found"
    NON_ZERO_EXIT = "non-zero-exit"
    TIMEOUT = "timeout"
    BAD_OUTPUT = "bad-output"
    API_ERROR = "api-error"

    exit_code = 2

    def __init__(self, message: str, reason: str, output: str = "", details: str = None):
        self.reason = reason
        self.output = output
        if output and not details:
            details = f"[{reason}] {output.strip()}"
        super().__init__(message, details)
