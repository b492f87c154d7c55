"""Custom exception hierarchy for Shipyard configuration and deployments."""


class ShipyardError(Exception):
    """Base exception for all Shipyard errors.

    All Shipyard-specific exceptions inherit from this class, enabling
    centralized exception handling in the CLI and the webhook server.
    """

    pass


class ConfigError(ShipyardError):
    """Exception raised for configuration errors.

    Raised when a descriptor or the global configuration cannot be read,
    parsed or validated. The message names the offending file.

    Attributes:
        field: The configuration field (or error code) that caused the error
        message: Human-readable error message describing the issue
    """

    def __init__(self, field: str, message: str) -> None:
        """Initialize ConfigError with field and message.

        Args:
            field: Configuration field name where error occurred
            message: Descriptive error message
        """
        self.field = field
        self.message = message
        super().__init__(f"Configuration error in '{field}': {message}")


class ValidationError(ShipyardError):
    """Exception raised for validation errors during configuration parsing.

    Attributes:
        field: The field that failed validation
        message: Description of the validation failure
        expected: Human description of expected value/type
        actual: The actual value that failed validation
    """

    def __init__(
        self,
        field: str,
        message: str,
        expected: str,
        actual: str,
    ) -> None:
        """Initialize ValidationError with detailed information.

        Args:
            field: Field that failed validation (dot notation for nested fields)
            message: Description of what went wrong
            expected: Human-readable description of expected value
            actual: The actual value that failed
        """
        self.field = field
        self.message = message
        self.expected = expected
        self.actual = actual
        full_message = (
            f"Validation error in '{field}': {message}\n"
            f"  Expected: {expected}\n"
            f"  Got: {actual}"
        )
        super().__init__(full_message)


class FileNotFoundError(ShipyardError):
    """Exception raised when a configuration file is not found.

    Attributes:
        path: Path to the file that was not found
        message: Human-readable error message
    """

    def __init__(self, path: str, message: str) -> None:
        """Initialize FileNotFoundError with path and message.

        Args:
            path: Path to the file that was not found
            message: Descriptive error message, optionally with suggestions
        """
        self.path = path
        self.message = message
        super().__init__(f"File not found: {path}\n{message}")


class TargetNotFoundError(ShipyardError):
    """Exception raised when a deploy target cannot be resolved by name."""

    def __init__(self, name: str, namespace: str = "app or engine") -> None:
        """Create a resolution error for a target name."""
        self.name = name
        self.namespace = namespace
        self.message = f"{namespace.capitalize()} not found: {name}"
        super().__init__(self.message)


class AuthenticationError(ShipyardError):
    """Exception raised when a webhook signature is missing or invalid."""

    def __init__(self, message: str = "Invalid webhook signature") -> None:
        """Create an authentication error."""
        self.message = message
        super().__init__(message)


class RangeExhaustedError(ShipyardError):
    """Exception raised when a port range has no free port left.

    Attributes:
        range_name: Name of the exhausted range
        start: First port of the range
        end: Last port of the range
    """

    def __init__(self, range_name: str, start: int, end: int) -> None:
        """Create an exhaustion error for a named range."""
        self.range_name = range_name
        self.start = start
        self.end = end
        self.message = f"No available ports in {range_name} range ({start}-{end})"
        super().__init__(self.message)


class DeploymentError(ShipyardError):
    """Exception raised when a deployment operation fails.

    Covers collaborator failures (git, process supervisor, shell commands)
    and state document I/O.

    Attributes:
        operation: The operation that failed (e.g. "git", "state", "pm2")
        message: Human-readable error message
    """

    def __init__(self, operation: str, message: str) -> None:
        """Initialize DeploymentError with operation and message.

        Args:
            operation: Name of the failing operation
            message: Descriptive error message
        """
        self.operation = operation
        self.message = message
        super().__init__(f"{operation} failed: {message}")


class PhaseFailureError(DeploymentError):
    """Exception raised when a deployment phase fails.

    Always terminal for the attempt. The deployment engine records it and
    converts it into a failed result; it never escapes the engine.
    """

    def __init__(self, phase: str, message: str) -> None:
        """Create a phase failure for the given phase name."""
        self.phase = phase
        super().__init__(operation=phase, message=message)


class CommandTimeoutError(DeploymentError):
    """Exception raised when a shell command exceeds its timeout."""

    def __init__(self, command: str, timeout: float) -> None:
        """Create a timeout error for a command."""
        self.command = command
        self.timeout = timeout
        super().__init__(
            operation="command",
            message=f"Command timed out after {timeout:g}s: {command}",
        )
