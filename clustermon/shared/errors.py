"""Exception types shared by the collector and the agent."""


class ClusterMonError(Exception):
    """Base class for clustermon errors."""


class ConfigError(ClusterMonError):
    """Raised when configuration is missing or invalid."""


class AuthError(ClusterMonError):
    """Raised when a request carries a bad or missing credential."""


class ValidationError(ClusterMonError):
    """Raised when a request body or content type is malformed."""

    def __init__(self, message: str, status: int = 400):
        super().__init__(message)
        self.status = status


class ProviderError(ClusterMonError):
    """Raised when a status page API call fails."""


class StartupError(ClusterMonError):
    """Raised when the process cannot start serving."""
