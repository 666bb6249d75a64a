from __future__ import annotations

"""Error taxonomy for chat orchestration and knowledge operations."""


class GatewayError(RuntimeError):
    """Base class for request-scoped failures."""
    pass


class ValidationError(GatewayError):
    """Raised when a request is malformed or missing."""
    pass


class ContextFetchError(GatewayError):
    """Raised when a context provider cannot be reached or answers badly."""
    pass


class ConfigurationError(GatewayError):
    """Raised when required configuration (such as the system template) is unavailable."""
    pass


class BackendError(GatewayError):
    """Raised when the model backend fails or returns an invalid response."""
    pass


class EmptyResultError(GatewayError):
    """Raised when the model backend returns a valid but empty answer."""
    pass


class ToolError(BackendError):
    """Raised when the tool server cannot list or execute tools."""
    pass


class LoaderError(GatewayError):
    """Raised when a knowledge source cannot be fetched or parsed."""
    pass


class FatalCancellation(GatewayError):
    """Raised when a model invocation is interrupted from outside the request."""
    pass
