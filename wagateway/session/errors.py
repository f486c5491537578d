"""
Error taxonomy for the session layer.

Every failure the gateway reports to an HTTP caller is one of these
exceptions. Transient disconnects are recovered inside the lifecycle
manager and only appear as the recorded ``error`` of a Failed status when
the reconnect policy gives up.
"""


class GatewayError(Exception):
    """Base exception for gateway errors."""
    pass


class ConfigurationError(GatewayError):
    """A required deployment parameter is missing or invalid."""
    pass


class ServiceUnavailable(GatewayError):
    """An outbound send was attempted while the session is not connected."""

    def __init__(self, state: str, message: str | None = None):
        self.state = state
        super().__init__(
            message or f"Chat session is not connected (state: {state})"
        )


class InitializationFailure(GatewayError):
    """Opening the session failed; requires an explicit retry."""
    pass


class TransientDisconnect(GatewayError):
    """The session closed for a reason other than logout."""

    def __init__(self, reason: str, attempts: int = 0):
        self.reason = reason
        self.attempts = attempts
        super().__init__(
            f"Session closed ({reason}); gave up after {attempts} reconnect attempts"
        )


class InvalidPayload(GatewayError, ValueError):
    """A recipient or file payload could not be used."""
    pass


class SessionError(GatewayError):
    """The session rejected or failed an operation."""
    pass
