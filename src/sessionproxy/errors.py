"""Custom error types for sessionproxy."""


class SessionProxyError(Exception):
    """Base class for errors raised by sessionproxy itself."""


class CapabilityDeclarationError(SessionProxyError, TypeError):
    """Raised when a class cannot be declared as a session capability."""

    declared_name: str

    def __init__(self, declared_name: str, reason: str) -> None:
        """Initialize a declaration error.

        :param declared_name: Dotted name of the rejected declaration.
        :param reason: Human-readable rejection reason.
        """
        self.declared_name = declared_name
        super().__init__(f"Cannot declare {declared_name} as a session capability: {reason}")


class UnsupportedInteractionError(SessionProxyError):
    """Raised when a session proxy is used in a way it cannot support."""
