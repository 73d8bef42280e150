"""Domain-specific errors for relayctl."""


class RelayctlError(Exception):
    """Base error for relayctl."""


class ConfigError(RelayctlError):
    """Raised when the settings file is unreadable or invalid."""


class CommandTableValidationError(RelayctlError):
    """Raised when a command table file does not conform to schema or semantics."""


class CommandTableLoadError(RelayctlError):
    """Raised when loading command table sources fails."""


class PeripheralSelectionError(RelayctlError):
    """Raised when a peripheral cannot be resolved to a single bonded device."""


class TransportUnavailableError(RelayctlError):
    """Raised when the radio stack is disabled or inaccessible."""


class ConnectError(RelayctlError):
    """Raised when a session cannot be established."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class NotConnectedError(RelayctlError):
    """Raised when sending without a connected session."""


class TransportWriteError(RelayctlError):
    """Raised when a write fails mid-stream."""


class UnknownCommandError(RelayctlError):
    """Raised when the dispatcher is given a label outside its command table."""


class TransportError(RelayctlError):
    """Base transport error."""


class TransportConnectError(TransportError):
    """Raised on link open failures."""


class TransportSendError(TransportError):
    """Raised when payload sending fails."""
