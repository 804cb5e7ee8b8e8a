"""Exception hierarchy for the bridge.

Every error carries a human-readable ``message`` that is safe to show to a
network client, and the HTTP ``status_code`` the server answers with.
"""


class BridgeError(RuntimeError):
    """Base class for all bridge errors."""
    message = "Bridge error"
    status_code = 500

    def __init__(self, message=None):
        super().__init__(message or self.message)
        if message:
            self.message = message


class TransportError(BridgeError):
    """Raised when the serial link is unavailable or cannot be opened."""
    message = "Device unavailable"
    status_code = 503


class TransportWriteError(TransportError):
    """Raised when a command could not be written to the serial link."""
    message = "Device unavailable"


class DeviceTimeoutError(BridgeError, TimeoutError):
    """Raised when the device did not reply before the request deadline."""
    message = "Timeout waiting for device"
    status_code = 504


class GatewayBusyError(BridgeError):
    """Raised when a request is rejected because another one is outstanding."""
    message = "Device busy"
    status_code = 503


class DecodeError(BridgeError, ValueError):
    """Raised when a device line is not valid JSON. Never reaches clients."""
    message = "Invalid JSON from device"


class ValidationError(BridgeError, ValueError):
    """Raised for bad client input, before any device I/O."""
    message = "Invalid command"
    status_code = 400


class UnknownActionError(ValidationError):
    """Raised when a command names an action the device does not support."""
    message = "Unknown action"

    def __init__(self, action=None):
        super().__init__(f"Unknown action: {action}" if action else None)
        self.action = action


class MissingSubjectError(ValidationError):
    """Raised when an enroll/verify command has no voter id."""
    message = "voterId is required"


class UnrecognizedInputError(ValidationError):
    """Raised when client input is neither JSON nor a known bare command."""
    message = "Unrecognized input"
