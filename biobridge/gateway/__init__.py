"""Device gateway layer: serialized access to the biometric device."""

from .base import DeviceGateway
from .serial import PendingRequest, SerialGateway

__all__ = ["DeviceGateway", "PendingRequest", "SerialGateway"]
