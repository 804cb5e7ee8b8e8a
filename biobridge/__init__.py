"""Biometric serial bridge - one serial device, many network clients."""

from .config import BridgeConfig
from .context import BridgeContext
from .dispatcher import Envelope, RequestDispatcher
from .errors import (
    BridgeError,
    DecodeError,
    DeviceTimeoutError,
    GatewayBusyError,
    MissingSubjectError,
    TransportError,
    TransportWriteError,
    UnknownActionError,
    UnrecognizedInputError,
    ValidationError,
)
from .gateway import DeviceGateway, SerialGateway
from .hub import ClientSession, SessionHub
from .link import LineFramer, SerialLink
from .models import Action, DeviceCommand, DeviceReply, WireMode

__all__ = [
    "Action",
    "BridgeConfig",
    "BridgeContext",
    "BridgeError",
    "ClientSession",
    "DecodeError",
    "DeviceCommand",
    "DeviceGateway",
    "DeviceReply",
    "DeviceTimeoutError",
    "Envelope",
    "GatewayBusyError",
    "LineFramer",
    "MissingSubjectError",
    "RequestDispatcher",
    "SerialGateway",
    "SerialLink",
    "SessionHub",
    "TransportError",
    "TransportWriteError",
    "UnknownActionError",
    "UnrecognizedInputError",
    "ValidationError",
    "WireMode",
]
