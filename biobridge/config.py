"""Process-wide bridge configuration.

Defaults can be overridden with BIOBRIDGE_* environment variables and then
with command-line flags (see ``biobridge.__main__``). The configuration is
fixed once the bridge starts.
"""
from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from typing import Dict, Mapping, Optional

from .link.buffer import DEFAULT_MAX_FRAME_SIZE
from .link.connection import DEFAULT_BAUD
from .models import Action, WireMode

ENV_PREFIX = "BIOBRIDGE_"

DEFAULT_SERIAL_PORT = "/dev/ttyUSB0"
DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 5000

BUSY_QUEUE = "queue"
BUSY_REJECT = "reject"
BUSY_POLICIES = (BUSY_QUEUE, BUSY_REJECT)

# Seconds. Enroll/verify wait for a finger on the sensor.
DEFAULT_TIMEOUTS: Dict[Action, float] = {
    Action.AUTHENTICATE: 5.0,
    Action.CLEAR_BIOMETRIC_DB: 5.0,
    Action.ENROLL_BIOMETRIC: 15.0,
    Action.VERIFY_BIOMETRIC: 8.0,
}

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(frozen=True)
class BridgeConfig:
    """Bridge settings.

    Attributes:
        serial_port: Serial device path
        baud_rate: Serial baud rate
        host: Network listen address
        port: Network listen port
        timeouts: Reply deadline in seconds per action
        wire_mode: Command serialization for the device
        busy_policy: 'queue' to wait for the device, 'reject' to fail fast
        max_frame_size: Framer bound in bytes
        broadcast_tag: If set, broadcasts carry {"delivery": tag}
        reconnect: Reopen the serial port after I/O errors
        log_level: Root logging level
    """
    serial_port: str = DEFAULT_SERIAL_PORT
    baud_rate: int = DEFAULT_BAUD
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    timeouts: Dict[Action, float] = field(default_factory=lambda: dict(DEFAULT_TIMEOUTS))
    wire_mode: WireMode = WireMode.JSON
    busy_policy: str = BUSY_QUEUE
    max_frame_size: int = DEFAULT_MAX_FRAME_SIZE
    broadcast_tag: Optional[str] = None
    reconnect: bool = False
    log_level: str = "INFO"

    def __post_init__(self):
        if not self.serial_port:
            raise ValueError("serial_port must not be empty")
        if self.baud_rate <= 0:
            raise ValueError(f"Invalid baud rate: {self.baud_rate}")
        if not 0 < self.port < 65536:
            raise ValueError(f"Invalid listen port: {self.port}")
        if self.busy_policy not in BUSY_POLICIES:
            raise ValueError(f"Invalid busy policy: {self.busy_policy}")
        if self.max_frame_size <= 0:
            raise ValueError(f"Invalid max frame size: {self.max_frame_size}")
        if self.log_level.upper() not in LOG_LEVELS:
            raise ValueError(f"Invalid log level: {self.log_level}")

        timeouts = dict(DEFAULT_TIMEOUTS)
        timeouts.update(self.timeouts)
        for action, seconds in timeouts.items():
            if seconds <= 0:
                raise ValueError(f"Timeout for {action.value} must be positive")
        object.__setattr__(self, "timeouts", timeouts)
        object.__setattr__(self, "wire_mode", WireMode(self.wire_mode))
        object.__setattr__(self, "log_level", self.log_level.upper())

    def timeout_for(self, action: Action) -> float:
        """Reply deadline in seconds for an action."""
        return self.timeouts[action]

    def with_overrides(self, **overrides) -> BridgeConfig:
        """Return a copy with the non-None overrides applied."""
        values = {k: v for k, v in overrides.items() if v is not None}
        if "timeouts" in values:
            timeouts = dict(self.timeouts)
            timeouts.update(values["timeouts"])
            values["timeouts"] = timeouts
        return replace(self, **values)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> BridgeConfig:
        """Build a configuration from BIOBRIDGE_* environment variables."""
        env = os.environ if environ is None else environ

        def get(name: str) -> Optional[str]:
            value = env.get(ENV_PREFIX + name)
            return value if value not in (None, "") else None

        values = {}
        if get("SERIAL_PORT"):
            values["serial_port"] = get("SERIAL_PORT")
        if get("BAUD_RATE"):
            values["baud_rate"] = _parse_int("BAUD_RATE", get("BAUD_RATE"))
        if get("HOST"):
            values["host"] = get("HOST")
        if get("PORT"):
            values["port"] = _parse_int("PORT", get("PORT"))
        if get("WIRE_MODE"):
            values["wire_mode"] = WireMode(get("WIRE_MODE").lower())
        if get("BUSY_POLICY"):
            values["busy_policy"] = get("BUSY_POLICY").lower()
        if get("MAX_FRAME_SIZE"):
            values["max_frame_size"] = _parse_int("MAX_FRAME_SIZE", get("MAX_FRAME_SIZE"))
        if get("BROADCAST_TAG"):
            values["broadcast_tag"] = get("BROADCAST_TAG")
        if get("RECONNECT"):
            values["reconnect"] = get("RECONNECT").lower() in ("1", "true", "yes", "on")
        if get("LOG_LEVEL"):
            values["log_level"] = get("LOG_LEVEL")

        timeouts = {}
        for action in Action:
            raw = get(f"TIMEOUT_{action.value}")
            if raw:
                try:
                    timeouts[action] = float(raw)
                except ValueError:
                    raise ValueError(f"Invalid {ENV_PREFIX}TIMEOUT_{action.value}: {raw!r}")
        if timeouts:
            values["timeouts"] = timeouts

        return cls(**values)


def _parse_int(name: str, raw: str) -> int:
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"Invalid {ENV_PREFIX}{name}: {raw!r}")
