"""Immutable data models for device commands and replies.

All models are frozen dataclasses so they can be handed between the serial
reader, the gateway and network sessions without copying.
"""
from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

from .errors import MissingSubjectError, UnknownActionError, ValidationError

# Short names used by the web client (``{"type": "verify", ...}``)
ACTION_ALIASES = {
    "AUTHENTICATE": "AUTHENTICATE",
    "ENROLL": "ENROLL_BIOMETRIC",
    "VERIFY": "VERIFY_BIOMETRIC",
    "CLEAR": "CLEAR_BIOMETRIC_DB",
}


class Action(Enum):
    """Commands understood by the biometric device."""
    AUTHENTICATE = "AUTHENTICATE"
    ENROLL_BIOMETRIC = "ENROLL_BIOMETRIC"
    VERIFY_BIOMETRIC = "VERIFY_BIOMETRIC"
    CLEAR_BIOMETRIC_DB = "CLEAR_BIOMETRIC_DB"

    @property
    def requires_subject(self) -> bool:
        """Whether the action needs a voter id."""
        return self in (Action.ENROLL_BIOMETRIC, Action.VERIFY_BIOMETRIC)

    @classmethod
    def lookup(cls, name: str) -> Optional[Action]:
        """Resolve an action name case-insensitively, including aliases.

        Returns:
            The matching Action, or None if the name is not recognized.
        """
        key = name.strip().upper()
        key = ACTION_ALIASES.get(key, key)
        try:
            return cls(key)
        except ValueError:
            return None

    @classmethod
    def parse(cls, name: Any) -> Action:
        """Resolve an action name or raise UnknownActionError."""
        if isinstance(name, Action):
            return name
        action = cls.lookup(name) if isinstance(name, str) else None
        if action is None:
            raise UnknownActionError(name)
        return action


class WireMode(Enum):
    """Serialization format for commands sent to the device."""
    TOKEN = "token"  # ACTION or ACTION SUBJECT
    JSON = "json"    # {"action": ..., "voterId": ...}


@dataclass(frozen=True)
class DeviceCommand:
    """A single command for the device.

    Attributes:
        action: Device action
        subject: Voter id, required for enroll/verify and dropped otherwise
    """
    action: Action
    subject: Optional[str] = None

    def __post_init__(self):
        if not isinstance(self.action, Action):
            object.__setattr__(self, "action", Action.parse(self.action))

        subject = self.subject
        if subject is not None:
            subject = str(subject).strip() or None

        if self.action.requires_subject:
            if subject is None:
                raise MissingSubjectError()
            if "\n" in subject or "\r" in subject:
                raise ValidationError("voterId must be a single line")
        else:
            subject = None

        object.__setattr__(self, "subject", subject)


@dataclass(frozen=True)
class DeviceReply:
    """A parsed JSON value received from the device.

    Attributes:
        payload: Decoded JSON value (normally an object)
        received_at: Unix timestamp when the line was framed
        raw: The decoded line text
    """
    payload: Any
    received_at: float = field(default_factory=time.time)
    raw: str = ""

    def _get(self, key: str) -> Any:
        if isinstance(self.payload, dict):
            return self.payload.get(key)
        return None

    @property
    def status(self) -> Optional[str]:
        return self._get("status")

    @property
    def reply_type(self) -> Optional[str]:
        return self._get("type")

    @property
    def subject(self) -> Optional[str]:
        return self._get("voterId")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a dict for logging and diagnostics."""
        return {
            "payload": self.payload,
            "received_at": self.received_at,
        }
