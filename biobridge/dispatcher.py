"""Request dispatcher: client input in, response envelope out.

Client messages are validated and mapped to device commands before any
device I/O happens. Gateway failures are turned into failure envelopes;
nothing raised here reaches the network layer.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic import ValidationError as ModelValidationError

from .config import DEFAULT_TIMEOUTS
from .errors import BridgeError, UnrecognizedInputError, ValidationError
from .gateway import DeviceGateway
from .models import Action, DeviceCommand

logger = logging.getLogger(__name__)


class ClientCommand(BaseModel):
    """Structured client request: {"action": ..., "voterId": ...}.

    The web client's older {"type": "verify", ...} form is accepted too.
    """
    model_config = ConfigDict(extra="ignore")

    action: Any = Field(validation_alias=AliasChoices("action", "type"))
    voterId: Optional[Union[str, int]] = Field(
        default=None,
        validation_alias=AliasChoices("voterId", "voter_id", "subject"),
    )


@dataclass(frozen=True)
class Envelope:
    """Client-facing response.

    Attributes:
        success: Whether the device answered
        action: Action name (success only)
        payload: Raw device reply (success only)
        error: Human-readable message (failure only)
        status_code: HTTP status for the HTTP transport
    """
    success: bool
    action: Optional[str] = None
    payload: Any = None
    error: Optional[str] = None
    status_code: int = 200

    @classmethod
    def ok(cls, action: str, payload: Any) -> Envelope:
        return cls(success=True, action=action, payload=payload)

    @classmethod
    def failure(cls, error: BridgeError) -> Envelope:
        return cls(success=False, error=error.message, status_code=error.status_code)

    def to_dict(self) -> Dict[str, Any]:
        if self.success:
            return {"success": True, "action": self.action, "payload": self.payload}
        return {"success": False, "error": self.error}


class RequestDispatcher:
    """Validates client commands and runs them against the gateway."""

    def __init__(self, gateway: DeviceGateway, timeouts: Optional[Mapping[Action, float]] = None):
        """Initialize dispatcher.

        Args:
            gateway: Gateway used for device requests
            timeouts: Reply deadline in seconds per action
        """
        self._gateway = gateway
        self._timeouts = dict(DEFAULT_TIMEOUTS)
        if timeouts:
            self._timeouts.update(timeouts)

    def timeout_for(self, action: Action) -> float:
        return self._timeouts[action]

    async def handle(self, raw: Union[str, bytes, Dict[str, Any]]) -> Envelope:
        """Handle one client message.

        Args:
            raw: Message text/bytes, or an already decoded JSON object

        Returns:
            Success or failure envelope; never raises for bad input or
            device errors
        """
        try:
            command = self.parse(raw)
        except BridgeError as e:
            logger.info(f"Rejected client input: {e.message}")
            return Envelope.failure(e)

        return await self.execute(command)

    async def execute(self, command: DeviceCommand) -> Envelope:
        """Send a validated command and shape the result."""
        action = command.action.value
        try:
            reply = await self._gateway.request(command, self.timeout_for(command.action))
        except BridgeError as e:
            logger.warning(f"{action} failed: {e}")
            return Envelope.failure(e)
        except Exception:
            logger.exception(f"Unexpected error handling {action}")
            return Envelope(success=False, error="Internal bridge error", status_code=500)

        return Envelope.ok(action, reply.payload)

    def parse(self, raw: Union[str, bytes, Dict[str, Any]]) -> DeviceCommand:
        """Turn client input into a device command.

        Accepts a JSON object, a JSON string, or bare text of the form
        ``ACTION`` or ``ACTION SUBJECT``.

        Raises:
            UnrecognizedInputError: Input is neither JSON nor a known bare command
            UnknownActionError: JSON command names an unknown action
            MissingSubjectError: Enroll/verify without a voter id
            ValidationError: Malformed JSON command
        """
        if isinstance(raw, dict):
            return self._parse_structured(raw)
        if isinstance(raw, (bytes, bytearray)):
            raw = bytes(raw).decode("utf-8", errors="replace")
        if not isinstance(raw, str):
            raise UnrecognizedInputError()

        text = raw.strip()
        if not text:
            raise UnrecognizedInputError()

        try:
            doc = json.loads(text)
        except json.JSONDecodeError:
            return self._parse_bare(text)

        if isinstance(doc, dict):
            return self._parse_structured(doc)
        if isinstance(doc, str):
            return self._parse_bare(doc)
        raise UnrecognizedInputError()

    @staticmethod
    def _parse_bare(text: str) -> DeviceCommand:
        parts = text.strip().split(None, 1)
        action = Action.lookup(parts[0]) if parts else None
        if action is None:
            raise UnrecognizedInputError()
        subject = parts[1] if len(parts) > 1 else None
        return DeviceCommand(action=action, subject=subject)

    @staticmethod
    def _parse_structured(doc: Dict[str, Any]) -> DeviceCommand:
        if "action" not in doc and "type" not in doc:
            raise ValidationError("action is required")
        try:
            request = ClientCommand.model_validate(doc)
        except ModelValidationError:
            raise ValidationError() from None

        action = Action.parse(request.action)
        subject = None if request.voterId is None else str(request.voterId)
        return DeviceCommand(action=action, subject=subject)
