"""Command serializer for the device serial protocol.

Converts DeviceCommand objects to protocol lines.
Pure functions with no side effects.
"""
from __future__ import annotations

import json

from ..models import DeviceCommand, WireMode


class CommandSerializer:
    """Serializer for device commands.

    Supports the two wire modes the firmware revisions understand.
    """

    @staticmethod
    def serialize_command(command: DeviceCommand, mode: WireMode = WireMode.JSON) -> str:
        """Convert a command to a protocol line (without newline).

        Args:
            command: Command to serialize
            mode: Wire mode

        Returns:
            Protocol string ready to send over serial

        Examples:
            >>> cmd = DeviceCommand(Action.VERIFY_BIOMETRIC, "V123")
            >>> CommandSerializer.serialize_command(cmd, WireMode.TOKEN)
            'VERIFY_BIOMETRIC V123'
            >>> CommandSerializer.serialize_command(cmd, WireMode.JSON)
            '{"action": "VERIFY_BIOMETRIC", "voterId": "V123"}'
        """
        if mode == WireMode.TOKEN:
            return CommandSerializer._serialize_token(command)
        elif mode == WireMode.JSON:
            return CommandSerializer._serialize_json(command)
        else:
            raise ValueError(f"Unknown wire mode: {mode}")

    @staticmethod
    def _serialize_token(cmd: DeviceCommand) -> str:
        """Protocol: ACTION or ACTION SUBJECT"""
        if cmd.subject is None:
            return cmd.action.value
        return f"{cmd.action.value} {cmd.subject}"

    @staticmethod
    def _serialize_json(cmd: DeviceCommand) -> str:
        """Protocol: {"action": ACTION[, "voterId": SUBJECT]}"""
        doc = {"action": cmd.action.value}
        if cmd.subject is not None:
            doc["voterId"] = cmd.subject
        return json.dumps(doc)
