"""Bridge context: the one long-lived object wiring the components together.

Built once at process start from a BridgeConfig and shared by the network
layer. It owns the gateway (and through it the serial link, framer and
pending request slot), the session hub and the dispatcher.
"""
from __future__ import annotations

import logging
import time
from typing import Any, Dict, Optional

from .config import BridgeConfig
from .dispatcher import RequestDispatcher
from .gateway import DeviceGateway, SerialGateway
from .hub import SessionHub
from .link import LineFramer
from .protocol import LineProtocol

logger = logging.getLogger(__name__)


class BridgeContext:
    """Owns the gateway, hub and dispatcher for one bridge process."""

    def __init__(self, config: BridgeConfig, gateway: Optional[DeviceGateway] = None):
        """Initialize context.

        Args:
            config: Bridge configuration
            gateway: Gateway to use instead of a SerialGateway built from config
        """
        self.config = config
        self.gateway = gateway or SerialGateway(
            port=config.serial_port,
            baudrate=config.baud_rate,
            protocol=LineProtocol(config.wire_mode),
            framer=LineFramer(max_size=config.max_frame_size),
            busy_policy=config.busy_policy,
            reconnect=config.reconnect,
        )
        self.hub = SessionHub(broadcast_tag=config.broadcast_tag)
        self.dispatcher = RequestDispatcher(self.gateway, timeouts=config.timeouts)
        self._started_at: Optional[float] = None

    async def start(self) -> None:
        """Open the device link and start broadcasting.

        Raises:
            TransportError: If the serial link cannot be opened
        """
        await self.gateway.start()
        self.hub.attach(self.gateway)
        self._started_at = time.time()
        logger.info(f"Bridge ready on {self.config.serial_port} @ {self.config.baud_rate} baud")

    async def stop(self) -> None:
        """Disconnect clients and close the device link."""
        await self.hub.close_all()
        await self.gateway.stop()
        self._started_at = None

    def health(self) -> Dict[str, Any]:
        """Snapshot of bridge state for the health endpoint."""
        return {
            "ts_ms": int(time.time() * 1000),
            "serial_ok": self.gateway.is_connected(),
            "uptime_s": round(time.time() - self._started_at, 1) if self._started_at else None,
            "sessions": len(self.hub),
            "gateway": self.gateway.stats(),
        }
