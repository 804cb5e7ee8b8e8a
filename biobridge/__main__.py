#!/usr/bin/env python3
"""
Biometric serial bridge.

Opens the serial link to the fingerprint device and serves HTTP and
WebSocket clients.

Usage:
    python -m biobridge --serial-port /dev/ttyUSB0 --port 5000
"""
import argparse
import logging
import sys

import uvicorn

from .config import BUSY_POLICIES, BridgeConfig
from .context import BridgeContext
from .models import Action, WireMode
from .server import create_app


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="biobridge", description=__doc__.strip().splitlines()[0])
    parser.add_argument("--serial-port", help="serial device path (e.g. /dev/ttyUSB0, COM3)")
    parser.add_argument("--baud-rate", type=int, help="serial baud rate")
    parser.add_argument("--host", help="listen address")
    parser.add_argument("--port", type=int, help="listen port")
    parser.add_argument("--wire-mode", choices=[m.value for m in WireMode], help="command format sent to the device")
    parser.add_argument("--busy-policy", choices=BUSY_POLICIES, help="queue or reject requests while one is outstanding")
    parser.add_argument("--max-frame-size", type=int, help="longest device line in bytes before resync")
    parser.add_argument("--broadcast-tag", help="add {\"delivery\": TAG} to broadcast messages")
    parser.add_argument("--reconnect", action="store_true", default=None, help="reopen the serial port after errors")
    for action in Action:
        flag = "--timeout-" + action.value.lower().replace("_", "-")
        parser.add_argument(flag, type=float, dest=f"timeout_{action.name}", metavar="SECONDS",
                            help=f"reply deadline for {action.value}")
    parser.add_argument("--log-level", help="DEBUG, INFO, WARNING or ERROR")
    return parser


def load_config(argv=None) -> BridgeConfig:
    """Environment first, then command-line flags."""
    args = build_parser().parse_args(argv)

    timeouts = {
        action: getattr(args, f"timeout_{action.name}")
        for action in Action
        if getattr(args, f"timeout_{action.name}") is not None
    }
    return BridgeConfig.from_env().with_overrides(
        serial_port=args.serial_port,
        baud_rate=args.baud_rate,
        host=args.host,
        port=args.port,
        wire_mode=WireMode(args.wire_mode) if args.wire_mode else None,
        busy_policy=args.busy_policy,
        max_frame_size=args.max_frame_size,
        broadcast_tag=args.broadcast_tag,
        reconnect=args.reconnect,
        timeouts=timeouts or None,
        log_level=args.log_level,
    )


def main(argv=None) -> int:
    try:
        config = load_config(argv)
    except ValueError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 2

    logging.basicConfig(
        level=getattr(logging, config.log_level),
        format='%(asctime)s - %(levelname)s - %(message)s'
    )

    app = create_app(BridgeContext(config))
    uvicorn.run(app, host=config.host, port=config.port, log_level=config.log_level.lower())
    return 0


if __name__ == "__main__":
    sys.exit(main())
