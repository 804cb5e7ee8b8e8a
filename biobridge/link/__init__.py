"""Serial link layer.

This module provides:
- Serial port management with a raw byte stream (SerialLink)
- Newline framing of the byte stream (LineFramer)
"""

from .connection import SerialLink
from .buffer import LineFramer

__all__ = [
    'SerialLink',
    'LineFramer',
]
