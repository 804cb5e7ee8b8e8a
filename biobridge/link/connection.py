"""Low-level serial connection to the biometric device.

The device is an ESP32 with a fingerprint sensor attached, exposed to the
host as a USB serial port. This module handles:
- Serial port lifecycle (open/close, optional reopen after errors)
- Raw byte stream forwarding with callbacks
- Raw writes

Note: This is a RAW BYTE STREAM layer. It does not interpret messages.
      Framing and decoding happen in the gateway.
"""
from __future__ import annotations

import logging
import threading
from typing import Callable, List, Optional

import serial

logger = logging.getLogger(__name__)

DEFAULT_BAUD = 115200
READ_TIMEOUT = 0.1  # seconds
WRITE_TIMEOUT = 1.0  # seconds
READ_CHUNK_SIZE = 4096  # bytes
RECONNECT_INTERVAL = 1.0  # seconds


class SerialLink:
    """Serial connection to the device.

    Provides a RAW BYTE STREAM interface. Bytes read by the background reader
    thread are handed to data subscribers; subscribers must not block.

    Example:
        >>> link = SerialLink("/dev/ttyUSB0")
        >>> link.open()
        True
        >>> link.subscribe_data(lambda chunk: print(f"Data: {chunk}"))
        <function>
        >>> link.write(b"AUTHENTICATE\\n")
        True
        >>> link.close()
    """

    def __init__(self,
                 port: str,
                 baudrate: int = DEFAULT_BAUD,
                 timeout: float = READ_TIMEOUT,
                 chunk_size: int = READ_CHUNK_SIZE):
        """Initialize serial link.

        Args:
            port: Serial port path (e.g., '/dev/ttyUSB0' or 'COM3')
            baudrate: Serial baud rate
            timeout: Read timeout in seconds
            chunk_size: Maximum bytes to read per chunk
        """
        self._port = port
        self._baudrate = baudrate
        self._timeout = timeout
        self._chunk_size = chunk_size

        self._serial: Optional[serial.Serial] = None
        self._connected = False

        # Threading
        self._active = False
        self._reader_thread: Optional[threading.Thread] = None
        self._write_lock = threading.Lock()

        # Reopen after errors
        self._autoreconnect = False
        self._reconnect_thread: Optional[threading.Thread] = None
        self._stop_reconnect = threading.Event()

        # Callbacks
        self._data_callbacks: List[Callable[[bytes], None]] = []
        self._state_callbacks: List[Callable[[bool], None]] = []
        self._callback_lock = threading.Lock()

    @property
    def port(self) -> str:
        return self._port

    @property
    def baudrate(self) -> int:
        return self._baudrate

    def open(self) -> bool:
        """Open the serial port and start the reader thread.

        Returns:
            True if the port is open, False otherwise
        """
        if self._connected:
            logger.warning("Already connected")
            return True

        try:
            self._serial = serial.Serial(
                port=self._port,
                baudrate=self._baudrate,
                timeout=self._timeout,
                write_timeout=WRITE_TIMEOUT,
            )
            self._serial.reset_input_buffer()
            self._serial.reset_output_buffer()

            logger.info(f"Opened serial link {self._port} @ {self._baudrate} baud")

        except serial.SerialException as e:
            logger.error(f"Failed to open {self._port}: {e}")
            self._serial = None
            return False
        except (OSError, ValueError) as e:
            logger.error(f"Unexpected error opening {self._port}: {e}")
            self._serial = None
            return False

        self._active = True
        self._connected = True
        self._start_reader_thread()
        self._notify_state_callbacks(True)

        return True

    def close(self) -> None:
        """Close the serial port and stop the reader thread."""
        if not self._connected:
            return

        self._active = False
        self._connected = False

        if self._reader_thread and self._reader_thread.is_alive():
            if self._reader_thread is not threading.current_thread():
                self._reader_thread.join(timeout=1.0)

        if self._serial:
            try:
                self._serial.close()
            except serial.SerialException as e:
                logger.error(f"Error closing serial port: {e}")
            finally:
                self._serial = None

        logger.info(f"Closed serial link {self._port}")
        self._notify_state_callbacks(False)

    def is_open(self) -> bool:
        """Check if the serial port is open."""
        return self._connected and self._serial is not None

    def set_autoreconnect(self, enabled: bool) -> None:
        """Enable or disable reopening the port after it is lost.

        Args:
            enabled: True to enable autoreconnect.
        """
        if self._autoreconnect == enabled:
            return

        self._autoreconnect = enabled

        if enabled:
            self._stop_reconnect.clear()
            if not self.is_open() and (self._reconnect_thread is None or not self._reconnect_thread.is_alive()):
                self._start_reconnect_thread()
        else:
            self._stop_reconnect.set()
            if self._reconnect_thread and self._reconnect_thread.is_alive():
                self._reconnect_thread.join(timeout=1.0)
            self._reconnect_thread = None

    def write(self, data: bytes) -> bool:
        """Send raw bytes to the device.

        Args:
            data: Raw bytes to send

        Returns:
            True if sent successfully, False otherwise
        """
        if not self.is_open() or self._serial is None:
            logger.warning("Cannot send, serial link not open")
            return False

        try:
            with self._write_lock:
                self._serial.write(data)
                self._serial.flush()
            return True
        except serial.SerialTimeoutException as e:
            logger.error(f"Write timed out: {e}")
            return False
        except (serial.SerialException, OSError) as e:
            logger.error(f"Send error: {e}")
            self._handle_error(e)
            return False

    def subscribe_data(self,
                       callback: Callable[[bytes], None]
                       ) -> Callable[[], None]:
        """Subscribe to the raw byte stream.

        The callback runs on the reader thread with each chunk read.

        Args:
            callback: Function to call with byte chunks

        Returns:
            Unsubscribe function
        """
        with self._callback_lock:
            self._data_callbacks.append(callback)

        def unsubscribe():
            with self._callback_lock:
                if callback in self._data_callbacks:
                    self._data_callbacks.remove(callback)

        return unsubscribe

    def subscribe_state(self,
                        callback: Callable[[bool], None]
                        ) -> Callable[[], None]:
        """Subscribe to open/closed transitions.

        The callback receives True when the port opens and False when it
        closes, on whichever thread caused the change.
        """
        with self._callback_lock:
            self._state_callbacks.append(callback)

        def unsubscribe():
            with self._callback_lock:
                if callback in self._state_callbacks:
                    self._state_callbacks.remove(callback)

        return unsubscribe

    # Internal methods

    def _start_reader_thread(self) -> None:
        self._reader_thread = threading.Thread(
            target=self._reader_loop,
            daemon=True,
            name="SerialLinkReader"
        )
        self._reader_thread.start()

    def _start_reconnect_thread(self) -> None:
        self._reconnect_thread = threading.Thread(
            target=self._reconnect_loop,
            daemon=True,
            name="SerialLinkReconnect"
        )
        self._reconnect_thread.start()

    def _reconnect_loop(self) -> None:
        """Retry opening the configured port until it succeeds or is stopped."""
        logger.info(f"Reconnect loop started for {self._port}")
        while not self._stop_reconnect.is_set():
            if self.is_open():
                break
            if self.open():
                logger.info("Reconnect successful")
                break
            self._stop_reconnect.wait(RECONNECT_INTERVAL)
        logger.info("Reconnect loop stopped")

    def _reader_loop(self) -> None:
        """Read raw bytes and dispatch to callbacks."""
        logger.debug("Reader thread started")

        while self._active and self._serial:
            try:
                chunk = self._serial.read(self._chunk_size)
                if chunk:
                    self._notify_data_callbacks(chunk)

            except (serial.SerialException, OSError) as e:
                if self._active:
                    logger.error(f"Serial read error: {e}")
                    self._handle_error(e)
                break

        logger.debug("Reader thread exiting")

    def _notify_data_callbacks(self, data: bytes) -> None:
        with self._callback_lock:
            callbacks = list(self._data_callbacks)

        for callback in callbacks:
            try:
                callback(data)
            except Exception as e:
                logger.error(f"Error in data callback: {e}")

    def _notify_state_callbacks(self, is_open: bool) -> None:
        with self._callback_lock:
            callbacks = list(self._state_callbacks)

        for callback in callbacks:
            try:
                callback(is_open)
            except Exception as e:
                logger.error(f"Error in state callback: {e}")

    def _handle_error(self, error: Exception) -> None:
        """Close resources after a fatal I/O error (e.g. device unplugged).

        Does not join threads to avoid deadlock if called from the reader thread.
        """
        logger.warning(f"Handling serial link error: {error}")
        self._active = False
        self._connected = False

        if self._serial:
            try:
                self._serial.close()
            except serial.SerialException:
                logger.debug("Error closing serial port after failure", exc_info=True)
            self._serial = None

        logger.info("Serial link closed due to error")
        self._notify_state_callbacks(False)

        if self._autoreconnect:
            if self._reconnect_thread is None or not self._reconnect_thread.is_alive():
                self._start_reconnect_thread()
