"""
Modbus Connection Manager
Owns the TCP socket or serial port and performs one blocking
request/response exchange at a time
"""

import logging
import socket
import time
from typing import Optional

import serial

from .config import MODE_TCP, MODE_RTU, ModbusConfig, normalize_parity
from .exceptions import ConfigError, ConnError, ModbusError, ModbusIOError, ModbusTimeoutError
from .framing import MBAP_HEADER_SIZE, RTU_MAX_FRAME_SIZE, RTU_SETTLE_DELAY, pdu_length

logger = logging.getLogger(__name__)

SERIAL_PARITIES = {
    'none': serial.PARITY_NONE,
    'even': serial.PARITY_EVEN,
    'odd': serial.PARITY_ODD,
    'mark': serial.PARITY_MARK,
    'space': serial.PARITY_SPACE,
}
SERIAL_BYTESIZES = {
    5: serial.FIVEBITS,
    6: serial.SIXBITS,
    7: serial.SEVENBITS,
    8: serial.EIGHTBITS,
}
SERIAL_STOPBITS = {
    1: serial.STOPBITS_ONE,
    2: serial.STOPBITS_TWO,
}


class Transport:
    """
    Base class for a single transport endpoint.

    The connection is opened lazily by ensure_open() and reused until
    close() or until an I/O failure drops it.
    """

    mode = None

    def __init__(self, timeout: float = 1.0):
        self.timeout = timeout

    def ensure_open(self) -> None:
        raise NotImplementedError

    def is_open(self) -> bool:
        raise NotImplementedError

    def close(self) -> None:
        raise NotImplementedError

    def send_and_receive(self, frame: bytes, timeout: Optional[float] = None) -> bytes:
        raise NotImplementedError

    def __enter__(self):
        self.ensure_open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False  # Propagate exceptions


class TcpTransport(Transport):
    """Modbus/TCP connection with a 16-bit transaction counter"""

    mode = MODE_TCP

    def __init__(self, host: str, port: int = 502, timeout: float = 1.0):
        super().__init__(timeout)
        self.host = host
        self.port = port
        self.sock = None
        # Kept across reconnects, wraps at 65536
        self.transaction_id = 0

    def next_transaction_id(self) -> int:
        self.transaction_id = (self.transaction_id + 1) & 0xFFFF
        return self.transaction_id

    def is_open(self) -> bool:
        return self.sock is not None

    def ensure_open(self) -> None:
        """
        Dial the device if there is no live socket

        Raises:
            ConnError: Connection could not be established
        """
        if self.sock is not None:
            return
        try:
            self.sock = socket.create_connection((self.host, self.port), timeout=self.timeout)
        except OSError as e:
            logger.error(f"TCP connect to {self.host}:{self.port} failed: {e}")
            raise ConnError(f"TCP connect to {self.host}:{self.port} failed: {e}") from e
        logger.info(f"Connected to {self.host}:{self.port}")

    def close(self) -> None:
        if self.sock is None:
            return
        try:
            self.sock.close()
        except OSError as e:
            logger.warning(f"Error closing socket to {self.host}:{self.port}: {e}")
        self.sock = None
        logger.info(f"Disconnected from {self.host}:{self.port}")

    def _recv_exact(self, size: int) -> bytes:
        buffer = bytearray()
        while len(buffer) < size:
            chunk = self.sock.recv(size - len(buffer))
            if not chunk:
                raise ModbusIOError(f"Connection closed by {self.host}:{self.port}")
            buffer.extend(chunk)
        return bytes(buffer)

    def send_and_receive(self, frame: bytes, timeout: Optional[float] = None) -> bytes:
        """
        Send one MBAP frame and read exactly one MBAP response

        The 7-byte header is read first; its length field sizes the
        second read. Any failure closes the socket so the next call re-dials.

        Args:
            frame: Complete request frame
            timeout: Read/write deadline in seconds (default: dial timeout)

        Returns:
            bytes: Header + PDU of the response
        """
        self.ensure_open()
        self.sock.settimeout(self.timeout if timeout is None else timeout)
        try:
            logger.debug(f"Sending TCP request: {frame.hex()}")
            self.sock.sendall(frame)
            header = self._recv_exact(MBAP_HEADER_SIZE)
            body = self._recv_exact(pdu_length(header))
        except socket.timeout as e:
            self.close()
            raise ModbusTimeoutError(f"No response from {self.host}:{self.port} within timeout") from e
        except ModbusError:
            self.close()
            raise
        except OSError as e:
            self.close()
            raise ModbusIOError(f"TCP I/O error with {self.host}:{self.port}: {e}") from e

        response = header + body
        logger.debug(f"Received TCP response: {response.hex()}")
        return response


class RtuTransport(Transport):
    """Modbus RTU over a serial port"""

    mode = MODE_RTU

    def __init__(self, device: str, baud_rate: int = 9600, data_bits: int = 8,
                 stop_bits: int = 1, parity: str = 'none', timeout: float = 1.0):
        super().__init__(timeout)
        self.device = device
        self.baud_rate = baud_rate
        self.data_bits = data_bits
        self.stop_bits = stop_bits
        self.parity = normalize_parity(parity)
        if self.parity not in SERIAL_PARITIES:
            raise ConfigError(f"invalid parity: {parity}")
        self.serial_conn = None

    def is_open(self) -> bool:
        return self.serial_conn is not None and self.serial_conn.is_open

    def ensure_open(self) -> None:
        """
        Open the serial port once with the configured line settings

        Raises:
            ConnError: Port could not be opened
        """
        if self.is_open():
            return
        try:
            self.serial_conn = serial.Serial(
                port=self.device,
                baudrate=self.baud_rate,
                bytesize=SERIAL_BYTESIZES[self.data_bits],
                parity=SERIAL_PARITIES[self.parity],
                stopbits=SERIAL_STOPBITS[self.stop_bits],
                timeout=self.timeout
            )
        except (serial.SerialException, OSError, ValueError) as e:
            self.serial_conn = None
            logger.error(f"Failed to open {self.device}: {e}")
            raise ConnError(f"Serial open of {self.device} failed: {e}") from e
        logger.info(f"Connected to {self.device} at {self.baud_rate} baud")

    def close(self) -> None:
        if self.serial_conn is None:
            return
        try:
            self.serial_conn.close()
        except (serial.SerialException, OSError) as e:
            logger.warning(f"Error closing {self.device}: {e}")
        self.serial_conn = None
        logger.info(f"Disconnected from {self.device}")

    def send_and_receive(self, frame: bytes, timeout: Optional[float] = None) -> bytes:
        """
        Send one RTU frame and read the response

        There is no length prefix: after the settle delay, the first byte is
        awaited up to the port timeout and whatever else is already buffered
        (up to 256 bytes in total) is taken as the complete frame. The port
        timeout is fixed at open time, so `timeout` is not used here.

        Returns:
            bytes: Raw response frame including CRC
        """
        self.ensure_open()
        try:
            # Drop stale bytes from a previous, possibly late, response
            self.serial_conn.reset_input_buffer()
            logger.debug(f"Sending RTU request: {frame.hex()}")
            self.serial_conn.write(frame)
            self.serial_conn.flush()
            time.sleep(RTU_SETTLE_DELAY)

            response = bytearray(self.serial_conn.read(1))
            waiting = min(self.serial_conn.in_waiting, RTU_MAX_FRAME_SIZE - 1) if response else 0
            if waiting > 0:
                response.extend(self.serial_conn.read(waiting))
        except (serial.SerialException, OSError) as e:
            self.close()
            raise ModbusIOError(f"Serial I/O error on {self.device}: {e}") from e

        if not response:
            # Port stays open; the next call flushes stale input before writing
            raise ModbusTimeoutError(f"No response from {self.device} within timeout")

        logger.debug(f"Received RTU response: {bytes(response).hex()}")
        return bytes(response)


def create_transport(config: ModbusConfig) -> Transport:
    """Build the transport selected by config.mode"""
    if config.mode == MODE_TCP:
        return TcpTransport(config.host, config.port, timeout=config.timeout_seconds)
    return RtuTransport(
        config.device,
        baud_rate=config.baud_rate,
        data_bits=config.data_bits,
        stop_bits=config.stop_bits,
        parity=config.parity,
        timeout=config.timeout_seconds
    )
