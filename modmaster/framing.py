"""
Modbus Frame Codec
Builds request frames and parses response frames for Modbus/TCP (MBAP)
and Modbus RTU
"""

import logging
import struct
from typing import NamedTuple, Optional, Tuple

from .config import MODE_TCP, MODE_RTU
from .crc import append_crc, validate_crc
from .exceptions import ConfigError, FrameError, ModbusException

logger = logging.getLogger(__name__)

EXCEPTION_BIT = 0x80

# MBAP header: transaction id, protocol id, length, unit id
MBAP_HEADER = struct.Struct('>HHHB')
MBAP_HEADER_SIZE = MBAP_HEADER.size
MODBUS_PROTOCOL_ID = 0x0000
# Largest MBAP length field: unit id + 253 byte PDU
MAX_MBAP_LENGTH = 254

RTU_MIN_FRAME_SIZE = 4
RTU_MAX_FRAME_SIZE = 256
# Inter-frame quiet period, approximates 3.5 character times below 115200 baud
RTU_SETTLE_DELAY = 0.005


class ResponseFrame(NamedTuple):
    """Decoded response envelope"""
    slave_id: int
    function_code: int
    payload: bytes
    transaction_id: Optional[int] = None
    exception_code: Optional[int] = None

    @property
    def is_exception(self) -> bool:
        return self.exception_code is not None


def exception_code_of(function_code: int, payload: bytes) -> Optional[int]:
    """Exception code of a response whose function code carries the error bit, else None"""
    if not function_code & EXCEPTION_BIT:
        return None
    if len(payload) < 1:
        raise FrameError(f"Exception response without exception code: function 0x{function_code:02X}")
    return payload[0]


def raise_for_exception(response: ResponseFrame) -> None:
    """Raise ModbusException if the response is an exception response"""
    if response.is_exception:
        raise ModbusException(response.function_code & 0x7F, response.exception_code)


class Framer:
    """Common encode/decode contract for both transports"""

    mode = None

    def build(self, slave_id: int, function_code: int, payload: bytes,
              transaction_id: int = 0) -> bytes:
        raise NotImplementedError

    def parse(self, frame: bytes, transaction_id: Optional[int] = None) -> ResponseFrame:
        raise NotImplementedError


def parse_mbap_header(header: bytes) -> Tuple[int, int, int, int]:
    """
    Unpack an MBAP header

    Args:
        header: At least 7 bytes

    Returns:
        Tuple of (transaction_id, protocol_id, length, unit_id)
    """
    if len(header) < MBAP_HEADER_SIZE:
        raise FrameError(f"MBAP header too short: {len(header)} bytes")
    return MBAP_HEADER.unpack(header[:MBAP_HEADER_SIZE])


def pdu_length(header: bytes) -> int:
    """Number of bytes that follow the 7-byte header (function code + data)"""
    _, _, length, _ = parse_mbap_header(header)
    if length < 2 or length > MAX_MBAP_LENGTH:
        raise FrameError(f"Invalid MBAP length field: {length}")
    return length - 1


class TcpFramer(Framer):
    """Modbus/TCP framing: MBAP header + PDU, no checksum"""

    mode = MODE_TCP

    def build(self, slave_id: int, function_code: int, payload: bytes,
              transaction_id: int = 0) -> bytes:
        payload = bytes(payload)
        header = MBAP_HEADER.pack(transaction_id & 0xFFFF, MODBUS_PROTOCOL_ID,
                                  len(payload) + 2, slave_id)
        frame = header + bytes([function_code]) + payload
        logger.debug(f"Built TCP request: {frame.hex()}")
        return frame

    def parse(self, frame: bytes, transaction_id: Optional[int] = None) -> ResponseFrame:
        """
        Parse and validate a Modbus/TCP response

        Args:
            frame: MBAP header followed by the PDU
            transaction_id: Transaction id of the request just sent

        Returns:
            ResponseFrame, with exception_code set for exception responses

        Raises:
            FrameError: Short frame, bad protocol id, length or transaction id
        """
        if len(frame) < MBAP_HEADER_SIZE + 1:
            raise FrameError(f"TCP response too short: {bytes(frame).hex()}")

        tid, protocol_id, length, unit_id = parse_mbap_header(frame)
        if transaction_id is not None and tid != transaction_id:
            raise FrameError(f"Transaction ID mismatch: expected {transaction_id}, got {tid}")
        if protocol_id != MODBUS_PROTOCOL_ID:
            raise FrameError(f"Invalid protocol ID: {protocol_id}")
        if length != len(frame) - MBAP_HEADER_SIZE + 1:
            raise FrameError(
                f"MBAP length mismatch: header says {length}, got {len(frame) - MBAP_HEADER_SIZE + 1}"
            )

        function_code = frame[MBAP_HEADER_SIZE]
        payload = bytes(frame[MBAP_HEADER_SIZE + 1:])
        return ResponseFrame(unit_id, function_code, payload, tid,
                             exception_code_of(function_code, payload))


class RtuFramer(Framer):
    """Modbus RTU framing: slave id + PDU + CRC-16"""

    mode = MODE_RTU

    def build(self, slave_id: int, function_code: int, payload: bytes,
              transaction_id: int = 0) -> bytes:
        # [slave_id, function_code, data, crc_low, crc_high]
        frame = append_crc(bytes([slave_id, function_code]) + bytes(payload))
        logger.debug(f"Built RTU request: {frame.hex()}")
        return frame

    def parse(self, frame: bytes, transaction_id: Optional[int] = None) -> ResponseFrame:
        """
        Parse and validate a Modbus RTU response

        The CRC is checked before the exception bit so a corrupted frame is
        never reported as data or as a device exception. Exception responses
        are returned with exception_code set.

        Raises:
            FrameError: Frame shorter than 4 bytes or CRC mismatch
        """
        if len(frame) < RTU_MIN_FRAME_SIZE:
            raise FrameError(f"RTU response too short: {len(frame)} bytes")
        if not validate_crc(frame):
            raise FrameError(f"CRC mismatch in RTU response: {bytes(frame).hex()}")

        slave_id = frame[0]
        function_code = frame[1]
        payload = bytes(frame[2:-2])
        return ResponseFrame(slave_id, function_code, payload,
                             exception_code=exception_code_of(function_code, payload))


def create_framer(mode: str) -> Framer:
    """Select the framing strategy for a transport mode"""
    if mode == MODE_TCP:
        return TcpFramer()
    if mode == MODE_RTU:
        return RtuFramer()
    raise ConfigError(f"invalid mode: {mode}")
