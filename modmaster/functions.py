"""
Modbus Function Dispatcher
Request payload encoding and response payload decoding for the eight
standard public function codes
"""

import logging
import struct
from dataclasses import dataclass, field
from typing import List, Optional, Tuple, Union

from .config import (
    FUNCTION_CODES,
    READ_COILS, READ_DISCRETE, READ_HOLDING, READ_INPUT,
    WRITE_COIL, WRITE_REGISTER, WRITE_COILS, WRITE_REGISTERS,
    check_function, check_uint16
)
from .exceptions import ConfigError, FrameError

logger = logging.getLogger(__name__)

COIL_ON = 0xFF00
COIL_OFF = 0x0000
MAX_BYTE_COUNT = 0xFF

BIT_READS = (READ_COILS, READ_DISCRETE)
REGISTER_READS = (READ_HOLDING, READ_INPUT)

Decoded = Union[List[bool], List[int], bool, int]


@dataclass
class ModbusRequest:
    """A single semantic request, built fresh for every call"""
    function: str
    address: int = 0
    quantity: int = 1
    value: int = 0
    values: List[int] = field(default_factory=list)
    slave_id: int = 1

    @property
    def function_code(self) -> int:
        return FUNCTION_CODES[self.function]

    @property
    def is_read(self) -> bool:
        return self.function in BIT_READS or self.function in REGISTER_READS


def pack_bits(values: List[bool]) -> bytes:
    """
    Pack booleans LSB-first: bit i goes to bit (i % 8) of byte (i // 8)

    Args:
        values: Coil states

    Returns:
        bytes: ceil(len(values) / 8) packed bytes
    """
    packed = bytearray((len(values) + 7) // 8)
    for i, value in enumerate(values):
        if value:
            packed[i // 8] |= 1 << (i % 8)
    return bytes(packed)


def unpack_bits(data: bytes, quantity: int) -> List[bool]:
    """Inverse of pack_bits, returns exactly `quantity` booleans"""
    return [bool(data[i // 8] & (1 << (i % 8))) for i in range(quantity)]


def pack_registers(values: List[int]) -> bytes:
    return b''.join(struct.pack('>H', value) for value in values)


def unpack_registers(data: bytes, quantity: int) -> List[int]:
    return list(struct.unpack(f'>{quantity}H', data[:quantity * 2]))


def build_read_request(address: int, quantity: int) -> bytes:
    """
    Build the data part of a read request (0x01-0x04)

    Args:
        address: Starting address
        quantity: Number of coils/inputs/registers

    Returns:
        bytes: address(2) + quantity(2), big-endian
    """
    check_uint16('address', address)
    check_uint16('quantity', quantity)
    return struct.pack('>HH', address, quantity)


def build_write_single_coil_request(address: int, value: bool) -> bytes:
    check_uint16('address', address)
    # Value is 0xFF00 for ON, 0x0000 for OFF
    return struct.pack('>HH', address, COIL_ON if value else COIL_OFF)


def build_write_single_register_request(address: int, value: int) -> bytes:
    check_uint16('address', address)
    check_uint16('value', value)
    return struct.pack('>HH', address, value)


def build_write_multiple_coils_request(address: int, values: List[bool]) -> bytes:
    """
    Build the data part of a write multiple coils request (0x0F)

    Returns:
        bytes: address(2) + quantity(2) + byte_count(1) + packed coils
    """
    check_uint16('address', address)
    if not values:
        raise ConfigError("write_coils requires at least one value")
    coil_bytes = pack_bits(values)
    if len(coil_bytes) > MAX_BYTE_COUNT:
        raise ConfigError(f"too many coils for one request: {len(values)}")
    return struct.pack('>HHB', address, len(values), len(coil_bytes)) + coil_bytes


def build_write_multiple_registers_request(address: int, values: List[int]) -> bytes:
    """
    Build the data part of a write multiple registers request (0x10)

    Returns:
        bytes: address(2) + quantity(2) + byte_count(1) + registers(2 each)
    """
    check_uint16('address', address)
    if not values:
        raise ConfigError("write_registers requires at least one value")
    for value in values:
        check_uint16('value', value)
    if len(values) * 2 > MAX_BYTE_COUNT:
        raise ConfigError(f"too many registers for one request: {len(values)}")
    return struct.pack('>HHB', address, len(values), len(values) * 2) + pack_registers(values)


def _byte_counted_data(payload: bytes, needed: int) -> bytes:
    if len(payload) < 1:
        raise FrameError("Empty read response")
    byte_count = payload[0]
    if len(payload) < byte_count + 1:
        raise FrameError(f"Invalid read response: expected {byte_count} bytes, got {len(payload) - 1}")
    if byte_count < needed:
        raise FrameError(f"Read response too short: need {needed} bytes, byte count is {byte_count}")
    return payload[1:byte_count + 1]


def parse_read_bits_response(payload: bytes, quantity: int) -> List[bool]:
    """
    Parse response data for read coils/discrete inputs

    Args:
        payload: byte_count(1) + packed bits
        quantity: Number of bits requested

    Returns:
        List[bool]: Exactly `quantity` states
    """
    data = _byte_counted_data(payload, (quantity + 7) // 8)
    return unpack_bits(data, quantity)


def parse_read_registers_response(payload: bytes, quantity: int) -> List[int]:
    """Parse response data for read holding/input registers"""
    data = _byte_counted_data(payload, quantity * 2)
    return unpack_registers(data, quantity)


def encode_request(request: ModbusRequest) -> Tuple[int, bytes]:
    """
    Encode a request into (function_code, payload)

    Raises:
        ConfigError: Unknown function or out-of-range argument
    """
    function = check_function(request.function)
    if function in BIT_READS or function in REGISTER_READS:
        payload = build_read_request(request.address, request.quantity)
    elif function == WRITE_COIL:
        payload = build_write_single_coil_request(request.address, request.value != 0)
    elif function == WRITE_REGISTER:
        payload = build_write_single_register_request(request.address, request.value)
    elif function == WRITE_COILS:
        payload = build_write_multiple_coils_request(request.address, [v != 0 for v in request.values])
    else:
        payload = build_write_multiple_registers_request(request.address, list(request.values))
    return FUNCTION_CODES[function], payload


def decode_response(request: ModbusRequest, payload: bytes) -> Optional[Decoded]:
    """
    Decode a response payload into typed values

    Reads return the decoded bits/registers; writes are echoes, so the
    written value(s) are returned.
    """
    function = request.function
    if function in BIT_READS:
        return parse_read_bits_response(payload, request.quantity)
    if function in REGISTER_READS:
        return parse_read_registers_response(payload, request.quantity)

    logger.debug(f"Write echo for {function}: {payload.hex()}")
    if function == WRITE_COIL:
        return request.value != 0
    if function == WRITE_REGISTER:
        return request.value
    if function == WRITE_COILS:
        return [v != 0 for v in request.values]
    return list(request.values)
