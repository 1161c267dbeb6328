"""
Modbus RTU CRC-16
"""

CRC16_POLYNOMIAL = 0xA001
CRC16_INITIAL = 0xFFFF


def crc16(data: bytes) -> int:
    """
    Calculate the Modbus CRC-16 of a byte sequence

    Args:
        data: Bytes to checksum

    Returns:
        int: 16-bit CRC (transmitted low byte first)
    """
    crc = CRC16_INITIAL
    for byte in data:
        crc ^= byte
        for _ in range(8):
            if crc & 0x0001:
                crc = (crc >> 1) ^ CRC16_POLYNOMIAL
            else:
                crc >>= 1
    return crc


def append_crc(frame: bytes) -> bytes:
    """Append the CRC to a frame in little-endian order (low byte first)"""
    crc = crc16(frame)
    return bytes(frame) + bytes([crc & 0xFF, (crc >> 8) & 0xFF])


def validate_crc(frame: bytes) -> bool:
    """
    Check the trailing CRC of a complete RTU frame

    Args:
        frame: Frame including the 2 CRC bytes

    Returns:
        bool: True if the CRC matches
    """
    if len(frame) < 3:
        return False
    received = frame[-2] | (frame[-1] << 8)
    return received == crc16(frame[:-2])
