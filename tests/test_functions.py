"""
Tests for modmaster.functions module - request encoding and response decoding
"""
import unittest
import os
import sys
import random

# Add parent directory to path to import modmaster
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from modmaster.exceptions import ConfigError, FrameError
from modmaster.functions import (
    ModbusRequest, pack_bits, unpack_bits, pack_registers, unpack_registers,
    build_read_request, build_write_single_coil_request,
    build_write_single_register_request, build_write_multiple_coils_request,
    build_write_multiple_registers_request, parse_read_bits_response,
    parse_read_registers_response, encode_request, decode_response
)


class TestBitPacking(unittest.TestCase):
    """Test cases for coil packing"""

    def test_unpack_lsb_first(self):
        """0xCD 0x01 unpacks to bits 0..9 LSB-first"""
        expected = [True, False, True, True, False, False, True, True, True, False]
        self.assertEqual(unpack_bits(b'\xcd\x01', 10), expected)

    def test_pack_known_value(self):
        values = [True, False, True, True, False, False, True, True, True, False]
        self.assertEqual(pack_bits(values), b'\xcd\x01')

    def test_byte_count(self):
        self.assertEqual(len(pack_bits([True] * 1)), 1)
        self.assertEqual(len(pack_bits([True] * 8)), 1)
        self.assertEqual(len(pack_bits([True] * 9)), 2)
        self.assertEqual(len(pack_bits([False] * 2008)), 251)

    def test_pack_unpack_inverse(self):
        rng = random.Random(1234)
        for length in (1, 7, 8, 9, 15, 16, 17, 255, 2000, 2008):
            values = [rng.random() < 0.5 for _ in range(length)]
            self.assertEqual(unpack_bits(pack_bits(values), length), values)

    def test_registers(self):
        self.assertEqual(pack_registers([0x000A, 0x0102]), b'\x00\x0a\x01\x02')
        self.assertEqual(unpack_registers(b'\x00\x0a\x00\x14', 2), [10, 20])


class TestRequestBuilders(unittest.TestCase):
    """Test cases for request payloads"""

    def test_read_request(self):
        self.assertEqual(build_read_request(0x006B, 3), b'\x00\x6b\x00\x03')

    def test_write_single_coil(self):
        self.assertEqual(build_write_single_coil_request(5, True), b'\x00\x05\xff\x00')
        self.assertEqual(build_write_single_coil_request(5, False), b'\x00\x05\x00\x00')

    def test_write_single_register(self):
        self.assertEqual(build_write_single_register_request(1, 3), b'\x00\x01\x00\x03')

    def test_write_multiple_coils(self):
        values = [True, False, True, True, False, False, True, True, True, False]
        self.assertEqual(build_write_multiple_coils_request(0x13, values),
                         bytes.fromhex('0013000a02cd01'))

    def test_write_multiple_registers(self):
        self.assertEqual(build_write_multiple_registers_request(1, [0x000A, 0x0102]),
                         bytes.fromhex('000100020400' '0a0102'))

    def test_out_of_range_arguments(self):
        with self.assertRaises(ConfigError):
            build_read_request(70000, 1)
        with self.assertRaises(ConfigError):
            build_write_single_register_request(0, -1)
        with self.assertRaises(ConfigError):
            build_write_multiple_registers_request(0, [1, 65536])

    def test_empty_multi_write(self):
        with self.assertRaises(ConfigError):
            build_write_multiple_coils_request(0, [])
        with self.assertRaises(ConfigError):
            build_write_multiple_registers_request(0, [])

    def test_multi_write_byte_count_limit(self):
        with self.assertRaises(ConfigError):
            build_write_multiple_registers_request(0, [0] * 128)

    def test_quantity_limits_not_checked(self):
        """The device, not the client, rejects protocol-level quantity limits"""
        self.assertEqual(build_read_request(0, 3000), b'\x00\x00\x0b\xb8')


class TestResponseParsers(unittest.TestCase):
    """Test cases for response payload decoding"""

    def test_read_coils_response(self):
        result = parse_read_bits_response(b'\x02\xcd\x01', 10)
        self.assertEqual(result, [True, False, True, True, False, False, True, True, True, False])

    def test_read_registers_response(self):
        self.assertEqual(parse_read_registers_response(b'\x04\x00\x0a\x00\x14', 2), [10, 20])

    def test_truncated_payload(self):
        with self.assertRaises(FrameError):
            parse_read_registers_response(b'\x04\x00\x0a', 2)
        with self.assertRaises(FrameError):
            parse_read_bits_response(b'', 1)

    def test_byte_count_too_small(self):
        with self.assertRaises(FrameError):
            parse_read_registers_response(b'\x02\x00\x0a', 2)
        with self.assertRaises(FrameError):
            parse_read_bits_response(b'\x01\xff', 9)


class TestDispatch(unittest.TestCase):
    """Test cases for encode_request / decode_response"""

    def test_encode_each_function(self):
        cases = [
            (ModbusRequest('read_coils', 0, 10), 0x01, b'\x00\x00\x00\x0a'),
            (ModbusRequest('read_discrete', 1, 2), 0x02, b'\x00\x01\x00\x02'),
            (ModbusRequest('read_holding', 0, 2), 0x03, b'\x00\x00\x00\x02'),
            (ModbusRequest('read_input', 8, 1), 0x04, b'\x00\x08\x00\x01'),
            (ModbusRequest('write_coil', 5, value=1), 0x05, b'\x00\x05\xff\x00'),
            (ModbusRequest('write_register', 1, value=3), 0x06, b'\x00\x01\x00\x03'),
            (ModbusRequest('write_coils', 0, values=[1, 0, 1]), 0x0F, b'\x00\x00\x00\x03\x01\x05'),
            (ModbusRequest('write_registers', 0, values=[7]), 0x10, b'\x00\x00\x00\x01\x02\x00\x07'),
        ]
        for request, function_code, payload in cases:
            self.assertEqual(encode_request(request), (function_code, payload), request.function)

    def test_encode_unknown_function(self):
        with self.assertRaises(ConfigError):
            encode_request(ModbusRequest('read_fifo'))

    def test_decode_reads(self):
        self.assertEqual(decode_response(ModbusRequest('read_discrete', 0, 3), b'\x01\x05'),
                         [True, False, True])
        self.assertEqual(decode_response(ModbusRequest('read_input', 0, 1), b'\x02\x12\x34'),
                         [0x1234])

    def test_decode_write_echo(self):
        self.assertIs(decode_response(ModbusRequest('write_coil', 5, value=1), b'\x00\x05\xff\x00'), True)
        self.assertEqual(decode_response(ModbusRequest('write_register', 1, value=3), b'\x00\x01\x00\x03'), 3)
        self.assertEqual(decode_response(ModbusRequest('write_coils', 0, values=[1, 0]), b'\x00\x00\x00\x02'),
                         [True, False])
        self.assertEqual(decode_response(ModbusRequest('write_registers', 0, values=[4, 5]), b'\x00\x00\x00\x02'),
                         [4, 5])


if __name__ == '__main__':
    unittest.main()
