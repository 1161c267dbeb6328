"""
Tests for modmaster.config module
"""
import unittest
from unittest.mock import patch
import os
import sys
import dataclasses

# Add parent directory to path to import modmaster
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from modmaster.config import ModbusConfig, FUNCTION_CODES, normalize_parity
from modmaster.exceptions import ConfigError


class TestModbusConfig(unittest.TestCase):
    """Test cases for configuration validation"""

    def test_tcp_defaults(self):
        config = ModbusConfig(mode='tcp', host='192.168.1.100')
        self.assertEqual(config.port, 502)
        self.assertEqual(config.slave_id, 1)
        self.assertEqual(config.function, 'read_holding')
        self.assertEqual(config.address, 0)
        self.assertEqual(config.quantity, 1)
        self.assertEqual(config.timeout, 1000)
        self.assertEqual(config.timeout_seconds, 1.0)
        self.assertEqual(config.endpoint, '192.168.1.100:502')

    def test_rtu_defaults(self):
        config = ModbusConfig(mode='rtu', device='/dev/ttyUSB0')
        self.assertEqual(config.baud_rate, 9600)
        self.assertEqual(config.data_bits, 8)
        self.assertEqual(config.stop_bits, 1)
        self.assertEqual(config.parity, 'none')

    def test_mode_required(self):
        with self.assertRaises(ConfigError):
            ModbusConfig(host='localhost')
        with self.assertRaises(ConfigError):
            ModbusConfig(mode='ascii', host='localhost')

    def test_transport_fields(self):
        with self.assertRaises(ConfigError):
            ModbusConfig(mode='tcp')
        with self.assertRaises(ConfigError):
            ModbusConfig(mode='rtu')
        with self.assertRaises(ConfigError):
            ModbusConfig(mode='tcp', host='localhost', device='/dev/ttyUSB0')
        with self.assertRaises(ConfigError):
            ModbusConfig(mode='rtu', device='/dev/ttyUSB0', host='localhost')

    def test_serial_settings(self):
        with self.assertRaises(ConfigError):
            ModbusConfig(mode='rtu', device='/dev/ttyUSB0', data_bits=9)
        with self.assertRaises(ConfigError):
            ModbusConfig(mode='rtu', device='/dev/ttyUSB0', stop_bits=3)
        with self.assertRaises(ConfigError):
            ModbusConfig(mode='rtu', device='/dev/ttyUSB0', parity='x')
        with self.assertRaises(ConfigError):
            ModbusConfig(mode='rtu', device='/dev/ttyUSB0', baud_rate=0)

    def test_parity_aliases(self):
        self.assertEqual(normalize_parity('E'), 'even')
        self.assertEqual(normalize_parity('o'), 'odd')
        self.assertEqual(normalize_parity(None), 'none')
        config = ModbusConfig(mode='rtu', device='/dev/ttyUSB0', parity='N')
        self.assertEqual(config.parity, 'none')

    def test_slave_id_range(self):
        for slave_id in (0, 248, -1):
            with self.assertRaises(ConfigError):
                ModbusConfig(mode='tcp', host='localhost', slave_id=slave_id)
        self.assertEqual(ModbusConfig(mode='tcp', host='localhost', slave_id=247).slave_id, 247)

    def test_function_names(self):
        for name in FUNCTION_CODES:
            ModbusConfig(mode='tcp', host='localhost', function=name)
        with self.assertRaises(ConfigError):
            ModbusConfig(mode='tcp', host='localhost', function='read_fifo')

    def test_address_and_timeout(self):
        with self.assertRaises(ConfigError):
            ModbusConfig(mode='tcp', host='localhost', address=65536)
        with self.assertRaises(ConfigError):
            ModbusConfig(mode='tcp', host='localhost', timeout=0)

    def test_immutable(self):
        config = ModbusConfig(mode='tcp', host='localhost')
        with self.assertRaises(dataclasses.FrozenInstanceError):
            config.host = 'other'

    def test_from_dict_ignores_unknown_keys(self):
        config = ModbusConfig.from_dict({
            'mode': 'rtu', 'device': '/dev/ttyUSB0', 'baud_rate': 19200,
            'parity': 'even', 'name': 'Modbus node', 'slave_id': None
        })
        self.assertEqual(config.baud_rate, 19200)
        self.assertEqual(config.parity, 'even')
        self.assertEqual(config.slave_id, 1)

    def test_from_dict_bad_type(self):
        with self.assertRaises(ConfigError):
            ModbusConfig.from_dict({'mode': 'tcp', 'host': 'localhost', 'port': '502'})

    @patch.dict(os.environ, {
        'MODBUS_MODE': 'rtu',
        'MODBUS_PORT': '/dev/ttyACM0',
        'MODBUS_BAUDRATE': '38400',
        'MODBUS_PARITY': 'E',
        'MODBUS_UNIT_ID': '3',
        'MODBUS_TIMEOUT_MS': '500',
        'MODBUS_HOST': 'ignored-for-rtu'
    })
    def test_from_env_rtu(self):
        config = ModbusConfig.from_env()
        self.assertEqual(config.mode, 'rtu')
        self.assertEqual(config.device, '/dev/ttyACM0')
        self.assertEqual(config.baud_rate, 38400)
        self.assertEqual(config.parity, 'even')
        self.assertEqual(config.slave_id, 3)
        self.assertEqual(config.timeout, 500)
        self.assertIsNone(config.host)

    @patch.dict(os.environ, {'MODBUS_MODE': 'rtu', 'MODBUS_PORT': '/dev/ttyACM0'})
    def test_from_env_overrides(self):
        config = ModbusConfig.from_env(mode='tcp', host='10.0.0.5', port=1502)
        self.assertEqual(config.mode, 'tcp')
        self.assertEqual(config.endpoint, '10.0.0.5:1502')

    @patch.dict(os.environ, {'MODBUS_MODE': 'tcp', 'MODBUS_HOST': 'plc', 'MODBUS_TCP_PORT': 'abc'})
    def test_from_env_bad_integer(self):
        with self.assertRaises(ConfigError):
            ModbusConfig.from_env()


if __name__ == '__main__':
    unittest.main()
