"""
modmaster.config - Function codes, defaults and client configuration
"""

import os
import logging
from dataclasses import dataclass, field, fields, asdict
from typing import Any, Dict, List, Mapping, Optional

from .exceptions import ConfigError

logger = logging.getLogger(__name__)

# Function codes
FUNC_READ_COILS = 0x01
FUNC_READ_DISCRETE_INPUTS = 0x02
FUNC_READ_HOLDING_REGISTERS = 0x03
FUNC_READ_INPUT_REGISTERS = 0x04
FUNC_WRITE_SINGLE_COIL = 0x05
FUNC_WRITE_SINGLE_REGISTER = 0x06
FUNC_WRITE_MULTIPLE_COILS = 0x0F
FUNC_WRITE_MULTIPLE_REGISTERS = 0x10

# Operation names
READ_COILS = 'read_coils'
READ_DISCRETE = 'read_discrete'
READ_HOLDING = 'read_holding'
READ_INPUT = 'read_input'
WRITE_COIL = 'write_coil'
WRITE_REGISTER = 'write_register'
WRITE_COILS = 'write_coils'
WRITE_REGISTERS = 'write_registers'

FUNCTION_CODES = {
    READ_COILS: FUNC_READ_COILS,
    READ_DISCRETE: FUNC_READ_DISCRETE_INPUTS,
    READ_HOLDING: FUNC_READ_HOLDING_REGISTERS,
    READ_INPUT: FUNC_READ_INPUT_REGISTERS,
    WRITE_COIL: FUNC_WRITE_SINGLE_COIL,
    WRITE_REGISTER: FUNC_WRITE_SINGLE_REGISTER,
    WRITE_COILS: FUNC_WRITE_MULTIPLE_COILS,
    WRITE_REGISTERS: FUNC_WRITE_MULTIPLE_REGISTERS,
}

MODE_TCP = 'tcp'
MODE_RTU = 'rtu'
MODES = (MODE_TCP, MODE_RTU)

PARITIES = ('none', 'even', 'odd', 'mark', 'space')
PARITY_ALIASES = {'n': 'none', 'e': 'even', 'o': 'odd', 'm': 'mark', 's': 'space'}

# Defaults
DEFAULT_TCP_PORT = 502
DEFAULT_BAUDRATE = 9600
DEFAULT_DATA_BITS = 8
DEFAULT_STOP_BITS = 1
DEFAULT_PARITY = 'none'
DEFAULT_SLAVE_ID = 1
DEFAULT_FUNCTION = READ_HOLDING
DEFAULT_TIMEOUT_MS = 1000

MIN_SLAVE_ID = 1
MAX_SLAVE_ID = 247
MAX_UINT16 = 0xFFFF


def normalize_parity(parity: Optional[str]) -> str:
    """Map 'N'/'E'/'O' style parity flags onto the long names"""
    if parity is None or parity == '':
        return DEFAULT_PARITY
    value = str(parity).strip().lower()
    return PARITY_ALIASES.get(value, value)


def check_uint16(name: str, value: Any) -> int:
    """Raise ConfigError unless value is an int in 0..65535"""
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigError(f"{name} must be an integer, got {value!r}")
    if not 0 <= value <= MAX_UINT16:
        raise ConfigError(f"{name} out of range 0-65535: {value}")
    return value


def check_slave_id(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigError(f"slave_id must be an integer, got {value!r}")
    if not MIN_SLAVE_ID <= value <= MAX_SLAVE_ID:
        raise ConfigError(f"slave_id out of range {MIN_SLAVE_ID}-{MAX_SLAVE_ID}: {value}")
    return value


def check_function(name: Any) -> str:
    if not isinstance(name, str) or name not in FUNCTION_CODES:
        raise ConfigError(f"invalid function: {name}")
    return name


@dataclass(frozen=True)
class ModbusConfig:
    """
    Immutable client configuration.

    Exactly one transport's fields are populated: host/port for 'tcp',
    device/baud_rate/data_bits/stop_bits/parity for 'rtu'.
    """
    mode: Optional[str] = None
    # TCP
    host: Optional[str] = None
    port: int = DEFAULT_TCP_PORT
    # RTU
    device: Optional[str] = None
    baud_rate: int = DEFAULT_BAUDRATE
    data_bits: int = DEFAULT_DATA_BITS
    stop_bits: int = DEFAULT_STOP_BITS
    parity: str = DEFAULT_PARITY
    # Common
    slave_id: int = DEFAULT_SLAVE_ID
    function: str = DEFAULT_FUNCTION
    address: int = 0
    quantity: int = 1
    value: int = 0
    values: List[int] = field(default_factory=list)
    timeout: int = DEFAULT_TIMEOUT_MS

    def __post_init__(self):
        object.__setattr__(self, 'parity', normalize_parity(self.parity))
        object.__setattr__(self, 'values', list(self.values or []))
        self.validate()

    @property
    def timeout_seconds(self) -> float:
        return self.timeout / 1000.0

    @property
    def endpoint(self) -> str:
        if self.mode == MODE_TCP:
            return f"{self.host}:{self.port}"
        return f"{self.device}@{self.baud_rate}"

    def validate(self) -> None:
        """
        Validate the configuration

        Raises:
            ConfigError: on the first invalid field
        """
        if not self.mode:
            raise ConfigError("mode is required ('tcp' or 'rtu')")
        if self.mode not in MODES:
            raise ConfigError(f"invalid mode: {self.mode} (must be 'tcp' or 'rtu')")

        if self.mode == MODE_TCP:
            if not self.host:
                raise ConfigError("host is required for TCP mode")
            if self.device:
                raise ConfigError("device must not be set for TCP mode")
            if isinstance(self.port, bool) or not isinstance(self.port, int) or not 1 <= self.port <= MAX_UINT16:
                raise ConfigError(f"invalid TCP port: {self.port}")
        else:
            if not self.device:
                raise ConfigError("device is required for RTU mode")
            if self.host:
                raise ConfigError("host must not be set for RTU mode")
            if not isinstance(self.baud_rate, int) or self.baud_rate <= 0:
                raise ConfigError(f"invalid baud rate: {self.baud_rate}")
            if self.data_bits not in (5, 6, 7, 8):
                raise ConfigError(f"invalid data bits: {self.data_bits}")
            if self.stop_bits not in (1, 2):
                raise ConfigError(f"invalid stop bits: {self.stop_bits}")
            if self.parity not in PARITIES:
                raise ConfigError(f"invalid parity: {self.parity}")

        check_slave_id(self.slave_id)
        check_function(self.function)
        check_uint16('address', self.address)
        check_uint16('quantity', self.quantity)
        if isinstance(self.timeout, bool) or not isinstance(self.timeout, (int, float)) or self.timeout <= 0:
            raise ConfigError(f"invalid timeout: {self.timeout}")

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'ModbusConfig':
        """
        Build a config from a plain mapping (e.g. a node property dict).

        Keys that are not config fields are ignored; None values fall back
        to the field defaults.
        """
        if data is None:
            raise ConfigError("configuration is required")
        known = {f.name for f in fields(cls)}
        kwargs = {key: value for key, value in data.items() if key in known and value is not None}
        try:
            return cls(**kwargs)
        except TypeError as e:
            raise ConfigError(f"invalid Modbus config: {e}")

    @classmethod
    def from_env(cls, **overrides) -> 'ModbusConfig':
        """
        Build a config from MODBUS_* environment variables

        Args:
            **overrides: Explicit values taking precedence over the environment

        Returns:
            ModbusConfig
        """
        def env_int(name):
            raw = os.getenv(name)
            if raw is None or raw == '':
                return None
            try:
                return int(raw)
            except ValueError:
                raise ConfigError(f"{name} must be an integer, got {raw!r}")

        mode = overrides.get('mode') or os.getenv('MODBUS_MODE')
        data = {
            'mode': mode,
            'slave_id': env_int('MODBUS_UNIT_ID'),
            'timeout': env_int('MODBUS_TIMEOUT_MS'),
            'function': os.getenv('MODBUS_FUNCTION'),
        }
        if mode == MODE_TCP:
            data.update({
                'host': os.getenv('MODBUS_HOST'),
                'port': env_int('MODBUS_TCP_PORT'),
            })
        elif mode == MODE_RTU:
            data.update({
                'device': os.getenv('MODBUS_PORT'),
                'baud_rate': env_int('MODBUS_BAUDRATE'),
                'data_bits': env_int('MODBUS_DATA_BITS'),
                'stop_bits': env_int('MODBUS_STOP_BITS'),
                'parity': os.getenv('MODBUS_PARITY'),
            })
        data.update({key: value for key, value in overrides.items() if value is not None})

        logger.debug(f"Configuration loaded from environment: {data}")
        return cls.from_dict(data)
