"""
modmaster Client - Modbus master orchestration over TCP or RTU
"""

import logging
import time
from dataclasses import dataclass, asdict, replace
from threading import Lock
from typing import Any, Dict, List, Mapping, Optional, Union

from .config import (
    MODE_RTU, MODE_TCP, ModbusConfig,
    READ_COILS, READ_DISCRETE, READ_HOLDING, READ_INPUT,
    WRITE_COIL, WRITE_REGISTER, WRITE_COILS, WRITE_REGISTERS,
    check_function, check_slave_id
)
from .exceptions import ConfigError, FrameError, ModbusError
from .framing import Framer, ResponseFrame, create_framer, raise_for_exception
from .functions import Decoded, ModbusRequest, decode_response, encode_request
from .transport import Transport, create_transport

logger = logging.getLogger(__name__)


@dataclass
class ModbusResult:
    """Outcome of one successful call"""
    function: str
    address: int
    quantity: int
    slave_id: int
    result: Decoded
    mode: str
    timestamp: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _as_int(name: str, value: Any) -> int:
    # JSON numbers may arrive as floats or strings
    if isinstance(value, bool):
        return int(value)
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{name} must be a number, got {value!r}")
    if not number.is_integer():
        raise ConfigError(f"{name} must be an integer, got {value!r}")
    return int(number)


class ModbusClient:
    """
    Modbus master bound to exactly one transport endpoint.

    All calls are serialized by one lock held for the full round trip, so at
    most one request is in flight per client.
    """

    def __init__(self,
                 config: Union[ModbusConfig, Mapping[str, Any], None] = None,
                 transport: Optional[Transport] = None,
                 **overrides):
        """
        Initialize the client

        Args:
            config: ModbusConfig, a plain mapping of config fields, or None
                to read MODBUS_* environment variables
            transport: Pre-built transport (default: built from config)
            **overrides: Config fields taking precedence over `config`

        Raises:
            ConfigError: Invalid configuration
        """
        if config is None:
            config = ModbusConfig.from_env(**overrides)
        elif isinstance(config, ModbusConfig):
            if overrides:
                try:
                    config = replace(config, **overrides)
                except TypeError as e:
                    raise ConfigError(f"invalid Modbus config: {e}")
        else:
            config = ModbusConfig.from_dict({**config, **overrides})

        self.config = config
        self.framer: Framer = create_framer(config.mode)
        self.transport: Transport = transport if transport is not None else create_transport(config)
        self.lock = Lock()

        logger.info(f"Initializing Modbus {config.mode.upper()} client for {config.endpoint}, "
                    f"slave {config.slave_id}, timeout {config.timeout}ms")

    @property
    def mode(self) -> str:
        return self.config.mode

    def is_connected(self) -> bool:
        return self.transport.is_open()

    def connect(self) -> None:
        """Open the transport now instead of on the first call"""
        with self.lock:
            self.transport.ensure_open()

    def close(self) -> None:
        with self.lock:
            self.transport.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False  # Propagate exceptions

    def build_request(self, function: Optional[str] = None,
                      address: Optional[int] = None,
                      quantity: Optional[int] = None,
                      value: Optional[int] = None,
                      values: Optional[List[int]] = None,
                      slave_id: Optional[int] = None) -> ModbusRequest:
        """Merge per-call parameters over the configured defaults"""
        config = self.config
        request = ModbusRequest(
            function=check_function(function if function is not None else config.function),
            address=config.address if address is None else address,
            quantity=config.quantity if quantity is None else quantity,
            value=config.value if value is None else value,
            values=list(config.values if values is None else values),
            slave_id=check_slave_id(config.slave_id if slave_id is None else slave_id)
        )
        if request.function == WRITE_COILS or request.function == WRITE_REGISTERS:
            request.quantity = len(request.values)
        elif not request.is_read:
            request.quantity = 1
        return request

    def execute(self, function: Optional[str] = None,
                address: Optional[int] = None,
                quantity: Optional[int] = None,
                value: Optional[int] = None,
                values: Optional[List[int]] = None,
                slave_id: Optional[int] = None) -> ModbusResult:
        """
        Perform one Modbus operation

        Args:
            function: Operation name (default: configured function)
            address: Starting address (default: configured address)
            quantity: Number of coils/registers to read
            value: Value for write_coil / write_register
            values: Values for write_coils / write_registers
            slave_id: Slave id for this call only

        Returns:
            ModbusResult

        Raises:
            ModbusError: Any failure, with function/address/slave_id context
        """
        try:
            request = self.build_request(function, address, quantity, value, values, slave_id)
        except ModbusError as e:
            e.set_context(function or self.config.function, address, slave_id or self.config.slave_id)
            raise

        with self.lock:
            try:
                result = self._transact(request)
            except ModbusError as e:
                e.set_context(request.function, request.address, request.slave_id)
                logger.error(f"Modbus {request.function} failed: {e}")
                raise

        return ModbusResult(
            function=request.function,
            address=request.address,
            quantity=request.quantity,
            slave_id=request.slave_id,
            result=result,
            mode=self.config.mode,
            timestamp=int(time.time())
        )

    def _transact(self, request: ModbusRequest) -> Decoded:
        # Caller holds self.lock
        function_code, payload = encode_request(request)
        self.transport.ensure_open()

        transaction_id = None
        if self.config.mode == MODE_TCP:
            transaction_id = self.transport.next_transaction_id()
        frame = self.framer.build(request.slave_id, function_code, payload, transaction_id or 0)

        raw = self.transport.send_and_receive(frame, self.config.timeout_seconds)
        try:
            response = self.framer.parse(raw, transaction_id)
            self._check_response(request, function_code, response)
            raise_for_exception(response)
            return decode_response(request, response.payload)
        except FrameError:
            # Force re-synchronisation on the next call
            self.transport.close()
            raise

    def _check_response(self, request: ModbusRequest, function_code: int,
                        response: ResponseFrame) -> None:
        if self.config.mode == MODE_RTU and response.slave_id != request.slave_id:
            raise FrameError(f"Slave ID mismatch: expected {request.slave_id}, got {response.slave_id}")
        # Exception responses echo the request function code with bit 0x80 set
        if response.function_code & 0x7F != function_code:
            raise FrameError(
                f"Function code mismatch: expected 0x{function_code:02X}, got 0x{response.function_code:02X}"
            )

    def execute_message(self, payload: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
        """
        Execute with a per-call override payload

        Args:
            payload: Optional 'function', 'address', 'quantity', 'value',
                'values' and 'slave_id' keys

        Returns:
            dict: Result payload (function, address, quantity, slave_id,
                result, mode, timestamp)
        """
        payload = payload or {}
        overrides = {}
        for key in ('address', 'quantity', 'value', 'slave_id'):
            if payload.get(key) is not None:
                overrides[key] = _as_int(key, payload[key])
        if payload.get('values') is not None:
            if not isinstance(payload['values'], (list, tuple)):
                raise ConfigError(f"values must be a list, got {payload['values']!r}")
            overrides['values'] = [_as_int('values', v) for v in payload['values']]
        if payload.get('function') is not None:
            overrides['function'] = payload['function']

        return self.execute(**overrides).to_dict()

    def read_coils(self, address: int, count: int, unit: Optional[int] = None) -> List[bool]:
        """Read coils (0x01)"""
        return self.execute(READ_COILS, address=address, quantity=count, slave_id=unit).result

    def read_discrete_inputs(self, address: int, count: int, unit: Optional[int] = None) -> List[bool]:
        """Read discrete inputs (0x02)"""
        return self.execute(READ_DISCRETE, address=address, quantity=count, slave_id=unit).result

    def read_holding_registers(self, address: int, count: int, unit: Optional[int] = None) -> List[int]:
        """Read holding registers (0x03)"""
        return self.execute(READ_HOLDING, address=address, quantity=count, slave_id=unit).result

    def read_input_registers(self, address: int, count: int, unit: Optional[int] = None) -> List[int]:
        """Read input registers (0x04)"""
        return self.execute(READ_INPUT, address=address, quantity=count, slave_id=unit).result

    def write_coil(self, address: int, value: bool, unit: Optional[int] = None) -> bool:
        """Write single coil (0x05)"""
        return self.execute(WRITE_COIL, address=address, value=int(bool(value)), slave_id=unit).result

    def write_register(self, address: int, value: int, unit: Optional[int] = None) -> int:
        """Write single holding register (0x06)"""
        return self.execute(WRITE_REGISTER, address=address, value=value, slave_id=unit).result

    def write_coils(self, address: int, values: List[bool], unit: Optional[int] = None) -> List[bool]:
        """Write multiple coils (0x0F)"""
        return self.execute(WRITE_COILS, address=address,
                            values=[int(bool(v)) for v in values], slave_id=unit).result

    def write_registers(self, address: int, values: List[int], unit: Optional[int] = None) -> List[int]:
        """Write multiple holding registers (0x10)"""
        return self.execute(WRITE_REGISTERS, address=address, values=list(values), slave_id=unit).result
