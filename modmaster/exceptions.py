"""
modmaster.exceptions - Error taxonomy for Modbus master operations
"""

from typing import Optional

# Exception codes
EXCEPTION_ILLEGAL_FUNCTION = 0x01
EXCEPTION_ILLEGAL_ADDRESS = 0x02
EXCEPTION_ILLEGAL_VALUE = 0x03
EXCEPTION_DEVICE_FAILURE = 0x04
EXCEPTION_ACKNOWLEDGE = 0x05
EXCEPTION_DEVICE_BUSY = 0x06
EXCEPTION_NEGATIVE_ACKNOWLEDGE = 0x07
EXCEPTION_MEMORY_PARITY_ERROR = 0x08
EXCEPTION_GATEWAY_PATH_UNAVAILABLE = 0x0A
EXCEPTION_GATEWAY_TARGET_FAILED = 0x0B

# Exception code descriptions
EXCEPTION_DESCRIPTIONS = {
    EXCEPTION_ILLEGAL_FUNCTION: "Illegal function code",
    EXCEPTION_ILLEGAL_ADDRESS: "Illegal data address",
    EXCEPTION_ILLEGAL_VALUE: "Illegal data value",
    EXCEPTION_DEVICE_FAILURE: "Device failure",
    EXCEPTION_ACKNOWLEDGE: "Acknowledge",
    EXCEPTION_DEVICE_BUSY: "Device busy",
    EXCEPTION_NEGATIVE_ACKNOWLEDGE: "Negative acknowledge",
    EXCEPTION_MEMORY_PARITY_ERROR: "Memory parity error",
    EXCEPTION_GATEWAY_PATH_UNAVAILABLE: "Gateway path unavailable",
    EXCEPTION_GATEWAY_TARGET_FAILED: "Gateway target device failed to respond"
}


class ModbusError(Exception):
    """
    Base class for every error raised by modmaster.

    Carries the operation context (function, address, slave id) so callers
    can log or retry with full information.
    """

    def __init__(self, message: str,
                 function: Optional[str] = None,
                 address: Optional[int] = None,
                 slave_id: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.function = function
        self.address = address
        self.slave_id = slave_id

    def set_context(self, function: Optional[str] = None,
                    address: Optional[int] = None,
                    slave_id: Optional[int] = None) -> 'ModbusError':
        """Fill in operation context that is not already set"""
        if self.function is None:
            self.function = function
        if self.address is None:
            self.address = address
        if self.slave_id is None:
            self.slave_id = slave_id
        return self

    @property
    def context(self) -> dict:
        return {
            'function': self.function,
            'address': self.address,
            'slave_id': self.slave_id
        }

    def __str__(self):
        parts = [f"{key}={value}" for key, value in self.context.items() if value is not None]
        if not parts:
            return self.message
        return f"{self.message} ({', '.join(parts)})"


class ConfigError(ModbusError, ValueError):
    """Missing or invalid configuration or request parameters"""


class ConnError(ModbusError):
    """Transport could not be opened (dial or serial open failure)"""


class ModbusIOError(ModbusError):
    """Write or read failed in the middle of a transaction"""


class ModbusTimeoutError(ModbusIOError, TimeoutError):
    """No response within the configured window"""


class FrameError(ModbusError):
    """Malformed, truncated or mismatching response frame"""


class ModbusException(ModbusError):
    """
    Well-framed exception response returned by the device.

    Args:
        function_code: Function code of the rejected request (error bit cleared)
        exception_code: 1-byte exception code, passed through unmodified
    """

    def __init__(self, function_code: int, exception_code: int, **context):
        self.function_code = function_code
        self.exception_code = exception_code
        self.description = EXCEPTION_DESCRIPTIONS.get(
            exception_code, f"Unknown exception code: {exception_code}"
        )
        super().__init__(
            f"Modbus exception 0x{exception_code:02X} for function 0x{function_code:02X}: "
            f"{self.description}",
            **context
        )
