"""
modmaster.api.cmd - One-shot command execution
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from ..client import ModbusClient
from ..config import ModbusConfig
from ..exceptions import ModbusError, ModbusException

logger = logging.getLogger(__name__)


def execute_command(function: str,
                    address: Optional[int] = None,
                    quantity: Optional[int] = None,
                    value: Optional[int] = None,
                    values: Optional[List[int]] = None,
                    slave_id: Optional[int] = None,
                    config: Optional[ModbusConfig] = None,
                    **connection) -> Tuple[bool, Dict[str, Any]]:
    """
    Run a single Modbus operation and close the connection afterwards

    Args:
        function: Operation name, e.g. 'read_holding'
        address, quantity, value, values, slave_id: Per-call parameters
        config: Client configuration (default: environment + `connection`)
        **connection: Config overrides such as mode, host, device, timeout

    Returns:
        Tuple of (success, response dict)
    """
    try:
        client = ModbusClient(config, **{k: v for k, v in connection.items() if v is not None})
    except ModbusError as e:
        logger.error(f"Invalid configuration: {e}")
        return False, {'error': str(e), 'type': type(e).__name__}

    with client:
        try:
            result = client.execute(function, address=address, quantity=quantity,
                                    value=value, values=values, slave_id=slave_id)
        except ModbusError as e:
            response = {'error': str(e), 'type': type(e).__name__}
            response.update({key: val for key, val in e.context.items() if val is not None})
            if isinstance(e, ModbusException):
                response['exception_code'] = e.exception_code
            return False, response

    return True, result.to_dict()
