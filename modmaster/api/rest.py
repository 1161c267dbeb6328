"""
modmaster.api.rest - REST API implementation for Modbus communication
"""

import logging
from typing import Any, Mapping, Optional, Union

from flask import Flask, request, jsonify

from ..client import ModbusClient
from ..config import (
    ModbusConfig,
    READ_COILS, READ_DISCRETE, READ_HOLDING, READ_INPUT, WRITE_COIL, WRITE_REGISTER
)
from ..exceptions import ConfigError, ModbusError, ModbusException, ModbusTimeoutError

# Configure logging
logger = logging.getLogger(__name__)

API_DOCS = [
    {'path': '/api/status', 'method': 'GET', 'description': 'Get client configuration and connection status'},
    {'path': '/api/execute', 'method': 'POST', 'description': 'Execute a Modbus operation',
     'body': {'function': 'str (optional)', 'address': 'int (optional)', 'quantity': 'int (optional)',
              'value': 'int (optional)', 'values': 'list[int] (optional)', 'slave_id': 'int (optional)'}},
    {'path': '/api/coils/<address>/<count>', 'method': 'GET', 'description': 'Read coils',
     'params': ['unit (query, optional)']},
    {'path': '/api/coils/<address>', 'method': 'POST', 'description': 'Write single coil',
     'body': {'value': 'boolean/int/string', 'unit': 'int (optional)'}},
    {'path': '/api/discrete_inputs/<address>/<count>', 'method': 'GET', 'description': 'Read discrete inputs',
     'params': ['unit (query, optional)']},
    {'path': '/api/holding_registers/<address>/<count>', 'method': 'GET', 'description': 'Read holding registers',
     'params': ['unit (query, optional)']},
    {'path': '/api/holding_registers/<address>', 'method': 'POST', 'description': 'Write holding register',
     'body': {'value': 'int', 'unit': 'int (optional)'}},
    {'path': '/api/input_registers/<address>/<count>', 'method': 'GET', 'description': 'Read input registers',
     'params': ['unit (query, optional)']},
]


def error_response(error: ModbusError):
    """Map a ModbusError onto a JSON body and HTTP status"""
    body = {'error': str(error), 'type': type(error).__name__}
    body.update({key: value for key, value in error.context.items() if value is not None})
    if isinstance(error, ConfigError):
        return jsonify(body), 400
    if isinstance(error, ModbusException):
        body['exception_code'] = error.exception_code
        body['description'] = error.description
        return jsonify(body), 502
    if isinstance(error, ModbusTimeoutError):
        return jsonify(body), 504
    return jsonify(body), 503


def parse_coil_value(value: Any) -> bool:
    # Accept boolean, integer, or string
    if isinstance(value, str):
        return value.strip().lower() in ('1', 'true', 'on')
    return bool(value)


def create_rest_app(config: Union[ModbusConfig, Mapping[str, Any], None] = None,
                    client: Optional[ModbusClient] = None,
                    debug: bool = False) -> Flask:
    """
    Create Flask application for REST API

    Args:
        config: Client configuration (default: from environment)
        client: Pre-built client, takes precedence over `config`
        debug: Enable debug mode (default: False)

    Returns:
        Flask application
    """
    app = Flask(__name__)

    # Configure logging
    if not debug:
        logging.getLogger('werkzeug').setLevel(logging.ERROR)

    modbus_client = client if client is not None else ModbusClient(config)
    app.config['MODBUS_CLIENT'] = modbus_client

    @app.errorhandler(ModbusError)
    def handle_modbus_error(error):
        logger.warning(f"Request {request.path} failed: {error}")
        return error_response(error)

    @app.after_request
    def add_cors_headers(response):
        """Add CORS headers to allow cross-origin requests"""
        response.headers['Access-Control-Allow-Origin'] = '*'
        response.headers['Access-Control-Allow-Methods'] = 'GET, POST, OPTIONS'
        response.headers['Access-Control-Allow-Headers'] = 'Content-Type'
        return response

    def read_result(function, address, count):
        unit = request.args.get('unit', default=None, type=int)
        result = modbus_client.execute(function, address=address, quantity=count, slave_id=unit)
        return jsonify({
            'address': address,
            'count': count,
            'values': result.result,
            'values_dict': {str(i): val for i, val in enumerate(result.result, address)},
            'unit': result.slave_id
        })

    @app.route('/api/status', methods=['GET'])
    def get_status():
        """Get client configuration and connection status"""
        config = modbus_client.config
        return jsonify({
            'status': 'connected' if modbus_client.is_connected() else 'disconnected',
            'mode': config.mode,
            'endpoint': config.endpoint,
            'slave_id': config.slave_id,
            'timeout': config.timeout
        })

    @app.route('/api/execute', methods=['POST'])
    def execute():
        """Execute with a per-call override payload"""
        data = request.get_json(silent=True)
        if data is not None and not isinstance(data, dict):
            return jsonify({'error': 'Invalid JSON data'}), 400
        return jsonify(modbus_client.execute_message(data))

    @app.route('/api/coils/<int:address>/<int:count>', methods=['GET'])
    def read_coils(address, count):
        """Read multiple coils"""
        return read_result(READ_COILS, address, count)

    @app.route('/api/discrete_inputs/<int:address>/<int:count>', methods=['GET'])
    def read_discrete_inputs(address, count):
        """Read discrete inputs"""
        return read_result(READ_DISCRETE, address, count)

    @app.route('/api/holding_registers/<int:address>/<int:count>', methods=['GET'])
    def read_holding_registers(address, count):
        """Read holding registers"""
        response = read_result(READ_HOLDING, address, count)
        data = response.get_json()
        data['hex_values'] = [f"0x{val:04X}" for val in data['values']]
        return jsonify(data)

    @app.route('/api/input_registers/<int:address>/<int:count>', methods=['GET'])
    def read_input_registers(address, count):
        """Read input registers"""
        response = read_result(READ_INPUT, address, count)
        data = response.get_json()
        data['hex_values'] = [f"0x{val:04X}" for val in data['values']]
        return jsonify(data)

    @app.route('/api/coils/<int:address>', methods=['POST'])
    def write_coil(address):
        """Write single coil"""
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            return jsonify({'error': 'Invalid JSON data'}), 400
        if 'value' not in data:
            return jsonify({'error': 'Missing value parameter'}), 400

        value = parse_coil_value(data['value'])
        result = modbus_client.execute(WRITE_COIL, address=address, value=int(value),
                                       slave_id=data.get('unit'))
        return jsonify({
            'success': True,
            'address': address,
            'value': result.result,
            'value_display': 'ON' if result.result else 'OFF',
            'unit': result.slave_id
        })

    @app.route('/api/holding_registers/<int:address>', methods=['POST'])
    def write_holding_register(address):
        """Write holding register"""
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            return jsonify({'error': 'Invalid JSON data'}), 400
        if 'value' not in data:
            return jsonify({'error': 'Missing value parameter'}), 400
        try:
            value = int(data['value'])
        except (TypeError, ValueError):
            return jsonify({'error': f"Invalid value: {data['value']!r}"}), 400

        result = modbus_client.execute(WRITE_REGISTER, address=address, value=value,
                                       slave_id=data.get('unit'))
        return jsonify({
            'success': True,
            'address': address,
            'value': result.result,
            'value_hex': f"0x{result.result:04X}",
            'unit': result.slave_id
        })

    @app.route('/api/docs', methods=['GET'])
    def get_docs():
        """Get API documentation"""
        return jsonify({'endpoints': API_DOCS})

    return app
