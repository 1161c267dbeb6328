"""
modmaster - Main entry point for running as a module
"""

import os
import sys
import json
import argparse
import logging

from . import load_env_files
from .api import create_rest_app, execute_command
from .client import ModbusClient
from .config import FUNCTION_CODES, MODES
from .exceptions import ModbusError

# Configure logging
logger = logging.getLogger(__name__)


def add_connection_arguments(parser):
    """Connection options, each overriding the MODBUS_* environment"""
    parser.add_argument('--mode', choices=MODES, help='Transport mode')
    parser.add_argument('--host', help='Modbus/TCP host')
    parser.add_argument('--tcp-port', type=int, help='Modbus/TCP port (default: 502)')
    parser.add_argument('--device', help='Serial device for RTU, e.g. /dev/ttyUSB0')
    parser.add_argument('--baudrate', type=int, help='Baud rate')
    parser.add_argument('--parity', help='Parity: none, even, odd (or N, E, O)')
    parser.add_argument('--timeout', type=int, help='Response timeout in milliseconds')
    parser.add_argument('--verbose', action='store_true', help='Enable verbose output')


def connection_overrides(args) -> dict:
    return {
        'mode': args.mode,
        'host': args.host,
        'port': args.tcp_port,
        'device': args.device,
        'baud_rate': args.baudrate,
        'parity': args.parity,
        'timeout': args.timeout,
    }


def main():
    """Main entry point for the modmaster module"""
    # Load environment variables
    load_env_files()

    # Parse command line arguments
    parser = argparse.ArgumentParser(description='modmaster - Modbus master for TCP and RTU')
    subparsers = parser.add_subparsers(dest='command', help='Command to run')

    # Direct command execution
    cmd_parser = subparsers.add_parser('cmd', help='Execute one Modbus operation')
    add_connection_arguments(cmd_parser)
    cmd_parser.add_argument('function', choices=sorted(FUNCTION_CODES), help='Operation to perform')
    cmd_parser.add_argument('--address', type=int, help='Starting address')
    cmd_parser.add_argument('--quantity', type=int, help='Number of coils/registers to read')
    cmd_parser.add_argument('--value', type=int, help='Value for write_coil / write_register')
    cmd_parser.add_argument('--values', type=int, nargs='+', help='Values for write_coils / write_registers')
    cmd_parser.add_argument('--slave-id', type=int, help='Slave/unit id (1-247)')

    # REST API command
    rest_parser = subparsers.add_parser('rest', help='Run REST API server')
    add_connection_arguments(rest_parser)
    rest_parser.add_argument('--bind', default='0.0.0.0', help='Host to bind the server')
    rest_parser.add_argument('--port', type=int, default=int(os.environ.get('MODMASTER_API_PORT', 5000)),
                             help='Port to bind the server')
    rest_parser.add_argument('--debug', action='store_true', help='Enable debug mode')

    args = parser.parse_args()

    if getattr(args, 'verbose', False):
        logging.getLogger('modmaster').setLevel(logging.DEBUG)

    if args.command == 'cmd':
        success, response = execute_command(
            function=args.function,
            address=args.address,
            quantity=args.quantity,
            value=args.value,
            values=args.values,
            slave_id=args.slave_id,
            **connection_overrides(args)
        )

        # Output response as JSON
        print(json.dumps(response, indent=2))

        # Exit with appropriate status code
        sys.exit(0 if success else 1)
    elif args.command == 'rest':
        overrides = {k: v for k, v in connection_overrides(args).items() if v is not None}
        try:
            client = ModbusClient(None, **overrides)
        except ModbusError as e:
            print(f"Error: {e}")
            sys.exit(1)
        app = create_rest_app(client=client, debug=args.debug)
        try:
            app.run(host=args.bind, port=args.port, debug=args.debug)
        finally:
            client.close()
    else:
        # Default to help if no command specified
        parser.print_help()


if __name__ == '__main__':
    main()
