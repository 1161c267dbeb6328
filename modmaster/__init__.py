"""
modmaster - Modbus master for Modbus/TCP and Modbus RTU
"""

import os
import logging
from pathlib import Path
from dotenv import load_dotenv

__version__ = '0.2.0'

# Configure logging
logging.basicConfig(
    level=os.environ.get('LOG_LEVEL', 'INFO'),
    format=os.environ.get(
        'LOG_FORMAT',
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
)
logger = logging.getLogger(__name__)


def load_env_files():
    """Load environment variables from .env files in project directories."""
    # Try to load from current directory
    if load_dotenv(dotenv_path='.env'):
        logger.debug('Loaded .env from current directory')

    # Try to load from project root
    root_env = Path(__file__).parent.parent / '.env'
    if root_env.exists() and load_dotenv(dotenv_path=root_env):
        logger.debug(f'Loaded .env from {root_env}')


# Load environment variables
load_env_files()

# Import components after environment is configured
from modmaster.config import ModbusConfig  # noqa: E402
from modmaster.client import ModbusClient, ModbusResult  # noqa: E402
from modmaster.crc import crc16  # noqa: E402
from modmaster.exceptions import (  # noqa: E402
    ModbusError, ConfigError, ConnError, ModbusIOError,
    ModbusTimeoutError, FrameError, ModbusException
)
from modmaster.api import create_rest_app, execute_command  # noqa: E402

__all__ = [
    'ModbusClient',
    'ModbusConfig',
    'ModbusResult',
    'crc16',
    'ModbusError',
    'ConfigError',
    'ConnError',
    'ModbusIOError',
    'ModbusTimeoutError',
    'FrameError',
    'ModbusException',
    'create_rest_app',
    'execute_command',
    'load_env_files'
]
