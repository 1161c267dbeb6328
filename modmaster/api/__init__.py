"""
modmaster.api - Outer surfaces for the Modbus client
"""

from .rest import create_rest_app
from .cmd import execute_command

__all__ = [
    'create_rest_app',
    'execute_command'
]
