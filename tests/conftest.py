"""
pytest configuration: isolate tests from MODBUS_* settings in the environment
"""

import os

import pytest


@pytest.fixture(autouse=True)
def clean_modbus_env(monkeypatch):
    """Remove MODBUS_* variables possibly loaded from a local .env"""
    for name in list(os.environ):
        if name.startswith('MODBUS_'):
            monkeypatch.delenv(name, raising=False)
