"""
Infrastructure layer package.

Contains all I/O and external system integrations:
- SQL Server connectivity and execution (sql/)
- PowerShell remoting (psremote/)
- SMO assembly probing (smo/)
- Query source resolution and object scripting
- Configuration loading and logging setup
"""

from dbaquery.infrastructure.config_loader import ConfigLoader, Settings
from dbaquery.infrastructure.logging_config import setup_logging

__all__ = [
    "ConfigLoader",
    "Settings",
    "setup_logging",
]
