"""
yumdb - primary_db storage for YUM/RPM repository metadata

Copyright (c) 2025 Deepgram

Licensed under the MIT License. See LICENSE file for details.
"""

from .errors import YumDBError
from .package import Dependency, DepFlag, PackageDescriptor, PackageEntry
from .primarydb import PrimaryDatabase, compress_database
from .metadata import PrimaryMetadata, read_primary_metadata, write_primary_metadata

__all__ = [
    'Dependency',
    'DepFlag',
    'PackageDescriptor',
    'PackageEntry',
    'PrimaryDatabase',
    'PrimaryMetadata',
    'YumDBError',
    'compress_database',
    'read_primary_metadata',
    'write_primary_metadata',
]


class Colors:
    """ANSI color codes for terminal output"""
    RED = '\033[91m'
    GREEN = '\033[92m'
    YELLOW = '\033[93m'
    BLUE = '\033[94m'
    BOLD = '\033[1m'
    RESET = '\033[0m'

    @staticmethod
    def error(msg):
        return f"{Colors.RED}{msg}{Colors.RESET}"

    @staticmethod
    def success(msg):
        return f"{Colors.GREEN}{msg}{Colors.RESET}"

    @staticmethod
    def warning(msg):
        return f"{Colors.YELLOW}{msg}{Colors.RESET}"

    @staticmethod
    def info(msg):
        return f"{Colors.BLUE}{msg}{Colors.RESET}"

    @staticmethod
    def bold(msg):
        return f"{Colors.BOLD}{msg}{Colors.RESET}"
