import os
from enum import Enum


class RepoConfigFiles(Enum):
    SYSTEM = "/etc/yumdb.conf"
    LOCAL = "./yumdb.conf"
    USER = os.path.expanduser("~/.yumdb.conf")


AVAIL_BACKEND_TYPES = [
    "s3",
    "local"
]

DEFAULTS = {
    'backend.type': 'local',
    'backend.local.path': '~/yum-repo',
    'backend.prefix': 'repodata',
    'db.ignore_file_errors': False,
    'db.validate_on_open': True,
    'db.checksum_type': 'sha256',
    'db.compress': True,
}

# Namespaces used by primary.xml
NS = {
    'common': 'http://linux.duke.edu/metadata/common',
    'rpm': 'http://linux.duke.edu/metadata/rpm',
}

# Schema version understood by yum/dnf for primary_db
DB_VERSION = 10

DEFAULT_FILE_TYPE = 'file'


class DependencyKind(Enum):
    """Dependency tables of primary_db; the value is the table name"""
    REQUIRES = "requires"
    PROVIDES = "provides"
    CONFLICTS = "conflicts"
    OBSOLETES = "obsoletes"

    @classmethod
    def parse(cls, value):
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            choices = ', '.join(kind.value for kind in cls)
            raise ValueError(f"Unknown dependency kind: {value!r} (expected one of: {choices})")
