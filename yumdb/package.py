"""
Package record model

Copyright (c) 2025 Deepgram

Licensed under the MIT License. See LICENSE file for details.

Value objects describing one package of a YUM repository, independent of
whether it was read from primary_db or from primary.xml.
"""

import os
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from .constants import DependencyKind

# RPMSENSE bits, see rpm/rpmds.h
RPMSENSE_LESS = 1 << 1
RPMSENSE_GREATER = 1 << 2
RPMSENSE_EQUAL = 1 << 3
RPMSENSE_PREREQ = 1 << 6
RPMSENSE_SCRIPT_PRE = 1 << 9
RPMSENSE_SCRIPT_POST = 1 << 10


class DepFlag(Enum):
    """Comparison operator of a dependency, stored as a two-letter code"""
    ANY = ""
    EQ = "EQ"
    LT = "LT"
    LE = "LE"
    GE = "GE"
    GT = "GT"

    @classmethod
    def decode(cls, code: Optional[str]) -> "DepFlag":
        """Decode a stored code; absent or unknown codes mean unconstrained."""
        if not code:
            return cls.ANY
        try:
            return cls(code)
        except ValueError:
            return cls.ANY

    def encode(self) -> Optional[str]:
        """Code to store, None (SQL NULL) when unconstrained."""
        return self.value or None

    @classmethod
    def from_sense(cls, sense: int) -> "DepFlag":
        """Map RPMSENSE comparison bits to a flag"""
        bits = sense & (RPMSENSE_LESS | RPMSENSE_GREATER | RPMSENSE_EQUAL)
        return _SENSE_FLAGS.get(bits, cls.ANY)

    @property
    def operator(self) -> str:
        return _OPERATORS[self]


_SENSE_FLAGS = {
    RPMSENSE_EQUAL: DepFlag.EQ,
    RPMSENSE_LESS: DepFlag.LT,
    RPMSENSE_LESS | RPMSENSE_EQUAL: DepFlag.LE,
    RPMSENSE_GREATER | RPMSENSE_EQUAL: DepFlag.GE,
    RPMSENSE_GREATER: DepFlag.GT,
}

_OPERATORS = {
    DepFlag.ANY: "",
    DepFlag.EQ: "=",
    DepFlag.LT: "<",
    DepFlag.LE: "<=",
    DepFlag.GE: ">=",
    DepFlag.GT: ">",
}


def split_evr(evr: str) -> Tuple[int, str, str]:
    """Split an 'epoch:version-release' string

    Missing parts come back as zero values: split_evr('1.0') == (0, '1.0', '').
    """
    epoch = 0
    if ':' in evr:
        head, evr = evr.split(':', 1)
        epoch = int(head) if head else 0
    version, _, release = evr.partition('-')
    return epoch, version, release


@dataclass
class Dependency:
    """A requires/provides/conflicts/obsoletes entry of a package"""
    name: str
    flags: DepFlag = DepFlag.ANY
    epoch: int = 0
    version: str = ""
    release: str = ""
    pre: bool = False

    def evr(self) -> str:
        if not self.version:
            return ""
        evr = self.version
        if self.epoch:
            evr = f"{self.epoch}:{evr}"
        if self.release:
            evr = f"{evr}-{self.release}"
        return evr

    def __str__(self) -> str:
        if self.flags is DepFlag.ANY or not self.version:
            return self.name
        return f"{self.name} {self.flags.operator} {self.evr()}"


@dataclass
class PackageVersion:
    epoch: int = 0
    ver: str = ""
    rel: str = ""


@dataclass
class PackageChecksum:
    type: str = ""
    pkgid: str = ""
    hash: str = ""


@dataclass
class PackageSize:
    package: int = 0
    installed: int = 0
    archive: int = 0


@dataclass
class PackageTime:
    file: int = 0
    build: int = 0


@dataclass
class PackageFormat:
    """The rpm:* part of a package: descriptive fields, dependencies, files"""
    license: str = ""
    vendor: str = ""
    group: str = ""
    buildhost: str = ""
    sourcerpm: str = ""
    header_start: int = 0
    header_end: int = 0
    requires: List[Dependency] = field(default_factory=list)
    provides: List[Dependency] = field(default_factory=list)
    conflicts: List[Dependency] = field(default_factory=list)
    obsoletes: List[Dependency] = field(default_factory=list)
    files: List[str] = field(default_factory=list)

    def dependencies(self, kind) -> List[Dependency]:
        return getattr(self, DependencyKind.parse(kind).value)


@dataclass
class PackageEntry:
    """A package as listed in primary_db or primary.xml

    Entries read from a PrimaryDatabase keep a reference to it (``db``) so
    dependencies and files can be looked up on demand; the entry itself is
    an independent copy of the stored row.
    """
    name: str = ""
    arch: str = ""
    versions: PackageVersion = field(default_factory=PackageVersion)
    checksums: PackageChecksum = field(default_factory=PackageChecksum)
    sizes: PackageSize = field(default_factory=PackageSize)
    times: PackageTime = field(default_factory=PackageTime)
    location_href: str = ""
    summary: str = ""
    description: str = ""
    url: str = ""
    packager: str = ""
    format: Optional[PackageFormat] = None
    key: Optional[int] = None
    db: Any = field(default=None, repr=False, compare=False)

    def __str__(self) -> str:
        return self.full_name

    @property
    def full_name(self) -> str:
        """Standard rpm name: name-version-release.arch"""
        return f"{self.name}-{self.version}-{self.release}.{self.arch}"

    @property
    def epoch(self) -> int:
        return self.versions.epoch

    @property
    def version(self) -> str:
        return self.versions.ver

    @property
    def release(self) -> str:
        return self.versions.rel

    @property
    def checksum(self) -> str:
        return self.checksums.hash

    @property
    def checksum_type(self) -> str:
        return self.checksums.type

    @property
    def package_size(self) -> int:
        return self.sizes.package

    @property
    def install_size(self) -> int:
        return self.sizes.installed

    @property
    def archive_size(self) -> int:
        return self.sizes.archive

    @property
    def file_time(self) -> datetime:
        return datetime.fromtimestamp(self.times.file, tz=timezone.utc)

    @property
    def build_time(self) -> datetime:
        return datetime.fromtimestamp(self.times.build, tz=timezone.utc)

    def _store(self):
        if self.db is None or self.key is None:
            raise ValueError(f"{self.full_name} is not attached to a primary database")
        return self.db

    def dependencies(self, kind) -> List[Dependency]:
        return self._store().dependencies_by_package(self.key, kind)

    def requires(self) -> List[Dependency]:
        return self.dependencies(DependencyKind.REQUIRES)

    def provides(self) -> List[Dependency]:
        return self.dependencies(DependencyKind.PROVIDES)

    def conflicts(self) -> List[Dependency]:
        return self.dependencies(DependencyKind.CONFLICTS)

    def obsoletes(self) -> List[Dependency]:
        return self.dependencies(DependencyKind.OBSOLETES)

    def files(self) -> List[str]:
        return self._store().files_by_package(self.key)


class PackageDescriptor(ABC):
    """Source of one package for PrimaryDatabase.insert_packages

    Subclasses fill in the attributes below from wherever the package comes
    from (an RPM file, a primary.xml entry, ...). Only the checksum is
    computed on demand since it may be expensive or unavailable.
    """

    def __init__(self, path: str):
        self.path = path
        self.name = ""
        self.arch = ""
        self.epoch = 0
        self.version = ""
        self.release = ""
        self.summary = ""
        self.description = ""
        self.url = ""
        self.packager = ""
        self.license = ""
        self.vendor = ""
        self.groups: List[str] = []
        self.buildhost = ""
        self.sourcerpm = ""
        self.header_start = 0
        self.header_end = 0
        self.file_time = 0
        self.file_size = 0
        self.installed_size = 0
        self.archive_size = 0
        self.build_time = 0
        self.checksum_type = "sha256"
        self.files: List[str] = []
        self.dependencies: Dict[DependencyKind, List[Dependency]] = {
            kind: [] for kind in DependencyKind
        }

    @abstractmethod
    def checksum(self) -> str:
        """Return the package checksum (hex digest of ``checksum_type``)"""
        pass

    @property
    def location_href(self) -> str:
        """Location stored in primary_db: the file name only"""
        return os.path.basename(self.path)

    def __str__(self) -> str:
        return f"{self.name}-{self.version}-{self.release}.{self.arch}"
