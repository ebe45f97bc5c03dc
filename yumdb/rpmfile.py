"""
RPM package files as primary_db sources

Copyright (c) 2025 Deepgram

Licensed under the MIT License. See LICENSE file for details.
"""

import hashlib
import logging
import os
import struct
import subprocess
from typing import List, Tuple

from .constants import DependencyKind
from .errors import RpmQueryError
from .package import (
    RPMSENSE_PREREQ,
    RPMSENSE_SCRIPT_POST,
    RPMSENSE_SCRIPT_PRE,
    Dependency,
    DepFlag,
    PackageDescriptor,
    split_evr,
)

logger = logging.getLogger(__name__)

RPM_LEAD_SIZE = 96
RPM_LEAD_MAGIC = b'\xed\xab\xee\xdb'
RPM_HEADER_MAGIC = b'\x8e\xad\xe8'

# One field per line; DESCRIPTION goes last since it may span lines
SCALAR_TAGS = [
    ('name', '%{NAME}'),
    ('arch', '%{ARCH}'),
    ('epoch', '%|EPOCH?{%{EPOCH}}:{0}|'),
    ('version', '%{VERSION}'),
    ('release', '%{RELEASE}'),
    ('summary', '%{SUMMARY}'),
    ('url', '%|URL?{%{URL}}:{}|'),
    ('packager', '%|PACKAGER?{%{PACKAGER}}:{}|'),
    ('build_time', '%{BUILDTIME}'),
    ('installed_size', '%{SIZE}'),
    ('archive_size', '%|ARCHIVESIZE?{%{ARCHIVESIZE}}:{0}|'),
    ('license', '%|LICENSE?{%{LICENSE}}:{}|'),
    ('vendor', '%|VENDOR?{%{VENDOR}}:{}|'),
    ('group', '%|GROUP?{%{GROUP}}:{}|'),
    ('buildhost', '%|BUILDHOST?{%{BUILDHOST}}:{}|'),
    ('sourcerpm', '%|SOURCERPM?{%{SOURCERPM}}:{}|'),
    ('description', '%{DESCRIPTION}'),
]

INT_FIELDS = {'epoch', 'build_time', 'installed_size', 'archive_size'}

DEPENDENCY_TAGS = {
    DependencyKind.REQUIRES: 'REQUIRE',
    DependencyKind.PROVIDES: 'PROVIDE',
    DependencyKind.CONFLICTS: 'CONFLICT',
    DependencyKind.OBSOLETES: 'OBSOLETE',
}

PRE_SENSE = RPMSENSE_PREREQ | RPMSENSE_SCRIPT_PRE | RPMSENSE_SCRIPT_POST


def read_header_range(path: str) -> Tuple[int, int]:
    """
    Byte range of the main header of an RPM file

    The main header follows the 96 byte lead and the signature header,
    which is padded to a multiple of 8 bytes.

    Returns:
        tuple: (start, end) offsets
    """
    with open(path, 'rb') as f:
        lead = f.read(RPM_LEAD_SIZE)
        if len(lead) != RPM_LEAD_SIZE or not lead.startswith(RPM_LEAD_MAGIC):
            raise RpmQueryError(f"{path} is not an RPM file", stage="reading header range")

        sig_start = RPM_LEAD_SIZE
        nindex, hsize = _read_header_intro(f, path)
        sig_size = 16 + 16 * nindex + hsize
        start = sig_start + sig_size + (8 - sig_size % 8) % 8

        f.seek(start)
        nindex, hsize = _read_header_intro(f, path)
        end = start + 16 + 16 * nindex + hsize

    return start, end


def _read_header_intro(f, path: str) -> Tuple[int, int]:
    intro = f.read(16)
    if len(intro) != 16 or not intro.startswith(RPM_HEADER_MAGIC):
        raise RpmQueryError(f"{path} has a corrupt header at offset {f.tell() - len(intro)}",
                            stage="reading header range")
    return struct.unpack('>II', intro[8:16])


class RpmPackageFile(PackageDescriptor):
    """An RPM file on disk, read with ``rpm -qp --queryformat``"""

    def __init__(self, path: str, checksum_type: str = 'sha256'):
        if not os.path.isfile(path):
            raise FileNotFoundError(f"RPM file not found: {path}")
        super().__init__(path)
        self.checksum_type = checksum_type

        stat = os.stat(path)
        self.file_size = stat.st_size
        self.file_time = int(stat.st_mtime)
        self.header_start, self.header_end = read_header_range(path)

        self._load_scalars()
        self.files = self._query_lines('[%{FILENAMES}\\n]')
        for kind in DependencyKind:
            self.dependencies[kind] = self._load_dependencies(kind)

        logger.debug("Read %s: %d file(s), %d requires", self, len(self.files),
                     len(self.dependencies[DependencyKind.REQUIRES]))

    def _query(self, queryformat: str) -> str:
        cmd = ['rpm', '-qp', '--nosignature', '--nodigest', '--queryformat', queryformat, self.path]
        try:
            result = subprocess.run(cmd, capture_output=True, text=True)
        except OSError as e:
            raise RpmQueryError(f"cannot run rpm: {e}") from e
        if result.returncode != 0:
            raise RpmQueryError(f"rpm query failed for {self.path}: {result.stderr.strip()}")
        return result.stdout

    def _query_lines(self, queryformat: str) -> List[str]:
        return [line for line in self._query(queryformat).splitlines() if line]

    def _load_scalars(self):
        queryformat = '\\n'.join(tag for _, tag in SCALAR_TAGS)
        lines = self._query(queryformat).split('\n')
        count = len(SCALAR_TAGS)
        if len(lines) < count:
            raise RpmQueryError(f"short rpm query output for {self.path}")

        values = lines[:count - 1] + ['\n'.join(lines[count - 1:])]
        for (attr, _), value in zip(SCALAR_TAGS, values):
            if attr in INT_FIELDS:
                try:
                    value = int(value) if value else 0
                except ValueError as e:
                    raise RpmQueryError(f"bad {attr} {value!r} in {self.path}") from e
            if attr == 'group':
                self.groups = [value] if value else []
            else:
                setattr(self, attr, value)

    def _load_dependencies(self, kind: DependencyKind) -> List[Dependency]:
        tag = DEPENDENCY_TAGS[kind]
        lines = self._query_lines(f'[%{{{tag}NAME}}\\t%{{{tag}FLAGS}}\\t%{{{tag}VERSION}}\\n]')

        deps = []
        for line in lines:
            name, sense, evr = (line.split('\t') + ['', ''])[:3]
            if kind is DependencyKind.REQUIRES and name.startswith('rpmlib('):
                continue
            try:
                sense = int(sense) if sense else 0
                epoch, version, release = split_evr(evr)
            except ValueError as e:
                raise RpmQueryError(f"bad {kind.value} entry {line!r} in {self.path}") from e
            deps.append(Dependency(
                name=name,
                flags=DepFlag.from_sense(sense),
                epoch=epoch,
                version=version,
                release=release,
                pre=kind is DependencyKind.REQUIRES and bool(sense & PRE_SENSE),
            ))
        return deps

    def checksum(self) -> str:
        """Checksum of the RPM file"""
        digest = hashlib.new(self.checksum_type)
        with open(self.path, 'rb') as f:
            for chunk in iter(lambda: f.read(4096), b''):
                digest.update(chunk)
        return digest.hexdigest()
