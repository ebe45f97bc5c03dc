"""
primary.xml metadata documents

Copyright (c) 2025 Deepgram

Licensed under the MIT License. See LICENSE file for details.

Reads and writes the primary.xml(.gz) listing of a YUM repository, the
XML counterpart of primary_db.
"""

import gzip
import hashlib
import io
import logging
import os
from dataclasses import dataclass, field
from typing import List, Optional

from lxml import etree as ET

from .constants import NS, DependencyKind
from .errors import MetadataError
from .package import (
    Dependency,
    DepFlag,
    PackageChecksum,
    PackageDescriptor,
    PackageEntry,
    PackageFormat,
    PackageSize,
    PackageTime,
    PackageVersion,
)
from .primarydb import PrimaryDatabase

logger = logging.getLogger(__name__)

COMMON = '{%s}' % NS['common']
RPM = '{%s}' % NS['rpm']


@dataclass
class PrimaryMetadata:
    """A primary.xml document

    ``packages_count`` is the value declared on the root element; it is
    kept as read and not checked against ``len(packages)``.
    """
    xmlns: str = NS['common']
    packages_count: int = 0
    packages: List[PackageEntry] = field(default_factory=list)

    @classmethod
    def from_database(cls, db: PrimaryDatabase) -> "PrimaryMetadata":
        """Project every package of a primary_db into a document"""
        packages = db.packages(detailed=True)
        for entry in packages:
            for kind in DependencyKind:
                setattr(entry.format, kind.value, entry.dependencies(kind))
            entry.format.files = entry.files()
        return cls(xmlns=NS['common'], packages_count=len(packages), packages=packages)

    def descriptors(self) -> List["MetadataPackage"]:
        return [MetadataPackage(entry) for entry in self.packages]

    def to_xml(self) -> bytes:
        root = ET.Element(f'{COMMON}metadata', nsmap={None: NS['common'], 'rpm': NS['rpm']})
        root.set('packages', str(len(self.packages)))
        for entry in self.packages:
            _encode_package(root, entry)
        return ET.tostring(root, encoding='UTF-8', xml_declaration=True, pretty_print=True)


class MetadataPackage(PackageDescriptor):
    """Feeds a package decoded from primary.xml into PrimaryDatabase.insert_packages"""

    def __init__(self, entry: PackageEntry):
        super().__init__(entry.location_href)
        fmt = entry.format or PackageFormat()

        self.name = entry.name
        self.arch = entry.arch
        self.epoch = entry.epoch
        self.version = entry.version
        self.release = entry.release
        self.summary = entry.summary
        self.description = entry.description
        self.url = entry.url
        self.packager = entry.packager
        self.file_time = entry.times.file
        self.build_time = entry.times.build
        self.file_size = entry.package_size
        self.installed_size = entry.install_size
        self.archive_size = entry.archive_size
        self.checksum_type = entry.checksum_type
        self.license = fmt.license
        self.vendor = fmt.vendor
        self.groups = fmt.group.split('\n') if fmt.group else []
        self.buildhost = fmt.buildhost
        self.sourcerpm = fmt.sourcerpm
        self.header_start = fmt.header_start
        self.header_end = fmt.header_end
        self.files = list(fmt.files)
        for kind in DependencyKind:
            self.dependencies[kind] = list(fmt.dependencies(kind))

        self._checksum = entry.checksum
        self._location_href = entry.location_href

    def checksum(self) -> str:
        return self._checksum

    @property
    def location_href(self) -> str:
        # repository-relative, unlike a file on disk
        return self._location_href


def _localname(elem) -> Optional[str]:
    # comments and processing instructions have no string tag
    if not isinstance(elem.tag, str):
        return None
    return ET.QName(elem).localname


def _children(elem):
    for child in elem:
        name = _localname(child)
        if name is not None:
            yield name, child


def _int(value: Optional[str], what: str) -> int:
    if value is None or value == '':
        return 0
    try:
        return int(value)
    except ValueError as e:
        raise MetadataError(f"{what} is not an integer: {value!r}") from e


def _decode_dependency(elem, kind: DependencyKind) -> Dependency:
    return Dependency(
        name=elem.get('name', ''),
        flags=DepFlag.decode(elem.get('flags')),
        epoch=_int(elem.get('epoch'), 'entry epoch'),
        version=elem.get('ver', ''),
        release=elem.get('rel', ''),
        pre=kind is DependencyKind.REQUIRES and elem.get('pre') == '1',
    )


def _decode_format(elem) -> PackageFormat:
    fmt = PackageFormat()
    for name, child in _children(elem):
        if name in ('license', 'vendor', 'group', 'buildhost', 'sourcerpm'):
            setattr(fmt, name, child.text or '')
        elif name == 'header-range':
            fmt.header_start = _int(child.get('start'), 'header-range start')
            fmt.header_end = _int(child.get('end'), 'header-range end')
        elif name in ('requires', 'provides', 'conflicts', 'obsoletes'):
            kind = DependencyKind(name)
            deps = fmt.dependencies(kind)
            for entry_name, entry in _children(child):
                if entry_name == 'entry':
                    deps.append(_decode_dependency(entry, kind))
        elif name == 'file':
            fmt.files.append(child.text or '')
    return fmt


def _decode_package(elem) -> PackageEntry:
    entry = PackageEntry()
    for name, child in _children(elem):
        if name in ('name', 'arch', 'summary', 'description', 'packager', 'url'):
            setattr(entry, name, child.text or '')
        elif name == 'version':
            entry.versions = PackageVersion(
                epoch=_int(child.get('epoch'), 'version epoch'),
                ver=child.get('ver', ''),
                rel=child.get('rel', ''),
            )
        elif name == 'checksum':
            entry.checksums = PackageChecksum(
                type=child.get('type', ''),
                pkgid=child.get('pkgid', ''),
                hash=(child.text or '').strip(),
            )
        elif name == 'time':
            entry.times = PackageTime(
                file=_int(child.get('file'), 'time file'),
                build=_int(child.get('build'), 'time build'),
            )
        elif name == 'size':
            entry.sizes = PackageSize(
                package=_int(child.get('package'), 'size package'),
                installed=_int(child.get('installed'), 'size installed'),
                archive=_int(child.get('archive'), 'size archive'),
            )
        elif name == 'location':
            entry.location_href = child.get('href', '')
        elif name == 'format':
            entry.format = _decode_format(child)
    return entry


def _open_source(source):
    """Return a binary file object for a path, bytes or file object"""
    if isinstance(source, (bytes, bytearray)):
        return io.BytesIO(source)
    if isinstance(source, (str, os.PathLike)):
        path = os.fspath(source)
        if path.endswith('.gz'):
            return gzip.open(path, 'rb')
        return open(path, 'rb')
    return source


def read_primary_metadata(source) -> PrimaryMetadata:
    """
    Decode a primary.xml document

    Args:
        source: Path (plain or .gz), bytes, or a binary file object

    Returns:
        PrimaryMetadata: the decoded document; ``packages`` is always a list

    Raises:
        FileNotFoundError: If a path source does not exist
        MetadataError: If the document is malformed
    """
    parser = ET.XMLParser(resolve_entities=False, no_network=True, huge_tree=True)
    fileobj = _open_source(source)
    try:
        tree = ET.parse(fileobj, parser)
    except (ET.XMLSyntaxError, OSError, EOFError) as e:
        raise MetadataError(str(e)) from e
    finally:
        if fileobj is not source:
            fileobj.close()

    root = tree.getroot()
    if _localname(root) != 'metadata':
        raise MetadataError(f"unexpected root element <{_localname(root)}>")

    md = PrimaryMetadata(
        xmlns=ET.QName(root).namespace or '',
        packages_count=_int(root.get('packages'), 'packages count'),
        packages=[],
    )
    for name, child in _children(root):
        if name == 'package':
            md.packages.append(_decode_package(child))

    logger.debug("Decoded %d package(s), %d declared", len(md.packages), md.packages_count)
    return md


def _text_element(parent, tag: str, text: str):
    elem = ET.SubElement(parent, tag)
    elem.text = text
    return elem


def _encode_dependencies(parent, kind: DependencyKind, deps: List[Dependency]):
    if not deps:
        return
    container = ET.SubElement(parent, f'{RPM}{kind.value}')
    for dep in deps:
        entry = ET.SubElement(container, f'{RPM}entry')
        entry.set('name', dep.name)
        if dep.flags is not DepFlag.ANY:
            entry.set('flags', dep.flags.value)
        if dep.flags is not DepFlag.ANY or dep.version:
            entry.set('epoch', str(dep.epoch))
            entry.set('ver', dep.version)
            if dep.release:
                entry.set('rel', dep.release)
        if kind is DependencyKind.REQUIRES and dep.pre:
            entry.set('pre', '1')


def _encode_package(root, entry: PackageEntry):
    package = ET.SubElement(root, f'{COMMON}package')
    package.set('type', 'rpm')
    _text_element(package, f'{COMMON}name', entry.name)
    _text_element(package, f'{COMMON}arch', entry.arch)
    ET.SubElement(package, f'{COMMON}version', {
        'epoch': str(entry.epoch),
        'ver': entry.version,
        'rel': entry.release,
    })
    checksum = _text_element(package, f'{COMMON}checksum', entry.checksum)
    checksum.set('type', entry.checksum_type)
    checksum.set('pkgid', entry.checksums.pkgid or 'YES')
    _text_element(package, f'{COMMON}summary', entry.summary)
    _text_element(package, f'{COMMON}description', entry.description)
    _text_element(package, f'{COMMON}packager', entry.packager)
    _text_element(package, f'{COMMON}url', entry.url)
    ET.SubElement(package, f'{COMMON}time', {
        'file': str(entry.times.file),
        'build': str(entry.times.build),
    })
    ET.SubElement(package, f'{COMMON}size', {
        'package': str(entry.package_size),
        'installed': str(entry.install_size),
        'archive': str(entry.archive_size),
    })
    ET.SubElement(package, f'{COMMON}location', {'href': entry.location_href})

    fmt = entry.format
    if fmt is None:
        return
    format_elem = ET.SubElement(package, f'{COMMON}format')
    _text_element(format_elem, f'{RPM}license', fmt.license)
    _text_element(format_elem, f'{RPM}vendor', fmt.vendor)
    _text_element(format_elem, f'{RPM}group', fmt.group)
    _text_element(format_elem, f'{RPM}buildhost', fmt.buildhost)
    _text_element(format_elem, f'{RPM}sourcerpm', fmt.sourcerpm)
    ET.SubElement(format_elem, f'{RPM}header-range', {
        'start': str(fmt.header_start),
        'end': str(fmt.header_end),
    })
    for kind in DependencyKind:
        _encode_dependencies(format_elem, kind, fmt.dependencies(kind))
    for filename in fmt.files:
        _text_element(format_elem, f'{COMMON}file', filename)


def write_primary_metadata(metadata: PrimaryMetadata, dest: str) -> str:
    """
    Write a primary.xml document; destinations ending in .gz are compressed

    Returns:
        str: the destination path
    """
    data = metadata.to_xml()
    if dest.endswith('.gz'):
        with gzip.open(dest, 'wb') as f:
            f.write(data)
    else:
        with open(dest, 'wb') as f:
            f.write(data)
    return dest


def file_checksum(path: str, checksum_type: str = 'sha256') -> str:
    digest = hashlib.new(checksum_type)
    with open(path, 'rb') as f:
        for chunk in iter(lambda: f.read(4096), b''):
            digest.update(chunk)
    return digest.hexdigest()


def build_database_from_metadata(xml_path: str, db_path: str, ignore_file_errors: bool = False) -> PrimaryDatabase:
    """
    Create primary.sqlite from primary.xml(.gz)

    The checksum of the XML file is recorded in db_info.

    Returns:
        PrimaryDatabase: the new, open database
    """
    metadata = read_primary_metadata(xml_path)
    db = PrimaryDatabase.create(db_path, ignore_file_errors=ignore_file_errors)
    try:
        db.insert_packages(*metadata.descriptors())
        db.set_checksum(file_checksum(xml_path))
    except Exception:
        db.close()
        raise
    return db
