#!/usr/bin/env python3
"""
Test suite for primary.xml decoding and encoding

Copyright (c) 2025 Deepgram

Licensed under the MIT License. See LICENSE file for details.
"""

import gzip
import hashlib
import io
import os
import sys
import tempfile

import pytest
from lxml import etree as ET

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from yumdb.constants import NS, DependencyKind
from yumdb.errors import MetadataError, MissingChecksumError
from yumdb.metadata import (
    PrimaryMetadata,
    build_database_from_metadata,
    read_primary_metadata,
    write_primary_metadata,
)
from yumdb.package import Dependency, DepFlag
from yumdb.primarydb import PrimaryDatabase
from sample_packages import bash_package, coreutils_package

PRIMARY_XML = b'''<?xml version="1.0" encoding="UTF-8"?>
<metadata xmlns="http://linux.duke.edu/metadata/common" xmlns:rpm="http://linux.duke.edu/metadata/rpm" packages="2">
<package type="rpm">
  <name>bash</name>
  <arch>x86_64</arch>
  <version epoch="0" ver="5.1" rel="2.fc35"/>
  <checksum type="sha256" pkgid="YES">abc123</checksum>
  <summary>The GNU Bourne Again shell</summary>
  <description>The GNU Bourne Again shell (Bash) is a shell.</description>
  <packager>Fedora Project</packager>
  <url>https://www.gnu.org/software/bash</url>
  <time file="1634000000" build="1630000000"/>
  <size package="1200000" installed="3000000" archive="3100000"/>
  <location href="Packages/b/bash-5.1-2.fc35.x86_64.rpm"/>
  <format>
    <rpm:license>GPLv3+</rpm:license>
    <rpm:vendor>Fedora Project</rpm:vendor>
    <rpm:group>System Environment/Shells</rpm:group>
    <rpm:buildhost>buildvm-x86-01.fedoraproject.org</rpm:buildhost>
    <rpm:sourcerpm>bash-5.1-2.fc35.src.rpm</rpm:sourcerpm>
    <rpm:header-range start="4504" end="56236"/>
    <rpm:provides>
      <rpm:entry name="bash" flags="EQ" epoch="0" ver="5.1" rel="2.fc35"/>
    </rpm:provides>
    <rpm:requires>
      <rpm:entry name="/bin/sh" pre="1"/>
      <rpm:entry name="glibc" flags="GE" epoch="0" ver="2.34"/>
    </rpm:requires>
    <file>/usr/bin/bash</file>
    <file>/usr/bin/sh</file>
  </format>
</package>
<package type="rpm">
  <name>tzdata</name>
  <arch>noarch</arch>
  <version epoch="0" ver="2021e" rel="1.fc35"/>
  <checksum type="sha256" pkgid="YES">beef</checksum>
  <summary>Timezone data</summary>
  <packager>Fedora Project</packager>
  <url>https://www.iana.org/time-zones</url>
  <time file="1634000001" build="1630000001"/>
  <size package="450000" installed="1700000" archive="1800000"/>
  <location href="Packages/t/tzdata-2021e-1.fc35.noarch.rpm"/>
</package>
</metadata>
'''


def test_decode_empty_document():
    """Zero packages still give a list and keep the declared count"""
    md = read_primary_metadata(
        b'<metadata xmlns="http://linux.duke.edu/metadata/common" packages="0"></metadata>')
    assert md.packages == []
    assert md.packages_count == 0
    assert md.xmlns == NS['common']

    md = read_primary_metadata(b'<metadata packages="5"/>')
    assert md.packages == []
    assert md.packages_count == 5
    assert md.xmlns == ''


def test_decode_document():
    print("=" * 60)
    print("Test: Decode primary.xml")
    print("=" * 60)

    md = read_primary_metadata(PRIMARY_XML)
    assert md.packages_count == 2
    assert len(md.packages) == 2

    bash, tzdata = md.packages
    assert bash.full_name == 'bash-5.1-2.fc35.x86_64'
    assert bash.checksum == 'abc123'
    assert bash.checksum_type == 'sha256'
    assert bash.checksums.pkgid == 'YES'
    assert bash.summary == 'The GNU Bourne Again shell'
    assert bash.url == 'https://www.gnu.org/software/bash'
    assert bash.packager == 'Fedora Project'
    assert (bash.times.file, bash.times.build) == (1634000000, 1630000000)
    assert (bash.package_size, bash.install_size, bash.archive_size) == (1200000, 3000000, 3100000)
    assert bash.location_href == 'Packages/b/bash-5.1-2.fc35.x86_64.rpm'
    print(f"✓ Decoded {bash}")

    fmt = bash.format
    assert fmt.license == 'GPLv3+'
    assert fmt.group == 'System Environment/Shells'
    assert (fmt.header_start, fmt.header_end) == (4504, 56236)
    assert fmt.provides == [Dependency('bash', DepFlag.EQ, 0, '5.1', '2.fc35')]
    assert fmt.requires == [
        Dependency('/bin/sh', pre=True),
        Dependency('glibc', DepFlag.GE, 0, '2.34'),
    ]
    assert fmt.conflicts == []
    assert fmt.files == ['/usr/bin/bash', '/usr/bin/sh']
    print("✓ Decoded format block")

    assert tzdata.full_name == 'tzdata-2021e-1.fc35.noarch'
    assert tzdata.description == ''
    assert tzdata.format is None


def test_declared_count_not_cross_checked():
    xml = PRIMARY_XML.replace(b'packages="2"', b'packages="7"')
    md = read_primary_metadata(xml)
    assert md.packages_count == 7
    assert len(md.packages) == 2


def test_decode_truncated_document():
    with pytest.raises(MetadataError) as excinfo:
        read_primary_metadata(PRIMARY_XML[:len(PRIMARY_XML) // 2])
    assert excinfo.value.stage == "decoding primary metadata"


def test_decode_wrong_root():
    with pytest.raises(MetadataError):
        read_primary_metadata(b'<repomd xmlns="http://linux.duke.edu/metadata/repo"/>')


def test_decode_bad_numbers():
    with pytest.raises(MetadataError):
        read_primary_metadata(b'<metadata packages="many"/>')
    with pytest.raises(MetadataError):
        read_primary_metadata(PRIMARY_XML.replace(b'package="1200000"', b'package="big"'))


def test_decode_gzip_file_and_file_object():
    with tempfile.TemporaryDirectory() as tmpdir:
        gz_path = os.path.join(tmpdir, 'primary.xml.gz')
        with gzip.open(gz_path, 'wb') as f:
            f.write(PRIMARY_XML)

        assert len(read_primary_metadata(gz_path).packages) == 2

    assert len(read_primary_metadata(io.BytesIO(PRIMARY_XML)).packages) == 2


def test_decode_missing_file():
    with pytest.raises(FileNotFoundError):
        read_primary_metadata('/nonexistent/primary.xml')


def test_encode_layout():
    md = read_primary_metadata(PRIMARY_XML)
    root = ET.fromstring(md.to_xml())

    assert root.tag == f"{{{NS['common']}}}metadata"
    assert root.nsmap == {None: NS['common'], 'rpm': NS['rpm']}
    assert root.get('packages') == '2'

    checksum = root.find(f"{{{NS['common']}}}package/{{{NS['common']}}}checksum")
    assert checksum.get('pkgid') == 'YES'
    assert checksum.text == 'abc123'

    entries = root.findall(f".//{{{NS['rpm']}}}requires/{{{NS['rpm']}}}entry")
    assert dict(entries[0].attrib) == {'name': '/bin/sh', 'pre': '1'}
    assert dict(entries[1].attrib) == {'name': 'glibc', 'flags': 'GE', 'epoch': '0', 'ver': '2.34'}


def test_encode_keeps_version_without_flags():
    md = read_primary_metadata(PRIMARY_XML)
    md.packages[0].format.provides.append(Dependency('bash-compat', DepFlag.ANY, 1, '5.1', '2'))
    root = ET.fromstring(md.to_xml())

    entry = root.find(f".//{{{NS['rpm']}}}provides/{{{NS['rpm']}}}entry[@name='bash-compat']")
    assert dict(entry.attrib) == {'name': 'bash-compat', 'epoch': '1', 'ver': '5.1', 'rel': '2'}

    again = read_primary_metadata(md.to_xml())
    assert again.packages[0].format.provides[-1] == Dependency('bash-compat', DepFlag.ANY, 1, '5.1', '2')


def test_write_and_read_back():
    md = read_primary_metadata(PRIMARY_XML)
    with tempfile.TemporaryDirectory() as tmpdir:
        for name in ('primary.xml', 'primary.xml.gz'):
            dest = write_primary_metadata(md, os.path.join(tmpdir, name))
            again = read_primary_metadata(dest)
            assert again.packages == md.packages
            assert again.packages_count == 2


def test_from_database():
    """A store projects into a document with formats, dependencies and files"""
    with tempfile.TemporaryDirectory() as tmpdir:
        with PrimaryDatabase.create(os.path.join(tmpdir, 'primary.sqlite')) as db:
            db.insert_packages(bash_package(), coreutils_package())
            md = PrimaryMetadata.from_database(db)

    assert md.packages_count == 2
    bash, coreutils = md.packages
    assert bash.format.files == ['/usr/bin/bash']
    assert bash.format.license == 'GPLv3+'
    assert coreutils.format.obsoletes == [Dependency('fileutils', DepFlag.LE, 0, '4.1')]
    assert len(coreutils.format.requires) == 2

    again = read_primary_metadata(md.to_xml())
    assert [p.full_name for p in again.packages] == ['bash-5.1-2.fc35.x86_64', 'coreutils-8.32-31.fc35.x86_64']
    assert again.packages[1].format.provides == coreutils.format.provides


def test_build_database_from_metadata():
    print("=" * 60)
    print("Test: Build primary_db from primary.xml")
    print("=" * 60)

    with tempfile.TemporaryDirectory() as tmpdir:
        xml_path = os.path.join(tmpdir, 'primary.xml')
        with open(xml_path, 'wb') as f:
            f.write(PRIMARY_XML)

        db_path = os.path.join(tmpdir, 'primary.sqlite')
        with build_database_from_metadata(xml_path, db_path) as db:
            assert db.db_info()[1] == hashlib.sha256(PRIMARY_XML).hexdigest()

            bash, tzdata = db.packages(detailed=True)
            assert bash.location_href == 'Packages/b/bash-5.1-2.fc35.x86_64.rpm'
            assert tzdata.location_href == 'Packages/t/tzdata-2021e-1.fc35.noarch.rpm'
            assert bash.format.group == 'System Environment/Shells'
            assert bash.files() == ['/usr/bin/bash', '/usr/bin/sh']
            assert bash.requires()[0] == Dependency('/bin/sh', pre=True)
            assert tzdata.dependencies(DependencyKind.PROVIDES) == []
            assert tzdata.files() == []
        print("✓ primary_db built with checksum recorded")


def test_build_database_from_bad_metadata():
    with tempfile.TemporaryDirectory() as tmpdir:
        xml_path = os.path.join(tmpdir, 'primary.xml')
        with open(xml_path, 'wb') as f:
            f.write(PRIMARY_XML.replace(b'>abc123<', b'><'))

        with pytest.raises(MissingChecksumError):
            build_database_from_metadata(xml_path, os.path.join(tmpdir, "primary.sqlite"))
