#!/usr/bin/env python3
"""
Test suite for reading RPM files

rpm itself is never run: subprocess.run is replaced with canned
--queryformat output.
"""

import hashlib
import os
import subprocess
import sys
import tempfile

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from yumdb.constants import DependencyKind
from yumdb.errors import MissingChecksumError, RpmQueryError
from yumdb.package import Dependency, DepFlag
from yumdb.primarydb import PrimaryDatabase
from yumdb.rpmfile import RpmPackageFile, read_header_range
from sample_packages import fake_rpm_query, write_fake_rpm


@pytest.fixture
def fake_rpm(monkeypatch):
    calls = []

    def run(cmd, capture_output=False, text=False):
        calls.append(cmd)
        return fake_rpm_query(cmd)

    monkeypatch.setattr(subprocess, 'run', run)
    return calls


def test_read_header_range():
    with tempfile.TemporaryDirectory() as tmpdir:
        path = os.path.join(tmpdir, 'bash.rpm')
        write_fake_rpm(path)
        assert read_header_range(path) == (168, 332)


def test_read_header_range_rejects_non_rpm():
    with tempfile.TemporaryDirectory() as tmpdir:
        path = os.path.join(tmpdir, 'notes.txt')
        with open(path, 'wb') as f:
            f.write(b'hello world\n' * 20)
        with pytest.raises(RpmQueryError):
            read_header_range(path)

        with open(path, 'wb') as f:
            f.write(b'\xed\xab\xee\xdb' + b'\x00' * 92 + b'garbage')
        with pytest.raises(RpmQueryError) as excinfo:
            read_header_range(path)
        assert excinfo.value.stage == "reading header range"


def test_rpm_package_file(fake_rpm):
    print("=" * 60)
    print("Test: Read RPM file")
    print("=" * 60)

    with tempfile.TemporaryDirectory() as tmpdir:
        path = os.path.join(tmpdir, 'bash-5.1.8-2.fc35.x86_64.rpm')
        write_fake_rpm(path)
        package = RpmPackageFile(path)

        assert str(package) == 'bash-5.1.8-2.fc35.x86_64'
        assert package.epoch == 0
        assert package.build_time == 1630000000
        assert package.installed_size == 7300000
        assert package.archive_size == 7350000
        assert package.groups == ['Unspecified']
        assert package.sourcerpm == 'bash-5.1.8-2.fc35.src.rpm'
        assert package.description.endswith('Bash is the default shell.')
        assert '\n\n' in package.description
        assert package.file_size == os.path.getsize(path)
        assert (package.header_start, package.header_end) == (168, 332)
        assert package.files == ['/usr/bin/bash', '/usr/bin/sh']
        assert package.location_href == 'bash-5.1.8-2.fc35.x86_64.rpm'
        print(f"✓ Read {package}")

        requires = package.dependencies[DependencyKind.REQUIRES]
        assert requires == [
            Dependency('/bin/sh', pre=True),
            Dependency('glibc', DepFlag.GE, 0, '2.34'),
        ]
        assert package.dependencies[DependencyKind.PROVIDES][0] == \
            Dependency('bash', DepFlag.EQ, 0, '5.1.8', '2.fc35')
        assert package.dependencies[DependencyKind.CONFLICTS] == []
        assert package.dependencies[DependencyKind.OBSOLETES] == [Dependency('bash-doc', DepFlag.LT, 0, '5.0')]
        print("✓ rpmlib() requirements skipped")

        assert all(cmd[:5] == ['rpm', '-qp', '--nosignature', '--nodigest', '--queryformat']
                   for cmd in fake_rpm)


def test_rpm_package_file_into_database(fake_rpm):
    with tempfile.TemporaryDirectory() as tmpdir:
        path = os.path.join(tmpdir, 'bash-5.1.8-2.fc35.x86_64.rpm')
        write_fake_rpm(path)
        package = RpmPackageFile(path)

        with open(path, 'rb') as f:
            expected = hashlib.sha256(f.read()).hexdigest()
        assert package.checksum() == expected

        with PrimaryDatabase.create(os.path.join(tmpdir, 'primary.sqlite')) as db:
            key, = db.insert_packages(package)
            entry, = db.packages()
            assert entry.checksum == expected
            assert entry.full_name == 'bash-5.1.8-2.fc35.x86_64'
            assert db.files_by_package(key) == ['/usr/bin/bash', '/usr/bin/sh']


def test_unsupported_checksum_type(fake_rpm):
    with tempfile.TemporaryDirectory() as tmpdir:
        path = os.path.join(tmpdir, 'bash.rpm')
        write_fake_rpm(path)
        package = RpmPackageFile(path, checksum_type='nosuchhash')

        with PrimaryDatabase.create(os.path.join(tmpdir, 'primary.sqlite')) as db:
            with pytest.raises(MissingChecksumError):
                db.insert_packages(package)
            assert db.count() == 0


def test_rpm_query_failure(monkeypatch):
    def run(cmd, capture_output=False, text=False):
        return subprocess.CompletedProcess(cmd, 1, stdout='', stderr='error: not an rpm package')

    monkeypatch.setattr(subprocess, 'run', run)
    with tempfile.TemporaryDirectory() as tmpdir:
        path = os.path.join(tmpdir, 'bash.rpm')
        write_fake_rpm(path)
        with pytest.raises(RpmQueryError) as excinfo:
            RpmPackageFile(path)
        assert 'not an rpm package' in str(excinfo.value)


def test_rpm_not_installed(monkeypatch):
    def run(cmd, capture_output=False, text=False):
        raise FileNotFoundError(2, 'No such file or directory', 'rpm')

    monkeypatch.setattr(subprocess, 'run', run)
    with tempfile.TemporaryDirectory() as tmpdir:
        path = os.path.join(tmpdir, 'bash.rpm')
        write_fake_rpm(path)
        with pytest.raises(RpmQueryError):
            RpmPackageFile(path)


def test_missing_rpm_file():
    with pytest.raises(FileNotFoundError):
        RpmPackageFile('/nonexistent/bash.rpm')
