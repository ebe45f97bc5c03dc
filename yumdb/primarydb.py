#!/usr/bin/env python3
"""
primary_db storage for YUM repositories

Copyright (c) 2025 Deepgram

Licensed under the MIT License. See LICENSE file for details.

This module creates, fills and reads the primary.sqlite database that
yum/dnf consume alongside primary.xml.gz.
"""

import bz2
import logging
import os
import sqlite3
from contextlib import closing
from typing import List, Optional, Tuple

from .constants import DB_VERSION, DEFAULT_FILE_TYPE, DependencyKind
from .errors import (
    FileInsertError,
    MissingChecksumError,
    ScanError,
    SchemaError,
    StatementError,
)
from .package import (
    Dependency,
    DepFlag,
    PackageChecksum,
    PackageEntry,
    PackageFormat,
    PackageSize,
    PackageTime,
    PackageVersion,
)

logger = logging.getLogger(__name__)

SCHEMA_TABLES = [
    'CREATE TABLE db_info (dbversion INTEGER, checksum TEXT)',
    '''
    CREATE TABLE packages (
        pkgKey INTEGER PRIMARY KEY,
        pkgId TEXT,
        name TEXT,
        arch TEXT,
        version TEXT,
        epoch TEXT,
        release TEXT,
        summary TEXT,
        description TEXT,
        url TEXT,
        time_file INTEGER,
        time_build INTEGER,
        rpm_license TEXT,
        rpm_vendor TEXT,
        rpm_group TEXT,
        rpm_buildhost TEXT,
        rpm_sourcerpm TEXT,
        rpm_header_start INTEGER,
        rpm_header_end INTEGER,
        rpm_packager TEXT,
        size_package INTEGER,
        size_installed INTEGER,
        size_archive INTEGER,
        location_href TEXT,
        location_base TEXT,
        checksum_type TEXT
    )
    ''',
    'CREATE TABLE files (name TEXT, type TEXT, pkgKey INTEGER)',
    '''
    CREATE TABLE requires (
        name TEXT, flags TEXT, epoch TEXT, version TEXT, release TEXT,
        pkgKey INTEGER, pre BOOLEAN DEFAULT FALSE
    )
    ''',
    'CREATE TABLE provides (name TEXT, flags TEXT, epoch TEXT, version TEXT, release TEXT, pkgKey INTEGER)',
    'CREATE TABLE conflicts (name TEXT, flags TEXT, epoch TEXT, version TEXT, release TEXT, pkgKey INTEGER)',
    'CREATE TABLE obsoletes (name TEXT, flags TEXT, epoch TEXT, version TEXT, release TEXT, pkgKey INTEGER)',
]

SCHEMA_INDEXES = [
    'CREATE INDEX packagename ON packages (name)',
    'CREATE INDEX packageId ON packages (pkgId)',
    'CREATE INDEX filenames ON files (name)',
    'CREATE INDEX pkgfiles ON files (pkgKey)',
] + [
    stmt
    for kind in DependencyKind
    for stmt in (
        f'CREATE INDEX pkg{kind.value} ON {kind.value} (pkgKey)',
        f'CREATE INDEX {kind.value}name ON {kind.value} (name)',
    )
]

SCHEMA_TRIGGERS = [
    '''
    CREATE TRIGGER removals AFTER DELETE ON packages
    BEGIN
        DELETE FROM files WHERE pkgKey = old.pkgKey;
        DELETE FROM requires WHERE pkgKey = old.pkgKey;
        DELETE FROM provides WHERE pkgKey = old.pkgKey;
        DELETE FROM conflicts WHERE pkgKey = old.pkgKey;
        DELETE FROM obsoletes WHERE pkgKey = old.pkgKey;
    END
    ''',
]

SQL_INSERT_PACKAGE = '''
    INSERT INTO packages (
        name, arch, epoch, version, release,
        summary, description, url, time_file,
        size_package, size_installed, size_archive,
        location_href, pkgId, checksum_type, time_build,
        rpm_license, rpm_vendor, rpm_group, rpm_buildhost,
        rpm_sourcerpm, rpm_header_start, rpm_header_end, rpm_packager
    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
'''

SQL_INSERT_FILE = 'INSERT INTO files (name, type, pkgKey) VALUES (?, ?, ?)'

# Narrow projection used for listings; the remaining columns stay in
# storage and are only read with detailed=True.
PACKAGE_COLUMNS = [
    'pkgKey', 'name', 'arch', 'epoch', 'version', 'release',
    'size_package', 'size_installed', 'size_archive',
    'location_href', 'pkgId', 'checksum_type', 'time_build',
]

DETAIL_COLUMNS = [
    'summary', 'description', 'url', 'rpm_packager', 'time_file',
    'rpm_license', 'rpm_vendor', 'rpm_group', 'rpm_buildhost',
    'rpm_sourcerpm', 'rpm_header_start', 'rpm_header_end',
]


def _text(value) -> str:
    return '' if value is None else str(value)


def _number(value) -> int:
    return 0 if value is None or value == '' else int(value)


class PrimaryDatabase:
    """A primary.sqlite database of a YUM repository

    Use ``create`` for a new, empty database or ``open`` for an existing
    one. The surrogate key (``pkgKey``) is assigned by SQLite on insert and
    is the only way files and dependency rows refer to a package.

    A PrimaryDatabase is not thread safe; serialize writes externally.
    """

    def __init__(self, conn: sqlite3.Connection, path: str, ignore_file_errors: bool = False):
        self.conn = conn
        self.conn.row_factory = sqlite3.Row
        self.path = path
        self.ignore_file_errors = ignore_file_errors

    @classmethod
    def create(cls, path: str, ignore_file_errors: bool = False) -> "PrimaryDatabase":
        """
        Create a new, empty primary_db

        Any existing file at ``path`` is removed first.

        Raises:
            SchemaError: If tables, indexes or the trigger cannot be created
        """
        if os.path.exists(path):
            os.remove(path)

        try:
            conn = sqlite3.connect(path)
        except sqlite3.Error as e:
            raise SchemaError(f"cannot open {path}: {e}") from e

        stage = 'tables'
        try:
            with conn:
                with closing(conn.cursor()) as cursor:
                    cursor.execute('BEGIN')
                    for stage, statements in (('tables', SCHEMA_TABLES),
                                              ('indexes', SCHEMA_INDEXES),
                                              ('triggers', SCHEMA_TRIGGERS)):
                        for statement in statements:
                            cursor.execute(statement)
                    stage = 'db_info'
                    cursor.execute('INSERT INTO db_info (dbversion, checksum) VALUES (?, ?)',
                                   (DB_VERSION, ''))
        except sqlite3.Error as e:
            conn.close()
            if os.path.exists(path):
                os.remove(path)
            raise SchemaError(f"cannot create {stage} in {path}: {e}") from e

        logger.debug("Created primary db %s (dbversion %d)", path, DB_VERSION)
        return cls(conn, path, ignore_file_errors=ignore_file_errors)

    @classmethod
    def open(cls, path: str, validate: bool = True, ignore_file_errors: bool = False) -> "PrimaryDatabase":
        """
        Open an existing primary_db

        Args:
            path: Path to primary.sqlite
            validate: Check that the schema looks like a primary_db of a
                      supported version

        Raises:
            FileNotFoundError: If ``path`` does not exist
            SchemaError: If validation fails
        """
        if not os.path.isfile(path):
            raise FileNotFoundError(f"Primary db not found: {path}")

        try:
            conn = sqlite3.connect(path)
        except sqlite3.Error as e:
            raise SchemaError(f"cannot open {path}: {e}", stage="opening primary db") from e

        db = cls(conn, path, ignore_file_errors=ignore_file_errors)
        if validate:
            try:
                db.validate()
            except SchemaError:
                db.close()
                raise
        return db

    def validate(self) -> None:
        """Check required tables and the db_info version, if one is recorded"""
        stage = "validating primary db"
        try:
            with closing(self.conn.cursor()) as cursor:
                cursor.execute("SELECT name FROM sqlite_master WHERE type = 'table'")
                tables = {row[0] for row in cursor.fetchall()}
        except sqlite3.Error as e:
            raise SchemaError(f"{self.path} is not a sqlite database: {e}", stage=stage) from e

        missing = {'db_info', 'packages'} - tables
        if missing:
            raise SchemaError(f"{self.path} is missing tables: {', '.join(sorted(missing))}", stage=stage)

        try:
            info = self.db_info()
        except StatementError as e:
            raise SchemaError(f"{self.path} has an unreadable db_info: {e}", stage=stage) from e
        if info is None:
            logger.debug("%s has no db_info row, skipping version check", self.path)
            return
        if info[0] != DB_VERSION:
            raise SchemaError(
                f"{self.path} has dbversion {info[0]}, expected {DB_VERSION}", stage=stage)

    def close(self) -> None:
        if self.conn is not None:
            self.conn.close()
            self.conn = None

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def __repr__(self) -> str:
        return f"PrimaryDatabase(path={self.path})"

    def _query(self, sql: str, params=(), stage: str = "executing statement") -> List[sqlite3.Row]:
        try:
            with closing(self.conn.cursor()) as cursor:
                cursor.execute(sql, params)
                return cursor.fetchall()
        except sqlite3.Error as e:
            raise StatementError(str(e), stage=stage) from e

    # -- db_info -----------------------------------------------------------

    def db_info(self) -> Optional[Tuple[int, str]]:
        """Return (dbversion, checksum) or None if db_info is empty"""
        rows = self._query('SELECT dbversion, checksum FROM db_info', stage="reading db_info")
        if not rows:
            return None
        return rows[0]['dbversion'], _text(rows[0]['checksum'])

    def set_checksum(self, checksum: str) -> None:
        """Record the checksum of the primary.xml this db was built from"""
        try:
            with self.conn:
                with closing(self.conn.cursor()) as cursor:
                    cursor.execute('UPDATE db_info SET checksum = ?', (checksum,))
                    if cursor.rowcount == 0:
                        cursor.execute('INSERT INTO db_info (dbversion, checksum) VALUES (?, ?)',
                                       (DB_VERSION, checksum))
        except sqlite3.Error as e:
            raise StatementError(str(e), stage="writing db_info") from e

    # -- write path --------------------------------------------------------

    def insert_packages(self, *packages) -> List[int]:
        """
        Insert packages with their dependencies and files

        The whole batch is one transaction: if any package fails, nothing
        from this call is stored.

        Args:
            *packages: PackageDescriptor instances

        Returns:
            list: pkgKey assigned to each package, in order

        Raises:
            MissingChecksumError: If a package checksum is unavailable
            FileInsertError: If a file row fails and ignore_file_errors is off
            StatementError: If any other insert fails
        """
        keys = []
        try:
            with self.conn:
                with closing(self.conn.cursor()) as cursor:
                    for package in packages:
                        keys.append(self._insert_package(cursor, package))
        except sqlite3.Error as e:
            raise StatementError(str(e), stage="inserting packages") from e

        logger.debug("Inserted %d package(s) into %s", len(keys), self.path)
        return keys

    def _insert_package(self, cursor: sqlite3.Cursor, package) -> int:
        try:
            checksum = package.checksum()
        except (OSError, ValueError) as e:
            raise MissingChecksumError(f"no checksum for {package}: {e}") from e
        if not checksum:
            raise MissingChecksumError(f"no checksum for {package}")

        cursor.execute(SQL_INSERT_PACKAGE, (
            package.name,
            package.arch,
            package.epoch,
            package.version,
            package.release,
            package.summary,
            package.description,
            package.url,
            package.file_time,
            package.file_size,
            package.installed_size,
            package.archive_size,
            package.location_href,
            checksum,
            package.checksum_type,
            package.build_time,
            package.license,
            package.vendor,
            '\n'.join(package.groups),
            package.buildhost,
            package.sourcerpm,
            package.header_start,
            package.header_end,
            package.packager,
        ))
        pkg_key = cursor.lastrowid

        for kind in DependencyKind:
            for dep in package.dependencies.get(kind, []):
                self._insert_dependency(cursor, kind, dep, pkg_key)

        for filename in package.files:
            try:
                cursor.execute(SQL_INSERT_FILE, (filename, DEFAULT_FILE_TYPE, pkg_key))
            except sqlite3.Error as e:
                if not self.ignore_file_errors:
                    raise FileInsertError(f"{filename} of {package}: {e}") from e
                logger.warning("Skipping file %s of %s: %s", filename, package, e)

        return pkg_key

    @staticmethod
    def _insert_dependency(cursor: sqlite3.Cursor, kind: DependencyKind, dep: Dependency, pkg_key: int):
        values = [
            dep.name,
            dep.flags.encode(),
            str(dep.epoch) if dep.version else None,
            dep.version or None,
            dep.release or None,
            pkg_key,
        ]
        columns = 'name, flags, epoch, version, release, pkgKey'
        if kind is DependencyKind.REQUIRES:
            columns += ', pre'
            values.append(dep.pre)

        placeholders = ', '.join('?' * len(values))
        cursor.execute(f'INSERT INTO {kind.value} ({columns}) VALUES ({placeholders})', values)

    def delete_package(self, pkg_key: int) -> bool:
        """
        Delete a package; the removals trigger drops its files and dependencies

        Returns:
            bool: True if a package row was deleted
        """
        try:
            with self.conn:
                with closing(self.conn.cursor()) as cursor:
                    cursor.execute('DELETE FROM packages WHERE pkgKey = ?', (pkg_key,))
                    deleted = cursor.rowcount > 0
        except sqlite3.Error as e:
            raise StatementError(str(e), stage="deleting package") from e

        if deleted:
            logger.debug("Deleted package %d from %s", pkg_key, self.path)
        return deleted

    # -- read path ---------------------------------------------------------

    def count(self) -> int:
        rows = self._query('SELECT COUNT(*) FROM packages', stage="counting packages")
        return rows[0][0]

    def packages(self, detailed: bool = False) -> List[PackageEntry]:
        """
        List every package in storage order

        By default only the columns needed to identify and fetch a package
        are read. With ``detailed`` the descriptive columns (summary, url,
        license, ...) are read too.
        """
        return self._select_packages('', (), detailed)

    def packages_by_name(self, name: str, detailed: bool = False) -> List[PackageEntry]:
        return self._select_packages('WHERE name = ?', (name,), detailed)

    def _select_packages(self, where: str, params, detailed: bool) -> List[PackageEntry]:
        stage = "listing packages"
        columns = PACKAGE_COLUMNS + (DETAIL_COLUMNS if detailed else [])
        rows = self._query(f"SELECT {', '.join(columns)} FROM packages {where}", params, stage=stage)

        packages = []
        for row in rows:
            try:
                packages.append(self._scan_package(row, detailed))
            except (ValueError, TypeError) as e:
                raise ScanError(f"bad package row {tuple(row)}: {e}", stage=stage) from e
        return packages

    def _scan_package(self, row: sqlite3.Row, detailed: bool) -> PackageEntry:
        entry = PackageEntry(
            key=row['pkgKey'],
            name=_text(row['name']),
            arch=_text(row['arch']),
            versions=PackageVersion(
                epoch=_number(row['epoch']),
                ver=_text(row['version']),
                rel=_text(row['release']),
            ),
            sizes=PackageSize(
                package=_number(row['size_package']),
                installed=_number(row['size_installed']),
                archive=_number(row['size_archive']),
            ),
            location_href=_text(row['location_href']),
            checksums=PackageChecksum(
                type=_text(row['checksum_type']),
                pkgid='YES',
                hash=_text(row['pkgId']),
            ),
            times=PackageTime(build=_number(row['time_build'])),
            db=self,
        )
        if detailed:
            entry.summary = _text(row['summary'])
            entry.description = _text(row['description'])
            entry.url = _text(row['url'])
            entry.packager = _text(row['rpm_packager'])
            entry.times.file = _number(row['time_file'])
            entry.format = PackageFormat(
                license=_text(row['rpm_license']),
                vendor=_text(row['rpm_vendor']),
                group=_text(row['rpm_group']),
                buildhost=_text(row['rpm_buildhost']),
                sourcerpm=_text(row['rpm_sourcerpm']),
                header_start=_number(row['rpm_header_start']),
                header_end=_number(row['rpm_header_end']),
            )
        return entry

    def dependencies_by_package(self, pkg_key: int, kind) -> List[Dependency]:
        """
        Return the dependencies of one kind for a package

        Args:
            pkg_key: Package key
            kind: DependencyKind or one of 'requires', 'provides',
                  'conflicts', 'obsoletes'
        """
        kind = DependencyKind.parse(kind)
        stage = "reading dependencies"
        columns = 'name, flags, epoch, version, release'
        if kind is DependencyKind.REQUIRES:
            columns += ', pre'
        rows = self._query(f'SELECT {columns} FROM {kind.value} WHERE pkgKey = ?',
                           (pkg_key,), stage=stage)

        deps = []
        for row in rows:
            try:
                deps.append(Dependency(
                    name=_text(row['name']),
                    flags=DepFlag.decode(row['flags']),
                    epoch=_number(row['epoch']),
                    version=_text(row['version']),
                    release=_text(row['release']),
                    pre=bool(row['pre']) if kind is DependencyKind.REQUIRES else False,
                ))
            except (ValueError, TypeError) as e:
                raise ScanError(f"bad {kind.value} row {tuple(row)}: {e}", stage=stage) from e
        return deps

    def files_by_package(self, pkg_key: int) -> List[str]:
        rows = self._query('SELECT name FROM files WHERE pkgKey = ?', (pkg_key,),
                           stage="reading files")
        return [_text(row['name']) for row in rows]


def compress_database(db_path: str, keep: bool = False) -> str:
    """
    Compress a SQLite database with bzip2

    Args:
        db_path: Path to .sqlite file
        keep: Keep the uncompressed file

    Returns:
        str: Path to compressed .sqlite.bz2 file
    """
    bz2_path = db_path + '.bz2'

    with open(db_path, 'rb') as f_in:
        with bz2.open(bz2_path, 'wb') as f_out:
            for chunk in iter(lambda: f_in.read(1024 * 1024), b''):
                f_out.write(chunk)

    if not keep:
        os.remove(db_path)

    return bz2_path
