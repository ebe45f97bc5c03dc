"""
Command line interface for yumdb

Copyright (c) 2025 Deepgram

Licensed under the MIT License. See LICENSE file for details.
"""

import argparse
import logging
import sys

from yumdb import Colors
from yumdb.backend import create_storage_backend, remote_join
from yumdb.config import DBConfig
from yumdb.constants import DependencyKind
from yumdb.errors import YumDBError
from yumdb.metadata import PrimaryMetadata, build_database_from_metadata, write_primary_metadata
from yumdb.primarydb import PrimaryDatabase
from yumdb.rpmfile import RpmPackageFile


def open_database(config, path):
    return PrimaryDatabase.open(
        path,
        validate=config.get_bool('db.validate_on_open', True),
        ignore_file_errors=config.get_bool('db.ignore_file_errors'),
    )


def create_command(args, config):
    """Create a new primary db from RPM files"""
    checksum_type = config.get('db.checksum_type', 'sha256')
    packages = [RpmPackageFile(path, checksum_type=checksum_type) for path in args.rpm_files]

    with PrimaryDatabase.create(args.db, ignore_file_errors=config.get_bool('db.ignore_file_errors')) as db:
        keys = db.insert_packages(*packages)

    for key, package in zip(keys, packages):
        print(f"  {key:>6}  {package}")
    print(Colors.success(f"✓ Created {args.db} with {len(keys)} package{'s' if len(keys) != 1 else ''}"))
    return 0


def import_command(args, config):
    """Create a new primary db from primary.xml(.gz)"""
    db = build_database_from_metadata(
        args.primary_xml, args.db,
        ignore_file_errors=config.get_bool('db.ignore_file_errors'),
    )
    with db:
        count = db.count()
    print(Colors.success(f"✓ Imported {count} package{'s' if count != 1 else ''} into {args.db}"))
    return 0


def export_command(args, config):
    """Write primary.xml(.gz) from a primary db"""
    with open_database(config, args.db) as db:
        metadata = PrimaryMetadata.from_database(db)
    write_primary_metadata(metadata, args.output)
    print(Colors.success(f"✓ Wrote {len(metadata.packages)} package(s) to {args.output}"))
    return 0


def list_command(args, config):
    with open_database(config, args.db) as db:
        packages = db.packages()

    if not packages:
        print(Colors.warning("No packages"))
        return 0

    for package in packages:
        print(f"  {package.key:>6}  {package}  {package.location_href}")
    print()
    print(Colors.bold(f"{len(packages)} package(s)"))
    return 0


def deps_command(args, config):
    with open_database(config, args.db) as db:
        deps = db.dependencies_by_package(args.key, args.kind)

    for dep in deps:
        print(f"  {dep}{' (pre)' if dep.pre else ''}")
    return 0


def files_command(args, config):
    with open_database(config, args.db) as db:
        files = db.files_by_package(args.key)

    for filename in files:
        print(f"  {filename}")
    return 0


def remove_command(args, config):
    status = 0
    with open_database(config, args.db) as db:
        for key in args.keys:
            if db.delete_package(key):
                print(Colors.success(f"✓ Removed package {key}"))
            else:
                print(Colors.warning(f"⚠ No package with key {key}"))
                status = 1
    return status


def publish_command(args, config):
    """Upload a primary db to the configured storage backend"""
    # Opening validates the schema before anything is uploaded
    with open_database(config, args.db):
        pass

    storage = create_storage_backend(config)
    prefix = args.prefix or config.get('backend.prefix', 'repodata')
    remote_path = storage.publish_database(args.db, prefix, compress=config.get_bool('db.compress', True))

    print(Colors.success(f"✓ Published {remote_path}"))
    for name, value in storage.get_info().items():
        print(f"  {name}: {value}")
    return 0


def fetch_command(args, config):
    """Download a published primary db"""
    storage = create_storage_backend(config)
    prefix = args.prefix or config.get('backend.prefix', 'repodata')
    remote_path = remote_join(prefix, args.name)

    storage.fetch_database(remote_path, args.db)
    with open_database(config, args.db) as db:
        count = db.count()
    print(Colors.success(f"✓ Fetched {remote_path} to {args.db} ({count} package(s))"))
    return 0


def config_command(args):
    """Handle config subcommand"""
    config = DBConfig(args.file or args.config)

    if args.list:
        print(f"Reading {config.config_file}")
        print("=" * 40)
        for key, value in sorted(config.list().items()):
            print(f"{key}={value}{'*' if key in config.track_defaults else ''}")
        return 0

    elif args.unset:
        if config.unset(args.unset):
            config.save()
            print(f"Unset {args.unset}")
        else:
            print(f"Key not found: {args.unset}")
            return 1
        return 0

    elif args.validate_config:
        errors = config.validate()
        if errors:
            print("Configuration errors:")
            for error in errors:
                print(f"  - {error}")
            return 1
        print("Configuration is valid")
        return 0

    elif args.key:
        if args.value is not None:
            config.set(args.key, args.value)
            config.save()
            print(f"Set {args.key} = {args.value}")
        else:
            value = config.get(args.key)
            if value is None:
                print(f"Key not found: {args.key}")
                return 1
            print(value)
        return 0

    print(f"Config file: {config.config_file}")
    print(f"Keys: {len(config.data)}")
    return 0


COMMANDS = {
    'create': create_command,
    'import': import_command,
    'export': export_command,
    'list': list_command,
    'deps': deps_command,
    'files': files_command,
    'remove': remove_command,
    'publish': publish_command,
    'fetch': fetch_command,
}


def create_parser():
    parser = argparse.ArgumentParser(
        prog='yumdb',
        description='Build and query primary_db databases of YUM repositories',
    )

    parser.add_argument('--config', help='Path to config file')
    parser.add_argument('--debug', action='store_true', help='Show debug logging')
    parser.add_argument('--ignore-file-errors', action='store_true',
                        help='Skip file rows that fail to insert instead of aborting')
    parser.add_argument('--no-validate', action='store_true',
                        help='Do not check the schema version when opening a database')

    subparsers = parser.add_subparsers(dest='command', help='Command to execute', required=True)

    new_parser = subparsers.add_parser('create', help='Create a primary db from RPM files')
    new_parser.add_argument('db', help='Database file to create (replaced if it exists)')
    new_parser.add_argument('rpm_files', nargs='+', help='RPM file(s) to add')

    import_parser = subparsers.add_parser('import', help='Create a primary db from primary.xml')
    import_parser.add_argument('db', help='Database file to create (replaced if it exists)')
    import_parser.add_argument('primary_xml', help='primary.xml or primary.xml.gz')

    export_parser = subparsers.add_parser('export', help='Write primary.xml from a primary db')
    export_parser.add_argument('db', help='Database file')
    export_parser.add_argument('output', help='primary.xml or primary.xml.gz to write')

    list_parser = subparsers.add_parser('list', help='List packages')
    list_parser.add_argument('db', help='Database file')

    deps_parser = subparsers.add_parser('deps', help='Show dependencies of a package')
    deps_parser.add_argument('db', help='Database file')
    deps_parser.add_argument('key', type=int, help='Package key')
    deps_parser.add_argument('--kind', default=DependencyKind.REQUIRES.value,
                             choices=[kind.value for kind in DependencyKind],
                             help='Dependency kind (default: requires)')

    files_parser = subparsers.add_parser('files', help='Show files of a package')
    files_parser.add_argument('db', help='Database file')
    files_parser.add_argument('key', type=int, help='Package key')

    remove_parser = subparsers.add_parser('remove', help='Remove packages with their files and dependencies')
    remove_parser.add_argument('db', help='Database file')
    remove_parser.add_argument('keys', nargs='+', type=int, help='Package key(s)')

    publish_parser = subparsers.add_parser('publish', help='Upload a primary db to the storage backend')
    publish_parser.add_argument('db', help='Database file')
    publish_parser.add_argument('--prefix', help='Remote directory (overrides backend.prefix)')

    fetch_parser = subparsers.add_parser('fetch', help='Download a published primary db')
    fetch_parser.add_argument('db', help='Database file to write')
    fetch_parser.add_argument('--name', default='primary.sqlite.bz2', help='Published file name (default: primary.sqlite.bz2)')
    fetch_parser.add_argument('--prefix', help='Remote directory (overrides backend.prefix)')

    config_parser = subparsers.add_parser('config', help='Manage configuration')
    config_parser.add_argument('key', nargs='?', help='Config key (dot notation)')
    config_parser.add_argument('value', nargs='?', help='Config value (if setting)')
    config_parser.add_argument('--list', action='store_true', help='List all config values')
    config_parser.add_argument('--unset', metavar='KEY', help='Remove a config key')
    config_parser.add_argument('--validate', dest='validate_config', action='store_true', help='Validate configuration')
    config_parser.add_argument('--file', help='Use specific config file')

    return parser


def main(argv=None):
    parser = create_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.WARNING,
        format=' - [%(levelname)s] %(message)s',
    )

    try:
        if args.command == 'config':
            return config_command(args)

        config = DBConfig(args.config)

        # Apply CLI argument overrides
        if args.ignore_file_errors:
            config.set('db.ignore_file_errors', True)
        if args.no_validate:
            config.set('db.validate_on_open', False)

        return COMMANDS[args.command](args, config)

    except (YumDBError, ValueError, FileNotFoundError) as e:
        print(Colors.error(f"✗ Error: {e}"))
        return 1
    except KeyboardInterrupt:
        print(Colors.warning("\n✗ Cancelled"))
        return 130


if __name__ == '__main__':
    sys.exit(main())
