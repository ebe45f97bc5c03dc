#!/usr/bin/env python3
"""
Rebuild primary_db from primary.xml for existing repositories

Replaces any primary_db entry in repomd.xml with a freshly built,
bzip2-compressed primary.sqlite.
"""

import argparse
import hashlib
import os
import sys
from datetime import datetime

from lxml import etree as ET

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
from yumdb.constants import DB_VERSION
from yumdb.errors import YumDBError
from yumdb.metadata import build_database_from_metadata
from yumdb.primarydb import compress_database

REPO_NS = 'http://linux.duke.edu/metadata/repo'


def _sha256(data):
    return hashlib.sha256(data).hexdigest()


def _find(elem, tag):
    # repomd.xml written by createrepo is namespaced, hand-edited ones may not be
    found = elem.find(f'{{{REPO_NS}}}{tag}')
    return found if found is not None else elem.find(tag)


def rebuild_primary_db(repodata_dir):
    """Rebuild the primary_db of one repodata directory

    Returns:
        str: path of the new primary.sqlite.bz2
    """
    repomd_path = os.path.join(repodata_dir, 'repomd.xml')
    tree = ET.parse(repomd_path)
    root = tree.getroot()
    ns = REPO_NS if ET.QName(root).namespace == REPO_NS else None

    primary_xml = None
    stale = []
    for data in list(root):
        if not isinstance(data.tag, str) or ET.QName(data).localname != 'data':
            continue
        location = _find(data, 'location')
        path = os.path.join(repodata_dir, os.path.basename(location.get('href'))) if location is not None else None
        if data.get('type') == 'primary':
            primary_xml = path
        elif data.get('type') == 'primary_db':
            stale.append((data, path))

    if primary_xml is None or not os.path.exists(primary_xml):
        raise FileNotFoundError(f"primary.xml not found in {repomd_path}")

    # Old entries stay in place until the new database exists
    db_path = os.path.join(repodata_dir, 'primary.sqlite')
    try:
        with build_database_from_metadata(primary_xml, db_path) as db:
            print(f"  Built {os.path.basename(db_path)} with {db.count()} package(s)")

        with open(db_path, 'rb') as f:
            open_data = f.read()
        compressed_path = compress_database(db_path, keep=True)
    finally:
        if os.path.exists(db_path):
            os.remove(db_path)

    with open(compressed_path, 'rb') as f:
        compressed_data = f.read()

    checksum = _sha256(compressed_data)
    new_filename = f"{checksum}-primary.sqlite.bz2"
    new_path = os.path.join(repodata_dir, new_filename)
    os.rename(compressed_path, new_path)

    for data, path in stale:
        root.remove(data)
        if path and path != new_path and os.path.exists(path):
            os.remove(path)

    def sub(parent, tag, text=None, **attrs):
        elem = ET.SubElement(parent, f'{{{ns}}}{tag}' if ns else tag, attrs)
        if text is not None:
            elem.text = text
        return elem

    data_elem = sub(root, 'data', type='primary_db')
    sub(data_elem, 'checksum', checksum, type='sha256')
    sub(data_elem, 'open-checksum', _sha256(open_data), type='sha256')
    sub(data_elem, 'location', href=f'repodata/{new_filename}')
    sub(data_elem, 'timestamp', str(int(datetime.now().timestamp())))
    sub(data_elem, 'size', str(len(compressed_data)))
    sub(data_elem, 'open-size', str(len(open_data)))
    sub(data_elem, 'database_version', str(DB_VERSION))

    revision = _find(root, 'revision')
    if revision is not None:
        revision.text = str(int(datetime.now().timestamp()))

    ET.indent(tree, space='  ')
    tree.write(repomd_path, encoding='utf-8', xml_declaration=True)
    return new_path


def main():
    parser = argparse.ArgumentParser(description='Rebuild primary_db for YUM repositories')
    parser.add_argument('repo_base', nargs='?', default=os.path.expanduser('~/yum-repo'),
                        help='Directory to scan for repodata/repomd.xml')
    args = parser.parse_args()

    if not os.path.exists(args.repo_base):
        print(f"ERROR: Repository not found at {args.repo_base}")
        return 1

    print(f"Scanning {args.repo_base} for repositories...\n")

    success_count = 0
    for root, dirs, files in os.walk(args.repo_base):
        if 'repomd.xml' not in files:
            continue
        print(f"Found repository: {root}")
        try:
            new_path = rebuild_primary_db(root)
        except (YumDBError, OSError, ET.XMLSyntaxError) as e:
            print(f"  ✗ Failed: {e}")
            continue
        print(f"  ✓ {os.path.basename(new_path)}\n")
        success_count += 1

    if success_count > 0:
        print(f"✓ Rebuilt {success_count} repository/repositories")
        return 0

    print("✗ No repositories were rebuilt")
    return 1


if __name__ == '__main__':
    sys.exit(main())
