#!/usr/bin/env python3
"""
Test DBConfig class

Tests dot notation configuration, defaults tracking, and validation.
"""

import os
import sys
import tempfile
import json

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
from yumdb.config import DBConfig, find_config_file
from yumdb.constants import DEFAULTS


@pytest.fixture
def config_file():
    with tempfile.NamedTemporaryFile(mode='w', suffix='.conf', delete=False) as f:
        json.dump({}, f)
    yield f.name
    os.unlink(f.name)


def test_defaults_applied(config_file):
    """Missing keys fall back to defaults and are tracked"""
    print("=" * 60)
    print("Test: Defaults")
    print("=" * 60)

    config = DBConfig(config_file)
    for key, value in DEFAULTS.items():
        assert config.get(key) == value
        assert key in config.track_defaults
    assert config.get_bool('db.validate_on_open') is True
    assert config.get_bool('db.ignore_file_errors') is False
    print("✓ Defaults applied")


def test_basic_operations(config_file):
    """Test basic get/set/unset operations"""
    config = DBConfig(config_file)

    config.set('backend.s3.bucket', 'yum-bucket')
    assert config.get('backend.s3.bucket') == 'yum-bucket'
    assert config.has('backend.s3.bucket')

    assert config.get('backend.s3.region') is None
    assert config.get('backend.s3.region', 'us-east-1') == 'us-east-1'

    assert config.unset('backend.s3.bucket') is True
    assert config.unset('backend.s3.bucket') is False
    assert not config.has('backend.s3.bucket')
    print("✓ get/set/unset work")


def test_get_bool_from_strings(config_file):
    config = DBConfig(config_file)
    for value, expected in [('true', True), ('YES', True), ('1', True), ('false', False), ('0', False), ('', False)]:
        config.set('db.ignore_file_errors', value)
        assert config.get_bool('db.ignore_file_errors') is expected, value


def test_get_section(config_file):
    config = DBConfig(config_file)
    config.set('backend.s3.bucket', 'yum-bucket')
    config.set('backend.s3.region', 'eu-west-1')

    section = config.get_section('backend.s3')
    assert section == {'backend.s3.bucket': 'yum-bucket', 'backend.s3.region': 'eu-west-1'}
    assert 'db.compress' in config.get_section('db')


def test_save_skips_untouched_defaults(config_file):
    config = DBConfig(config_file)
    config.set('db.compress', False)
    config.set('backend.s3.bucket', 'yum-bucket')
    config.save()

    with open(config_file) as f:
        saved = json.load(f)
    assert saved == {'backend.s3.bucket': 'yum-bucket', 'db.compress': False}

    reloaded = DBConfig(config_file)
    assert reloaded.get_bool('db.compress') is False
    assert 'db.compress' not in reloaded.track_defaults
    print("✓ Only explicit values saved")


def test_invalid_json():
    with tempfile.NamedTemporaryFile(mode='w', suffix='.conf', delete=False) as f:
        f.write('{not json')
    try:
        with pytest.raises(ValueError):
            DBConfig(f.name)
    finally:
        os.unlink(f.name)


def test_validation(config_file):
    """Test configuration validation"""
    config = DBConfig(config_file)
    assert config.validate() == []

    config.set('backend.type', 's3')
    errors = config.validate()
    assert len(errors) == 1
    assert 'backend.s3.bucket' in errors[0]

    config.set('backend.s3.bucket', 'yum-bucket')
    config.set('db.checksum_type', 'md5')
    errors = config.validate()
    assert len(errors) == 1
    assert 'db.checksum_type' in errors[0]

    config.set('backend.type', 'ftp')
    assert any('backend.type' in e for e in config.validate())
    print("✓ Validation reports errors")


def test_find_config_file(monkeypatch):
    assert find_config_file('/tmp/explicit.conf') == '/tmp/explicit.conf'

    with tempfile.TemporaryDirectory() as tmpdir:
        monkeypatch.chdir(tmpdir)
        with open('yumdb.conf', 'w') as f:
            json.dump({}, f)
        assert find_config_file() == './yumdb.conf'
