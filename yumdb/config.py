"""
Configuration management for yumdb

Copyright (c) 2025 Deepgram

Licensed under the MIT License. See LICENSE file for details.
"""

import os
import json
from typing import Any, Dict, List, Optional
from .constants import (
    AVAIL_BACKEND_TYPES,
    DEFAULTS,
    RepoConfigFiles
)


def find_config_file(config_file: Optional[str] = None) -> str:
    """Return the config file to use

    An explicit path wins; otherwise the first existing file of local,
    user and system locations, falling back to the user file.
    """
    if config_file:
        return config_file

    for location in (RepoConfigFiles.LOCAL, RepoConfigFiles.USER, RepoConfigFiles.SYSTEM):
        if os.path.exists(location.value):
            return location.value

    return RepoConfigFiles.USER.value


class DBConfig:
    """Flat JSON configuration with dot-notated keys

    Keys are stored as-is, not nested:
        {
            "backend.type": "s3",
            "backend.s3.bucket": "yum-bucket",
            "db.ignore_file_errors": false
        }

    Keys missing from the file take their value from DEFAULTS and are
    listed in ``track_defaults`` so ``save`` leaves them out.
    """

    def __init__(self, config_file: Optional[str] = None):
        self.config_file = find_config_file(config_file)
        self.data = self._load()
        self.track_defaults = [key for key in DEFAULTS if key not in self.data]
        for key in self.track_defaults:
            self.data[key] = DEFAULTS[key]

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)

    def get_bool(self, key: str, default: bool = False) -> bool:
        """Get a boolean value; strings set from the CLI are accepted"""
        value = self.get(key, default)
        if isinstance(value, str):
            return value.strip().lower() in ('1', 'true', 'yes', 'on')
        return bool(value)

    def set(self, key: str, value: Any) -> None:
        self.data[key] = value
        if key in self.track_defaults:
            self.track_defaults.remove(key)

    def unset(self, key: str) -> bool:
        """Drop ``key``; False when it was not set"""
        if key not in self.data:
            return False
        del self.data[key]
        if key in self.track_defaults:
            self.track_defaults.remove(key)
        return True

    def has(self, key: str) -> bool:
        return key in self.data

    def list(self) -> Dict[str, Any]:
        return dict(self.data)

    def get_section(self, prefix: str) -> Dict[str, Any]:
        """Keys equal to ``prefix`` or below it, e.g. 'backend.s3'"""
        return {
            key: value for key, value in self.data.items()
            if key == prefix or key.startswith(prefix + '.')
        }

    def validate(self) -> List[str]:
        """Check the configuration

        Returns:
            List of error messages, empty if the configuration is valid
        """
        errors = []
        backend_type = self.get('backend.type')
        if backend_type not in AVAIL_BACKEND_TYPES:
            errors.append(f"backend.type must be one of {', '.join(AVAIL_BACKEND_TYPES)}, got {backend_type!r}")
        elif backend_type == 's3' and not self.get('backend.s3.bucket'):
            errors.append("backend.s3.bucket is required when backend.type is s3")
        elif backend_type == 'local' and not self.get('backend.local.path'):
            errors.append("backend.local.path is required when backend.type is local")

        checksum_type = self.get('db.checksum_type')
        if checksum_type not in ('sha1', 'sha256', 'sha384', 'sha512'):
            errors.append(f"db.checksum_type is not supported: {checksum_type!r}")

        return errors

    def save(self, config_file: Optional[str] = None) -> None:
        """Write explicitly set keys to ``config_file`` (default: the loaded file)"""
        target_file = config_file or self.config_file
        config_dir = os.path.dirname(target_file)
        if config_dir:
            os.makedirs(config_dir, exist_ok=True)

        explicit = {key: value for key, value in self.data.items() if key not in self.track_defaults}
        with open(target_file, 'w') as f:
            json.dump(explicit, f, indent=2, sort_keys=True)

    def _load(self) -> dict:
        try:
            with open(self.config_file) as f:
                return json.load(f)
        except FileNotFoundError:
            return {}
        except (json.JSONDecodeError, OSError) as e:
            raise ValueError(f"Cannot read config {self.config_file}: {e}") from e

    def __repr__(self) -> str:
        return f"DBConfig(file={self.config_file}, keys={len(self.data)})"
