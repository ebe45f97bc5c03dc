"""
Storage backends for publishing primary_db files

Copyright (c) 2025 Deepgram

Licensed under the MIT License. See LICENSE file for details.
"""

import bz2
import logging
import os
import shutil
from abc import ABC, abstractmethod

import boto3
from botocore.exceptions import ClientError

from .config import DBConfig
from .primarydb import compress_database

logger = logging.getLogger(__name__)


def remote_join(prefix: str, name: str) -> str:
    prefix = (prefix or '').strip('/')
    return f"{prefix}/{name}" if prefix else name


class StorageBackend(ABC):
    """Where built primary_db files are published

    Subclasses move single files; publishing and fetching a database
    (compression, naming) is shared.
    """

    @abstractmethod
    def exists(self, path: str) -> bool:
        pass

    @abstractmethod
    def download_file(self, remote_path: str, local_path: str) -> None:
        pass

    @abstractmethod
    def upload_file(self, local_path: str, remote_path: str) -> None:
        pass

    @abstractmethod
    def get_url(self) -> str:
        """Get human-readable URL for display purposes"""
        pass

    @abstractmethod
    def get_info(self) -> dict:
        """Get backend information for display

        Returns:
            Dictionary with display name as key and value as value
            Example: {"Storage": "file:///path/to/storage"}
        """
        pass

    def publish_database(self, db_path: str, prefix: str, compress: bool = True) -> str:
        """
        Upload a primary_db under ``prefix``

        With ``compress`` a temporary .bz2 copy is uploaded and removed
        afterwards; ``db_path`` itself is never modified.

        Returns:
            str: remote path of the uploaded file
        """
        upload_path = compress_database(db_path, keep=True) if compress else db_path
        remote_path = remote_join(prefix, os.path.basename(upload_path))
        try:
            if self.exists(remote_path):
                logger.info("Replacing %s at %s", remote_path, self.get_url())
            self.upload_file(upload_path, remote_path)
        finally:
            if upload_path != db_path:
                os.remove(upload_path)
        return remote_path

    def fetch_database(self, remote_path: str, local_path: str) -> str:
        """
        Download a published primary_db to ``local_path``

        ``.bz2`` files are decompressed on the way.

        Raises:
            FileNotFoundError: If nothing is published at ``remote_path``
        """
        if not self.exists(remote_path):
            raise FileNotFoundError(f"No primary db at {remote_path} in {self.get_url()}")

        if not remote_path.endswith('.bz2'):
            self.download_file(remote_path, local_path)
            return local_path

        tmp_path = local_path + '.bz2'
        self.download_file(remote_path, tmp_path)
        try:
            with bz2.open(tmp_path, 'rb') as f_in, open(local_path, 'wb') as f_out:
                shutil.copyfileobj(f_in, f_out)
        finally:
            os.remove(tmp_path)
        return local_path


def create_storage_backend(config: DBConfig) -> StorageBackend:
    """Create storage backend from configuration"""
    storage_type = config.get('backend.type', 'local')

    if storage_type == 's3':
        return S3StorageBackend(config)
    elif storage_type == 'local':
        return LocalStorageBackend(config)
    else:
        raise ValueError(f"Unknown storage type: {storage_type}")


class S3StorageBackend(StorageBackend):
    def __init__(self, config: DBConfig, client=None):
        """
        Initialize S3 storage backend

        Args:
            config: Configuration with backend.s3.* keys
            client: Pre-built S3 client (a boto3 client is created if None)

        Raises:
            ValueError: If backend.s3.bucket is not configured
        """
        bucket_name = config.get('backend.s3.bucket')
        if not bucket_name:
            raise ValueError("backend.s3.bucket is required for S3StorageBackend")

        self.bucket_name = bucket_name
        self.endpoint_url = config.get('backend.s3.endpoint')

        # Explicit profile from config, then AWS_PROFILE, then the default chain
        aws_profile = config.get('backend.s3.profile')
        if aws_profile and aws_profile != 'default':
            self.aws_profile = aws_profile
        else:
            self.aws_profile = os.environ.get('AWS_PROFILE')

        self.aws_region = config.get('backend.s3.region') or os.environ.get('AWS_REGION')

        if client is None:
            session = boto3.Session(profile_name=self.aws_profile, region_name=self.aws_region)
            client = session.client('s3', endpoint_url=self.endpoint_url)
        self.s3_client = client

    def exists(self, path: str) -> bool:
        try:
            self.s3_client.head_object(Bucket=self.bucket_name, Key=path)
        except ClientError as e:
            if e.response.get('Error', {}).get('Code') in ('404', 'NoSuchKey', 'NotFound'):
                return False
            raise
        return True

    def download_file(self, remote_path: str, local_path: str) -> None:
        logger.debug("download s3://%s/%s -> %s", self.bucket_name, remote_path, local_path)
        self.s3_client.download_file(self.bucket_name, remote_path, local_path)

    def upload_file(self, local_path: str, remote_path: str) -> None:
        logger.debug("upload %s -> s3://%s/%s", local_path, self.bucket_name, remote_path)
        self.s3_client.upload_file(local_path, self.bucket_name, remote_path)

    def get_url(self) -> str:
        if self.endpoint_url:
            return f"{self.endpoint_url}/{self.bucket_name}"
        return f"s3://{self.bucket_name}"

    def get_info(self) -> dict:
        return {
            'S3 URL': self.get_url(),
            'AWS Profile': self.aws_profile or 'default',
            'AWS Region': self.aws_region or 'default',
        }


class LocalStorageBackend(StorageBackend):
    """A directory tree, e.g. the document root of a web server"""

    def __init__(self, config: DBConfig):
        base_path = config.get('backend.local.path')
        if not base_path:
            raise ValueError("backend.local.path is required for LocalStorageBackend")

        self.base_path = os.path.abspath(os.path.expanduser(base_path))
        os.makedirs(self.base_path, exist_ok=True)

    def _full_path(self, path: str) -> str:
        return os.path.join(self.base_path, path.lstrip('/'))

    def exists(self, path: str) -> bool:
        return os.path.isfile(self._full_path(path))

    def download_file(self, remote_path: str, local_path: str) -> None:
        shutil.copy2(self._full_path(remote_path), local_path)

    def upload_file(self, local_path: str, remote_path: str) -> None:
        dst = self._full_path(remote_path)
        os.makedirs(os.path.dirname(dst), exist_ok=True)
        logger.debug("copy %s -> %s", local_path, dst)
        shutil.copy2(local_path, dst)

    def get_url(self) -> str:
        return f"file://{self.base_path}"

    def get_info(self) -> dict:
        return {'Storage': self.get_url()}
