"""
Storage Factory

Builds the set of object storage backends from environment configuration.
The local backend is always available; the S3 backend only exists when a
bucket and credentials are configured.
"""

import logging
from typing import Optional

from ..config.storage_config import S3Config, StorageConfig
from ..domain.file_storage.signed_url_service import SignedUrlService
from ..domain.file_storage.storage_repository import StorageBackends
from .local_object_storage import LocalObjectStorage
from .s3_object_storage import S3ObjectStorage

logger = logging.getLogger(__name__)


class StorageFactory:
    """
    Factory for the configured storage backends.

    Callers depend on StorageBackends and IObjectStorage only; which
    concrete backends exist is decided here.
    """

    @staticmethod
    def create_backends(storage_config: Optional[StorageConfig] = None,
                        s3_config: Optional[S3Config] = None,
                        signer: Optional[SignedUrlService] = None) -> StorageBackends:
        """
        Create storage backends based on environment configuration.

        Args:
            storage_config: Local storage settings, read from env if None
            s3_config: S3 settings, read from env if None
            signer: Signer for local URLs, built from storage_config if None

        Returns:
            StorageBackends with local and, when configured, s3
        """
        storage_config = storage_config or StorageConfig()
        s3_config = s3_config or S3Config()
        signer = signer or StorageFactory.create_signer(storage_config)

        local = StorageFactory._create_local_storage(storage_config, signer)
        s3 = StorageFactory._create_s3_storage(s3_config, storage_config)
        return StorageBackends(local=local, s3=s3)

    @staticmethod
    def create_signer(storage_config: StorageConfig) -> SignedUrlService:
        if not storage_config.secret_key:
            logger.warning(
                "SECRET_KEY not set; local signed URLs will not survive a restart"
            )
        return SignedUrlService(
            secret_key=storage_config.secret_key,
            base_url=storage_config.local_base_url,
            ttl_seconds=storage_config.signed_url_ttl_seconds,
        )

    @staticmethod
    def _create_local_storage(storage_config: StorageConfig,
                              signer: SignedUrlService) -> LocalObjectStorage:
        storage = LocalObjectStorage(storage_config.local_storage_dir, signer)
        logger.info(f"Local storage initialized at {storage_config.local_storage_dir}")
        return storage

    @staticmethod
    def _create_s3_storage(s3_config: S3Config,
                           storage_config: StorageConfig) -> Optional[S3ObjectStorage]:
        if not s3_config.is_configured:
            if s3_config.bucket_name:
                logger.warning(
                    f"S3 bucket set but missing {', '.join(s3_config.missing_fields())}; "
                    f"s3 backend disabled"
                )
            return None

        storage = S3ObjectStorage(
            bucket=s3_config.bucket_name,
            region=s3_config.region,
            endpoint_url=s3_config.endpoint_url,
            access_key_id=s3_config.access_key_id,
            secret_access_key=s3_config.secret_access_key,
            url_ttl_seconds=storage_config.signed_url_ttl_seconds,
        )
        logger.info(f"S3 storage initialized for bucket {s3_config.bucket_name}")
        return storage
