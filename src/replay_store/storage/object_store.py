"""
Object store adapters.

Implements the ObjectStore protocol for Amazon S3 (and S3-compatible stores
such as MinIO or R2) and Azure Blob Storage. Transport failures are retried
with exponential backoff before surfacing as StoreUnavailable.
"""
from __future__ import annotations

import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, List, Optional, TypeVar

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from ..errors import ObjectNotFound, StoreUnavailable
from ..settings import Settings
from .base import ObjectInfo, ObjectStore

__all__ = ["S3ObjectStore", "AzureObjectStore", "object_store_for"]

logger = logging.getLogger(__name__)

T = TypeVar("T")

_S3_NOT_FOUND_CODES = {"NoSuchKey", "404", "NotFound"}


def _retrying(settings: Settings) -> Retrying:
    """Retry policy shared by all adapters: only StoreUnavailable is retried."""
    return Retrying(
        stop=stop_after_attempt(settings.store_retry + 1),
        wait=wait_exponential(multiplier=0.2, min=0.2, max=5),
        retry=retry_if_exception_type(StoreUnavailable),
        reraise=True,
    )


class S3ObjectStore(ObjectStore):
    """
    ObjectStore adapter for Amazon S3 and S3-compatible endpoints.

    Uses boto3 with explicit keys when configured, otherwise the default
    credential chain (env, profile, instance role). Listing is paginated so
    buckets with more than 1000 objects under a prefix are fully enumerated.
    """

    def __init__(self, *, settings: Settings, client: Any = None) -> None:
        """
        Initialize S3 adapter with settings.

        Args:
            settings: Settings containing bucket and S3 configuration
            client: Pre-built boto3 S3 client (tests inject a stub)
        """
        self._settings = settings
        self._bucket = settings.bucket
        self._client = client if client is not None else self._build_client()
        self._retry = _retrying(settings)

        logger.debug(f"S3 adapter for bucket {self._bucket}"
                     f"{' at ' + settings.s3_endpoint_url if settings.s3_endpoint_url else ''}, "
                     f"timeout: {settings.store_timeout_s}s, retry: {settings.store_retry}")

    def _build_client(self) -> Any:
        s = self._settings
        kwargs = {
            "region_name": s.s3_region,
            "endpoint_url": s.s3_endpoint_url,
            "config": BotoConfig(
                signature_version="s3v4",
                connect_timeout=s.store_timeout_s,
                read_timeout=s.store_timeout_s,
                # tenacity owns retries
                retries={"max_attempts": 1, "mode": "standard"},
            ),
        }
        if s.s3_access_key:
            kwargs["aws_access_key_id"] = s.s3_access_key
            kwargs["aws_secret_access_key"] = s.s3_secret_key
        return boto3.client("s3", **kwargs)

    def _call(self, action: str, key: str, fn: Callable[[], T]) -> T:
        """Run one SDK call, mapping botocore errors onto the store taxonomy."""
        def attempt() -> T:
            try:
                return fn()
            except ClientError as e:
                code = str(e.response.get("Error", {}).get("Code", ""))
                if code in _S3_NOT_FOUND_CODES:
                    raise ObjectNotFound(key) from e
                raise StoreUnavailable(f"S3 {action} failed for {key}: {e}") from e
            except BotoCoreError as e:
                raise StoreUnavailable(f"S3 {action} failed for {key}: {e}") from e

        return self._retry(attempt)

    def put(self, key: str, data: bytes) -> None:
        self._call("put", key, lambda: self._client.put_object(
            Bucket=self._bucket,
            Key=key,
            Body=data,
            ContentType="application/octet-stream",
        ))

    def get(self, key: str) -> bytes:
        def fetch() -> bytes:
            response = self._client.get_object(Bucket=self._bucket, Key=key)
            return response["Body"].read()

        return self._call("get", key, fetch)

    def list(self, prefix: str) -> List[str]:
        return [info.key for info in self.list_info(prefix)]

    def list_info(self, prefix: str) -> List[ObjectInfo]:
        def enumerate_pages() -> List[ObjectInfo]:
            infos = []
            paginator = self._client.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=self._bucket, Prefix=prefix):
                for obj in page.get("Contents", []):
                    if obj["Key"].endswith("/"):
                        continue
                    infos.append(ObjectInfo(
                        key=obj["Key"],
                        size=obj.get("Size", 0),
                        last_modified=obj.get("LastModified"),
                    ))
            return infos

        return self._call("list", prefix, enumerate_pages)

    def delete(self, key: str) -> None:
        # S3 delete is idempotent; a missing key returns 204
        self._call("delete", key, lambda: self._client.delete_object(Bucket=self._bucket, Key=key))

    def presign_url(self, key: str, expires_s: int) -> str:
        return self._call("presign", key, lambda: self._client.generate_presigned_url(
            "get_object",
            Params={"Bucket": self._bucket, "Key": key},
            ExpiresIn=expires_s,
        ))


class AzureObjectStore(ObjectStore):
    """
    ObjectStore adapter for Azure Blob Storage.

    Uses azure-storage-blob SDK with connection string or account+key
    authentication. Supports custom endpoints for Azurite and private Azure
    clouds. The settings bucket is used as the container name.
    """

    def __init__(self, *, settings: Settings, container_client: Any = None) -> None:
        """
        Initialize Azure adapter with settings.

        Args:
            settings: Settings containing Azure authentication and configuration
            container_client: Pre-built ContainerClient (tests inject a stub)

        Raises:
            ValueError: If Azure authentication is not properly configured
        """
        self._settings = settings
        self._validate_azure_auth()
        self._container = container_client if container_client is not None else self._build_container_client()
        self._retry = _retrying(settings)

        if settings.az_connection_string:
            logger.debug(f"Azure adapter using connection string auth for container {settings.bucket}")
        else:
            logger.debug(f"Azure adapter using account+key auth for {settings.az_account}, container {settings.bucket}")

    def _validate_azure_auth(self) -> None:
        """Validate Azure authentication configuration."""
        has_conn_str = bool(self._settings.az_connection_string)
        has_account_key = bool(self._settings.az_account and self._settings.az_key)

        if not has_conn_str and not has_account_key:
            raise ValueError("Azure authentication not configured: need AZURE_STORAGE_CONNECTION_STRING or (AZURE_STORAGE_ACCOUNT + AZURE_STORAGE_KEY)")

    def _account_credentials(self) -> tuple[Optional[str], Optional[str]]:
        """Return (account_name, account_key) from whichever auth form is configured."""
        s = self._settings
        if s.az_account:
            return s.az_account, s.az_key
        conn = s.az_connection_string or ""
        account = re.search(r'AccountName=([^;]+)', conn)
        key = re.search(r'AccountKey=([^;]+)', conn)
        return (account.group(1) if account else None, key.group(1) if key else None)

    def _build_container_client(self) -> Any:
        """
        Build a container client using one of the supported connection patterns.

        1. Connection string (standard Azure cloud)
        2. Connection string + custom endpoint (Azurite/private cloud)
        3. Account+key (https://{account}.blob.core.windows.net)
        4. Account+key + custom endpoint ({endpoint}/{account})
        """
        try:
            from azure.storage.blob import BlobServiceClient
        except ImportError:
            raise ImportError("azure-storage-blob package required for the Azure backend")

        s = self._settings
        common = {"connection_timeout": s.store_timeout_s, "retry_total": 0}

        if s.az_connection_string and not s.az_blob_endpoint:
            service = BlobServiceClient.from_connection_string(s.az_connection_string, **common)
        else:
            account, key = self._account_credentials()
            if s.az_blob_endpoint:
                account_url = f"{s.az_blob_endpoint.rstrip('/')}/{account}"
            else:
                account_url = f"https://{account}.blob.core.windows.net"
            credential = {"account_name": account, "account_key": key} if key else None
            service = BlobServiceClient(account_url=account_url, credential=credential, **common)

        return service.get_container_client(s.bucket)

    def _call(self, action: str, key: str, fn: Callable[[], T]) -> T:
        """Run one SDK call, mapping Azure errors onto the store taxonomy."""
        from azure.core.exceptions import AzureError, ResourceNotFoundError

        def attempt() -> T:
            try:
                return fn()
            except ResourceNotFoundError as e:
                raise ObjectNotFound(key) from e
            except AzureError as e:
                raise StoreUnavailable(f"Azure {action} failed for {key}: {e}") from e

        return self._retry(attempt)

    def put(self, key: str, data: bytes) -> None:
        self._call("put", key, lambda: self._container.upload_blob(
            name=key, data=data, overwrite=True,
        ))

    def get(self, key: str) -> bytes:
        return self._call("get", key, lambda: self._container.download_blob(key).readall())

    def list(self, prefix: str) -> List[str]:
        return [info.key for info in self.list_info(prefix)]

    def list_info(self, prefix: str) -> List[ObjectInfo]:
        def enumerate_blobs() -> List[ObjectInfo]:
            return [
                ObjectInfo(key=blob.name, size=blob.size, last_modified=blob.last_modified)
                for blob in self._container.list_blobs(name_starts_with=prefix)
                if not blob.name.endswith("/")
            ]

        return self._call("list", prefix, enumerate_blobs)

    def delete(self, key: str) -> None:
        try:
            self._call("delete", key, lambda: self._container.delete_blob(key))
        except ObjectNotFound:
            logger.debug(f"Delete of missing blob {key} ignored")

    def presign_url(self, key: str, expires_s: int) -> str:
        try:
            from azure.storage.blob import BlobSasPermissions, generate_blob_sas
        except ImportError:
            raise ImportError("azure-storage-blob package required for the Azure backend")

        account, account_key = self._account_credentials()
        if not account or not account_key:
            raise NotImplementedError("SAS URLs need an account key")

        sas = generate_blob_sas(
            account_name=account,
            container_name=self._settings.bucket,
            blob_name=key,
            account_key=account_key,
            permission=BlobSasPermissions(read=True),
            expiry=datetime.now(timezone.utc) + timedelta(seconds=expires_s),
        )
        return f"{self._container.get_blob_client(key).url}?{sas}"


def object_store_for(settings: Settings) -> ObjectStore:
    """
    Create the object store adapter selected by settings.

    Args:
        settings: Settings for adapter configuration

    Returns:
        ObjectStore adapter for the configured backend

    Raises:
        ValueError: For unsupported backends
    """
    if settings.backend == "s3":
        return S3ObjectStore(settings=settings)
    elif settings.backend == "az":
        return AzureObjectStore(settings=settings)
    else:
        # Settings validation should make this unreachable
        raise ValueError(f"Unsupported backend: {settings.backend}")
