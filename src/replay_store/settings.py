"""
Settings and configuration for the replay store.

Centralizes configuration values and provides validation with fail-fast behavior.
Loads settings from environment variables at adapter construction time.
"""
from __future__ import annotations

import os
import re
from dataclasses import dataclass
from typing import Optional

__all__ = ["Settings", "create_settings_from_env", "MAX_LOOKBACK_HOURS"]

# One week; walking back further than this means the chain is broken
MAX_LOOKBACK_HOURS = 168

_BACKENDS = ("s3", "az")


@dataclass(frozen=True)
class Settings:
    """
    Configuration settings for the replay store.

    Object Store Settings:
        bucket: Bucket (S3) or container (Azure) holding all records (required)
        backend: Object store backend, "s3" or "az"
        store_timeout_s: Per-request timeout in seconds
        store_retry: Number of retries for failed transport calls (0=no retry)
        presign_ttl_s: Lifetime of presigned GET URLs handed to timeline clients

    S3 Settings:
        s3_region: AWS region name
        s3_endpoint_url: Custom endpoint (MinIO, R2, LocalStack)
        s3_access_key: Access key id (falls back to the default boto3 chain)
        s3_secret_key: Secret access key

    Azure Settings:
        az_connection_string: Azure storage connection string
        az_account: Azure storage account name
        az_key: Azure storage account key
        az_blob_endpoint: Custom Azure blob endpoint (for Azurite/private endpoints)

    Replay Settings:
        fetch_workers: Concurrent object fetches per bucket
        lookback_hours: How far compaction/replay may walk back past a skipped
            snapshot hour (0 = only the adjacent hour, never walk back)
        compress_records: zstd-compress record content when writing envelopes
    """
    bucket: str
    backend: str = "s3"
    store_timeout_s: float = 30.0
    store_retry: int = 2
    presign_ttl_s: int = 3600

    # S3 settings
    s3_region: Optional[str] = None
    s3_endpoint_url: Optional[str] = None
    s3_access_key: Optional[str] = None
    s3_secret_key: Optional[str] = None

    # Azure settings
    az_connection_string: Optional[str] = None
    az_account: Optional[str] = None
    az_key: Optional[str] = None
    az_blob_endpoint: Optional[str] = None

    # Replay settings
    fetch_workers: int = 8
    lookback_hours: int = 0
    compress_records: bool = False

    def __post_init__(self):
        """Validate settings on construction."""
        if not self.bucket:
            raise ValueError("bucket is required")

        # Lowest common denominator of S3 bucket and Azure container naming
        bucket_pattern = r"^[a-z0-9][a-z0-9.-]{1,61}[a-z0-9]$"
        if not re.match(bucket_pattern, self.bucket):
            raise ValueError(f"Invalid bucket name: {self.bucket}")

        if self.backend not in _BACKENDS:
            raise ValueError(f"Unsupported backend: {self.backend}. Use one of {', '.join(_BACKENDS)}")

        if self.store_timeout_s <= 0:
            raise ValueError(f"store_timeout_s must be positive, got {self.store_timeout_s}")

        if self.store_retry < 0:
            raise ValueError(f"store_retry must be non-negative, got {self.store_retry}")

        if self.presign_ttl_s <= 0:
            raise ValueError(f"presign_ttl_s must be positive, got {self.presign_ttl_s}")

        if self.fetch_workers < 1:
            raise ValueError(f"fetch_workers must be at least 1, got {self.fetch_workers}")

        if not 0 <= self.lookback_hours <= MAX_LOOKBACK_HOURS:
            raise ValueError(
                f"lookback_hours must be between 0 and {MAX_LOOKBACK_HOURS}, got {self.lookback_hours}"
            )

        # S3 keys come in pairs
        if bool(self.s3_access_key) != bool(self.s3_secret_key):
            raise ValueError("s3_access_key and s3_secret_key must be set together")

        # Azure auth: either connection string OR (account + key)
        has_conn_str = bool(self.az_connection_string)
        has_account_key = bool(self.az_account and self.az_key)

        if has_conn_str and has_account_key:
            raise ValueError("Specify either az_connection_string OR (az_account + az_key), not both")

        if self.az_account and not self.az_key:
            raise ValueError("az_account specified but az_key is missing")
        if self.az_key and not self.az_account:
            raise ValueError("az_key specified but az_account is missing")

        if self.backend == "az" and not (has_conn_str or has_account_key):
            raise ValueError("Azure backend needs AZURE_STORAGE_CONNECTION_STRING or (AZURE_STORAGE_ACCOUNT + AZURE_STORAGE_KEY)")


# Settings loading functions (no caching)


def create_settings_from_env() -> Settings:
    """
    Load settings from environment variables.

    Environment Variables:
        Object store:
        - REPLAY_STORE_BUCKET (required)
        - REPLAY_STORE_BACKEND (default: s3)
        - REPLAY_STORE_TIMEOUT (default: 30.0)
        - REPLAY_STORE_RETRY (default: 2)
        - REPLAY_STORE_PRESIGN_TTL (default: 3600)

        S3:
        - AWS_REGION (optional)
        - REPLAY_STORE_S3_ENDPOINT (optional, for MinIO/R2/LocalStack)
        - AWS_ACCESS_KEY_ID / AWS_SECRET_ACCESS_KEY (optional)

        Azure:
        - AZURE_STORAGE_CONNECTION_STRING (optional)
        - AZURE_STORAGE_ACCOUNT (optional)
        - AZURE_STORAGE_KEY (optional)
        - REPLAY_STORE_AZURE_BLOB_ENDPOINT (optional, for Azurite/custom endpoints)

        Replay:
        - REPLAY_STORE_FETCH_WORKERS (default: 8)
        - REPLAY_STORE_LOOKBACK_HOURS (default: 0)
        - REPLAY_STORE_COMPRESS (default: false)

    Returns:
        Settings object with validated configuration

    Raises:
        ValueError: If configuration is invalid or required values missing

    Note:
        Creates a fresh Settings instance every time (no caching).
        This ensures test isolation and eliminates global state.
    """
    return _load_settings_impl()


def _load_settings_impl() -> Settings:
    """Internal implementation of settings loading."""
    def str_to_bool(value: str) -> bool:
        return value.lower() in ('true', '1', 'yes', 'on')

    def get_float(key: str, default: float) -> float:
        value = os.getenv(key)
        return float(value) if value else default

    def get_int(key: str, default: int) -> int:
        value = os.getenv(key)
        return int(value) if value else default

    bucket = os.getenv("REPLAY_STORE_BUCKET")
    if not bucket:
        raise ValueError("REPLAY_STORE_BUCKET environment variable is required")

    return Settings(
        bucket=bucket,
        backend=os.getenv("REPLAY_STORE_BACKEND", "s3").lower(),
        store_timeout_s=get_float("REPLAY_STORE_TIMEOUT", 30.0),
        store_retry=get_int("REPLAY_STORE_RETRY", 2),
        presign_ttl_s=get_int("REPLAY_STORE_PRESIGN_TTL", 3600),
        s3_region=os.getenv("AWS_REGION"),
        s3_endpoint_url=os.getenv("REPLAY_STORE_S3_ENDPOINT"),
        s3_access_key=os.getenv("AWS_ACCESS_KEY_ID"),
        s3_secret_key=os.getenv("AWS_SECRET_ACCESS_KEY"),
        az_connection_string=os.getenv("AZURE_STORAGE_CONNECTION_STRING"),
        az_account=os.getenv("AZURE_STORAGE_ACCOUNT"),
        az_key=os.getenv("AZURE_STORAGE_KEY"),
        az_blob_endpoint=os.getenv("REPLAY_STORE_AZURE_BLOB_ENDPOINT"),
        fetch_workers=get_int("REPLAY_STORE_FETCH_WORKERS", 8),
        lookback_hours=get_int("REPLAY_STORE_LOOKBACK_HOURS", 0),
        compress_records=str_to_bool(os.getenv("REPLAY_STORE_COMPRESS", "false")),
    )
