from functools import lru_cache

from app.core.settings import settings
from app.services.storage.adapter import GCSStorageAdapter, LocalFileSystemAdapter, StorageAdapter


@lru_cache(maxsize=1)
def get_storage_adapter() -> StorageAdapter:
    if settings.storage_provider == "gcs":
        if not settings.gcs_bucket:
            raise ValueError("GCS bucket is not configured")
        return GCSStorageAdapter(bucket=settings.gcs_bucket)

    return LocalFileSystemAdapter(
        base_path=settings.local_upload_dir,
        base_url=settings.public_base_url,
        signing_key=settings.secret_key,
    )
