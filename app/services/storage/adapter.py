"""Object storage backends for direct-to-storage uploads.

Clients PUT bytes straight to a signed URL; the API never proxies them except for
the local backend used in development. Confirmation only asks whether the object
arrived.
"""

from __future__ import annotations

import hashlib
import hmac
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path, PurePosixPath
from typing import Any
from urllib.parse import urlencode

LOCAL_CONTENT_PATH = "/api/v1/uploads/local-content"


@dataclass(frozen=True)
class SignedUpload:
    url: str
    method: str = "PUT"
    headers: dict[str, str] = field(default_factory=dict)


def sign_local_key(secret_key: str, object_key: str, expires: int) -> str:
    message = f"PUT:{object_key}:{expires}".encode("utf-8")
    return hmac.new(secret_key.encode("utf-8"), message, hashlib.sha256).hexdigest()


def verify_local_signature(
    secret_key: str,
    object_key: str,
    expires: int,
    signature: str,
    *,
    now: float | None = None,
) -> bool:
    """False for a tampered key, a foreign secret or an expired URL."""
    if (time.time() if now is None else now) > expires:
        return False
    return hmac.compare_digest(sign_local_key(secret_key, object_key, expires), signature)


class StorageAdapter(ABC):
    provider: str

    @abstractmethod
    def sign_upload(self, object_key: str, content_type: str, expires_in: int) -> SignedUpload:
        """URL the client PUTs ``object_key`` to within ``expires_in`` seconds."""

    @abstractmethod
    def object_exists(self, object_key: str) -> bool:
        """Raises when the backend cannot be reached."""


class LocalFileSystemAdapter(StorageAdapter):
    provider = "local"

    def __init__(self, base_path: str, base_url: str = "", *, signing_key: str = ""):
        self.root = Path(base_path)
        self.base_url = base_url.rstrip("/")
        self.signing_key = signing_key
        self.root.mkdir(parents=True, exist_ok=True)

    def path_for(self, object_key: str) -> Path:
        """Filesystem path of ``object_key``; ``ValueError`` when the key would leave the root."""
        key = PurePosixPath(object_key)
        if "\\" in object_key or key.is_absolute() or ".." in key.parts:
            raise ValueError("Invalid object key")
        root = self.root.resolve()
        path = (root / key).resolve()
        if path != root and root not in path.parents:
            raise ValueError("Invalid object key")
        return path

    def sign_upload(self, object_key: str, content_type: str, expires_in: int) -> SignedUpload:
        expires = int(time.time()) + expires_in
        query = urlencode(
            {
                "key": object_key,
                "expires": expires,
                "signature": sign_local_key(self.signing_key, object_key, expires),
            }
        )
        return SignedUpload(
            url=f"{self.base_url}{LOCAL_CONTENT_PATH}?{query}",
            headers={"Content-Type": content_type},
        )

    def object_exists(self, object_key: str) -> bool:
        try:
            return self.path_for(object_key).is_file()
        except ValueError:
            return False

    def store(self, object_key: str, content: bytes) -> None:
        path = self.path_for(object_key)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)


class GCSStorageAdapter(StorageAdapter):
    provider = "gcs"

    def __init__(self, bucket: str):
        # Imported here so local development does not need Google credentials.
        from google.cloud import storage
        import google.auth
        import google.auth.transport.requests

        self.bucket = bucket
        self.credentials, _ = google.auth.default()
        self._auth_request = google.auth.transport.requests.Request()
        self._bucket = storage.Client(credentials=self.credentials).bucket(bucket)

    def _signer(self) -> dict[str, Any]:
        # Key files sign locally; metadata-server credentials sign through IAM SignBlob.
        if hasattr(self.credentials, "sign_bytes"):
            return {"credentials": self.credentials}
        if not self.credentials.valid or not self.credentials.token:
            self.credentials.refresh(self._auth_request)
        email = getattr(self.credentials, "service_account_email", None)
        if not email:
            raise RuntimeError("GCS signed URLs require a service account email in ADC")
        return {"service_account_email": email, "access_token": self.credentials.token}

    def sign_upload(self, object_key: str, content_type: str, expires_in: int) -> SignedUpload:
        url = self._bucket.blob(object_key).generate_signed_url(
            version="v4",
            expiration=timedelta(seconds=expires_in),
            method="PUT",
            content_type=content_type,
            **self._signer(),
        )
        return SignedUpload(url=url, headers={"Content-Type": content_type})

    def object_exists(self, object_key: str) -> bool:
        return self._bucket.blob(object_key).exists()
