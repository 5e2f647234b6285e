"""
Blob store boundary for file fields and documents.
Handles upload, download, public URLs and removal of opaque file blobs.
"""

import logging
import mimetypes
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

import httpx

from .form_exceptions import StoreError

logger = logging.getLogger(__name__)


@dataclass
class FileUpload:
    """A file selected in the UI, detached from the widget that produced it."""

    name: str
    content: bytes
    content_type: str = "application/octet-stream"

    @property
    def size(self) -> int:
        return len(self.content)

    @property
    def extension(self) -> str:
        suffix = Path(self.name).suffix
        return suffix[1:].lower() if suffix else ""

    @classmethod
    def from_uploaded(cls, uploaded: Any) -> "FileUpload":
        """
        Build from a Streamlit UploadedFile or any object exposing
        name/type/getvalue().
        """
        if isinstance(uploaded, cls):
            return uploaded
        content_type = getattr(uploaded, "type", None) or mimetypes.guess_type(uploaded.name)[0]
        return cls(
            name=uploaded.name,
            content=uploaded.getvalue(),
            content_type=content_type or "application/octet-stream"
        )


def is_file_value(value: Any) -> bool:
    return isinstance(value, FileUpload) or (hasattr(value, "getvalue") and hasattr(value, "name"))


class BlobStore(ABC):
    """Async blob storage addressed by slash-separated paths."""

    @abstractmethod
    async def upload(self, path: str, content: bytes, content_type: str = "application/octet-stream") -> None:
        """Store content at path; existing blobs are not overwritten."""

    @abstractmethod
    async def download(self, path: str) -> bytes:
        """Read the blob at path."""

    @abstractmethod
    def get_public_url(self, path: str) -> str:
        """URL under which the blob can be fetched."""

    @abstractmethod
    async def remove(self, paths: List[str]) -> None:
        """Delete blobs; missing paths are ignored."""


class LocalBlobStore(BlobStore):
    """Blob store on the local filesystem."""

    def __init__(self, root: Path, public_url: Optional[str] = None):
        self.root = Path(root)
        self.public_url = public_url.rstrip("/") if public_url else None
        self.root.mkdir(parents=True, exist_ok=True)

    def _resolve(self, path: str) -> Path:
        root = self.root.resolve()
        target = (root / path).resolve()
        if target != root and root not in target.parents:
            raise StoreError(f"Path escapes storage root: {path}", code="invalid_path")
        return target

    async def upload(self, path: str, content: bytes, content_type: str = "application/octet-stream") -> None:
        target = self._resolve(path)
        if target.exists():
            raise StoreError(f"The resource already exists: {path}", code="Duplicate", status=409)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(content)
        except OSError as e:
            logger.error(f"Failed to write blob {path}: {e}")
            raise StoreError(f"Failed to store file {path}: {e}", code="io")
        logger.info(f"Stored blob {path} ({len(content)} bytes)")

    async def download(self, path: str) -> bytes:
        target = self._resolve(path)
        if not target.exists():
            raise StoreError(f"Object not found: {path}", code="not_found", status=404)
        return target.read_bytes()

    def get_public_url(self, path: str) -> str:
        if self.public_url:
            return f"{self.public_url}/{path}"
        return self._resolve(path).as_uri()

    async def remove(self, paths: List[str]) -> None:
        for path in paths:
            target = self._resolve(path)
            if target.exists():
                target.unlink()
                logger.info(f"Removed blob {path}")


class SupabaseBlobStore(BlobStore):
    """Blob store backed by a Supabase Storage bucket."""

    def __init__(self, url: str, key: str, bucket: str, timeout: float = 30.0,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        if not url or not key:
            raise StoreError("Storage URL and key are required", code="config")
        self.url = url.rstrip("/")
        self.key = key
        self.bucket = bucket
        self.timeout = timeout
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        headers = {"apikey": self.key, "Authorization": f"Bearer {self.key}"}
        return httpx.AsyncClient(
            base_url=f"{self.url}/storage/v1", headers=headers, timeout=self.timeout, transport=self.transport
        )

    @staticmethod
    def _raise_for_error(response: httpx.Response, context: str) -> None:
        if not response.is_error:
            return
        body: Dict[str, Any] = {}
        try:
            parsed = response.json()
            if isinstance(parsed, dict):
                body = parsed
        except ValueError:
            pass
        message = body.get("message") or response.text or f"HTTP {response.status_code}"
        logger.error(f"Storage error during {context}: {response.status_code} {message}")
        raise StoreError(message, code=body.get("error"), status=response.status_code)

    async def _send(self, method: str, url: str, context: str, **kwargs) -> httpx.Response:
        try:
            async with self._client() as client:
                response = await client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            logger.error(f"Network error during {context}: {e}")
            raise StoreError(f"Network error: {e}", code="network")
        self._raise_for_error(response, context)
        return response

    async def upload(self, path: str, content: bytes, content_type: str = "application/octet-stream") -> None:
        await self._send(
            "POST", f"/object/{self.bucket}/{path}", f"upload {path}",
            content=content, headers={"Content-Type": content_type, "x-upsert": "false"}
        )
        logger.info(f"Uploaded {path} to bucket {self.bucket}")

    async def download(self, path: str) -> bytes:
        response = await self._send("GET", f"/object/{self.bucket}/{path}", f"download {path}")
        return response.content

    def get_public_url(self, path: str) -> str:
        return f"{self.url}/storage/v1/object/public/{self.bucket}/{path}"

    async def remove(self, paths: List[str]) -> None:
        if not paths:
            return
        await self._send("DELETE", f"/object/{self.bucket}", f"remove {len(paths)} object(s)",
                         json={"prefixes": paths})


def create_blob_store(config: Dict[str, Any]) -> BlobStore:
    """
    Build the configured blob store.

    Args:
        config: Complete configuration dictionary

    Returns:
        BlobStore instance
    """
    storage = config.get("storage", {})
    backend = storage.get("backend", "local")

    if backend == "supabase":
        store = config.get("store", {})
        return SupabaseBlobStore(store.get("url", ""), store.get("key", ""), storage.get("bucket", "documents"))

    if backend != "local":
        logger.warning(f"Unknown storage backend '{backend}', using local storage")
    return LocalBlobStore(Path(storage.get("local_dir", "uploads")), storage.get("public_url"))
