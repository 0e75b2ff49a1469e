"""Document blob storage.

Documents are addressed by an opaque reference string. Every stored object
carries the owner, original filename and media type so routes can enforce
ownership and handlers can pick the right decoder.
"""

import asyncio
import io
import json
import logging
import ssl
import uuid
from dataclasses import asdict, dataclass
from functools import partial
from pathlib import Path
from typing import Optional, Protocol

import urllib3
from minio import Minio
from minio.error import S3Error

from pipeline.core.exceptions import DocumentNotFoundError, ExternalServiceError
from pipeline.models.dto import Document

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoredObject:
    ref: str
    owner_id: str
    filename: str
    media_type: str
    size: int

    def to_document(self, data: bytes) -> Document:
        return Document(
            document_id=self.ref,
            data=data,
            media_type=self.media_type,
            filename=self.filename,
        )


def new_ref() -> str:
    return uuid.uuid4().hex


class StoragePort(Protocol):
    async def put(
        self, owner_id: str, filename: str, media_type: str, data: bytes
    ) -> StoredObject:
        ...

    async def get(self, ref: str) -> tuple[StoredObject, bytes]:
        ...

    async def stat(self, ref: str) -> Optional[StoredObject]:
        ...


async def load_document(storage: StoragePort, ref: str) -> tuple[StoredObject, Document]:
    """Fetch a stored object as a pipeline Document."""
    meta, data = await storage.get(ref)
    return meta, meta.to_document(data)


class InMemoryStorage:
    """Process-local storage, used by tests and the `memory` backend."""

    def __init__(self):
        self._objects: dict[str, tuple[StoredObject, bytes]] = {}

    async def put(
        self, owner_id: str, filename: str, media_type: str, data: bytes
    ) -> StoredObject:
        meta = StoredObject(new_ref(), owner_id, filename, media_type, len(data))
        self._objects[meta.ref] = (meta, bytes(data))
        return meta

    async def get(self, ref: str) -> tuple[StoredObject, bytes]:
        try:
            return self._objects[ref]
        except KeyError:
            raise DocumentNotFoundError(ref) from None

    async def stat(self, ref: str) -> Optional[StoredObject]:
        entry = self._objects.get(ref)
        return entry[0] if entry else None


class LocalDiskStorage:
    """Stores each object as `<root>/<ref>/content` plus `meta.json`."""

    META_FILE = "meta.json"
    CONTENT_FILE = "content"

    def __init__(self, root: Path):
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def _dir(self, ref: str) -> Path:
        # refs are generated hex strings; reject anything that could escape root
        if not ref or not ref.isalnum():
            raise DocumentNotFoundError(ref)
        return self.root / ref

    def _put_sync(self, meta: StoredObject, data: bytes) -> None:
        target = self._dir(meta.ref)
        target.mkdir(parents=True, exist_ok=True)
        (target / self.CONTENT_FILE).write_bytes(data)
        (target / self.META_FILE).write_text(
            json.dumps(asdict(meta), ensure_ascii=False), encoding="utf-8"
        )

    def _stat_sync(self, ref: str) -> Optional[StoredObject]:
        meta_path = self._dir(ref) / self.META_FILE
        if not meta_path.exists():
            return None
        return StoredObject(**json.loads(meta_path.read_text(encoding="utf-8")))

    def _get_sync(self, ref: str) -> tuple[StoredObject, bytes]:
        meta = self._stat_sync(ref)
        if meta is None:
            raise DocumentNotFoundError(ref)
        return meta, (self._dir(ref) / self.CONTENT_FILE).read_bytes()

    async def put(
        self, owner_id: str, filename: str, media_type: str, data: bytes
    ) -> StoredObject:
        meta = StoredObject(new_ref(), owner_id, filename, media_type, len(data))
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, partial(self._put_sync, meta, data))
        return meta

    async def get(self, ref: str) -> tuple[StoredObject, bytes]:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, partial(self._get_sync, ref))

    async def stat(self, ref: str) -> Optional[StoredObject]:
        try:
            self._dir(ref)
        except DocumentNotFoundError:
            return None
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, partial(self._stat_sync, ref))


class S3Storage:
    """MinIO / S3 bucket storage; object metadata lives in user metadata headers."""

    def __init__(
        self,
        endpoint: str,
        access_key: str,
        secret_key: str,
        bucket: str,
        secure: bool = True,
        client: Optional[Minio] = None,
    ):
        self.bucket = bucket
        self.endpoint = endpoint

        if client is None:
            http_client = urllib3.PoolManager(
                cert_reqs=ssl.CERT_NONE, assert_hostname=False
            )
            client = Minio(
                endpoint,
                access_key=access_key,
                secret_key=secret_key,
                secure=secure,
                http_client=http_client,
            )
        self.client = client
        logger.info(f"S3Storage initialized: endpoint={endpoint}, bucket={bucket}")

    def _put_sync(self, meta: StoredObject, data: bytes) -> None:
        self.client.put_object(
            self.bucket,
            meta.ref,
            io.BytesIO(data),
            length=len(data),
            content_type=meta.media_type,
            metadata={"owner-id": meta.owner_id, "filename": meta.filename},
        )

    def _stat_sync(self, ref: str) -> Optional[StoredObject]:
        try:
            stat = self.client.stat_object(self.bucket, ref)
        except S3Error as e:
            if e.code in ("NoSuchKey", "NoSuchObject", "NotFound"):
                return None
            raise
        headers = stat.metadata or {}
        return StoredObject(
            ref=ref,
            owner_id=headers.get("x-amz-meta-owner-id", ""),
            filename=headers.get("x-amz-meta-filename", ref),
            media_type=stat.content_type or "application/octet-stream",
            size=stat.size or 0,
        )

    def _get_sync(self, ref: str) -> tuple[StoredObject, bytes]:
        meta = self._stat_sync(ref)
        if meta is None:
            raise DocumentNotFoundError(ref)
        response = self.client.get_object(self.bucket, ref)
        try:
            data = response.read()
        finally:
            response.close()
            response.release_conn()
        return meta, data

    async def _run(self, func, *args):
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, partial(func, *args))
        except S3Error as e:
            logger.error(f"S3 error: {e}", extra={"service": "S3"})
            raise ExternalServiceError(
                service_name="S3", error_type="error", details={"reason": str(e)}
            ) from e

    async def put(
        self, owner_id: str, filename: str, media_type: str, data: bytes
    ) -> StoredObject:
        meta = StoredObject(new_ref(), owner_id, filename, media_type, len(data))
        await self._run(self._put_sync, meta, data)
        return meta

    async def get(self, ref: str) -> tuple[StoredObject, bytes]:
        return await self._run(self._get_sync, ref)

    async def stat(self, ref: str) -> Optional[StoredObject]:
        return await self._run(self._stat_sync, ref)
