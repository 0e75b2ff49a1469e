"""Unit tests for document storage backends."""

from unittest.mock import Mock

import pytest

from pipeline.core.exceptions import DocumentNotFoundError
from services.storage import InMemoryStorage, LocalDiskStorage, S3Storage, load_document


@pytest.fixture(params=["memory", "disk"])
def storage(request, tmp_path):
    if request.param == "memory":
        return InMemoryStorage()
    return LocalDiskStorage(tmp_path / "documents")


class TestLocalBackends:
    """Behaviour shared by the memory and disk backends."""

    async def test_put_then_get(self, storage):
        """Stored bytes and metadata come back unchanged."""
        meta = await storage.put("owner", "scan.png", "image/png", b"\x89PNG data")

        loaded, data = await storage.get(meta.ref)

        assert data == b"\x89PNG data"
        assert loaded == meta
        assert loaded.size == len(data)
        assert await storage.stat(meta.ref) == meta

    async def test_refs_are_unique(self, storage):
        """Every put gets a fresh ref."""
        a = await storage.put("owner", "a.pdf", "application/pdf", b"%PDF")
        b = await storage.put("owner", "a.pdf", "application/pdf", b"%PDF")
        assert a.ref != b.ref

    @pytest.mark.parametrize("ref", ["0" * 32, "../etc"])
    async def test_missing(self, storage, ref):
        """Unknown refs raise DocumentNotFoundError and stat to None."""
        with pytest.raises(DocumentNotFoundError):
            await storage.get(ref)
        assert await storage.stat(ref) is None

    async def test_load_document(self, storage):
        """load_document wraps the bytes in a pipeline Document."""
        meta = await storage.put("owner", "invoice.pdf", "application/pdf", b"%PDF-1.4")

        _, document = await load_document(storage, meta.ref)

        assert document.document_id == meta.ref
        assert document.is_pdf


class TestS3Storage:
    """S3Storage against a mocked MinIO client."""

    async def test_put_sends_owner_metadata(self):
        """Owner and filename travel as user metadata."""
        client = Mock()
        storage = S3Storage("s3.local:9000", "key", "secret", "docs", client=client)

        meta = await storage.put("owner", "scan.png", "image/png", b"abc")

        _, kwargs = client.put_object.call_args
        assert client.put_object.call_args.args[:2] == ("docs", meta.ref)
        assert kwargs["length"] == 3
        assert kwargs["content_type"] == "image/png"
        assert kwargs["metadata"] == {"owner-id": "owner", "filename": "scan.png"}

    async def test_get_reads_metadata_headers(self):
        """Object metadata is mapped back onto StoredObject."""
        client = Mock()
        client.stat_object.return_value = Mock(
            metadata={"x-amz-meta-owner-id": "owner", "x-amz-meta-filename": "scan.png"},
            content_type="image/png",
            size=3,
        )
        response = Mock()
        response.read.return_value = b"abc"
        client.get_object.return_value = response
        storage = S3Storage("s3.local:9000", "key", "secret", "docs", client=client)

        meta, data = await storage.get("ref1")

        assert data == b"abc"
        assert (meta.owner_id, meta.filename, meta.media_type) == ("owner", "scan.png", "image/png")
        response.close.assert_called_once()
        response.release_conn.assert_called_once()
