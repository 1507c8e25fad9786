"""Tests for the upload record repository."""

import json

import pytest

from tusstore.errors import (
    BackendError,
    FileNotFound,
    InvalidMetadata,
    UploadLengthAlreadySet,
)
from tusstore.repository import (
    FileRepository,
    info_blob_id,
    is_valid_file_id,
    new_file_id,
)
from tusstore.storage.memory import MemoryStorageBackend


@pytest.fixture
async def repo(backend):
    return FileRepository(backend)


class TestFileIds:

    def test_new_ids_are_valid_and_distinct(self):
        ids = {new_file_id() for _ in range(100)}
        assert len(ids) == 100
        assert all(is_valid_file_id(i) for i in ids)

    @pytest.mark.parametrize(
        "file_id",
        [
            "",
            "abc",
            "0" * 31,
            "0" * 33,
            "G" * 32,
            "ABCDEF0123456789ABCDEF0123456789",
            "../" + "0" * 29,
            "0" * 32 + ".info",
        ],
    )
    def test_invalid_ids(self, file_id):
        assert not is_valid_file_id(file_id)

    def test_info_blob_id(self):
        assert info_blob_id("ab" * 16) == "ab" * 16 + ".info"


class TestCreate:

    async def test_creates_both_blobs(self, repo, backend):
        file_id = await repo.create_file(10, "filename dGVzdA==")
        assert await backend.size(file_id) == 0
        assert await backend.exists(info_blob_id(file_id))

    async def test_record_line(self, repo, backend):
        file_id = await repo.create_file(10, "filename dGVzdA==")
        info_id = info_blob_id(file_id)
        raw = await backend.read_range(info_id, 0, await backend.size(info_id))
        lines = raw.decode("utf-8").splitlines()
        assert len(lines) == 1
        record = json.loads(lines[0])
        assert record["upload_length"] == 10
        assert record["metadata"] == "filename dGVzdA=="
        assert record["created_at"].endswith("Z")

    async def test_blank_metadata_stored_as_none(self, repo):
        file_id = await repo.create_file(1, "   ")
        assert await repo.get_metadata(file_id) is None

    async def test_negative_length_rejected(self, repo):
        with pytest.raises(ValueError):
            await repo.create_file(-1)

    async def test_invalid_metadata_rejected_before_write(self):
        backend = MemoryStorageBackend()
        repo = FileRepository(backend)
        with pytest.raises(InvalidMetadata):
            await repo.create_file(1, "key not-base64!")
        assert backend._blobs == {}

    async def test_retries_on_id_collision(self, monkeypatch):
        backend = MemoryStorageBackend()
        repo = FileRepository(backend)
        taken = "a" * 32
        await backend.create_empty(taken)
        ids = iter([taken, "b" * 32])
        monkeypatch.setattr("tusstore.repository.new_file_id", lambda: next(ids))

        assert await repo.create_file(5) == "b" * 32

    async def test_gives_up_after_repeated_collisions(self, monkeypatch):
        backend = MemoryStorageBackend()
        repo = FileRepository(backend)
        await backend.create_empty("c" * 32)
        monkeypatch.setattr("tusstore.repository.new_file_id", lambda: "c" * 32)

        with pytest.raises(BackendError):
            await repo.create_file(5)

    async def test_failed_record_write_removes_content_blob(self, monkeypatch):
        backend = MemoryStorageBackend()
        repo = FileRepository(backend)

        async def failing_append(blob_id, expected_offset, data):
            raise BackendError("disk gone")

        monkeypatch.setattr(backend, "append_atomic", failing_append)
        with pytest.raises(BackendError):
            await repo.create_file(5)
        assert backend._blobs == {}


class TestLookup:

    async def test_get_info(self, repo):
        file_id = await repo.create_file(7, "a YQ==")
        info = await repo.get_info(file_id)
        assert info.file_id == file_id
        assert info.upload_length == 7
        assert info.metadata == "a YQ=="
        assert info.created_at

    async def test_unknown_and_invalid_ids(self, repo):
        assert await repo.get_info(new_file_id()) is None
        assert await repo.get_info("not-an-id") is None
        assert await repo.exists("not-an-id") is False
        assert await repo.get_upload_length("not-an-id") is None
        assert await repo.get_metadata("not-an-id") is None

    async def test_half_created_record_is_unknown(self, repo, backend):
        file_id = new_file_id()
        await backend.create_empty(file_id)
        await backend.create_empty(info_blob_id(file_id))
        assert await repo.exists(file_id) is False


class TestSetUploadLength:

    async def test_declares_deferred_length(self, repo, backend):
        file_id = await repo.create_file(None, "k dg==")
        await repo.set_upload_length(file_id, 42)

        info = await repo.get_info(file_id)
        assert info.upload_length == 42
        assert info.metadata == "k dg=="
        info_id = info_blob_id(file_id)
        raw = await backend.read_range(info_id, 0, await backend.size(info_id))
        assert len(raw.decode("utf-8").splitlines()) == 2

    async def test_already_set(self, repo):
        file_id = await repo.create_file(10)
        with pytest.raises(UploadLengthAlreadySet):
            await repo.set_upload_length(file_id, 10)

    async def test_second_declaration_rejected(self, repo):
        file_id = await repo.create_file(None)
        await repo.set_upload_length(file_id, 5)
        with pytest.raises(UploadLengthAlreadySet):
            await repo.set_upload_length(file_id, 6)

    async def test_unknown_upload(self, repo):
        with pytest.raises(FileNotFound):
            await repo.set_upload_length(new_file_id(), 5)


class TestDelete:

    async def test_delete_removes_both_blobs(self, repo, backend):
        file_id = await repo.create_file(3)
        assert await repo.delete_file(file_id) is True
        assert not await backend.exists(file_id)
        assert not await backend.exists(info_blob_id(file_id))
        assert await repo.exists(file_id) is False

    async def test_delete_unknown(self, repo):
        assert await repo.delete_file(new_file_id()) is False
        assert await repo.delete_file("bogus") is False
