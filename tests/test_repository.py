"""Tests for the share lifecycle over store and blob storage."""
from datetime import timedelta

import pytest

from shareit.errors import Conflict, NotFound, StorageFailure
from shareit.models import Share, ShareKind
from shareit.repository import ShareRepository
from shareit.storage import BlobStorage


@pytest.fixture
def repository(store, blobs, clock):
    return ShareRepository(store, blobs, clock)


def _create_paste(repository, name="doc", body=b"hello", **kwargs):
    staged = repository.stage_body(ShareKind.PASTE, [body])
    return repository.create(Share.new_paste(name, "auto", **kwargs), staged)


class TestCreate:
    def test_body_published_under_name(self, repository, blobs):
        _create_paste(repository)
        assert blobs.path("doc").read_bytes() == b"hello"
        assert list(blobs.upload_dir.iterdir()) == [blobs.path("doc")]

    def test_links_have_no_body(self, repository, blobs):
        assert repository.stage_body(ShareKind.LINK, [b"http://a/"]) is None
        repository.create(Share.new_link("l", "http://a/"))
        assert not blobs.exists("l")

    def test_conflict_keeps_existing_body(self, repository, blobs):
        _create_paste(repository, body=b"first")
        staged = repository.stage_body(ShareKind.PASTE, [b"second"])
        with pytest.raises(Conflict):
            repository.create(Share.new_paste("doc", "auto"), staged)
        assert blobs.path("doc").read_bytes() == b"first"
        assert staged.exists()

    def test_publish_failure_removes_record(self, store, tmp_path, clock):
        class UnpublishableBlobs(BlobStorage):
            def publish(self, staged, name):
                raise StorageFailure("disk full")

        blobs = UnpublishableBlobs(tmp_path / "b")
        blobs.ensure_directory()
        repository = ShareRepository(store, blobs, clock)
        with pytest.raises(StorageFailure):
            _create_paste(repository)
        assert not store.exists("doc")


class TestGet:
    def test_live_share(self, repository, clock):
        share = _create_paste(repository, expiry=clock() + timedelta(minutes=1))
        assert repository.get("doc") == share

    def test_missing(self, repository):
        with pytest.raises(NotFound):
            repository.get("nope")

    def test_expired_share_is_deleted(self, repository, store, blobs, clock):
        _create_paste(repository, expiry=clock() + timedelta(minutes=1))
        clock.advance(minutes=1)
        with pytest.raises(NotFound):
            repository.get("doc")
        assert not store.exists("doc")
        assert not blobs.exists("doc")
        with pytest.raises(NotFound):
            repository.get("doc")

    def test_name_taken_again_is_left_alone(self, store, blobs, clock):
        class RecreatingStore:
            """Hands out the expired share once, after the name has been reused."""

            def __init__(self, inner):
                self.inner = inner
                self.stale = None

            def __getattr__(self, attr):
                return getattr(self.inner, attr)

            def find_by_name(self, name):
                if self.stale is None:
                    self.stale = self.inner.find_by_name(name)
                    self.inner.delete(name)
                    self.inner.insert(Share.new_paste(name, "rust"))
                    blobs.write(name, [b"new owner"])
                    return self.stale
                return self.inner.find_by_name(name)

        _create_paste(ShareRepository(store, blobs, clock), expiry=clock() - timedelta(seconds=1))
        repository = ShareRepository(RecreatingStore(store), blobs, clock)
        with pytest.raises(NotFound):
            repository.get("doc")
        assert store.find_by_name("doc").language == "rust"
        assert blobs.path("doc").read_bytes() == b"new owner"

    def test_expired_share_not_found_even_if_cleanup_fails(self, store, tmp_path, clock):
        class UndeletableBlobs(BlobStorage):
            def delete(self, name):
                raise StorageFailure("permission denied")

        blobs = UndeletableBlobs(tmp_path / "b")
        blobs.ensure_directory()
        repository = ShareRepository(store, blobs, clock)
        _create_paste(repository, expiry=clock() - timedelta(seconds=1))
        with pytest.raises(NotFound):
            repository.get("doc")


class TestUpdate:
    def test_replaces_expiry_metadata_and_body(self, repository, store, blobs, clock):
        share = _create_paste(repository)
        staged = repository.stage_body(ShareKind.PASTE, [b"new body"])
        expiry = clock() + timedelta(hours=1)
        updated = repository.update(share, expiry, payload="rust", staged=staged)
        assert updated.language == "rust"
        assert updated.kind is ShareKind.PASTE
        assert store.find_by_name("doc") == updated
        assert blobs.path("doc").read_bytes() == b"new body"

    def test_keeps_metadata_when_not_given(self, repository, store, blobs):
        share = _create_paste(repository, expiry=None)
        repository.update(share, None)
        assert store.find_by_name("doc").language == "auto"
        assert blobs.path("doc").read_bytes() == b"hello"


class TestDelete:
    def test_removes_body_and_record(self, repository, store, blobs):
        share = _create_paste(repository)
        repository.delete(share)
        assert not store.exists("doc")
        assert not blobs.exists("doc")

    def test_tolerates_missing_body(self, repository, store, blobs):
        share = _create_paste(repository)
        blobs.path("doc").unlink()
        repository.delete(share)
        assert not store.exists("doc")

    def test_record_failure_surfaces_after_body_removed(self, repository, store, blobs):
        share = _create_paste(repository)

        def broken_delete(name):
            raise StorageFailure("Database error while deleting share doc")

        store.delete = broken_delete
        with pytest.raises(StorageFailure):
            repository.delete(share)
        assert not blobs.exists("doc")
