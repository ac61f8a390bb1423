"""
End-to-end tests for the vault's upload, download and delete operations.
"""
import hashlib
import io
import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from filevault.core.events import EventType
from filevault.errors import ForbiddenError, NotFoundError, ValidationError
from filevault.models import BlobRecord, FileRecord


def test_upload_creates_file_and_blob(vault, upload, db, events):
    content = b"Hello, World!"

    record = upload(vault, 'alice', content, name='hello.txt')

    assert record.owner_id == 'alice'
    assert record.display_name == 'hello.txt'
    assert record.mime_type == 'text/plain'
    assert record.size == len(content)
    assert record.content_hash == hashlib.sha256(content).hexdigest()
    assert db.query(BlobRecord).count() == 1
    assert events.types() == [EventType.UPLOADED]
    assert events.events[0].file_id == record.id


def test_duplicate_upload_shares_blob(vault, upload, db, events):
    first = upload(vault, 'alice', b"same", name='a.txt')
    second = upload(vault, 'bob', b"same", name='b.txt')

    assert first.id != second.id
    assert first.content_hash == second.content_hash
    assert db.query(BlobRecord).count() == 1
    assert db.query(FileRecord).count() == 2
    assert events.types() == [EventType.UPLOADED, EventType.DEDUPED]
    assert vault.has_other_owners(first) is True


def test_download_round_trip(vault, upload):
    content = bytes(range(256)) * 4096

    record = upload(vault, 'alice', content, name='data.bin', mime='application/octet-stream')
    file, stream = vault.download_file('alice', record.id)
    try:
        downloaded = stream.read()
    finally:
        stream.close()

    assert hashlib.sha256(downloaded).hexdigest() == record.content_hash
    assert file.display_name == 'data.bin'


def test_upload_requires_name(vault):
    with pytest.raises(ValidationError):
        vault.upload_file('alice', io.BytesIO(b"x"), '  ', 1)


def test_size_mismatch_leaves_nothing(vault, db, storage):
    with pytest.raises(ValidationError):
        vault.upload_file('alice', io.BytesIO(b"short"), 'short.txt', 100)

    assert db.query(BlobRecord).count() == 0
    assert db.query(FileRecord).count() == 0
    assert not (storage.base_path / 'blobs').exists()


def test_max_upload_size(db, make_vault):
    vault = make_vault(db, max_upload_bytes=10)

    with pytest.raises(ValidationError, match="too large"):
        vault.upload_file('alice', io.BytesIO(b"x" * 11), 'big.bin', 11)


def test_concurrent_identical_uploads(session_factory, make_vault, db):
    """Simultaneous uploads of the same new content store one blob and one record each"""
    content = b"popular content" * 1000
    workers = 6
    barrier = threading.Barrier(workers)

    def upload_once(i):
        session = session_factory()
        try:
            worker_vault = make_vault(session)
            barrier.wait()
            record = worker_vault.upload_file(
                f'user-{i}', io.BytesIO(content), f'copy-{i}.txt', len(content)
            )
            return record.id
        finally:
            session.close()

    with ThreadPoolExecutor(max_workers=workers) as executor:
        ids = list(executor.map(upload_once, range(workers)))

    assert len(set(ids)) == workers
    assert db.query(BlobRecord).count() == 1
    assert db.query(FileRecord).count() == workers


def test_delete_keeps_blob_for_other_references(vault, upload, db, storage):
    alice_file = upload(vault, 'alice', b"shared bytes")
    bob_file = upload(vault, 'bob', b"shared bytes")
    key = alice_file.blob.storage_key

    vault.delete_file('alice', alice_file.id)

    assert db.query(FileRecord).filter(FileRecord.id == alice_file.id).count() == 0
    assert storage.exists(key)
    file, stream = vault.download_file('bob', bob_file.id)
    try:
        assert stream.read() == b"shared bytes"
    finally:
        stream.close()


def test_delete_last_reference_leaves_orphan(vault, upload, db, events):
    record = upload(vault, 'alice', b"lonely")
    content_hash = record.content_hash

    vault.delete_file('alice', record.id)

    assert db.query(BlobRecord).count() == 1
    assert [b.content_hash for b in vault.find_orphan_blobs()] == [content_hash]
    assert events.types()[-1] == EventType.DELETED
    assert events.events[-1].content_hash == content_hash


def test_delete_by_non_owner(vault, upload):
    record = upload(vault, 'alice', b"mine")

    with pytest.raises(ForbiddenError):
        vault.delete_file('bob', record.id)


def test_delete_missing_file(vault):
    with pytest.raises(NotFoundError):
        vault.delete_file('alice', 'no-such-file')


def test_list_files_newest_first_with_search(vault, upload):
    upload(vault, 'alice', b"1", name='notes.txt')
    upload(vault, 'alice', b"2", name='photo.jpg', mime='image/jpeg')
    upload(vault, 'bob', b"3", name='notes.txt')

    names = [f.display_name for f in vault.list_files('alice')]
    assert sorted(names) == ['notes.txt', 'photo.jpg']
    assert [f.display_name for f in vault.list_files('alice', search='photo')] == ['photo.jpg']
    assert len(vault.list_files('alice', limit=1)) == 1


def test_file_stats(vault, upload):
    upload(vault, 'alice', b"abc", name='a.txt')
    upload(vault, 'alice', b"abc", name='b.txt')
    upload(vault, 'alice', b"defgh", name='c.jpg', mime='image/jpeg')

    stats = vault.get_file_stats('alice')

    assert stats.total_files == 3
    assert stats.unique_files == 2
    assert stats.total_size == 8
    assert stats.files_by_mime_type == {'text/plain': 2, 'image/jpeg': 1}


def test_failing_event_sink_does_not_fail_upload(db, make_vault, upload):
    class ExplodingSink:
        def emit(self, event):
            raise RuntimeError("notification service down")

    vault = make_vault(db)
    vault.events = ExplodingSink()

    record = upload(vault, 'alice', b"still stored")

    assert vault.get_file('alice', record.id).id == record.id
