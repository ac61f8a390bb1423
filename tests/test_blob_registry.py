"""
Tests for the blob registry: dedup, lookup-or-create and legacy reads.
"""
import hashlib
import io

import pytest

from filevault.core import BlobRegistry
from filevault.errors import StorageError
from filevault.models import BlobRecord, FileRecord, StorageKind
from filevault.storage import FilesystemStorage, LocalPath, blob_key


class CountingStorage(FilesystemStorage):
    """Filesystem storage that counts writes"""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.puts = 0

    def put(self, key, stream, size):
        self.puts += 1
        super().put(key, stream, size)


class BrokenStorage(FilesystemStorage):
    def put(self, key, stream, size):
        raise StorageError(f"Failed to write {key}: disk on fire")


def _hash(content: bytes) -> str:
    return hashlib.sha256(content).hexdigest()


@pytest.fixture
def counting_storage(temp_dir):
    return CountingStorage(base_path=f"{temp_dir}/objects")


@pytest.fixture
def registry(db, counting_storage, legacy_storage):
    return BlobRegistry(db, counting_storage, legacy_storage)


def test_upsert_stores_new_content(registry, counting_storage):
    content = b"Hello, World!"

    blob, created = registry.upsert(_hash(content), len(content), 'text/plain', io.BytesIO(content))

    assert created is True
    assert blob.content_hash == _hash(content)
    assert blob.size == len(content)
    assert blob.storage_kind == StorageKind.OBJECT
    assert blob.storage_key == blob_key(blob.content_hash)
    assert counting_storage.exists(blob.storage_key)


def test_upsert_dedups_without_storage_write(registry, counting_storage, db):
    content = b"same bytes"
    content_hash = _hash(content)

    first, created_first = registry.upsert(content_hash, len(content), 'text/plain', io.BytesIO(content))
    second, created_second = registry.upsert(content_hash, len(content), 'text/plain', io.BytesIO(content))

    assert created_first is True
    assert created_second is False
    assert first.content_hash == second.content_hash
    assert counting_storage.puts == 1
    assert db.query(BlobRecord).count() == 1


def test_insert_if_absent_reports_losing_insert(registry, db):
    values = BlobRecord.columns_for('f' * 64, 3, 'text/plain', LocalPath('old/file'))

    assert registry.insert_if_absent(values) is True
    db.commit()
    assert registry.insert_if_absent(values) is False
    db.commit()

    assert db.query(BlobRecord).count() == 1


def test_storage_failure_creates_no_row(db, temp_dir):
    registry = BlobRegistry(db, BrokenStorage(base_path=f"{temp_dir}/objects"))
    content = b"never stored"

    with pytest.raises(StorageError):
        registry.upsert(_hash(content), len(content), 'text/plain', io.BytesIO(content))

    assert db.query(BlobRecord).count() == 0


def test_open_reads_primary_storage(registry):
    content = b"stream me"
    blob, _ = registry.upsert(_hash(content), len(content), 'text/plain', io.BytesIO(content))

    with registry.open(blob) as stream:
        assert stream.read() == content


def test_open_reads_legacy_local_path(registry, db, legacy_storage):
    """Records created before object storage point into the legacy upload directory"""
    content = b"uploaded long ago"
    legacy_storage.put('2019/report.pdf', io.BytesIO(content), len(content))

    db.add(BlobRecord(**BlobRecord.columns_for(
        _hash(content), len(content), 'application/pdf', LocalPath('2019/report.pdf')
    )))
    db.commit()

    blob = registry.lookup(_hash(content))
    assert blob.storage_ref == LocalPath('2019/report.pdf')
    with registry.open(blob) as stream:
        assert stream.read() == content


def test_legacy_path_without_legacy_storage(db, storage):
    registry = BlobRegistry(db, storage)

    with pytest.raises(StorageError, match="legacy"):
        registry.backend_for(LocalPath('2019/report.pdf'))


def _add_file(db, owner_id, blob):
    record = FileRecord(owner_id=owner_id, display_name='f', mime_type='text/plain',
                        content_hash=blob.content_hash)
    db.add(record)
    db.commit()
    return record


def test_reference_count_and_other_owners(registry, db):
    content = b"shared content"
    blob, _ = registry.upsert(_hash(content), len(content), 'text/plain', io.BytesIO(content))

    alice_file = _add_file(db, 'alice', blob)
    assert registry.reference_count(blob.content_hash) == 1
    assert registry.has_other_owners(alice_file) is False

    _add_file(db, 'bob', blob)
    assert registry.reference_count(blob.content_hash) == 2
    assert registry.has_other_owners(alice_file) is True


def test_find_orphans(registry, db):
    kept, _ = registry.upsert(_hash(b"kept"), 4, 'text/plain', io.BytesIO(b"kept"))
    orphan, _ = registry.upsert(_hash(b"orphan"), 6, 'text/plain', io.BytesIO(b"orphan"))
    _add_file(db, 'alice', kept)

    orphans = registry.find_orphans()

    assert [b.content_hash for b in orphans] == [orphan.content_hash]
