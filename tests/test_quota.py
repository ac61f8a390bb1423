"""
Tests for per-user logical quota accounting.
"""
import pytest

from filevault.core import QuotaAccountant
from filevault.core.events import EventType
from filevault.errors import QuotaExceededError
from filevault.models import BlobRecord, FileRecord

MB = 1024 * 1024


def test_quota_boundary_at_ten_megabytes(vault, upload, db, events):
    """9.5 MB used: a further 0.6 MB is refused, 0.4 MB fits"""
    upload(vault, 'alice', b"a" * int(9.5 * MB), name='big.bin')

    with pytest.raises(QuotaExceededError) as exc_info:
        upload(vault, 'alice', b"b" * int(0.6 * MB), name='too-much.bin')

    error = exc_info.value
    assert error.used_bytes == int(9.5 * MB)
    assert error.limit_bytes == 10 * MB
    assert error.requested_bytes == int(0.6 * MB)
    assert error.status_code == 413
    assert events.types()[-1] == EventType.QUOTA_DENIED
    assert db.query(FileRecord).filter(FileRecord.display_name == 'too-much.bin').count() == 0

    upload(vault, 'alice', b"c" * int(0.4 * MB), name='fits.bin')

    assert vault.get_quota_usage('alice').used_bytes == int(9.5 * MB) + int(0.4 * MB)


def test_quota_allows_exactly_the_limit(db, make_vault, upload):
    vault = make_vault(db, quota_limit_bytes=100)

    upload(vault, 'alice', b"x" * 100)

    assert vault.get_quota_usage('alice').remaining_bytes == 0


def test_own_content_is_free(db, make_vault, upload):
    """Uploading content the user already owns neither counts nor is refused at the limit"""
    vault = make_vault(db, quota_limit_bytes=100)
    upload(vault, 'alice', b"x" * 100, name='one.bin')

    upload(vault, 'alice', b"x" * 100, name='two.bin')

    assert vault.get_quota_usage('alice').used_bytes == 100
    assert len(vault.list_files('alice')) == 2


def test_other_users_content_is_charged(db, make_vault, upload):
    """Content physically shared with another user still counts against the uploader"""
    vault = make_vault(db, quota_limit_bytes=100)
    upload(vault, 'bob', b"y" * 60)
    upload(vault, 'alice', b"z" * 50)

    with pytest.raises(QuotaExceededError):
        upload(vault, 'alice', b"y" * 60)

    assert vault.get_quota_usage('alice').used_bytes == 50
    assert vault.get_quota_usage('bob').used_bytes == 60


def test_usage_counts_distinct_content_once(db, make_vault, upload):
    vault = make_vault(db)
    upload(vault, 'alice', b"1234567890", name='a.txt')
    upload(vault, 'alice', b"1234567890", name='b.txt')
    upload(vault, 'alice', b"12345", name='c.txt')

    assert QuotaAccountant(db, 10 * MB).usage('alice') == 15


def test_deleting_last_reference_frees_quota(vault, upload):
    record = upload(vault, 'alice', b"x" * 1000)

    vault.delete_file('alice', record.id)

    assert vault.get_quota_usage('alice').used_bytes == 0


def test_check_decision_reports_charge(vault, upload, db):
    record = upload(vault, 'alice', b"x" * 1000)
    accountant = QuotaAccountant(db, 1500)

    repeat = accountant.check('alice', 1000, record.content_hash)
    fresh = accountant.check('alice', 1000)

    assert repeat.allowed and repeat.charged_bytes == 0
    assert not fresh.allowed
    assert fresh.charged_bytes == 1000
    assert fresh.reason


def test_quota_usage_info(vault, upload):
    upload(vault, 'alice', b"x" * (MB // 2))

    usage = vault.get_quota_usage('alice').to_dict()

    assert usage['used_bytes'] == MB // 2
    assert usage['limit_bytes'] == 10 * MB
    assert usage['remaining_bytes'] == 10 * MB - MB // 2
    assert usage['usage_percentage'] == pytest.approx(5.0)


def test_reupload_after_delete_restores_usage(vault, upload, db):
    content = b"r" * (3 * MB)
    record = upload(vault, 'alice', content)
    assert vault.get_quota_usage('alice').used_bytes == 3 * MB

    vault.delete_file('alice', record.id)
    upload(vault, 'alice', content)

    assert vault.get_quota_usage('alice').used_bytes == 3 * MB
    assert db.query(BlobRecord).count() == 1
