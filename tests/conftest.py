"""
Pytest configuration and shared fixtures.
"""

import io
import tempfile
import shutil
import pytest

from filevault.models.base import Base, create_session_factory, init_db
from filevault.storage import FilesystemStorage
from filevault.core import FileVault

MB = 1024 * 1024


class RecordingEventSink:
    """Event sink that keeps every event for inspection"""

    def __init__(self):
        self.events = []

    def emit(self, event):
        self.events.append(event)

    def types(self):
        return [e.type for e in self.events]


@pytest.fixture
def temp_dir():
    """Fixture that provides a temporary directory and cleans it up after test"""
    tmp = tempfile.mkdtemp()
    yield tmp
    shutil.rmtree(tmp)


@pytest.fixture
def session_factory(temp_dir):
    """
    Session factory over a file-backed SQLite database.

    A file (rather than :memory:) lets tests open several sessions that see
    each other's commits, as concurrent requests would.
    """
    Session = create_session_factory(f'sqlite:///{temp_dir}/vault.db')
    Base.metadata.create_all(Session.kw['bind'])
    yield Session
    Session.kw['bind'].dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def storage(temp_dir):
    return FilesystemStorage(base_path=f"{temp_dir}/objects", max_attempts=2)


@pytest.fixture
def legacy_storage(temp_dir):
    return FilesystemStorage(base_path=f"{temp_dir}/uploads")


@pytest.fixture
def events():
    return RecordingEventSink()


@pytest.fixture
def make_vault(storage, legacy_storage, events):
    """Build a vault over a given session, sharing storage and event sink"""
    def _make(session, quota_limit_bytes=10 * MB, **kwargs):
        return FileVault(
            session,
            storage,
            quota_limit_bytes=quota_limit_bytes,
            legacy_storage=legacy_storage,
            event_sink=events,
            base_url='http://vault.test',
            **kwargs,
        )
    return _make


@pytest.fixture
def vault(db, make_vault):
    """Fixture that provides a configured vault with a 10 MB quota"""
    return make_vault(db)


@pytest.fixture
def upload():
    """Upload bytes for a user with a correct declared size"""
    def _upload(vault, user_id, content: bytes, name='file.txt', mime='text/plain'):
        return vault.upload_file(user_id, io.BytesIO(content), name, len(content), mime)
    return _upload


@pytest.fixture
def app(temp_dir, events):
    """
    Create and configure a test Flask app.

    This fixture sets up a complete Flask application with:
    - Test database (SQLite)
    - Filesystem storage backend
    - A 1 MB quota so quota denials are cheap to trigger
    """
    from filevault.app import app as flask_app

    # Use a persistent SQLite database file instead of in-memory
    database_url = f'sqlite:///{temp_dir}/test.db'

    flask_app.config['TESTING'] = True
    flask_app.config['DATABASE_URL'] = database_url
    flask_app.config['STORAGE_BASE_PATH'] = f"{temp_dir}/objects"
    flask_app.config['LEGACY_UPLOAD_PATH'] = f"{temp_dir}/uploads"
    flask_app.config['S3_BUCKET'] = None
    flask_app.config['STORAGE_QUOTA_MB'] = 1
    flask_app.config['BASE_URL'] = 'http://vault.test'
    flask_app.extensions['filevault_event_sink'] = events

    # Setup database - create tables first
    init_db(database_url, echo=False)

    yield flask_app

    flask_app.extensions.pop('filevault_event_sink', None)
    for resource in flask_app.extensions.pop('filevault', {}).values():
        bind = getattr(resource, 'kw', {}).get('bind')
        if bind is not None:
            bind.dispose()


@pytest.fixture
def client(app):
    """
    Create a Flask test client.

    This fixture provides a test client for making HTTP requests to the Flask app.
    Automatically depends on the 'app' fixture.
    """
    return app.test_client()
