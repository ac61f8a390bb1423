import logging
from flask import Flask, g, jsonify, request
from filevault.config import Config
from filevault.core import FileVault
from filevault.core.quota import MB
from filevault.errors import AuthenticationError, VaultError
from filevault.models.api_schemas import ErrorResponse
from filevault.models.base import create_session_factory
from filevault.storage import S3Storage, FilesystemStorage
from filevault.routes import files_bp, shares_bp

logger = logging.getLogger(__name__)

app = Flask(__name__)
app.config.from_object(Config)

# Register blueprints
app.register_blueprint(files_bp)
app.register_blueprint(shares_bp)


@app.errorhandler(VaultError)
def handle_vault_error(error: VaultError):
    """Render business errors as JSON with their HTTP status"""
    if error.status_code >= 500:
        logger.error(f'{request.method} {request.path} failed: {error}')
    response = ErrorResponse(code=error.code, error=error.message, extra=error.extra)
    return jsonify(response.model_dump()), error.status_code


def _resources() -> dict:
    """Per-configuration cache of session factories and storage backends"""
    return app.extensions.setdefault('filevault', {})


def _cached(key, build):
    cache = _resources()
    if key not in cache:
        cache[key] = build()
    return cache[key]


def get_session_factory():
    database_url = app.config.get('DATABASE_URL', Config.DATABASE_URL)
    debug = app.config.get('DEBUG', Config.DEBUG)
    return _cached(('db', database_url), lambda: create_session_factory(database_url, echo=debug))


def get_storage():
    """Get storage backend - S3 if configured, otherwise filesystem"""
    # Use Flask app config if available, otherwise use global config
    s3_bucket = app.config.get('S3_BUCKET', Config.S3_BUCKET)
    storage_base_path = app.config.get('STORAGE_BASE_PATH', Config.STORAGE_BASE_PATH)
    max_attempts = app.config.get('STORAGE_MAX_ATTEMPTS', Config.STORAGE_MAX_ATTEMPTS)

    if s3_bucket:
        return _cached(('s3', s3_bucket), lambda: S3Storage(bucket=s3_bucket, max_attempts=max_attempts))
    return _cached(
        ('fs', storage_base_path),
        lambda: FilesystemStorage(base_path=storage_base_path, max_attempts=max_attempts),
    )


def get_legacy_storage():
    """Filesystem backend for records uploaded before object storage"""
    legacy_path = app.config.get('LEGACY_UPLOAD_PATH', Config.LEGACY_UPLOAD_PATH)
    return _cached(('legacy', legacy_path), lambda: FilesystemStorage(base_path=legacy_path))


def get_vault() -> FileVault:
    """Get the vault for the current request, with its own DB session"""
    if 'vault' not in g:
        db = get_session_factory()()
        g.db = db
        g.vault = FileVault(
            db,
            get_storage(),
            quota_limit_bytes=app.config.get('STORAGE_QUOTA_MB', Config.STORAGE_QUOTA_MB) * MB,
            legacy_storage=get_legacy_storage(),
            max_upload_bytes=app.config.get('MAX_UPLOAD_SIZE_MB', Config.MAX_UPLOAD_SIZE_MB) * MB,
            event_sink=app.extensions.get('filevault_event_sink'),
            base_url=app.config.get('BASE_URL', Config.BASE_URL),
        )
    return g.vault


def current_user_id(required: bool = True):
    """
    The authenticated user, as forwarded by the authentication layer in
    front of the vault.
    """
    user_id = request.headers.get('X-User-Id')
    if not user_id and required:
        raise AuthenticationError()
    return user_id or None


@app.teardown_appcontext
def shutdown_session(exception=None):
    """Close database session"""
    db = g.pop('db', None)
    g.pop('vault', None)
    if db is not None:
        db.close()
