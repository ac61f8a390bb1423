import os
from dotenv import load_dotenv

load_dotenv()


class Config:
    """Application configuration"""

    # Database
    DATABASE_URL = os.getenv('DATABASE_URL', 'sqlite:///filevault.db')

    # S3 (object storage is only used when a bucket is configured)
    AWS_ACCESS_KEY_ID = os.getenv('AWS_ACCESS_KEY_ID')
    AWS_SECRET_ACCESS_KEY = os.getenv('AWS_SECRET_ACCESS_KEY')
    AWS_REGION = os.getenv('AWS_REGION', 'us-east-1')
    S3_BUCKET = os.getenv('S3_BUCKET')
    S3_ENDPOINT_URL = os.getenv('S3_ENDPOINT_URL')

    # Filesystem storage
    STORAGE_BASE_PATH = os.getenv('STORAGE_BASE_PATH', '.filevault/objects')
    LEGACY_UPLOAD_PATH = os.getenv('LEGACY_UPLOAD_PATH', './uploads')
    STORAGE_MAX_ATTEMPTS = int(os.getenv('STORAGE_MAX_ATTEMPTS', '3'))

    # Limits
    STORAGE_QUOTA_MB = int(os.getenv('STORAGE_QUOTA_MB', '10'))
    MAX_UPLOAD_SIZE_MB = int(os.getenv('MAX_UPLOAD_SIZE_MB', '100'))

    # Public share links
    BASE_URL = os.getenv('BASE_URL', 'http://localhost:8080')

    # Flask
    SECRET_KEY = os.getenv('FLASK_SECRET_KEY', 'dev-secret-key-change-in-production')
    DEBUG = os.getenv('FLASK_ENV') == 'development'
    PORT = int(os.getenv('PORT', '8080'))
