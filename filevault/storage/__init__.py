from .base import StorageBackend
from .s3_storage import S3Storage
from .filesystem import FilesystemStorage
from .refs import LocalPath, ObjectKey, StorageRef, blob_key

__all__ = ['StorageBackend', 'S3Storage', 'FilesystemStorage',
           'LocalPath', 'ObjectKey', 'StorageRef', 'blob_key']
