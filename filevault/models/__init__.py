from .base import Base
from .blob import BlobRecord, StorageKind
from .file import FileRecord
from .share import ShareToken, ShareKind, ShareState, DownloadLog
from .direct_share import DirectShare

__all__ = ['Base', 'BlobRecord', 'StorageKind', 'FileRecord', 'ShareToken', 'ShareKind',
           'ShareState', 'DownloadLog', 'DirectShare']
