from .blob_registry import BlobRegistry
from .events import EventSink, EventType, LoggingEventSink, VaultEvent
from .files import FileStats, FileStore
from .ingest import StagedUpload, ingest
from .quota import QuotaAccountant, QuotaDecision, QuotaUsage
from .shares import ShareManager
from .vault import FileVault

__all__ = ['BlobRegistry', 'EventSink', 'EventType', 'LoggingEventSink', 'VaultEvent',
           'FileStats', 'FileStore', 'StagedUpload', 'ingest', 'QuotaAccountant',
           'QuotaDecision', 'QuotaUsage', 'ShareManager', 'FileVault']
