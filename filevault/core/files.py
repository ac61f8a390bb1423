"""File metadata store - per-upload ownership records."""
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from filevault.models import BlobRecord, DirectShare, FileRecord


@dataclass
class FileStats:
    total_files: int
    unique_files: int
    total_size: int
    files_by_mime_type: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            'total_files': self.total_files,
            'unique_files': self.unique_files,
            'total_size': self.total_size,
            'files_by_mime_type': self.files_by_mime_type,
        }


class FileStore:
    def __init__(self, db: Session):
        self.db = db

    def create(self, owner_id: str, display_name: str, mime_type: str, blob: BlobRecord,
               folder_id: Optional[str] = None) -> FileRecord:
        """
        Record an upload of ``blob``'s content by ``owner_id``.

        The blob row must already exist; the new record is committed.
        """
        record = FileRecord(
            owner_id=owner_id,
            display_name=display_name,
            mime_type=mime_type,
            content_hash=blob.content_hash,
            folder_id=folder_id,
        )
        self.db.add(record)
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        return record

    def get(self, file_id: str) -> Optional[FileRecord]:
        return self.db.query(FileRecord).filter(FileRecord.id == file_id).first()

    def list_for_owner(self, owner_id: str, limit: int = 50, offset: int = 0,
                       search: Optional[str] = None) -> List[FileRecord]:
        query = self.db.query(FileRecord).filter(FileRecord.owner_id == owner_id)
        if search:
            query = query.filter(FileRecord.display_name.ilike(f"%{search}%"))
        return query.order_by(FileRecord.created_at.desc()).offset(offset).limit(limit).all()

    def is_shared_with(self, file_id: str, user_id: str) -> bool:
        return self.db.query(DirectShare.id).filter(
            DirectShare.file_id == file_id,
            DirectShare.to_user_id == user_id,
        ).first() is not None

    def can_read(self, file: FileRecord, user_id: str) -> bool:
        return file.owner_id == user_id or self.is_shared_with(file.id, user_id)

    def delete(self, file: FileRecord) -> None:
        self.db.delete(file)
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

    def stats(self, owner_id: str) -> FileStats:
        """
        Upload statistics for ``owner_id``. Sizes count each distinct
        piece of content once.
        """
        total_files = self.db.query(func.count(FileRecord.id)).filter(
            FileRecord.owner_id == owner_id
        ).scalar()

        distinct = (
            self.db.query(FileRecord.content_hash)
            .filter(FileRecord.owner_id == owner_id)
            .distinct()
            .subquery()
        )
        unique_files, total_size = self.db.query(
            func.count(BlobRecord.content_hash),
            func.coalesce(func.sum(BlobRecord.size), 0),
        ).select_from(BlobRecord).join(
            distinct, distinct.c.content_hash == BlobRecord.content_hash
        ).one()

        by_mime = self.db.query(FileRecord.mime_type, func.count(FileRecord.id)).filter(
            FileRecord.owner_id == owner_id
        ).group_by(FileRecord.mime_type).all()

        return FileStats(
            total_files=total_files or 0,
            unique_files=unique_files or 0,
            total_size=int(total_size or 0),
            files_by_mime_type={mime: count for mime, count in by_mime},
        )
