"""FileRecord CRUD。"""

from __future__ import annotations

from typing import List

from sqlalchemy.orm import Session

from app.packages.drive.crud.base import CRUDBase
from app.packages.drive.models.file_record import FileRecord


class CRUDFileRecord(CRUDBase[FileRecord]):
    def get_by_key(self, db: Session, *, user_id: str, key: str) -> FileRecord | None:
        return self.query(db, user_id=user_id).filter(FileRecord.key == key).first()

    def list_by_owner(self, db: Session, *, user_id: str) -> List[FileRecord]:
        return self.query(db, user_id=user_id).order_by(FileRecord.key.asc()).all()

    def list_in_folder(self, db: Session, *, folder_id: str) -> List[FileRecord]:
        # 含软删除记录，与 list_children 保持一致
        return self.query(db, include_deleted=True).filter(FileRecord.folder_id == folder_id).order_by(FileRecord.key.asc()).all()


file_record_crud = CRUDFileRecord(FileRecord)
