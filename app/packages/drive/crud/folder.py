"""Folder CRUD。"""

from __future__ import annotations

from typing import List, Optional

from sqlalchemy.orm import Session

from app.packages.drive.crud.base import CRUDBase
from app.packages.drive.models.folder import Folder


class CRUDFolder(CRUDBase[Folder]):
    def get_root(self, db: Session, *, user_id: str) -> Folder | None:
        return self.query(db, user_id=user_id).filter(Folder.is_root.is_(True)).first()

    def get_by_prefix(self, db: Session, *, user_id: str, key_prefix: str) -> Folder | None:
        return self.query(db, user_id=user_id).filter(Folder.key_prefix == key_prefix).first()

    def list_by_owner(self, db: Session, *, user_id: str) -> List[Folder]:
        # 按 path 升序，保证树构建结果稳定
        return self.query(db, user_id=user_id).order_by(Folder.path.asc(), Folder.id.asc()).all()

    def list_children(self, db: Session, *, parent_id: str) -> List[Folder]:
        # 含软删除记录：其对象同样随前缀迁移，级联时必须一并改写
        return (
            self.query(db, include_deleted=True)
            .filter(Folder.parent_folder_id == parent_id)
            .order_by(Folder.path.asc(), Folder.id.asc())
            .all()
        )

    def get_child_by_name(
        self, db: Session, *, user_id: str, parent_id: str, name: str, exclude_id: Optional[str] = None
    ) -> Folder | None:
        query = (
            self.query(db, user_id=user_id)
            .filter(Folder.parent_folder_id == parent_id)
            .filter(Folder.name == name)
        )
        if exclude_id is not None:
            query = query.filter(Folder.id != exclude_id)
        return query.first()


folder_crud = CRUDFolder(Folder)
