"""CRUD 基类：为各实体提供通用的数据访问方法。

所有查询默认按 ``user_id`` 做归属过滤（若调用方提供），并排除软删除记录。
"""

from typing import Any, Dict, Generic, List, Optional, Type, TypeVar

from sqlalchemy.orm import Query, Session

from app.packages.drive.models.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class CRUDBase(Generic[ModelType]):
    """封装常见的查询、创建与保存逻辑，减少重复代码。"""

    def __init__(self, model: Type[ModelType]):
        self.model = model

    def get(self, db: Session, id: Any, *, user_id: Optional[str] = None) -> Optional[ModelType]:
        return self.query(db, user_id=user_id).filter(self.model.id == id).first()

    def select(self, db: Session, *, user_id: Optional[str] = None, **filters: Any) -> List[ModelType]:
        """按等值条件查询，对应 ``select(table, eq(...))``。"""
        query = self.query(db, user_id=user_id)
        for column, value in filters.items():
            query = query.filter(getattr(self.model, column) == value)
        return query.all()

    def create(self, db: Session, obj_in: Dict[str, Any], *, auto_commit: bool = True) -> ModelType:
        db_obj = self.model(**obj_in)
        db.add(db_obj)
        if auto_commit:
            self._commit(db)
            db.refresh(db_obj)
        else:
            db.flush()
        return db_obj

    def update(self, db: Session, db_obj: ModelType, patch: Dict[str, Any], *, auto_commit: bool = True) -> ModelType:
        for field, value in patch.items():
            setattr(db_obj, field, value)
        return self.save(db, db_obj, auto_commit=auto_commit)

    def save(self, db: Session, db_obj: ModelType, *, auto_commit: bool = True) -> ModelType:
        db.add(db_obj)
        if auto_commit:
            self._commit(db)
            db.refresh(db_obj)
        return db_obj

    def query(self, db: Session, *, user_id: Optional[str] = None, include_deleted: bool = False) -> Query:
        query = db.query(self.model)
        if hasattr(self.model, "is_deleted") and not include_deleted:
            query = query.filter(self.model.is_deleted.is_(False))
        if user_id is not None:
            query = query.filter(self.model.user_id == user_id)
        return query

    @staticmethod
    def _commit(db: Session) -> None:
        try:
            db.commit()
        except Exception:
            db.rollback()
            raise
