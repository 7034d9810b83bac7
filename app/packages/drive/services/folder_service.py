"""文件夹服务：根文件夹/子文件夹创建、文件夹树、文件夹属性与内容列表。

写入顺序始终是先对象存储、后元数据：对象存储里多出的占位对象可以被重新发现，
而指向不存在对象的元数据记录会让下游全部失效。
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.packages.drive.core.config import get_settings
from app.packages.drive.core.constants import HTTP_STATUS_INTERNAL_ERROR, HTTP_STATUS_OK
from app.packages.drive.core.exceptions import (
    AppException,
    DuplicateEntryError,
    NotFoundError,
    ObjectStoreError,
    ValidationError,
)
from app.packages.drive.core.logger import logger
from app.packages.drive.core.responses import create_response
from app.packages.drive.crud.file_record import file_record_crud
from app.packages.drive.crud.folder import folder_crud
from app.packages.drive.models.file_record import FileRecord
from app.packages.drive.models.folder import Folder
from app.packages.drive.services.folder_tree import build_forest
from app.packages.drive.services.object_store import ObjectStore
from app.packages.drive.utils.path_utils import derive_child, derive_root, validate_name


def serialize_folder(folder: Folder) -> Dict[str, Any]:
    return {
        "id": folder.id,
        "name": folder.name,
        "user_id": folder.user_id,
        "parent_folder_id": folder.parent_folder_id,
        "path": folder.path,
        "key_prefix": folder.key_prefix,
        "is_root": bool(folder.is_root),
        "is_system": bool(folder.is_system),
    }


def serialize_file(record: FileRecord) -> Dict[str, Any]:
    return {
        "id": record.id,
        "name": record.name,
        "user_id": record.user_id,
        "folder_id": record.folder_id,
        "key": record.key,
        "content_type": record.content_type,
        "size": int(record.size or 0),
        "is_deleted": bool(record.is_deleted),
        "is_archived": bool(record.is_archived),
    }


class FolderService:
    # ----------------------------
    # 创建
    # ----------------------------
    def ensure_root(self, db: Session, store: ObjectStore, *, user_id: str) -> Tuple[Folder, bool]:
        """返回用户的根文件夹，不存在时创建；第二个返回值表示本次是否新建。"""
        existing = folder_crud.get_root(db, user_id=user_id)
        if existing is not None:
            return existing, False

        name = get_settings().root_folder_name
        key_prefix, path = derive_root(user_id, name)
        self._put_placeholder(store, key_prefix)
        folder = self._insert(
            db,
            {
                "name": name,
                "user_id": user_id,
                "parent_folder_id": None,
                "key_prefix": key_prefix,
                "path": path,
                "is_root": True,
                "is_system": True,
            },
        )
        logger.info("Created root folder %s for user %s", key_prefix, user_id)
        return folder, True

    def create_root_folder(self, db: Session, store: ObjectStore, *, user_id: str) -> Dict[str, Any]:
        folder, created = self.ensure_root(db, store, user_id=user_id)
        if not created:
            return create_response("根文件夹已存在", serialize_folder(folder), HTTP_STATUS_OK)
        return create_response("根文件夹创建成功", serialize_folder(folder), HTTP_STATUS_OK)

    def create_folder(
        self,
        db: Session,
        store: ObjectStore,
        *,
        user_id: str,
        name: str,
        parent_folder_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        try:
            safe_name = validate_name(name)
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc

        if parent_folder_id:
            parent = folder_crud.get(db, parent_folder_id, user_id=user_id)
            if parent is None:
                raise ValidationError("无效的 parent_folder_id", {"parent_folder_id": parent_folder_id})
        else:
            parent, _ = self.ensure_root(db, store, user_id=user_id)

        if folder_crud.get_child_by_name(db, user_id=user_id, parent_id=parent.id, name=safe_name) is not None:
            raise DuplicateEntryError("同名文件夹已存在", {"parent_folder_id": parent.id, "name": safe_name})

        key_prefix, path = derive_child(parent.key_prefix, parent.path, safe_name)
        self._put_placeholder(store, key_prefix)
        folder = self._insert(
            db,
            {
                "name": safe_name,
                "user_id": user_id,
                "parent_folder_id": parent.id,
                "key_prefix": key_prefix,
                "path": path,
            },
        )
        logger.info("Created folder %s (%s)", key_prefix, folder.id)
        return create_response("文件夹创建成功", serialize_folder(folder), HTTP_STATUS_OK)

    # ----------------------------
    # 查询
    # ----------------------------
    def get_folder_tree(self, db: Session, *, user_id: str) -> Dict[str, Any]:
        forest = build_forest(folder_crud.list_by_owner(db, user_id=user_id))
        if forest.cyclic:
            logger.warning("Folder tree of %s has cyclic records: %s", user_id, sorted(forest.cyclic))
        return create_response("获取文件夹树成功", forest.to_dicts(), HTTP_STATUS_OK)

    def get_folder_properties(self, db: Session, store: ObjectStore, *, user_id: str, folder_id: str) -> Dict[str, Any]:
        """统计文件夹前缀下的文件数量、总大小与最近修改时间（忽略零长度占位对象）。"""
        folder = folder_crud.get(db, folder_id, user_id=user_id)
        if folder is None:
            raise NotFoundError("文件夹不存在", {"folder_id": folder_id})

        file_count = 0
        total_size = 0
        last_modified = None
        try:
            for entry in store.iter_prefix(folder.key_prefix):
                if entry.key == folder.key_prefix or entry.size == 0:
                    continue
                file_count += 1
                total_size += entry.size
                if entry.last_modified and (last_modified is None or entry.last_modified > last_modified):
                    last_modified = entry.last_modified
        except ObjectStoreError as exc:
            raise AppException(f"读取对象存储失败: {exc}", HTTP_STATUS_INTERNAL_ERROR) from exc

        data = {
            "folder_path": folder.key_prefix,
            "file_count": file_count,
            "total_size": total_size,
            "last_modified": last_modified.isoformat() if last_modified else None,
        }
        return create_response("获取文件夹属性成功", data, HTTP_STATUS_OK)

    def list_contents(self, db: Session, *, user_id: str) -> Dict[str, Any]:
        folders = [serialize_folder(f) for f in folder_crud.list_by_owner(db, user_id=user_id)]
        files = [serialize_file(f) for f in file_record_crud.list_by_owner(db, user_id=user_id)]
        return create_response("获取文件与文件夹成功", {"folders": folders, "files": files}, HTTP_STATUS_OK)

    # ----------------------------
    # 工具方法
    # ----------------------------
    def _put_placeholder(self, store: ObjectStore, key_prefix: str) -> None:
        try:
            store.put(key_prefix, b"")
        except ObjectStoreError as exc:
            logger.error("Placeholder write failed for %s: %s", key_prefix, exc)
            raise AppException(
                "创建文件夹失败：对象存储写入错误",
                HTTP_STATUS_INTERNAL_ERROR,
                {"phase": "object_store", "key": key_prefix},
            ) from exc

    def _insert(self, db: Session, payload: Dict[str, Any]) -> Folder:
        try:
            return folder_crud.create(db, payload)
        except SQLAlchemyError as exc:
            logger.error("Folder insert failed for %s: %s", payload.get("key_prefix"), exc)
            raise AppException(
                "创建文件夹失败：元数据写入错误",
                HTTP_STATUS_INTERNAL_ERROR,
                {"phase": "metadata", "key": payload.get("key_prefix")},
            ) from exc


folder_service = FolderService()
