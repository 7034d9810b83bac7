"""重命名/移动编排：先迁移对象存储，再更新元数据。

每个请求按 ``validating -> migrating_objects -> updating_metadata -> done`` 推进，
任一阶段失败都以异常结束，``data.phase`` 给出失败时所处的阶段以及受影响的 key / 记录。

- 校验与未找到类错误在任何写操作之前抛出；
- 对象复制存在失败时直接结束，元数据保持不变；
- 复制全部成功但源对象未清理完时继续更新元数据，并在结果中附带 ``duplicates`` 告警；
- 元数据阶段的失败不会回滚已完成的对象迁移，调用方可通过级联重试接口补齐。
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.packages.drive.core.config import get_settings
from app.packages.drive.core.constants import HTTP_STATUS_OK, KEY_SEPARATOR
from app.packages.drive.core.exceptions import (
    AppException,
    DuplicateEntryError,
    ForbiddenError,
    MetadataPartialFailure,
    MigrationPartialFailure,
    NotFoundError,
    ValidationError,
)
from app.packages.drive.core.logger import logger
from app.packages.drive.core.responses import create_response
from app.packages.drive.crud.file_record import file_record_crud
from app.packages.drive.crud.folder import folder_crud
from app.packages.drive.models.folder import Folder
from app.packages.drive.services.cascade import CascadeResult, cascade
from app.packages.drive.services.folder_tree import build_forest
from app.packages.drive.services.migration import MigrationResult, MigrationStatus, migrate_key, migrate_prefix
from app.packages.drive.services.object_store import ObjectStore
from app.packages.drive.utils.path_utils import (
    derive_child,
    is_within,
    last_segment,
    parent_prefix,
    replace_last_segment,
    validate_segment,
)


class RenamePhase(str, Enum):
    VALIDATING = "validating"
    MIGRATING_OBJECTS = "migrating_objects"
    UPDATING_METADATA = "updating_metadata"
    DONE = "done"
    FAILED = "failed"


def _as_prefix(value: str) -> str:
    value = (value or "").strip()
    return value if value.endswith(KEY_SEPARATOR) else value + KEY_SEPARATOR


def _enter(phase: RenamePhase, old_path: str, new_path: str) -> None:
    logger.info("rename %s -> %s: %s", old_path, new_path, phase.value, extra={"phase": phase.value})


def _raise_for_migration(result: MigrationResult, *, is_folder: bool) -> None:
    """把迁移引擎的结果映射为对外错误；数据已全部到达目标位置时直接返回。"""
    if result.data_at_destination:
        return
    detail = {"phase": RenamePhase.MIGRATING_OBJECTS.value, **result.to_dict()}
    if result.status == MigrationStatus.EMPTY_SOURCE:
        msg = "源文件夹不存在或为空" if is_folder else "源文件不存在"
        raise NotFoundError(msg, detail)
    raise MigrationPartialFailure("对象迁移失败，元数据未修改", detail)


def _summary(
    old_path: str,
    new_path: str,
    *,
    is_folder: bool,
    migration: MigrationResult,
    cascade_result: Optional[CascadeResult] = None,
) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "from": old_path,
        "to": new_path,
        "is_folder": is_folder,
        "moved_count": len(migration.moved_keys),
    }
    if cascade_result is not None:
        data["updated_folders"] = len(cascade_result.updated_folders)
        data["updated_files"] = len(cascade_result.updated_files)
    if migration.status == MigrationStatus.CLEANUP_FAILED:
        data["warning"] = "duplicate_entries"
        data["duplicates"] = list(migration.duplicates)
    return data


class RenameService:
    def rename(
        self,
        db: Session,
        store: ObjectStore,
        *,
        user_id: str,
        old_path: Optional[str],
        new_path: Optional[str],
        is_folder: bool,
        folder_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        if not old_path or not new_path:
            raise ValidationError("缺少 old_path 或 new_path", {"phase": RenamePhase.VALIDATING.value})
        owner_prefix = f"{user_id}{KEY_SEPARATOR}"
        if not old_path.startswith(owner_prefix) or not new_path.startswith(owner_prefix):
            raise ForbiddenError(data={"phase": RenamePhase.VALIDATING.value})

        _enter(RenamePhase.VALIDATING, old_path, new_path)
        try:
            if is_folder:
                data = self._rename_folder(
                    db,
                    store,
                    user_id=user_id,
                    old_prefix=_as_prefix(old_path),
                    new_prefix=_as_prefix(new_path),
                    folder_id=folder_id,
                )
            else:
                data = self._rename_file(db, store, user_id=user_id, old_key=old_path, new_key=new_path)
        except AppException as exc:
            reached = (exc.data or {}).get("phase") if isinstance(exc.data, dict) else None
            logger.warning(
                "rename %s -> %s failed at %s: %s",
                old_path,
                new_path,
                reached,
                exc.detail,
                extra={"phase": RenamePhase.FAILED.value},
            )
            raise
        _enter(RenamePhase.DONE, old_path, new_path)

        if data.get("warning"):
            return create_response("重命名成功，但部分源对象未能清理", data, HTTP_STATUS_OK)
        return create_response("重命名成功", data, HTTP_STATUS_OK)

    # ----------------------------
    # 文件夹
    # ----------------------------
    def _resolve_folder(self, db: Session, *, user_id: str, old_prefix: str, folder_id: Optional[str]) -> Folder:
        if folder_id:
            folder = folder_crud.get(db, folder_id)
            if folder is None:
                raise NotFoundError("文件夹不存在", {"phase": RenamePhase.VALIDATING.value, "folder_id": folder_id})
            if folder.user_id != user_id:
                raise ForbiddenError(data={"phase": RenamePhase.VALIDATING.value, "folder_id": folder_id})
            if folder.key_prefix != old_prefix:
                raise ValidationError(
                    "old_path 与文件夹记录不一致",
                    {"phase": RenamePhase.VALIDATING.value, "folder_id": folder_id, "key_prefix": folder.key_prefix},
                )
            return folder
        folder = folder_crud.get_by_prefix(db, user_id=user_id, key_prefix=old_prefix)
        if folder is None:
            raise NotFoundError("文件夹不存在", {"phase": RenamePhase.VALIDATING.value, "old_path": old_prefix})
        return folder

    def _resolve_new_parent(self, db: Session, folder: Folder, *, user_id: str, new_prefix: str) -> Folder:
        target = parent_prefix(new_prefix)
        if target == parent_prefix(folder.key_prefix) and folder.parent_folder_id:
            parent = folder_crud.get(db, folder.parent_folder_id, user_id=user_id)
        else:
            parent = folder_crud.get_by_prefix(db, user_id=user_id, key_prefix=target)
        if parent is None:
            raise NotFoundError("目标父文件夹不存在", {"phase": RenamePhase.VALIDATING.value, "parent_prefix": target})
        return parent

    def _rename_folder(
        self,
        db: Session,
        store: ObjectStore,
        *,
        user_id: str,
        old_prefix: str,
        new_prefix: str,
        folder_id: Optional[str],
    ) -> Dict[str, Any]:
        validating = RenamePhase.VALIDATING.value
        if old_prefix == new_prefix:
            raise ValidationError("新旧路径相同", {"phase": validating})
        folder = self._resolve_folder(db, user_id=user_id, old_prefix=old_prefix, folder_id=folder_id)
        if folder.is_root:
            raise ValidationError("根文件夹不允许重命名或移动", {"phase": validating, "folder_id": folder.id})
        if is_within(old_prefix, new_prefix):
            raise ValidationError("不能将文件夹移动到其自身或子文件夹中", {"phase": validating, "folder_id": folder.id})
        try:
            new_name = validate_segment(last_segment(new_prefix))
        except ValueError as exc:
            raise ValidationError(str(exc), {"phase": validating}) from exc

        parent = self._resolve_new_parent(db, folder, user_id=user_id, new_prefix=new_prefix)
        if new_prefix != derive_child(parent.key_prefix, parent.path, new_name)[0]:
            raise ValidationError("new_path 格式不合法", {"phase": validating, "new_path": new_prefix})
        if folder_crud.get_child_by_name(db, user_id=user_id, parent_id=parent.id, name=new_name, exclude_id=folder.id):
            raise DuplicateEntryError("同名文件夹已存在", {"phase": validating, "parent_folder_id": parent.id, "name": new_name})

        forest = build_forest(folder_crud.list_by_owner(db, user_id=user_id))
        if folder.id in forest.cyclic:
            raise ValidationError("文件夹层级存在循环引用", {"phase": validating, "folder_id": folder.id})
        affected = sum(1 for _ in forest.descendants(folder.id))
        logger.info("rename folder %s affects %d descendant folders", folder.id, affected)

        if parent.id == folder.parent_folder_id:
            new_path = replace_last_segment(folder.path, folder.name, new_name)
        else:
            _, new_path = derive_child(parent.key_prefix, parent.path, new_name)

        _enter(RenamePhase.MIGRATING_OBJECTS, old_prefix, new_prefix)
        migration = migrate_prefix(store, old_prefix, new_prefix, max_workers=get_settings().migration_max_workers)
        _raise_for_migration(migration, is_folder=True)

        _enter(RenamePhase.UPDATING_METADATA, old_prefix, new_prefix)
        old_path = folder.path
        try:
            folder_crud.update(
                db,
                folder,
                {"name": new_name, "parent_folder_id": parent.id, "key_prefix": new_prefix, "path": new_path},
            )
        except SQLAlchemyError as exc:
            db.rollback()
            logger.error("Folder %s record update failed after migration: %s", folder.id, exc)
            raise MetadataPartialFailure(
                "对象已迁移，但文件夹记录更新失败",
                {
                    "phase": RenamePhase.UPDATING_METADATA.value,
                    "migration": migration.to_dict(),
                    "failures": [{"entity": "folder", "id": folder.id, "error": str(exc)}],
                },
            ) from exc

        result = cascade(
            db,
            folder_id=folder.id,
            old_prefix=old_prefix,
            new_prefix=new_prefix,
            old_path=old_path,
            new_path=new_path,
        )
        if not result.ok:
            raise MetadataPartialFailure(
                "对象已迁移，但部分子记录更新失败",
                {
                    "phase": RenamePhase.UPDATING_METADATA.value,
                    "folder_id": folder.id,
                    "migration": migration.to_dict(),
                    **result.to_dict(),
                },
            )
        return _summary(old_prefix, new_prefix, is_folder=True, migration=migration, cascade_result=result)

    # ----------------------------
    # 文件
    # ----------------------------
    def _rename_file(self, db: Session, store: ObjectStore, *, user_id: str, old_key: str, new_key: str) -> Dict[str, Any]:
        validating = RenamePhase.VALIDATING.value
        if old_key == new_key:
            raise ValidationError("新旧路径相同", {"phase": validating})
        if new_key.endswith(KEY_SEPARATOR):
            raise ValidationError("文件路径不能以 '/' 结尾", {"phase": validating, "new_path": new_key})
        record = file_record_crud.get_by_key(db, user_id=user_id, key=old_key)
        if record is None:
            raise NotFoundError("文件记录不存在", {"phase": validating, "old_path": old_key})
        try:
            new_name = validate_segment(last_segment(new_key))
        except ValueError as exc:
            raise ValidationError(str(exc), {"phase": validating}) from exc
        target_prefix = parent_prefix(new_key)
        folder = folder_crud.get_by_prefix(db, user_id=user_id, key_prefix=target_prefix)
        if folder is None:
            raise NotFoundError("目标文件夹不存在", {"phase": validating, "parent_prefix": target_prefix})
        if new_key != f"{folder.key_prefix}{new_name}":
            raise ValidationError("new_path 格式不合法", {"phase": validating, "new_path": new_key})
        if file_record_crud.get_by_key(db, user_id=user_id, key=new_key) is not None:
            raise DuplicateEntryError("目标位置已存在同名文件", {"phase": validating, "new_path": new_key})

        _enter(RenamePhase.MIGRATING_OBJECTS, old_key, new_key)
        migration = migrate_key(store, old_key, new_key)
        _raise_for_migration(migration, is_folder=False)

        _enter(RenamePhase.UPDATING_METADATA, old_key, new_key)
        try:
            file_record_crud.update(db, record, {"key": new_key, "name": new_name, "folder_id": folder.id})
        except SQLAlchemyError as exc:
            db.rollback()
            logger.error("File %s record update failed after migration: %s", record.id, exc)
            raise MetadataPartialFailure(
                "对象已迁移，但文件记录更新失败",
                {
                    "phase": RenamePhase.UPDATING_METADATA.value,
                    "migration": migration.to_dict(),
                    "failures": [{"entity": "file", "id": record.id, "error": str(exc)}],
                },
            ) from exc
        return _summary(old_key, new_key, is_folder=False, migration=migration)

    # ----------------------------
    # 级联重试
    # ----------------------------
    def retry_cascade(
        self,
        db: Session,
        *,
        user_id: str,
        folder_id: str,
        old_prefix: str,
        new_prefix: str,
        old_path: str,
        new_path: str,
    ) -> Dict[str, Any]:
        """对一个子树重新执行元数据级联，用于补齐上一次重命名留下的失败记录。

        文件夹自身记录仍停留在旧前缀时一并修正；已处于新前缀的记录会被跳过。
        """
        folder = folder_crud.get(db, folder_id)
        if folder is None:
            raise NotFoundError("文件夹不存在", {"folder_id": folder_id})
        if folder.user_id != user_id:
            raise ForbiddenError(data={"folder_id": folder_id})

        old_prefix, new_prefix = _as_prefix(old_prefix), _as_prefix(new_prefix)
        old_path, new_path = old_path.rstrip(KEY_SEPARATOR), new_path.rstrip(KEY_SEPARATOR)
        owner_prefix = f"{user_id}{KEY_SEPARATOR}"
        for value in (old_prefix, new_prefix, old_path, new_path):
            if not value.startswith(owner_prefix):
                raise ForbiddenError(data={"folder_id": folder_id, "path": value})
        if old_prefix == new_prefix or is_within(old_prefix, new_prefix) or is_within(new_prefix, old_prefix):
            raise ValidationError("新旧前缀不能相同或互相包含", {"old_prefix": old_prefix, "new_prefix": new_prefix})
        if folder.key_prefix not in (old_prefix, new_prefix):
            raise ValidationError("文件夹前缀与请求不一致", {"folder_id": folder_id, "key_prefix": folder.key_prefix})

        if folder.key_prefix == old_prefix:
            parent = folder_crud.get_by_prefix(db, user_id=user_id, key_prefix=parent_prefix(new_prefix))
            if parent is None:
                raise NotFoundError("目标父文件夹不存在", {"parent_prefix": parent_prefix(new_prefix)})
            try:
                new_name = validate_segment(last_segment(new_prefix))
            except ValueError as exc:
                raise ValidationError(str(exc), {"new_prefix": new_prefix}) from exc
            if (new_prefix, new_path) != derive_child(parent.key_prefix, parent.path, new_name):
                raise ValidationError("new_prefix 与 new_path 不一致", {"new_prefix": new_prefix, "new_path": new_path})
            try:
                folder_crud.update(
                    db,
                    folder,
                    {
                        "name": new_name,
                        "parent_folder_id": parent.id,
                        "key_prefix": new_prefix,
                        "path": new_path,
                    },
                )
            except SQLAlchemyError as exc:
                db.rollback()
                raise MetadataPartialFailure(
                    "文件夹记录更新失败",
                    {
                        "phase": RenamePhase.UPDATING_METADATA.value,
                        "failures": [{"entity": "folder", "id": folder.id, "error": str(exc)}],
                    },
                ) from exc

        result = cascade(
            db,
            folder_id=folder.id,
            old_prefix=old_prefix,
            new_prefix=new_prefix,
            old_path=old_path,
            new_path=new_path,
        )
        if not result.ok:
            raise MetadataPartialFailure(
                "部分子记录更新失败",
                {"phase": RenamePhase.UPDATING_METADATA.value, "folder_id": folder.id, **result.to_dict()},
            )
        return create_response("级联更新完成", {"folder_id": folder.id, **result.to_dict()}, HTTP_STATUS_OK)


rename_service = RenameService()
