"""元数据级联更新：文件夹改名/移动后，逐层重写后代文件夹的前缀与路径以及其中文件的 key。

- 每次调用只加载一层直接子文件夹，先更新子文件夹再深度优先递归；
- 每条记录单独提交，某条失败会回滚并记录，不影响兄弟子树；
  失败节点自身的子树不再下探，作为重试入口返回给调用方；
- 已处于新前缀下的记录视为已完成，因此对同一子树重复执行是安全的。
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.packages.drive.core.logger import logger
from app.packages.drive.crud.file_record import file_record_crud
from app.packages.drive.crud.folder import folder_crud
from app.packages.drive.utils.path_utils import replace_prefix


@dataclass
class CascadeFailure:
    entity: str  # "folder" | "file"
    id: str
    error: str

    def to_dict(self) -> Dict[str, str]:
        return {"entity": self.entity, "id": self.id, "error": self.error}


@dataclass
class CascadeResult:
    updated_folders: List[str] = field(default_factory=list)
    updated_files: List[str] = field(default_factory=list)
    failures: List[CascadeFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures

    def to_dict(self) -> dict:
        return {
            "updated_folders": list(self.updated_folders),
            "updated_files": list(self.updated_files),
            "failures": [f.to_dict() for f in self.failures],
        }


def _rebase(value: str, old: str, new: str) -> Optional[Tuple[str, str]]:
    """返回 (旧值, 新值)；值已位于新前缀下时反推旧值；两者都不匹配返回 None。"""
    if value.startswith(old):
        return value, replace_prefix(value, old, new)
    if value.startswith(new):
        return replace_prefix(value, new, old), value
    return None


def _rewrite_files(db: Session, folder_id: str, old_prefix: str, new_prefix: str, result: CascadeResult) -> None:
    for record in file_record_crud.list_in_folder(db, folder_id=folder_id):
        record_id = record.id
        rebased = _rebase(record.key, old_prefix, new_prefix)
        if rebased is None:
            result.failures.append(CascadeFailure("file", record_id, f"key {record.key} 不在前缀 {old_prefix} 下"))
            continue
        _, new_key = rebased
        if new_key == record.key:
            continue
        try:
            file_record_crud.update(db, record, {"key": new_key})
            result.updated_files.append(record_id)
        except SQLAlchemyError as exc:
            db.rollback()
            logger.error("Cascade failed to update file %s: %s", record_id, exc)
            result.failures.append(CascadeFailure("file", record_id, str(exc)))


def _cascade_children(
    db: Session,
    folder_id: str,
    old_prefix: str,
    new_prefix: str,
    old_path: str,
    new_path: str,
    result: CascadeResult,
    visited: Set[str],
) -> None:
    for child in folder_crud.list_children(db, parent_id=folder_id):
        child_id = child.id
        if child_id in visited:
            logger.warning("Cascade skipped folder %s: cycle detected", child_id)
            continue
        visited.add(child_id)

        prefixes = _rebase(child.key_prefix, old_prefix, new_prefix)
        paths = _rebase(child.path, old_path + "/", new_path + "/")
        if prefixes is None or paths is None:
            result.failures.append(
                CascadeFailure("folder", child_id, f"前缀 {child.key_prefix} 与父文件夹不一致")
            )
            continue
        (child_old_prefix, child_new_prefix), (child_old_path, child_new_path) = prefixes, paths

        if child.key_prefix != child_new_prefix or child.path != child_new_path:
            try:
                folder_crud.update(db, child, {"key_prefix": child_new_prefix, "path": child_new_path})
                result.updated_folders.append(child_id)
            except SQLAlchemyError as exc:
                db.rollback()
                logger.error("Cascade failed to update folder %s: %s", child_id, exc)
                result.failures.append(CascadeFailure("folder", child_id, str(exc)))
                continue

        _rewrite_files(db, child_id, child_old_prefix, child_new_prefix, result)
        _cascade_children(
            db,
            child_id,
            child_old_prefix,
            child_new_prefix,
            child_old_path,
            child_new_path,
            result,
            visited,
        )


def cascade(
    db: Session,
    *,
    folder_id: str,
    old_prefix: str,
    new_prefix: str,
    old_path: str,
    new_path: str,
) -> CascadeResult:
    """把 ``folder_id`` 之下（不含其自身记录）的前缀与路径从旧值重写为新值。

    文件夹自身记录由调用方更新；其中直接包含的文件在这里一并重写 key。
    """
    result = CascadeResult()
    _rewrite_files(db, folder_id, old_prefix, new_prefix, result)
    _cascade_children(db, folder_id, old_prefix, new_prefix, old_path, new_path, result, {folder_id})
    logger.info(
        "Cascade %s -> %s: %d folders, %d files updated, %d failures",
        old_prefix,
        new_prefix,
        len(result.updated_folders),
        len(result.updated_files),
        len(result.failures),
    )
    return result
