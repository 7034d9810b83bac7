"""对象迁移引擎：把旧前缀下的全部对象搬到新前缀下。

两阶段执行：
1. 并发复制每个源 key 到目标 key，收集逐 key 的成败；
2. 仅当第 1 阶段全部成功时，并发删除已确认复制的源 key。

复制失败时不删除任何源对象；删除失败时新旧两份数据同时存在（重复而非丢失），
以 ``cleanup_failed`` 状态单独报告。
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Tuple

from app.packages.drive.core.exceptions import ObjectStoreError
from app.packages.drive.core.logger import logger
from app.packages.drive.services.object_store import ObjectStore
from app.packages.drive.utils.path_utils import replace_prefix


class MigrationStatus(str, Enum):
    COMPLETED = "completed"
    EMPTY_SOURCE = "empty_source"
    COPY_FAILED = "copy_failed"
    CLEANUP_FAILED = "cleanup_failed"


@dataclass
class KeyFailure:
    key: str
    stage: str  # "copy" | "delete" | "list"
    error: str

    def to_dict(self) -> Dict[str, str]:
        return {"key": self.key, "stage": self.stage, "error": self.error}


@dataclass
class MigrationResult:
    old_prefix: str
    new_prefix: str
    status: MigrationStatus = MigrationStatus.COMPLETED
    moved_keys: List[str] = field(default_factory=list)
    failures: List[KeyFailure] = field(default_factory=list)
    # 已复制但源对象未清理的 key（新旧两处均存在）
    duplicates: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.status == MigrationStatus.COMPLETED

    @property
    def data_at_destination(self) -> bool:
        """目标位置已拥有全部数据，可以继续更新元数据。"""
        return self.status in (MigrationStatus.COMPLETED, MigrationStatus.CLEANUP_FAILED)

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "from": self.old_prefix,
            "to": self.new_prefix,
            "moved_count": len(self.moved_keys),
            "failures": [f.to_dict() for f in self.failures],
            "duplicates": list(self.duplicates),
        }


def _fan_out(
    fn: Callable[[str, str], None],
    pairs: List[Tuple[str, str]],
    *,
    max_workers: int,
) -> Tuple[List[Tuple[str, str]], List[Tuple[str, str, str]]]:
    """对每个 (src, dst) 并发调用 fn，返回 (成功列表, 失败列表[(src, dst, error)])。"""
    succeeded: List[Tuple[str, str]] = []
    failed: List[Tuple[str, str, str]] = []
    if not pairs:
        return succeeded, failed
    workers = max(1, min(max_workers, len(pairs)))
    with ThreadPoolExecutor(max_workers=workers) as executor:
        futures = [(executor.submit(fn, src, dst), src, dst) for src, dst in pairs]
        for future, src, dst in futures:
            try:
                future.result()
                succeeded.append((src, dst))
            except ObjectStoreError as exc:
                failed.append((src, dst, str(exc)))
            except Exception as exc:  # 单个 key 的意外错误同样按失败收集
                logger.exception("Unexpected object store error on %s", src)
                failed.append((src, dst, f"{type(exc).__name__}: {exc}"))
    return succeeded, failed


def _two_phase(store: ObjectStore, result: MigrationResult, pairs: List[Tuple[str, str]], *, max_workers: int) -> MigrationResult:
    copied, copy_failures = _fan_out(lambda src, dst: store.copy(src, dst), pairs, max_workers=max_workers)
    if copy_failures:
        result.status = MigrationStatus.COPY_FAILED
        result.failures = [KeyFailure(key=src, stage="copy", error=err) for src, _, err in copy_failures]
        logger.error(
            "Migration %s -> %s aborted: %d/%d copies failed, no source deleted",
            result.old_prefix,
            result.new_prefix,
            len(copy_failures),
            len(pairs),
        )
        return result

    deleted, delete_failures = _fan_out(lambda src, dst: store.delete(src), copied, max_workers=max_workers)
    result.moved_keys = [dst for _, dst in copied]
    if delete_failures:
        result.status = MigrationStatus.CLEANUP_FAILED
        result.failures = [KeyFailure(key=src, stage="delete", error=err) for src, _, err in delete_failures]
        result.duplicates = [src for src, _, _ in delete_failures]
        logger.warning(
            "Migration %s -> %s copied everything but %d originals were not removed",
            result.old_prefix,
            result.new_prefix,
            len(delete_failures),
        )
        return result

    logger.info("Migration %s -> %s moved %d objects", result.old_prefix, result.new_prefix, len(deleted))
    return result


def migrate_prefix(store: ObjectStore, old_prefix: str, new_prefix: str, *, max_workers: int = 16) -> MigrationResult:
    """迁移旧前缀下的全部对象（含与前缀相同的文件夹占位对象）。"""
    result = MigrationResult(old_prefix=old_prefix, new_prefix=new_prefix)
    try:
        source_keys = [entry.key for entry in store.iter_prefix(old_prefix)]
    except ObjectStoreError as exc:
        result.status = MigrationStatus.COPY_FAILED
        result.failures = [KeyFailure(key=old_prefix, stage="list", error=str(exc))]
        logger.error("Listing %s failed: %s", old_prefix, exc)
        return result

    if not source_keys:
        result.status = MigrationStatus.EMPTY_SOURCE
        logger.warning("Migration source %s not found or empty", old_prefix)
        return result

    pairs = [(key, replace_prefix(key, old_prefix, new_prefix)) for key in source_keys]
    logger.info("Migrating %d objects %s -> %s", len(pairs), old_prefix, new_prefix)
    return _two_phase(store, result, pairs, max_workers=max_workers)


def migrate_key(store: ObjectStore, old_key: str, new_key: str) -> MigrationResult:
    """单文件重命名：对唯一一个 key 执行同样的先复制后删除。"""
    result = MigrationResult(old_prefix=old_key, new_prefix=new_key)
    try:
        present = store.exists(old_key)
    except ObjectStoreError as exc:
        result.status = MigrationStatus.COPY_FAILED
        result.failures = [KeyFailure(key=old_key, stage="list", error=str(exc))]
        return result
    if not present:
        result.status = MigrationStatus.EMPTY_SOURCE
        logger.warning("Migration source object %s not found", old_key)
        return result
    return _two_phase(store, result, [(old_key, new_key)], max_workers=1)
