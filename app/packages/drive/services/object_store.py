"""对象存储抽象与实现：统一封装本地目录与 S3 的扁平 key 操作。

对象存储没有层级概念，只支持按前缀枚举；文件夹由 key 以 '/' 结尾的
零长度占位对象表示。所有实现的单次调用失败都以 ``ObjectStoreError``
抛出，由迁移引擎按 key 收集。
"""

from __future__ import annotations

import os
import shutil
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, List, Optional
from urllib.parse import quote, unquote

from fastapi import status

from app.packages.drive.core.config import Settings
from app.packages.drive.core.exceptions import AppException, ObjectNotFoundError, ObjectStoreError
from app.packages.drive.core.logger import logger


# ------------------------------------------
# 公共数据结构
# ------------------------------------------

@dataclass
class ObjectEntry:
    key: str
    size: int = 0
    last_modified: Optional[datetime] = None


@dataclass
class ListPage:
    entries: List[ObjectEntry] = field(default_factory=list)
    next_token: Optional[str] = None


class ObjectStore:
    """对象存储接口。"""

    def list_by_prefix(self, prefix: str, continuation_token: Optional[str] = None) -> ListPage:
        raise NotImplementedError

    def put(self, key: str, body: bytes, content_type: Optional[str] = None) -> None:
        raise NotImplementedError

    def get(self, key: str) -> bytes:
        raise NotImplementedError

    def copy(self, src_key: str, dst_key: str) -> None:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        """删除对象；key 不存在时视为成功。"""
        raise NotImplementedError

    def exists(self, key: str) -> bool:
        raise NotImplementedError

    def iter_prefix(self, prefix: str) -> Iterator[ObjectEntry]:
        """跨分页枚举前缀下的全部对象，直到续传令牌耗尽。"""
        token: Optional[str] = None
        while True:
            page = self.list_by_prefix(prefix, token)
            yield from page.entries
            token = page.next_token
            if not token:
                break


# ------------------------------------------
# 本地实现：一个平铺目录，每个对象一个文件，文件名为转义后的 key
# ------------------------------------------


class LocalObjectStore(ObjectStore):
    def __init__(self, root: str | Path, *, page_size: int = 1000):
        self.root = Path(root).resolve()
        self.page_size = max(int(page_size), 1)
        # 写入中的临时文件放在子目录中，枚举只看根目录下的文件
        self._tmp_dir = self.root / ".tmp"
        try:
            self._tmp_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:  # pragma: no cover - 极端情况下可能失败
            raise AppException(f"无法创建本地存储目录: {exc}", status.HTTP_500_INTERNAL_SERVER_ERROR) from exc

    def _file(self, key: str) -> Path:
        if not key:
            raise ObjectStoreError("key 不能为空", key=key)
        return self.root / quote(key, safe="")

    def _all_keys(self) -> List[str]:
        return sorted(unquote(entry.name) for entry in self.root.iterdir() if entry.is_file())

    def list_by_prefix(self, prefix: str, continuation_token: Optional[str] = None) -> ListPage:
        keys = [k for k in self._all_keys() if k.startswith(prefix)]
        if continuation_token:
            keys = [k for k in keys if k > continuation_token]
        page_keys = keys[: self.page_size]
        entries = []
        for key in page_keys:
            stat = self._file(key).stat()
            entries.append(
                ObjectEntry(
                    key=key,
                    size=int(stat.st_size),
                    last_modified=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
                )
            )
        next_token = page_keys[-1] if len(keys) > len(page_keys) else None
        return ListPage(entries=entries, next_token=next_token)

    def put(self, key: str, body: bytes, content_type: Optional[str] = None) -> None:
        target = self._file(key)
        tmp = self._tmp_dir / f"{uuid.uuid4().hex}.part"
        try:
            with open(tmp, "wb") as f:
                f.write(body)
            os.replace(tmp, target)
        except OSError as exc:
            raise ObjectStoreError(f"写入失败: {exc}", key=key) from exc

    def get(self, key: str) -> bytes:
        try:
            return self._file(key).read_bytes()
        except FileNotFoundError as exc:
            raise ObjectNotFoundError("对象不存在", key=key) from exc

    def copy(self, src_key: str, dst_key: str) -> None:
        src = self._file(src_key)
        if not src.is_file():
            raise ObjectNotFoundError("源对象不存在", key=src_key)
        try:
            shutil.copyfile(src, self._file(dst_key))
        except OSError as exc:
            raise ObjectStoreError(f"复制失败: {exc}", key=src_key) from exc

    def delete(self, key: str) -> None:
        try:
            self._file(key).unlink(missing_ok=True)
        except OSError as exc:
            raise ObjectStoreError(f"删除失败: {exc}", key=key) from exc

    def exists(self, key: str) -> bool:
        return self._file(key).is_file()


# ------------------------------------------
# S3 实现（boto3）
# ------------------------------------------


class S3ObjectStore(ObjectStore):
    def __init__(
        self,
        *,
        bucket: str,
        region: str,
        access_key_id: Optional[str] = None,
        secret_access_key: Optional[str] = None,
        endpoint_url: Optional[str] = None,
        page_size: int = 1000,
    ):
        try:
            import boto3  # type: ignore
            from botocore.exceptions import BotoCoreError, ClientError
        except ImportError as exc:
            raise AppException(
                "S3 功能不可用：缺少依赖 boto3，请在后端安装后重试",
                status.HTTP_500_INTERNAL_SERVER_ERROR,
            ) from exc

        self.bucket = bucket
        self.page_size = min(max(int(page_size), 1), 1000)
        self._errors = (BotoCoreError, ClientError)
        self._client_error = ClientError
        self._client = boto3.client(
            "s3",
            region_name=region,
            aws_access_key_id=access_key_id,
            aws_secret_access_key=secret_access_key,
            endpoint_url=endpoint_url,
        )

    def _wrap(self, exc: Exception, key: str, action: str) -> ObjectStoreError:
        if isinstance(exc, self._client_error):
            code = exc.response.get("Error", {}).get("Code")
            if code in ("404", "NoSuchKey", "NotFound"):
                return ObjectNotFoundError(f"{action}失败：对象不存在", key=key)
        return ObjectStoreError(f"{action}失败: {exc}", key=key)

    def list_by_prefix(self, prefix: str, continuation_token: Optional[str] = None) -> ListPage:
        params = {"Bucket": self.bucket, "Prefix": prefix, "MaxKeys": self.page_size}
        if continuation_token:
            params["ContinuationToken"] = continuation_token
        try:
            resp = self._client.list_objects_v2(**params)
        except self._errors as exc:
            raise self._wrap(exc, prefix, "列举") from exc
        entries = [
            ObjectEntry(
                key=obj["Key"],
                size=int(obj.get("Size") or 0),
                last_modified=obj.get("LastModified"),
            )
            for obj in resp.get("Contents", [])
        ]
        next_token = resp.get("NextContinuationToken") if resp.get("IsTruncated") else None
        return ListPage(entries=entries, next_token=next_token)

    def put(self, key: str, body: bytes, content_type: Optional[str] = None) -> None:
        params = {"Bucket": self.bucket, "Key": key, "Body": body}
        if content_type:
            params["ContentType"] = content_type
        try:
            self._client.put_object(**params)
        except self._errors as exc:
            raise self._wrap(exc, key, "写入") from exc

    def get(self, key: str) -> bytes:
        try:
            return self._client.get_object(Bucket=self.bucket, Key=key)["Body"].read()
        except self._errors as exc:
            raise self._wrap(exc, key, "读取") from exc

    def copy(self, src_key: str, dst_key: str) -> None:
        try:
            self._client.copy_object(
                Bucket=self.bucket,
                Key=dst_key,
                CopySource={"Bucket": self.bucket, "Key": src_key},
            )
        except self._errors as exc:
            raise self._wrap(exc, src_key, "复制") from exc

    def delete(self, key: str) -> None:
        # S3 对不存在的 key 同样返回成功，满足重复删除的幂等要求
        try:
            self._client.delete_object(Bucket=self.bucket, Key=key)
        except self._errors as exc:
            raise self._wrap(exc, key, "删除") from exc

    def exists(self, key: str) -> bool:
        try:
            self._client.head_object(Bucket=self.bucket, Key=key)
            return True
        except self._errors as exc:
            wrapped = self._wrap(exc, key, "查询")
            if isinstance(wrapped, ObjectNotFoundError):
                return False
            raise wrapped from exc


def build_object_store(settings: Settings) -> ObjectStore:
    t = (settings.storage_type or "").upper()
    if t == "LOCAL":
        return LocalObjectStore(settings.local_root_directory, page_size=settings.object_list_page_size)
    if t == "S3":
        if not (settings.s3_region and settings.s3_bucket_name):
            raise AppException("S3 配置不完整", status.HTTP_500_INTERNAL_SERVER_ERROR)
        logger.debug("Using S3 bucket %s (%s)", settings.s3_bucket_name, settings.s3_region)
        return S3ObjectStore(
            bucket=settings.s3_bucket_name,
            region=settings.s3_region,
            access_key_id=settings.s3_access_key_id,
            secret_access_key=settings.s3_secret_access_key,
            endpoint_url=settings.s3_endpoint_url,
            page_size=settings.object_list_page_size,
        )
    raise AppException("不支持的存储类型", status.HTTP_500_INTERNAL_SERVER_ERROR)
