"""文件服务：上传文件到指定文件夹（默认根文件夹），按记录读取文件内容。"""

from __future__ import annotations

import io
import mimetypes
from typing import Any, Dict, Optional
from urllib.parse import quote

from fastapi.responses import StreamingResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.packages.drive.core.constants import HTTP_STATUS_INTERNAL_ERROR, HTTP_STATUS_OK
from app.packages.drive.core.exceptions import (
    AppException,
    DuplicateEntryError,
    NotFoundError,
    ObjectNotFoundError,
    ObjectStoreError,
    ValidationError,
)
from app.packages.drive.core.logger import logger
from app.packages.drive.core.responses import create_response
from app.packages.drive.crud.file_record import file_record_crud
from app.packages.drive.crud.folder import folder_crud
from app.packages.drive.services.folder_service import folder_service, serialize_file
from app.packages.drive.services.object_store import ObjectStore
from app.packages.drive.utils.path_utils import validate_name


class FileService:
    def upload(
        self,
        db: Session,
        store: ObjectStore,
        *,
        user_id: str,
        filename: Optional[str],
        content: bytes,
        content_type: Optional[str] = None,
        folder_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        try:
            name = validate_name(filename)
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc

        if folder_id:
            folder = folder_crud.get(db, folder_id, user_id=user_id)
            if folder is None:
                raise NotFoundError("文件夹不存在", {"folder_id": folder_id})
        else:
            folder, _ = folder_service.ensure_root(db, store, user_id=user_id)

        if file_record_crud.select(db, user_id=user_id, folder_id=folder.id, name=name):
            raise DuplicateEntryError("上传失败：文件名已存在", {"folder_id": folder.id, "name": name})

        key = f"{folder.key_prefix}{name}"
        mime = content_type or mimetypes.guess_type(name)[0] or "application/octet-stream"
        try:
            store.put(key, content, mime)
        except ObjectStoreError as exc:
            logger.error("Upload of %s failed: %s", key, exc)
            raise AppException("上传失败：对象存储写入错误", HTTP_STATUS_INTERNAL_ERROR, {"phase": "object_store", "key": key}) from exc

        try:
            record = file_record_crud.create(
                db,
                {
                    "user_id": user_id,
                    "folder_id": folder.id,
                    "name": name,
                    "key": key,
                    "content_type": mime,
                    "size": len(content),
                },
            )
        except SQLAlchemyError as exc:
            logger.error("File record insert failed for %s: %s", key, exc)
            raise AppException("上传失败：元数据写入错误", HTTP_STATUS_INTERNAL_ERROR, {"phase": "metadata", "key": key}) from exc

        logger.info("Uploaded %s (%d bytes)", key, len(content))
        return create_response("文件上传成功", serialize_file(record), HTTP_STATUS_OK)

    def download(
        self,
        db: Session,
        store: ObjectStore,
        *,
        user_id: str,
        file_id: str,
        as_attachment: bool = False,
    ) -> StreamingResponse:
        """读取调用方自己的文件内容；``as_attachment`` 为真时强制浏览器下载。"""
        record = file_record_crud.get(db, file_id, user_id=user_id)
        if record is None:
            raise NotFoundError("文件不存在", {"file_id": file_id})
        try:
            body = store.get(record.key)
        except ObjectNotFoundError as exc:
            logger.warning("File %s points at missing object %s", record.id, record.key)
            raise NotFoundError("文件内容不存在", {"file_id": file_id, "key": record.key}) from exc
        except ObjectStoreError as exc:
            raise AppException("读取对象存储失败", HTTP_STATUS_INTERNAL_ERROR, {"key": record.key}) from exc

        media_type = "application/octet-stream" if as_attachment else (record.content_type or "application/octet-stream")
        response = StreamingResponse(io.BytesIO(body), media_type=media_type)
        if as_attachment:
            response.headers["Content-Disposition"] = f"attachment; filename*=UTF-8''{quote(record.name)}"
        return response


file_service = FileService()
