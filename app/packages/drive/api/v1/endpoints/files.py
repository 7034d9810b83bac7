"""文件上传、下载与内容列表路由。"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from sqlalchemy.orm import Session

from app.packages.drive.api.v1.schemas.files import ContentsResponse, FileResponse
from app.packages.drive.core.dependencies import get_current_user_id, get_db, get_object_store
from app.packages.drive.core.logger import logger
from app.packages.drive.services.file_service import file_service
from app.packages.drive.services.folder_service import folder_service
from app.packages.drive.services.object_store import ObjectStore

router = APIRouter(tags=["files"])


@router.get("/contents", response_model=ContentsResponse)
def list_contents(
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    return folder_service.list_contents(db, user_id=user_id)


@router.post("/files", response_model=FileResponse)
def upload_file(
    file: UploadFile = File(...),
    folder_id: Optional[str] = Form(None),
    db: Session = Depends(get_db),
    store: ObjectStore = Depends(get_object_store),
    user_id: str = Depends(get_current_user_id),
):
    content = file.file.read()
    logger.info("files.upload user=%s folder=%s name=%s size=%d", user_id, folder_id, file.filename, len(content))
    return file_service.upload(
        db,
        store,
        user_id=user_id,
        filename=file.filename,
        content=content,
        content_type=file.content_type,
        folder_id=folder_id,
    )


@router.get("/files/{file_id}/content")
def download_file(
    file_id: str,
    download: bool = Query(False),
    db: Session = Depends(get_db),
    store: ObjectStore = Depends(get_object_store),
    user_id: str = Depends(get_current_user_id),
):
    logger.info("files.download user=%s file=%s attachment=%s", user_id, file_id, download)
    return file_service.download(db, store, user_id=user_id, file_id=file_id, as_attachment=download)
