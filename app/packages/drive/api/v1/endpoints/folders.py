"""文件夹相关路由：根文件夹、子文件夹、文件夹树、属性、重命名/移动与级联重试。"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.packages.drive.api.v1.schemas.folders import (
    CascadeRetryBody,
    FolderCreateBody,
    FolderPropertiesResponse,
    FolderResponse,
    FolderTreeResponse,
    MutationResponse,
    RenameBody,
)
from app.packages.drive.core.dependencies import get_current_user_id, get_db, get_object_store
from app.packages.drive.core.exceptions import ForbiddenError
from app.packages.drive.core.logger import logger
from app.packages.drive.services.folder_service import folder_service
from app.packages.drive.services.object_store import ObjectStore
from app.packages.drive.services.rename_service import rename_service

router = APIRouter(tags=["folders"])


@router.post("/folders/root", response_model=FolderResponse)
def create_root_folder(
    db: Session = Depends(get_db),
    store: ObjectStore = Depends(get_object_store),
    user_id: str = Depends(get_current_user_id),
):
    return folder_service.create_root_folder(db, store, user_id=user_id)


@router.post("/folders", response_model=FolderResponse)
def create_folder(
    payload: FolderCreateBody,
    db: Session = Depends(get_db),
    store: ObjectStore = Depends(get_object_store),
    user_id: str = Depends(get_current_user_id),
):
    if payload.user_id != user_id:
        raise ForbiddenError()
    logger.info("folders.create user=%s name=%s parent=%s", user_id, payload.name, payload.parent_folder_id)
    return folder_service.create_folder(
        db,
        store,
        user_id=user_id,
        name=payload.name,
        parent_folder_id=payload.parent_folder_id,
    )


@router.get("/folders/tree", response_model=FolderTreeResponse)
def get_folder_tree(
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    return folder_service.get_folder_tree(db, user_id=user_id)


@router.get("/folders/{folder_id}/properties", response_model=FolderPropertiesResponse)
def get_folder_properties(
    folder_id: str,
    db: Session = Depends(get_db),
    store: ObjectStore = Depends(get_object_store),
    user_id: str = Depends(get_current_user_id),
):
    return folder_service.get_folder_properties(db, store, user_id=user_id, folder_id=folder_id)


@router.post("/folders/{folder_id}/cascade", response_model=MutationResponse)
def retry_cascade(
    folder_id: str,
    payload: CascadeRetryBody,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    logger.info("folders.cascade folder=%s %s -> %s", folder_id, payload.old_prefix, payload.new_prefix)
    return rename_service.retry_cascade(
        db,
        user_id=user_id,
        folder_id=folder_id,
        old_prefix=payload.old_prefix,
        new_prefix=payload.new_prefix,
        old_path=payload.old_path,
        new_path=payload.new_path,
    )


@router.post("/rename", response_model=MutationResponse)
def rename_object(
    payload: RenameBody,
    db: Session = Depends(get_db),
    store: ObjectStore = Depends(get_object_store),
    user_id: str = Depends(get_current_user_id),
):
    logger.info(
        "rename user=%s %s -> %s is_folder=%s folder_id=%s",
        user_id,
        payload.old_path,
        payload.new_path,
        payload.is_folder,
        payload.folder_id,
    )
    return rename_service.rename(
        db,
        store,
        user_id=user_id,
        old_path=payload.old_path,
        new_path=payload.new_path,
        is_folder=payload.is_folder,
        folder_id=payload.folder_id,
    )
