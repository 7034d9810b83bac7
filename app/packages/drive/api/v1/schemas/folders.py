"""文件夹相关的请求/响应模型。"""

from __future__ import annotations

from typing import Any, List, Optional

from pydantic import BaseModel, Field

from app.packages.drive.api.v1.schemas.common import ResponseEnvelope


class FolderCreateBody(BaseModel):
    name: str = Field(..., min_length=1)
    user_id: str = Field(..., min_length=1)
    parent_folder_id: Optional[str] = None


class FolderRecord(BaseModel):
    id: str
    name: str
    user_id: str
    parent_folder_id: Optional[str] = None
    path: str
    key_prefix: str
    is_root: bool = False
    is_system: bool = False


class FolderTreeNode(BaseModel):
    id: str
    name: str
    parent_folder_id: Optional[str] = None
    path: str
    children: List["FolderTreeNode"] = Field(default_factory=list)


class FolderProperties(BaseModel):
    folder_path: str
    file_count: int
    total_size: int
    last_modified: Optional[str] = None


class CascadeRetryBody(BaseModel):
    old_prefix: str = Field(..., min_length=1)
    new_prefix: str = Field(..., min_length=1)
    old_path: str = Field(..., min_length=1)
    new_path: str = Field(..., min_length=1)


class RenameBody(BaseModel):
    # 缺失的路径由服务层以 400 拒绝，而不是 422
    old_path: Optional[str] = None
    new_path: Optional[str] = None
    is_folder: bool = False
    folder_id: Optional[str] = None


FolderTreeNode.model_rebuild()

FolderResponse = ResponseEnvelope[FolderRecord]
FolderTreeResponse = ResponseEnvelope[List[FolderTreeNode]]
FolderPropertiesResponse = ResponseEnvelope[FolderProperties]
MutationResponse = ResponseEnvelope[Any]
