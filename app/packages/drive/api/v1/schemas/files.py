"""文件与内容列表的响应模型。"""

from typing import List, Optional

from pydantic import BaseModel

from app.packages.drive.api.v1.schemas.common import ResponseEnvelope
from app.packages.drive.api.v1.schemas.folders import FolderRecord


class FileRecordOut(BaseModel):
    id: str
    name: str
    user_id: str
    folder_id: Optional[str] = None
    key: str
    content_type: Optional[str] = None
    size: int = 0
    is_deleted: bool = False
    is_archived: bool = False


class ContentsOut(BaseModel):
    folders: List[FolderRecord]
    files: List[FileRecordOut]


FileResponse = ResponseEnvelope[FileRecordOut]
ContentsResponse = ResponseEnvelope[ContentsOut]
