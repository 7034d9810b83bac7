"""文件元数据模型：key 为对象存储中的完整 key（文件夹前缀 + 文件名）。"""

import uuid
from typing import Optional

from sqlalchemy import BigInteger, Boolean, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import expression

from app.packages.drive.models.base import Base, SoftDeleteMixin, TimestampMixin


class FileRecord(TimestampMixin, SoftDeleteMixin, Base):
    __tablename__ = "files"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id: Mapped[str] = mapped_column(String(64), index=True)
    folder_id: Mapped[Optional[str]] = mapped_column(String(36), ForeignKey("folders.id"), nullable=True, index=True)
    name: Mapped[str] = mapped_column(String(255))
    key: Mapped[str] = mapped_column(String(1024), index=True)
    content_type: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    size: Mapped[int] = mapped_column(BigInteger, default=0)
    is_archived: Mapped[bool] = mapped_column(Boolean, server_default=expression.false(), default=False)
