"""文件夹元数据模型。

存储规则：
- key_prefix：对象存储 key 前缀，以 '/' 结尾，例如 "u1/Root/Notes/"；
- path：展示路径，不以 '/' 结尾，例如 "u1/Root/Notes"；
- 根文件夹：parent_folder_id 为空，is_root=True，每个用户仅一个；
- 非根文件夹始终满足 key_prefix == 父.key_prefix + name + "/" 与
  path == 父.path + "/" + name。
"""

import uuid
from typing import Optional

from sqlalchemy import Boolean, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import expression

from app.packages.drive.models.base import Base, SoftDeleteMixin, TimestampMixin


def _new_id() -> str:
    return str(uuid.uuid4())


class Folder(TimestampMixin, SoftDeleteMixin, Base):
    __tablename__ = "folders"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(String(64), index=True)
    name: Mapped[str] = mapped_column(String(255))
    parent_folder_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("folders.id"), nullable=True, index=True
    )
    path: Mapped[str] = mapped_column(String(1024), index=True)
    key_prefix: Mapped[str] = mapped_column(String(1024), index=True)
    is_root: Mapped[bool] = mapped_column(Boolean, server_default=expression.false(), default=False)
    is_system: Mapped[bool] = mapped_column(Boolean, server_default=expression.false(), default=False)
