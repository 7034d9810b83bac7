"""依赖注入模块：封装 FastAPI 中复用度高的依赖函数。"""

from collections.abc import Generator
from functools import lru_cache
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from app.packages.drive.core.config import get_settings
from app.packages.drive.core.constants import ACCESS_TOKEN_TYPE
from app.packages.drive.core.exceptions import UnauthenticatedError
from app.packages.drive.core.security import authenticate
from app.packages.drive.db import session as db_session
from app.packages.drive.services.object_store import ObjectStore, build_object_store

security_scheme = HTTPBearer(auto_error=False)


def get_db() -> Generator[Session, None, None]:
    """生成一个数据库会话，并在请求结束后自动关闭。"""
    db = db_session.SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_current_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security_scheme),
) -> str:
    """解析 ``Authorization`` 头部并返回调用方的用户 ID，缺失或非法时抛出 401。"""
    if not credentials:
        raise UnauthenticatedError()
    if credentials.scheme.lower() != ACCESS_TOKEN_TYPE:
        raise UnauthenticatedError("认证类型无效")
    user_id = authenticate(credentials.credentials)
    if user_id is None:
        raise UnauthenticatedError("Token 无效或已过期")
    return user_id


@lru_cache
def _default_object_store() -> ObjectStore:
    return build_object_store(get_settings())


def get_object_store() -> ObjectStore:
    """返回按配置构建的对象存储实例（进程内复用）。"""
    return _default_object_store()
