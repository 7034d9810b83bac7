"""Database bootstrapping utilities."""

from __future__ import annotations

import logging

from app.packages.drive.db import session as db_session
from app.packages.drive.models.base import Base
from app.packages.drive.models.file_record import FileRecord  # noqa: F401 - ensure table creation
from app.packages.drive.models.folder import Folder  # noqa: F401 - ensure table creation

logger = logging.getLogger(__name__)


def init_db() -> None:
    """Create the folder and file tables if they do not exist.

    Root folders are not seeded here: each user's root is created lazily on the
    first folder operation (or explicitly through ``POST /folders/root``).
    """
    Base.metadata.create_all(bind=db_session.engine)
    logger.info("Metadata tables ready: %s", ", ".join(sorted(Base.metadata.tables)))
