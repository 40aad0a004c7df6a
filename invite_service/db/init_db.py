# invite_service/db/init_db.py

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from sqlalchemy.engine import Engine

from invite_service.db.base import Base

# Import models so all Base subclasses are registered
import invite_service.models  # noqa: F401

logger = logging.getLogger("invite")


def resolve_sqlite_path(e: Engine) -> Optional[Path]:
    """
    Resolve the SQLite file path from the engine URL.

    Returns None for non-SQLite engines and in-memory databases.
    Relative paths resolve against the current working directory.
    """
    if e.url.get_backend_name() != "sqlite":
        return None

    db = e.url.database
    if not db or db == ":memory:":
        return None

    p = Path(db)
    if not p.is_absolute():
        p = (Path.cwd() / p).resolve()
    return p


def init_db(e: Engine, *, checkfirst: bool = True) -> None:
    """
    Create any missing tables from the current models.

    - Creates the parent directory of a file-backed SQLite database first
      (DATA_DIR on persistent disks may not exist on first boot).
    - checkfirst=True keeps the DDL idempotent.
    """
    db_path = resolve_sqlite_path(e)
    if db_path is not None:
        db_path.parent.mkdir(parents=True, exist_ok=True)
        logger.info("Database path: %s (exists=%s)", db_path, db_path.exists())
    else:
        logger.info("Database backend: %s", e.url.get_backend_name())

    Base.metadata.create_all(bind=e, checkfirst=checkfirst)


if __name__ == "__main__":
    from invite_service.db.session import engine

    logging.basicConfig(level=logging.INFO)
    init_db(engine)
