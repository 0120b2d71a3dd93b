from __future__ import annotations

import functools
import os
from pathlib import Path

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker

from liacoach.config import settings


def _ensure_db_dir(db_path: str) -> None:
    p = Path(db_path)
    if p.parent and str(p.parent) not in ("", "."):
        os.makedirs(p.parent, exist_ok=True)


def database_url() -> str:
    if settings.database_url:
        return settings.database_url
    _ensure_db_dir(settings.db_path)
    return f"sqlite:///{settings.db_path}"


def make_engine(url: str | None = None) -> Engine:
    return create_engine(url or database_url(), echo=False)


@functools.cache
def get_engine() -> Engine:
    return make_engine()


def make_session_factory(engine: Engine | None = None) -> sessionmaker[Session]:
    return sessionmaker(engine or get_engine(), expire_on_commit=False)
