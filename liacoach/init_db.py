from __future__ import annotations

import logging

from sqlalchemy import Engine, text

from liacoach.db import get_engine
from liacoach.models import Base


logger = logging.getLogger(__name__)


def init_db(engine: Engine | None = None) -> None:
    engine = engine or get_engine()
    with engine.begin() as conn:
        Base.metadata.create_all(conn)
    if engine.dialect.name == "sqlite":
        # journal_mode cannot change inside a transaction
        with engine.connect().execution_options(isolation_level="AUTOCOMMIT") as conn:
            conn.execute(text("PRAGMA journal_mode=WAL;"))
            conn.execute(text("PRAGMA synchronous=NORMAL;"))
    logger.info("Database ready at %s", engine.url.render_as_string(hide_password=True))


if __name__ == "__main__":
    from liacoach.config import setup_logging

    setup_logging()
    init_db()
