from __future__ import annotations

import logging

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


def build_engine(database_url: str, echo: bool = False) -> Engine:
    connect_args: dict = {}
    if database_url.startswith("sqlite"):
        # Sessions are opened from FastAPI's threadpool.
        connect_args["check_same_thread"] = False
    logger.info("Database engine url=%s", database_url.split("@")[-1])
    return create_engine(database_url, echo=echo, future=True, connect_args=connect_args)


def build_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def init_db(engine: Engine) -> None:
    # Import for side effect: registers every table on Base.metadata.
    from infrastructure.persistence import tables  # noqa: F401

    Base.metadata.create_all(engine)
