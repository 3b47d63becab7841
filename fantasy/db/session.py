# fantasy/db/session.py
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from fastapi import Depends, Request

from fantasy.core.config import settings


def build_engine(database_url: str | None = None, echo: bool | None = None) -> Engine:
    url = database_url or settings.database_url
    connect_args = {}
    if url.startswith("sqlite"):
        # request handlers run in a threadpool
        connect_args["check_same_thread"] = False
    return create_engine(
        url,
        future=True,
        echo=settings.sql_echo if echo is None else echo,
        connect_args=connect_args,
    )


def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


# Dependencies for FastAPI
def get_registry(request: Request):
    return request.app.state.registry


def get_db(registry=Depends(get_registry)):
    db = registry.session_factory()
    try:
        yield db
    finally:
        db.close()
