from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from app.config import get_settings


def _build_engine(url: str):
    kwargs = {}

    if url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}

    # in-memory databases must share one connection across threads
    if url in ("sqlite://", "sqlite:///:memory:"):
        kwargs["poolclass"] = StaticPool

    return create_engine(url, **kwargs)


engine = _build_engine(get_settings().database_url)


def init_db():
    # register tables on the metadata
    from app.models import activity_log, counter, email_log, found_item, lost_item, user  # noqa: F401

    SQLModel.metadata.create_all(engine)


def new_session() -> Session:
    return Session(engine)


def get_session():
    with Session(engine) as session:
        yield session
