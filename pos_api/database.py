from collections.abc import Generator

from sqlmodel import Session, SQLModel, create_engine

from . import models  # noqa: F401  registers the tables on SQLModel.metadata
from .config import get_settings

settings = get_settings()
engine_url = settings.database_url
engine_kwargs = {}
if engine_url.startswith("sqlite"):
    engine_kwargs["connect_args"] = {"check_same_thread": False}

engine = create_engine(engine_url, echo=False, **engine_kwargs)


def init_db() -> None:
    SQLModel.metadata.create_all(engine)


def get_session() -> Generator[Session, None, None]:
    with Session(engine) as session:
        yield session
