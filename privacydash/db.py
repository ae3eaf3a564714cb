from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from . import config

Base = declarative_base()


def make_engine(url: str | None = None):
    url = url or config.DB_URL
    return create_engine(url, connect_args={"check_same_thread": False} if url.startswith("sqlite") else {})


def make_session_factory(engine):
    return sessionmaker(autoflush=False, bind=engine)


def init_db(engine):
    # Import models to register metadata before create_all.
    from . import models  # noqa: WPS433

    Base.metadata.create_all(bind=engine)
