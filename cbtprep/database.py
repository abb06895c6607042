from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool

from cbtprep import config

MEMORY_URLS = ("sqlite://", "sqlite:///:memory:")

Base = declarative_base()


def make_engine(url: str):
    if url in MEMORY_URLS:
        # one shared connection, otherwise every checkout sees an empty database
        return create_engine(url, connect_args={"check_same_thread": False}, poolclass=StaticPool)
    if url.startswith("sqlite"):
        # FastAPI runs sync handlers in a threadpool
        return create_engine(url, connect_args={"check_same_thread": False})
    return create_engine(url, pool_pre_ping=True)


engine = make_engine(config.database_url())
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    """Request-scoped session; handlers commit explicitly."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
