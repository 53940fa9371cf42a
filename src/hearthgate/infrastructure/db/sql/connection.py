import os

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker


DEFAULT_DATABASE_URL = "sqlite:///hearthgate.db"

DATABASE_URL = os.getenv("HEARTHGATE_DATABASE_URL") or DEFAULT_DATABASE_URL

engine = create_engine(DATABASE_URL, echo=False, future=True, pool_pre_ping=True)

SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)


def configure_database(database_url: str) -> None:
    """Point SessionLocal at another database; existing importers see the change."""
    global DATABASE_URL, engine
    if database_url == DATABASE_URL:
        return
    previous = engine
    DATABASE_URL = database_url
    engine = create_engine(database_url, echo=False, future=True, pool_pre_ping=True)
    SessionLocal.configure(bind=engine)
    previous.dispose()
