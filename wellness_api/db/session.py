# wellness_api/db/session.py
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from wellness_api.core.config import settings
from wellness_api.db.models import Base

connect_args = {"check_same_thread": False} if settings.DATABASE_URL.startswith("sqlite") else {}
engine = create_engine(settings.DATABASE_URL, connect_args=connect_args, pool_pre_ping=True)
SessionLocal = sessionmaker(bind=engine, autoflush=False)


def init_db():
    Base.metadata.create_all(bind=engine)


def get_db():
    """Provide DB session"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
