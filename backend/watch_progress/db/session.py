from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, DeclarativeBase

from watch_progress.core.config import settings


engine = create_engine(
    settings.database_url,
    pool_pre_ping=True,
    # FastAPI runs sync dependencies in a threadpool
    connect_args={'check_same_thread': False} if settings.database_url.startswith('sqlite') else {},
    future=True,
)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

class Base(DeclarativeBase):
    pass

def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
