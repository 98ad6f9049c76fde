from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from integrations_hub.core.config import settings

connect_args = {}
if settings.DATABASE_URL.startswith("sqlite"):
    # TestClient and asyncio deliveries touch the connection from other threads
    connect_args["check_same_thread"] = False

engine = create_engine(settings.DATABASE_URL, pool_pre_ping=True, connect_args=connect_args)

# expire_on_commit=False: webhook/integration rows are read after commit,
# across awaits, and after their session has been closed
SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)

Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_session_factory():
    """Factory for services that need their own, independent sessions."""
    return SessionLocal
