# backend/database.py
from datetime import datetime, timezone

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
import os
from dotenv import load_dotenv

from config import settings

load_dotenv()

# 1. Environment / .env (Azure, tests) or the local SQLite default
SQLALCHEMY_DATABASE_URL = os.getenv("DATABASE_URL") or settings.DATABASE_URL

# 2. SQLAlchemy requires postgresql:// instead of the legacy postgres:// scheme
if SQLALCHEMY_DATABASE_URL and SQLALCHEMY_DATABASE_URL.startswith("postgres://"):
    SQLALCHEMY_DATABASE_URL = SQLALCHEMY_DATABASE_URL.replace("postgres://", "postgresql://", 1)

# 3. Database specific connection options
if "sqlite" in SQLALCHEMY_DATABASE_URL:
    # Writers queue on the database lock instead of failing immediately
    connect_args = {"check_same_thread": False, "timeout": settings.SQLITE_BUSY_TIMEOUT}
else:
    connect_args = {}

engine = create_engine(
    SQLALCHEMY_DATABASE_URL, connect_args=connect_args, pool_pre_ping=True
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()

def utcnow() -> datetime:
    return datetime.now(timezone.utc)

def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

def init_db():
    # Register every model on Base.metadata before creating tables
    import models.users  # noqa: F401
    import models.product  # noqa: F401
    import models.inventory  # noqa: F401
    import models.stock  # noqa: F401
    import models.sale  # noqa: F401
    import models.log  # noqa: F401
    Base.metadata.create_all(bind=engine)
