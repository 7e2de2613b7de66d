from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
import os

# --- CONFIGURATION ---
DEFAULT_DB_PATH = os.path.join(os.path.dirname(os.path.abspath(__file__)), "db", "gym_consistency.db")
DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{DEFAULT_DB_PATH}")

# Hosted Postgres URLs often use the postgres:// scheme, which SQLAlchemy rejects
if DATABASE_URL.startswith("postgres://"):
    DATABASE_URL = DATABASE_URL.replace("postgres://", "postgresql://", 1)

IS_POSTGRES = DATABASE_URL.startswith("postgresql")

# --- ENGINE & SESSION ---
if IS_POSTGRES:
    engine = create_engine(
        DATABASE_URL,
        pool_size=int(os.getenv("DB_POOL_SIZE", 10)),
        max_overflow=int(os.getenv("DB_MAX_OVERFLOW", 10)),
        pool_timeout=30,
        pool_recycle=1800,
        pool_pre_ping=True
    )
else:
    sqlite_path = DATABASE_URL[len("sqlite:///"):]
    if sqlite_path and sqlite_path != ":memory:":
        os.makedirs(os.path.dirname(sqlite_path) or ".", exist_ok=True)
    engine = create_engine(DATABASE_URL, connect_args={"check_same_thread": False})

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def init_db():
    """Create missing tables for every model."""
    import models_orm  # noqa: F401
    Base.metadata.create_all(bind=engine)


# --- DEPENDENCY ---
def get_db():
    """Request-scoped session for FastAPI dependencies (auth)."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_db_session():
    """Session for service methods; the caller closes it."""
    return SessionLocal()
