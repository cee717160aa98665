from sqlalchemy import create_engine
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import sessionmaker, declarative_base
from app.core.config import settings

# Support both PostgreSQL and SQLite via centralized settings
DATABASE_URL = settings.database_url

if DATABASE_URL.startswith("postgresql"):
    engine = create_engine(DATABASE_URL, pool_pre_ping=True)
else:
    # SQLite configuration for local development/testing
    engine = create_engine(
        DATABASE_URL, connect_args={"check_same_thread": False}
    )

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """
    Session Provider: Provides a database session per request.
    Transaction management is handled explicitly in the Service Layer.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def insert_ignoring_conflicts(db, model, rows, returning=None):
    """
    Multi-row INSERT .. ON CONFLICT DO NOTHING for the session's dialect.

    Returns the ``returning`` columns of the rows that were actually inserted,
    so callers can tell new rows from ones another writer got to first.
    """
    if not rows:
        return []
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        stmt = postgresql.insert(model).values(rows).on_conflict_do_nothing()
    elif dialect == "sqlite":
        stmt = sqlite.insert(model).values(rows).on_conflict_do_nothing()
    else:
        raise NotImplementedError(f"insert-or-ignore is not supported on {dialect}")
    if returning is None:
        db.execute(stmt)
        return []
    return db.execute(stmt.returning(*returning)).all()


def init_db():
    """
    Registers all domain models and initializes the database schema.
    This should be called during the application startup lifespan.
    """
    import app.models  # noqa: F401
    Base.metadata.create_all(bind=engine)
