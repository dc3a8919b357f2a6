import logging
import time
from datetime import datetime, timezone

from sqlalchemy import create_engine, text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from config import DATABASE_URL, INITIAL_TABLES

logger = logging.getLogger(__name__)

SQLALCHEMY_DATABASE_URL = DATABASE_URL


def _engine_options(url: str) -> dict:
    if url.startswith("sqlite"):
        options = {"connect_args": {"check_same_thread": False}}
        if url in ("sqlite://", "sqlite:///:memory:"):
            options["poolclass"] = StaticPool
        return options
    return {"pool_pre_ping": True, "pool_recycle": 300}


def wait_for_db(max_retries=30, retry_interval=2):
    logger.info("Waiting for the database...")

    for attempt in range(max_retries):
        try:
            with engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            logger.info("Database is available")
            return True
        except OperationalError as e:
            logger.warning(f"Attempt {attempt + 1}/{max_retries}: database not available yet ({e})")
            if attempt < max_retries - 1:
                time.sleep(retry_interval)

    logger.error("Could not connect to the database after all attempts")
    return False


engine = create_engine(SQLALCHEMY_DATABASE_URL, echo=False, **_engine_options(SQLALCHEMY_DATABASE_URL))

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def utcnow() -> datetime:
    """Naive UTC timestamp, comparable with ``func.now()`` column defaults."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def init_restaurant_data(db=None, initial_tables: int = INITIAL_TABLES):
    """Seed a default hall and numbered tables when the registry is empty."""
    from models import Hall, Table

    own_session = db is None
    if own_session:
        db = SessionLocal()
    try:
        existing_tables = db.query(Table).count()
        if existing_tables:
            logger.info(f"Table registry already holds {existing_tables} tables")
            return existing_tables

        hall = db.query(Hall).order_by(Hall.id).first()
        if not hall:
            hall = Hall(name="Main Hall", is_active=True)
            db.add(hall)
            db.flush()

        tables_to_create = min(initial_tables, 100)
        for i in range(1, tables_to_create + 1):
            db.add(Table(table_number=str(i), capacity=4, status="available", hall_id=hall.id))
        db.commit()
        logger.info(f"Created {tables_to_create} tables in hall '{hall.name}'")
        return tables_to_create

    except Exception as e:
        logger.error(f"Error initializing restaurant data: {e}")
        db.rollback()
        raise
    finally:
        if own_session:
            db.close()
