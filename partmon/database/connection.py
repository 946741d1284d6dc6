"""
Database engine and session management
"""

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker
import structlog

from partmon.core.exceptions import ConfigurationError

logger = structlog.get_logger(__name__)

# Create base class for models
Base = declarative_base()

def create_sqlite_engine(database_path: str, busy_timeout: float = 30.0, echo: bool = False) -> Engine:
    """Create an engine over a local SQLite file"""
    if not database_path or not database_path.strip():
        raise ConfigurationError("database file path cannot be empty")

    engine = create_engine(
        f"sqlite:///{database_path}",
        connect_args={"check_same_thread": False, "timeout": busy_timeout},
        pool_pre_ping=True,
        echo=echo
    )
    logger.info("Database engine created", database_path=database_path)
    return engine

def create_session_factory(engine: Engine) -> sessionmaker:
    """Session factory whose objects stay readable after commit"""
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)

def init_database(engine: Engine):
    """Initialize database tables"""
    try:
        # Import all models to ensure they are registered
        from partmon.models import alert, interval  # noqa

        # Create all tables
        Base.metadata.create_all(bind=engine)
        logger.info("Database tables created successfully")
    except Exception as e:
        logger.error("Failed to initialize database", error=str(e))
        raise
