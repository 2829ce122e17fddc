from sqlalchemy import create_engine, text
from sqlalchemy.orm import sessionmaker, declarative_base
from dotenv import load_dotenv
import os
import logging

# Load environment variables
load_dotenv()

logger = logging.getLogger(__name__)

# Database configuration
DATABASE_URL = os.getenv("DATABASE_URL")
if not DATABASE_URL:
    DATABASE_URL = "sqlite:///./test.db"
    logger.warning("No DATABASE_URL found, using SQLite fallback")

SQL_ECHO = os.getenv("SQL_ECHO", "false").lower() in {"1", "true", "yes"}

# Upper bound for a single statement, surfaced as PersistenceError by the services
DB_STATEMENT_TIMEOUT_MS = int(os.getenv("DB_STATEMENT_TIMEOUT_MS", "5000"))

if DATABASE_URL.startswith("postgresql"):
    engine_kwargs = {
        "pool_size": 5,
        "max_overflow": 10,
        "pool_timeout": 30,
        "pool_recycle": 1800,  # Recycle connections every 30 minutes
        "pool_pre_ping": True,  # Validate connections before use
        "echo": SQL_ECHO,
        "connect_args": {
            "connect_timeout": 10,
            "application_name": "expense_approval_workflow",
            "options": f"-c statement_timeout={DB_STATEMENT_TIMEOUT_MS}"
        }
    }
    if os.getenv("DB_SSLMODE"):
        engine_kwargs["connect_args"]["sslmode"] = os.getenv("DB_SSLMODE")

    engine = create_engine(DATABASE_URL, **engine_kwargs)
    logger.info("PostgreSQL engine created")
else:
    # SQLite configuration for development; sessions are used from FastAPI's threadpool
    engine = create_engine(
        DATABASE_URL,
        echo=SQL_ECHO,
        connect_args={"check_same_thread": False, "timeout": DB_STATEMENT_TIMEOUT_MS / 1000}
    )
    logger.info("Using SQLite database")

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()

def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

# Test database connection
def test_connection():
    """Test database connection on startup"""
    try:
        with engine.connect() as connection:
            connection.execute(text("SELECT 1"))
            connection.commit()
        logger.info("Database connection test successful")
        return True
    except Exception as e:
        logger.error(f"Database connection test failed: {e}")
        return False
