from sqlalchemy import text, inspect
from app.database.databse import engine, Base
from app.database.models.users import User, Company  # noqa: F401
from app.database.models.expense import Expense  # noqa: F401
from app.database.models.approval import ApprovalFlowStep, ApprovalHistory  # noqa: F401
from app.database.models.notification import Notification  # noqa: F401
import logging

logger = logging.getLogger(__name__)

# Global cache for column existence checks
_column_cache = {}

# Columns added after the first release; older databases get them on startup
EXPECTED_COLUMNS = {
    'users': {
        'updated_at': 'TIMESTAMP',
    },
    'companies': {
        'updated_at': 'TIMESTAMP',
    },
    'expenses': {
        'approval_flow_step': 'INTEGER NOT NULL DEFAULT 0',
        'approver_id': 'INTEGER REFERENCES users(id)',
        'updated_at': 'TIMESTAMP',
    },
    'approval_flow_steps': {
        'amount_threshold': 'NUMERIC(12, 2)',
        'approver_ids': 'TEXT',
    },
}

def has_column(table_name: str, column_name: str) -> bool:
    """Check if a table has a specific column (with caching)"""
    cache_key = f"{table_name}.{column_name}"

    if cache_key not in _column_cache:
        try:
            inspector = inspect(engine)
            columns = [col['name'] for col in inspector.get_columns(table_name)]
            _column_cache[cache_key] = column_name in columns
        except Exception:
            _column_cache[cache_key] = False

    return _column_cache[cache_key]

def add_column_if_not_exists(table_name: str, column_name: str, column_type: str):
    """Add a column to a table if it doesn't exist"""
    if not has_column(table_name, column_name):
        try:
            with engine.connect() as conn:
                sql = text(f"ALTER TABLE {table_name} ADD COLUMN {column_name} {column_type}")
                conn.execute(sql)
                conn.commit()
                logger.info(f"Added column {column_name} to {table_name} table")
                _column_cache[f"{table_name}.{column_name}"] = True
        except Exception as e:
            logger.error(f"Failed to add column {column_name} to {table_name}: {e}")

def check_and_add_missing_columns():
    """Check for missing columns and add them if necessary"""
    logger.info("Checking for missing database columns...")

    for table_name, columns in EXPECTED_COLUMNS.items():
        for col_name, col_type in columns.items():
            add_column_if_not_exists(table_name, col_name, col_type)

    logger.info("Column verification completed")

def create_tables_if_not_exist():
    """Create tables if they don't exist"""
    try:
        Base.metadata.create_all(bind=engine)
        logger.info("Database tables created/verified")
    except Exception as e:
        logger.error(f"Error creating tables: {e}")

def run_migration():
    """Run complete database migration"""
    logger.info("Starting database migration...")

    create_tables_if_not_exist()
    check_and_add_missing_columns()

    logger.info("Database migration completed!")
