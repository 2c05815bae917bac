# NOTE: Database initialization, teardown and sample data for the hospital schema
import argparse
import logging
import sys

from sqlalchemy import inspect, text

from hms_backend.database import DATABASE_URL, SessionLocal, create_tables, drop_tables, engine
from hms_backend.exceptions import HospitalDataError
from hms_backend.models import Base
from hms_backend.services.entity_store import EntityStore
from hms_backend.services.sample_data import load_sample_data

logger = logging.getLogger(__name__)


def setup_database(reset: bool = False, with_sample_data: bool = False) -> bool:
    """Initialize database connection and create tables if they don't exist."""
    try:
        print("Testing database connection...")

        # Test connection
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
            print(f"Connected to {engine.dialect.name} database")

        if reset:
            print("Dropping existing tables...")
            drop_tables()

        print("Creating database tables...")

        # Create all tables defined in models
        create_tables()

        if with_sample_data:
            counts = load_sample_data(EntityStore(SessionLocal))
            print(f"Loaded {sum(counts.values())} sample rows")

        print("Database setup completed successfully")
        print(f"Available tables: {', '.join(sorted(Base.metadata.tables))}")

        return True

    except HospitalDataError as e:
        print(f"Sample data rejected: {e}")
        return False
    except Exception as e:
        print(f"Database setup failed: {e}")
        print("Make sure the database server is running and credentials are correct")
        print(f"Database URL: {DATABASE_URL.split('@')[1] if '@' in DATABASE_URL else DATABASE_URL}")
        return False


def check_tables() -> bool:
    """Check if every hospital table exists."""
    try:
        existing = set(inspect(engine).get_table_names())
        return set(Base.metadata.tables).issubset(existing)
    except Exception as e:
        logger.warning(f"Could not inspect tables: {e}")
        return False


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Create the Central Hospital schema")
    parser.add_argument("--reset", action="store_true", help="drop all tables first")
    parser.add_argument("--sample-data", action="store_true", help="load the sample data set")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO)
    success = setup_database(reset=args.reset, with_sample_data=args.sample_data)
    if success:
        print("\nReady to start the application!")
        return 0
    print("\nPlease fix database issues before starting the application")
    return 1


if __name__ == "__main__":
    sys.exit(main())
