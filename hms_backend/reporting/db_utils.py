"""
Read-only PostgreSQL access for the reporting collaborator.
Report queries run through an asyncpg pool inside read-only transactions, so
they only ever observe committed state and can never mutate it.
"""

import os
import asyncio
import logging
from typing import Any, Dict, List, Optional

import asyncpg

# NOTE: Reporting reads bypass the entity store; the database refuses writes in read-only transactions

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


class ReadOnlyDatabaseManager:
    """Manages a PostgreSQL connection pool for read-only report queries."""

    def __init__(
        self,
        host: str = "localhost",
        port: int = 5432,
        database: str = "central_hospital",
        username: str = "postgres",
        password: str = "password",
        schema: str = "public"
    ):
        self.host = host
        self.port = port
        self.database = database
        self.username = username
        self.password = password
        self.schema = schema
        self.pool: Optional[asyncpg.Pool] = None

    async def connect(self) -> None:
        """Establish database connection pool."""
        try:
            self.pool = await asyncpg.create_pool(
                host=self.host,
                port=self.port,
                database=self.database,
                user=self.username,
                password=self.password,
                command_timeout=60,
                server_settings={
                    'search_path': f'{self.schema},public',
                    'default_transaction_read_only': 'on'
                },
                min_size=2,
                max_size=10
            )
            logger.info(f"Connected to PostgreSQL database (read-only): {self.database}")

        except Exception as e:
            logger.error(f"Database connection failed: {e}")
            raise

    async def disconnect(self) -> None:
        """Close database connection pool."""
        if self.pool:
            await self.pool.close()
            self.pool = None
            logger.info("Database connection closed")

    async def execute_query(self, query: str, *args) -> List[Dict[str, Any]]:
        """Execute a report query in a read-only transaction and return rows as dicts."""
        if not self.pool:
            await self.connect()

        async with self.pool.acquire() as connection:
            try:
                async with connection.transaction(readonly=True):
                    rows = await connection.fetch(query, *args)
                return [dict(row) for row in rows]
            except Exception as e:
                logger.error(f"Query execution failed: {e}")
                raise

    async def fetch_value(self, query: str, *args) -> Any:
        """Execute a read-only query returning a single value."""
        if not self.pool:
            await self.connect()

        async with self.pool.acquire() as connection:
            async with connection.transaction(readonly=True):
                return await connection.fetchval(query, *args)


class IntegrityAuditQueries:
    """Report-side checks that the integrity rules held for committed data."""

    def __init__(self, db_manager: ReadOnlyDatabaseManager):
        self.db_manager = db_manager

    async def billing_balance_mismatches(self) -> List[Dict[str, Any]]:
        """Statements whose stored remaining_balance differs from total_cost - insurance_covered_amount."""
        return await self.db_manager.execute_query("""
            SELECT billing_id, total_cost, insurance_covered_amount, remaining_balance
            FROM billing_statement
            WHERE remaining_balance <> total_cost - insurance_covered_amount
            ORDER BY billing_id
        """)

    async def specialty_count_violations(self) -> List[Dict[str, Any]]:
        """Doctors holding fewer than 1 or more than 5 specialties."""
        return await self.db_manager.execute_query("""
            SELECT d.doctor_id, COUNT(ds.specialty_name) AS specialty_count
            FROM doctor d
            LEFT JOIN doctor_specialty ds ON ds.doctor_id = d.doctor_id
            GROUP BY d.doctor_id
            HAVING COUNT(ds.specialty_name) NOT BETWEEN $1 AND $2
            ORDER BY d.doctor_id
        """, 1, 5)

    async def bed_status_mismatches(self) -> List[Dict[str, Any]]:
        """Beds whose status disagrees with the existence of an active admission."""
        return await self.db_manager.execute_query("""
            SELECT b.bed_id, b.status,
                   EXISTS (
                       SELECT 1 FROM admission a
                       WHERE a.bed_id = b.bed_id AND a.discharge_date IS NULL
                   ) AS has_active_admission
            FROM bed b
            WHERE (b.status = 'Occupied') <> EXISTS (
                SELECT 1 FROM admission a
                WHERE a.bed_id = b.bed_id AND a.discharge_date IS NULL
            )
            ORDER BY b.bed_id
        """)

    async def headcount_drift(self) -> List[Dict[str, Any]]:
        """Departments whose stored staff_headcount differs from the actual Staff count."""
        return await self.db_manager.execute_query("""
            SELECT d.dept_name, d.staff_headcount, COUNT(s.staff_id) AS actual_count
            FROM department d
            LEFT JOIN staff s ON s.dept_name = d.dept_name
            GROUP BY d.dept_name, d.staff_headcount
            HAVING d.staff_headcount <> COUNT(s.staff_id)
            ORDER BY d.dept_name
        """)


# NOTE: Factory function for easy initialization
async def create_database_manager() -> ReadOnlyDatabaseManager:
    """Create and initialize the read-only database manager from environment variables."""
    db_manager = ReadOnlyDatabaseManager(
        host=os.getenv('DB_HOST', 'localhost'),
        port=int(os.getenv('DB_PORT', '5432')),
        database=os.getenv('DB_NAME', 'central_hospital'),
        username=os.getenv('DB_USER', 'postgres'),
        password=os.getenv('DB_PASSWORD', 'password'),
        schema=os.getenv('DB_SCHEMA', 'public')
    )
    await db_manager.connect()
    return db_manager


async def main():
    """Run every integrity audit against the configured database and print the findings."""
    db_manager = await create_database_manager()
    try:
        audits = IntegrityAuditQueries(db_manager)
        for name in ("billing_balance_mismatches", "specialty_count_violations",
                     "bed_status_mismatches", "headcount_drift"):
            rows = await getattr(audits, name)()
            print(f"{name}: {len(rows)} finding(s)")
            for row in rows:
                print(f"  {row}")
    finally:
        await db_manager.disconnect()


if __name__ == "__main__":
    asyncio.run(main())
