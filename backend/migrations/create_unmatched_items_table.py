"""
Create Vendor Import Unmatched Items Migration

Creates vendor_import_unmatched_items: imported vendor expense lines whose
property name matched no property, kept for manual resolution.
"""

import asyncio
from sqlalchemy import text

from config import get_settings
from database import connection, init_db, close_db


STATEMENTS = [
    """
    CREATE TABLE IF NOT EXISTS public.vendor_import_unmatched_items (
        id VARCHAR(36) PRIMARY KEY,
        job_id VARCHAR(64) NOT NULL,
        management_group_id VARCHAR(64) NOT NULL,
        statement_month DATE NOT NULL,

        -- Vendor line as imported
        property_name TEXT NOT NULL,
        vendor TEXT NOT NULL,
        description TEXT NOT NULL,
        date DATE NOT NULL,
        amount NUMERIC(65, 30) NOT NULL,

        -- Audit
        created_at TIMESTAMP WITH TIME ZONE DEFAULT NOW(),
        created_by VARCHAR(64) NOT NULL,
        resolved_at TIMESTAMP WITH TIME ZONE
    );
    """,
    """
    CREATE INDEX IF NOT EXISTS ix_vendor_import_unmatched_items_job_id
        ON public.vendor_import_unmatched_items(job_id);
    """,
    """
    CREATE INDEX IF NOT EXISTS ix_unmatched_items_group_month
        ON public.vendor_import_unmatched_items(management_group_id, statement_month);
    """,
    """
    COMMENT ON TABLE public.vendor_import_unmatched_items IS 'Vendor import lines awaiting manual property assignment';
    """
]


async def create_unmatched_items_table():
    """Create the unmatched items table and its indexes."""
    settings = get_settings()
    await init_db(settings.DATABASE_URL)

    try:
        async with connection.engine.begin() as conn:
            print("Creating vendor_import_unmatched_items table...")
            for i, stmt in enumerate(STATEMENTS):
                await conn.execute(text(stmt))
                print(f"  ✓ Statement {i+1}/{len(STATEMENTS)} executed")

        print("\n✅ Unmatched items table created successfully!")
    finally:
        await close_db()


if __name__ == "__main__":
    asyncio.run(create_unmatched_items_table())
