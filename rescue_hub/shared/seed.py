import uuid
import logging

from rescue_hub.auth.utils import hash_password

logger = logging.getLogger(__name__)

DEMO_USERS = [
    ("Admin", "admin@rescuehub.org", "admin123", "admin", "+10000000001"),
    ("Volunteer One", "volunteer1@rescuehub.org", "volunteer123", "volunteer", "+10000000002"),
    ("Volunteer Two", "volunteer2@rescuehub.org", "volunteer456", "volunteer", "+10000000003"),
    ("Citizen One", "citizen1@example.com", "citizen123", "user", "+10000000004"),
    ("Citizen Two", "citizen2@example.com", "citizen456", "user", "+10000000005"),
]


async def is_table_empty(db, table_name):
    """Check if a table is empty."""
    result = await db.execute_query(
        f"SELECT COUNT(*) AS count FROM {table_name}",
        (),
        fetch_one=True
    )
    return result is not None and result["count"] == 0


async def seed_data(db):
    """Seed demo accounts (1 admin, 2 volunteers, 2 reporters) into an empty users table"""
    logger.info("Starting database seeding process.")
    if not await is_table_empty(db, "users"):
        logger.info("Users table is not empty. Skipping user seeding.")
        return 0

    rows = [
        (uuid.uuid4(), name, email, hash_password(password), user_type, contact_number)
        for name, email, password, user_type, contact_number in DEMO_USERS
    ]
    await db.executemany(
        """
        INSERT INTO users (id, name, email, password_hash, user_type, contact_number, created_at)
        VALUES ($1, $2, $3, $4, $5, $6, NOW())
        ON CONFLICT (email) DO NOTHING
        """,
        rows
    )
    logger.info(f"Seeded {len(rows)} demo users.")
    return len(rows)
