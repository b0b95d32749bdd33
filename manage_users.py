#!/usr/bin/env python3
"""
User and sample-data management utility

This script provides:
- Seeding the sample admin account and sample books
- Listing registered users
"""

import asyncio
import os
import sys
from pathlib import Path

# Add project root to Python path
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

from api.config import config
from api.database import DatabaseManager
from api.seed import seed_sample_data
from utilities.logger import setup_logging


def _db_manager() -> DatabaseManager:
    return DatabaseManager(
        connection_url=config.mongodb_url,
        database_name=config.mongodb_database,
        users_collection=config.users_collection,
        books_collection=config.books_collection,
    )


async def seed(admin_password: str):
    """Seed the sample admin and books."""
    db_manager = _db_manager()
    try:
        await db_manager.connect()
        counts = await seed_sample_data(
            db_manager.credential_store(),
            db_manager.book_store(),
            admin_password=admin_password,
        )
        print(f"Seeded {counts['users']} user(s) and {counts['books']} book(s)")
    finally:
        await db_manager.disconnect()


async def list_users():
    """List registered users."""
    db_manager = _db_manager()
    try:
        await db_manager.connect()
        users = await db_manager.credential_store().list_users()
        if not users:
            print("No users found")
            return
        print(f"Found {len(users)} user(s):")
        for i, user in enumerate(users, 1):
            print(f"{i:3d}. {user['username']:<30} {user['email']:<40} {user.get('role', 'user')}")
    finally:
        await db_manager.disconnect()


async def main():
    """Main function."""
    if len(sys.argv) < 2:
        print("Usage: python manage_users.py [seed|list]")
        print()
        print("Commands:")
        print("  seed  - Insert the sample admin account and sample books")
        print("          (admin password from SEED_ADMIN_PASSWORD, default 'password123')")
        print("  list  - List registered users")
        sys.exit(1)

    command = sys.argv[1].lower()

    setup_logging(
        log_level=config.log_level,
        log_format=config.log_format,
        log_file=config.log_file,
        debug=config.debug
    )

    if command == "seed":
        await seed(os.getenv("SEED_ADMIN_PASSWORD", "password123"))
    elif command == "list":
        await list_users()
    else:
        print(f"Unknown command: {command}")
        print("Available commands: seed, list")
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
