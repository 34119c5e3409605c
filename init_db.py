#!/usr/bin/env python
"""
Initialize database tables and the embedding store.
Run this once before starting the API or the first re-index.
"""

import asyncio
import sys
from pathlib import Path
from dotenv import load_dotenv

# Load .env file explicitly (override any existing env vars)
env_path = Path(__file__).parent / ".env"
load_dotenv(env_path, override=True)

from app.core.config import settings  # noqa: E402
from app.core.db import close_db, init_db  # noqa: E402
from app.core.exceptions import PCShopException  # noqa: E402
from app.vectorstore.factory import get_embedding_store  # noqa: E402


async def initialize() -> bool:
    """Create product/manifest tables, then the embedding collection or table."""
    print(f"📝 Using database: {settings.async_database_url}")

    try:
        await init_db()
        print("✅ Database tables created successfully!")

        store = get_embedding_store()
        try:
            await store.initialize()
            print(f"✅ Embedding store ready ({settings.embedding_store_type})")
        finally:
            await store.close()
        return True
    except PCShopException as e:
        print(f"❌ Error preparing embedding store: {e}")
        return False
    except Exception as e:
        print(f"❌ Error creating tables: {e}")
        return False
    finally:
        await close_db()


if __name__ == "__main__":
    print("Initializing database...")
    success = asyncio.run(initialize())
    sys.exit(0 if success else 1)
