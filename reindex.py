#!/usr/bin/env python
"""
Re-index products from the command line.

    python reindex.py                  # every product
    python reindex.py --only-failed    # products whose last indexing failed
    python reindex.py --product-id 42  # one product
"""

import argparse
import asyncio
import sys
from pathlib import Path
from dotenv import load_dotenv

env_path = Path(__file__).parent / ".env"
load_dotenv(env_path, override=True)

from app.core.db import async_session_maker, close_db  # noqa: E402
from app.core.exceptions import PCShopException  # noqa: E402
from app.core.logging import configure_logging  # noqa: E402
from app.encoder.factory import get_encoder  # noqa: E402
from app.services.indexer import ProductIndexer  # noqa: E402
from app.vectorstore.factory import get_embedding_store  # noqa: E402


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Rebuild product embeddings")
    group = parser.add_mutually_exclusive_group()
    group.add_argument("--only-failed", action="store_true", help="retry FAILED products only")
    group.add_argument("--product-id", help="re-index a single product")
    return parser.parse_args(argv)


async def run(args: argparse.Namespace) -> bool:
    configure_logging()
    store = get_embedding_store()
    indexer = ProductIndexer(
        encoder=get_encoder(),
        store=store,
        session_maker=async_session_maker,
    )

    try:
        await store.initialize()

        if args.product_id:
            result = await indexer.reindex_product(args.product_id)
            print(f"✅ {result.product_id}: {len(result.record_ids)} records")
            return True

        if args.only_failed:
            report = await indexer.reindex_failed()
        else:
            report = await indexer.reindex_all()

        print(
            f"{'✅' if report.failed == 0 else '⚠️'} {report.succeeded}/{report.total} indexed "
            f"in {report.duration_seconds:.1f}s"
        )
        for product_id in report.failed_product_ids:
            print(f"   ❌ {product_id}")
        return report.failed == 0
    except PCShopException as e:
        print(f"❌ Re-index failed: {e}")
        return False
    finally:
        await store.close()
        await close_db()


if __name__ == "__main__":
    sys.exit(0 if asyncio.run(run(parse_args())) else 1)
