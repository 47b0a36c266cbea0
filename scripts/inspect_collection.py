#!/usr/bin/env python3
"""Inspect records of a store collection, optionally filtered."""

import argparse
import asyncio
import json
import logging

from taskmate.core import db_client
from taskmate.core.schema import COLLECTIONS


logging.basicConfig(level=logging.INFO, format="%(message)s")
logger = logging.getLogger(__name__)


async def main(*, collection: str, filter_query: str, limit: int) -> None:
    await db_client.init_db()
    try:
        records = await db_client.list_records(collection=collection, filter_query=filter_query, per_page=limit)
        logger.info(f"{collection}: {len(records)} record(s)")
        for record in records:
            logger.info(json.dumps(record, indent=2, sort_keys=True))
    finally:
        await db_client.close_connection()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("collection", choices=COLLECTIONS)
    parser.add_argument("--filter", default="", help='Filter query, e.g. \'owner_id = "abc"\'')
    parser.add_argument("--limit", type=int, default=50)
    args = parser.parse_args()
    asyncio.run(main(collection=args.collection, filter_query=args.filter, limit=args.limit))
