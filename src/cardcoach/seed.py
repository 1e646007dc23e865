"""Load sample accounts and transactions into Redis.

Accounts come from a JSON list and are stored one per key (`account:<id>`);
transactions come from a CSV file and are stored together as a JSON list under
`transactions:list`.
"""

import argparse
import asyncio
import csv
import json
import logging
from pathlib import Path
from typing import Any, Dict, List

from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from .agent.tools import TRANSACTIONS_KEY
from .services.redis import RedisCrudService
from .settings import get_settings

logger = logging.getLogger(__name__)


async def seed_accounts(redis_crud: RedisCrudService, path: Path) -> int:
    """Store every account of the JSON list at path. Returns how many were stored."""
    with open(path, encoding="utf-8") as f:
        accounts: List[Dict[str, Any]] = json.load(f)

    stored = 0
    for account in accounts:
        key = f"account:{account['id']}"
        if not await redis_crud.set(key, json.dumps(account)):
            raise RuntimeError(f"Could not store {key}")
        logger.info("Stored %s", key)
        stored += 1
    return stored


async def seed_transactions(redis_crud: RedisCrudService, path: Path) -> int:
    """Store all CSV rows at path as one JSON list. Returns the row count."""
    with open(path, encoding="utf-8", newline="") as f:
        transactions = list(csv.DictReader(f))

    if not await redis_crud.set(TRANSACTIONS_KEY, json.dumps(transactions)):
        raise RuntimeError(f"Could not store {TRANSACTIONS_KEY}")
    logger.info("Stored %d transactions", len(transactions))
    return len(transactions)


async def seed(redis_url: str, accounts_path: Path, transactions_path: Path) -> None:
    redis_crud = RedisCrudService(redis_url)
    await redis_crud.connect()
    try:
        await seed_accounts(redis_crud, accounts_path)
        await seed_transactions(redis_crud, transactions_path)
    finally:
        await redis_crud.close()


def main(argv: List[str] | None = None) -> int:
    settings = get_settings()
    parser = argparse.ArgumentParser(description="Seed Redis with CardCoach sample data.")
    parser.add_argument("--accounts", type=Path, default=settings.accounts_path)
    parser.add_argument("--transactions", type=Path, default=settings.transactions_path)
    parser.add_argument("--redis-url", default=settings.redis_url)
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s - %(message)s")
    try:
        asyncio.run(seed(args.redis_url, args.accounts, args.transactions))
    except (
        OSError,
        ValueError,
        KeyError,
        RuntimeError,
        RedisConnectionError,
        RedisTimeoutError,
    ) as e:
        logger.error("Seeding failed: %s", e)
        return 1
    logger.info("Seed complete")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
