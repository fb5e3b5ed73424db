#!/usr/bin/env python3
"""
MongoDB connectivity check.

Connects with the same URI normalisation and pool settings as the API,
lists collections and counts users. Exit code 0 on success, 1 on failure.

Usage:
    PYTHONPATH=. python3 scripts/check_mongodb.py [--uri mongodb+srv://...]
"""

import argparse
import asyncio
import logging
import sys

from services.api.config import settings
from services.api.db.client import create_mongo_client, get_database, normalize_mongodb_uri, redact_uri
from services.api.db.users import USERS

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("check_mongodb")

HINTS = (
    "Check Atlas Network Access allows this machine's IP",
    "Check username/password; URL-encode special characters in the password",
    "Regenerate the connection string from Atlas > Database > Connect > Drivers",
)


async def check(uri: str) -> bool:
    logger.info("URI:        %s", redact_uri(uri))
    logger.info("Normalised: %s", redact_uri(normalize_mongodb_uri(uri, settings.mongodb_db_name)))

    client = create_mongo_client(uri)
    try:
        db = get_database(client)
        await client.admin.command("ping")
        names = await db.list_collection_names()
        logger.info("Connected to %s; collections: %s", db.name, ", ".join(sorted(names)) or "(none)")
        logger.info("Users: %d", await db[USERS].count_documents({}))
        return True
    except Exception as exc:
        logger.error("MongoDB connection failed: %s: %s", type(exc).__name__, exc)
        for hint in HINTS:
            logger.error("  - %s", hint)
        return False
    finally:
        await client.close()


def main() -> int:
    parser = argparse.ArgumentParser(description="Check MongoDB connectivity")
    parser.add_argument("--uri", default=settings.mongodb_uri, help="defaults to MONGODB_URI")
    args = parser.parse_args()

    if not args.uri:
        logger.error("MONGODB_URI is not set (env or .env)")
        return 1
    return 0 if asyncio.run(check(args.uri)) else 1


if __name__ == "__main__":
    sys.exit(main())
