#!/usr/bin/env python3
"""
Create a merchant API key.
Run with: python scripts/create_api_key.py [label]

The key is stored as active in the database configured by DATABASE_URL
(or .env) and printed once.
"""
import asyncio
import sys

from ark_console.config import Settings
from ark_console.db import SqlApiKeyStore, create_db_engine, init_db


async def create_api_key(label=None):
    settings = Settings()
    engine = create_db_engine(settings.DATABASE_URL)
    init_db(engine)
    try:
        return await SqlApiKeyStore(engine).create(label)
    finally:
        engine.dispose()


def main() -> int:
    label = sys.argv[1] if len(sys.argv) > 1 else None
    try:
        api_key = asyncio.run(create_api_key(label))
    except Exception as exc:
        print(f"Failed to create API key: {exc}", file=sys.stderr)
        return 1

    print("\nAPI key created successfully!")
    print(f"\nKey: {api_key.key}")
    if api_key.label:
        print(f"Label: {api_key.label}")
    print(f"ID: {api_key.id}")
    print(f"Created: {api_key.created_at.isoformat()}\n")
    return 0


if __name__ == '__main__':
    sys.exit(main())
