"""
Menu Seeding Script

Loads menu items from a JSON file into the database.
Run from project root: python scripts/seed_menu.py [path/to/menu.json]

The file holds a list of {"name", "description", "price", "image"} objects.
"""

import argparse
import asyncio
import json
import logging
import os
import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from pydantic import ValidationError

from app.core.config import setup_logging
from app.database import engine, init_db
from app.models import MenuItem
from app.schemas import MenuItemCreate
from app.services.records import get_record_store

DEFAULT_MENU_FILE = Path(__file__).parent / "data" / "menu.json"

logger = logging.getLogger("seed_menu")


def load_menu(path: Path) -> list[MenuItemCreate]:
    """Parse and validate the menu file."""
    raw = json.loads(path.read_text(encoding="utf-8"))
    items = []
    for index, entry in enumerate(raw):
        try:
            items.append(MenuItemCreate.model_validate(entry))
        except ValidationError as e:
            logger.warning(f"Skipping entry #{index}: {e.errors()[0]['msg']}")
    return items


async def seed(path: Path, replace: bool = False) -> int:
    """Insert the menu items, optionally replacing the current menu."""
    await init_db()
    records = get_record_store()

    items = load_menu(path)
    logger.info(f"Seeding {len(items)} menu item(s) from {path}")

    if replace:
        await records.delete_all(MenuItem)

    for item in items:
        await records.create(MenuItem(**item.model_dump()))
        logger.info(f"Item migrated: {item.name}")

    await engine.dispose()
    return len(items)


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Seed the menu table")
    parser.add_argument("path", nargs="?", default=str(DEFAULT_MENU_FILE), help="Menu JSON file")
    parser.add_argument("--replace", action="store_true", help="Delete the current menu first")
    args = parser.parse_args()

    setup_logging()
    count = asyncio.run(seed(Path(args.path), replace=args.replace))
    logger.info(f"Migration finished: {count} item(s)")
