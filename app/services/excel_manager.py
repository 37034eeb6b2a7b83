"""
Excel Order Archive with Concurrency Control

The daily reset deletes the day's orders; before it does, they are appended
to an Excel workbook so the history is kept. A file lock serializes writers
(API process, Celery worker, scripts) on the same workbook.
"""

from datetime import date, datetime
from typing import Any

import pandas as pd
from filelock import FileLock, Timeout

from app.core.config import get_settings
import logging

logger = logging.getLogger(__name__)


class ExcelManager:
    """Thread-safe Excel archive manager."""

    ARCHIVE_COLUMNS = [
        "business_day",
        "order_number",
        "order_id",
        "meal_name",
        "side_item",
        "quantity",
        "table_number",
        "created_at",
        "archived_at",
    ]

    @staticmethod
    def archive_path():
        return get_settings().archive_file_path

    @staticmethod
    def lock_path():
        path = get_settings().archive_file_path
        return path.with_name(path.name + ".lock")

    @classmethod
    def _ensure_data_dir(cls) -> None:
        """Create data directory if needed."""
        data_dir = cls.archive_path().parent
        if not data_dir.exists():
            data_dir.mkdir(parents=True, exist_ok=True)
            logger.info(f"Created data directory: {data_dir}")

    @classmethod
    def _load_or_create_df(cls) -> pd.DataFrame:
        """Load existing archive or create an empty DataFrame."""
        file_path = cls.archive_path()
        if file_path.exists():
            return pd.read_excel(file_path, engine="openpyxl", dtype={"order_number": str})
        return pd.DataFrame(columns=cls.ARCHIVE_COLUMNS)

    @staticmethod
    def order_row(order: Any) -> dict[str, Any]:
        """Flatten an Order model into an archive row."""
        created_at = order.created_at
        return {
            "order_number": order.order_number,
            "order_id": order.id,
            "meal_name": order.meal_name,
            "side_item": order.side_item,
            "quantity": order.quantity,
            "table_number": order.table_number,
            "created_at": created_at.isoformat() if created_at else None,
        }

    @classmethod
    def archive_orders(cls, rows: list[dict[str, Any]], business_day: date) -> dict[str, Any]:
        """Append one business day's orders to the archive with file locking."""
        cls._ensure_data_dir()
        settings = get_settings()

        result = {
            "success": False,
            "message": "",
            "business_day": business_day.isoformat(),
            "archived": 0,
            "archived_at": None,
        }

        if not rows:
            result["success"] = True
            result["message"] = "Nothing to archive"
            return result

        try:
            lock = FileLock(str(cls.lock_path()), timeout=settings.archive_lock_timeout)

            with lock:
                logger.debug(f"Archive lock acquired for {business_day}")

                df = cls._load_or_create_df()

                archived_at = datetime.now().isoformat()
                new_rows = [
                    {**row, "business_day": business_day.isoformat(), "archived_at": archived_at}
                    for row in rows
                ]

                df = pd.concat(
                    [df, pd.DataFrame(new_rows, columns=cls.ARCHIVE_COLUMNS)],
                    ignore_index=True,
                )
                df.to_excel(str(cls.archive_path()), index=False, engine="openpyxl")

                logger.info(f"Archived {len(rows)} order(s) for {business_day}")

                result["success"] = True
                result["message"] = f"{len(rows)} order(s) archived"
                result["archived"] = len(rows)
                result["archived_at"] = archived_at

            logger.debug(f"Archive lock released for {business_day}")

        except Timeout:
            result["message"] = f"Lock timeout ({settings.archive_lock_timeout}s)"
            logger.error(f"Archive lock timeout for {business_day}")

        except Exception as e:
            result["message"] = str(e)
            logger.exception(f"Error archiving orders for {business_day}")

        return result

    @classmethod
    def get_archived_orders(cls) -> list[dict[str, Any]]:
        """Get all archived orders."""
        file_path = cls.archive_path()
        if not file_path.exists():
            return []

        try:
            df = pd.read_excel(file_path, engine="openpyxl", dtype={"order_number": str})
            return df.to_dict("records")
        except Exception as e:
            logger.error(f"Error reading archive: {e}")
            return []

    @classmethod
    def clear_archive(cls) -> bool:
        """Delete the archive workbook and its lock file."""
        try:
            for f in [cls.archive_path(), cls.lock_path()]:
                if f.exists():
                    f.unlink()
            logger.info("Order archive cleared")
            return True
        except OSError as e:
            logger.error(f"Error clearing archive: {e}")
            return False
