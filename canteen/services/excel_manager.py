"""
Excel Report Manager with Concurrency Control

Writes the order report requested from ``POST /api/orders/export``. The
workbook has two sheets: one row per order, and revenue per canteen. A file
lock keeps concurrent Celery workers from interleaving writes.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Any

import pandas as pd
from filelock import FileLock, Timeout

from canteen.core.config import get_settings

logger = logging.getLogger(__name__)

ORDER_SHEET = "Orders"
SUMMARY_SHEET = "Summary"


def report_path() -> Path:
    settings = get_settings()
    return Path(settings.data_directory) / settings.excel_filename


def _lock_path() -> Path:
    path = report_path()
    return path.with_name(path.name + ".lock")


def order_row(order: dict[str, Any]) -> dict[str, Any]:
    """Flatten a serialized order into one report row."""
    user = order.get("user") or {}
    canteen = order.get("canteen") or {}
    items = "; ".join(
        f"{line['quantity']}x {(line.get('menu_item') or {}).get('name', line['menu_item_id'])}"
        for line in order.get("items", [])
    )
    return {
        "order_code": order["order_code"],
        "order_date": order.get("order_date"),
        "order_time": order.get("order_time"),
        "customer": user.get("full_name") or user.get("username"),
        "employee_id": user.get("employee_id"),
        "organization_id": user.get("organization_id"),
        "canteen": canteen.get("name"),
        "items": items,
        "total": order["total"],
        "order_type": order["order_type"],
        "payment_type": order["payment_type"],
        "status": order["status"],
        "notes": order.get("notes"),
    }


class ExcelManager:
    """Thread- and process-safe Excel report writer."""

    ORDER_COLUMNS = [
        "order_code",
        "order_date",
        "order_time",
        "customer",
        "employee_id",
        "organization_id",
        "canteen",
        "items",
        "total",
        "order_type",
        "payment_type",
        "status",
        "notes",
    ]

    @classmethod
    def _ensure_data_dir(cls) -> None:
        directory = report_path().parent
        if not directory.exists():
            directory.mkdir(parents=True, exist_ok=True)
            logger.info(f"Created data directory: {directory}")

    @classmethod
    def _summary(cls, df: pd.DataFrame) -> pd.DataFrame:
        if df.empty:
            return pd.DataFrame(columns=["canteen", "orders", "revenue"])
        return (
            df.groupby("canteen", dropna=False)
            .agg(orders=("order_code", "count"), revenue=("total", "sum"))
            .reset_index()
            .sort_values("revenue", ascending=False)
        )

    @classmethod
    def write_orders_report(cls, orders: list[dict[str, Any]]) -> dict[str, Any]:
        """
        Replace the report with ``orders`` (serialized orders).

        Returns:
            dict with success flag, message, row count and export time
        """
        cls._ensure_data_dir()
        path = report_path()
        result = {
            "success": False,
            "message": "",
            "rows": len(orders),
            "path": str(path),
            "exported_at": None,
        }

        try:
            lock = FileLock(str(_lock_path()), timeout=get_settings().excel_lock_timeout)
            with lock:
                df = pd.DataFrame([order_row(o) for o in orders], columns=cls.ORDER_COLUMNS)
                with pd.ExcelWriter(path, engine="openpyxl") as writer:
                    df.to_excel(writer, sheet_name=ORDER_SHEET, index=False)
                    cls._summary(df).to_excel(writer, sheet_name=SUMMARY_SHEET, index=False)

                export_time = datetime.now().isoformat()
                logger.info(f"Wrote {len(df)} orders to {path}")
                result.update(
                    success=True,
                    message=f"{len(df)} orders exported",
                    exported_at=export_time,
                )

        except Timeout:
            result["message"] = f"Lock timeout ({get_settings().excel_lock_timeout}s)"
            logger.error(f"Lock timeout writing {path}")

        except OSError as e:
            result["message"] = str(e)
            logger.exception(f"Error writing {path}")

        return result

    @classmethod
    def read_orders_report(cls) -> list[dict[str, Any]]:
        path = report_path()
        if not path.exists():
            return []
        try:
            df = pd.read_excel(path, sheet_name=ORDER_SHEET, engine="openpyxl")
        except (OSError, ValueError) as e:
            logger.error(f"Error reading {path}: {e}")
            return []
        return df.to_dict("records")

    @classmethod
    def clear_report(cls) -> bool:
        try:
            for f in (report_path(), _lock_path()):
                if f.exists():
                    f.unlink()
        except OSError as e:
            logger.error(f"Error clearing report: {e}")
            return False
        logger.info("Order report cleared")
        return True
