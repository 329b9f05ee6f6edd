"""
Celery Tasks
Background work that should not hold up an API request.
"""

import logging
import time
from datetime import datetime

from canteen.celery_worker import celery_app
from canteen.services.excel_manager import ExcelManager

logger = logging.getLogger(__name__)


@celery_app.task(
    bind=True,
    max_retries=3,
    default_retry_delay=5,
    autoretry_for=(OSError,),
    retry_backoff=True,
)
def export_orders_report(self, orders: list[dict]) -> dict:
    """
    Write serialized orders to the Excel report.

    Args:
        orders: Orders as returned by the API (``OrderOut`` JSON)
    """
    task_id = self.request.id
    logger.info(f"Task {task_id}: exporting {len(orders)} orders")
    started = time.time()

    result = ExcelManager.write_orders_report(orders)

    elapsed = round(time.time() - started, 3)
    result['task_id'] = task_id
    result['processing_time_seconds'] = elapsed

    if result['success']:
        logger.info(f"Task {task_id}: report written in {elapsed}s")
    else:
        logger.warning(f"Task {task_id}: export failed - {result['message']}")
    return result


@celery_app.task
def health_check() -> dict:
    """Simple task to verify a worker is consuming."""
    return {
        'status': 'healthy',
        'worker': 'celery',
        'timestamp': datetime.now().isoformat(),
    }
