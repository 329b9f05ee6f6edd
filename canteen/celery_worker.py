"""
Celery Worker Configuration
Sets up Celery with Redis as message broker and result backend.

Run a worker with:
    celery -A canteen.celery_worker.celery_app worker --loglevel=info
"""

from celery import Celery

from canteen.core.config import get_settings

settings = get_settings()

celery_app = Celery(
    'canteen_worker',
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=['canteen.tasks'],
)

celery_app.conf.update(
    task_serializer='json',
    accept_content=['json'],
    result_serializer='json',
    timezone='UTC',
    enable_utc=True,

    worker_prefetch_multiplier=1,
    worker_concurrency=4,

    result_expires=3600,

    task_acks_late=True,
    task_reject_on_worker_lost=True,

    # run tasks in-process (tests, single-process development)
    task_always_eager=settings.celery_task_always_eager,
    task_eager_propagates=True,

    broker_connection_retry_on_startup=True,
)


if __name__ == '__main__':
    celery_app.start()
