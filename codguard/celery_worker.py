from celery import Celery

from codguard.config import settings
from codguard.database import session_scope
from codguard.services.risk import assess_order
from codguard.services.scheduler import due_task_ids, enqueue, expire_abandoned_tasks, run_task
from codguard.services import confirmation, shipments  # noqa: F401  (register task handlers)
from codguard.utils.logging import logger

REDIS_URL = settings.REDIS_URL

celery = Celery("codguard", broker=REDIS_URL, backend=REDIS_URL)

celery.conf.update(
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    broker_connection_retry_on_startup=True,
    worker_prefetch_multiplier=1,
    beat_schedule={
        "dispatch-due-tasks": {"task": "dispatch_due_tasks", "schedule": 60.0},
    },
)

@celery.task(name="ping")
def ping():
    logger.info("ping received")
    return "pong"

@celery.task(name="assess_order_async", autoretry_for=(ConnectionError,), retry_backoff=True, max_retries=5)
def assess_order_async(order_id: int):
    with session_scope() as db:
        a = assess_order(db, order_id)
        logger.info("Order %s assessed async: %s (%s)", order_id, a.risk_level, a.total_score)
        return {"ok": True, "order_id": order_id, "assessment_id": a.id, "risk_level": a.risk_level}

@celery.task(name="run_scheduled_task")
def run_scheduled_task(task_id: int):
    with session_scope() as db:
        return run_task(db, task_id)

@celery.task(name="dispatch_due_tasks")
def dispatch_due_tasks(limit: int = 100):
    """Beat sweep: re-enqueue due or abandoned tasks, fail the ones out of attempts."""
    with session_scope() as db:
        expire_abandoned_tasks(db)
        ids = due_task_ids(db, limit)
    for task_id in ids:
        enqueue(task_id)
    if ids:
        logger.info("Re-enqueued %s due scheduled tasks", len(ids))
    return len(ids)
