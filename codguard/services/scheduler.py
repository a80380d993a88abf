"""
Durable deferred work.

A job is written to ``scheduled_tasks`` first and only then handed to Celery
with a countdown. The beat sweep re-enqueues anything overdue that is still
pending (lost broker message, worker restart), and ``claim_task`` flips
pending -> running with a conditional UPDATE, so concurrent deliveries of the
same job cannot both run it.

A claim older than ``SCHEDULED_TASK_CLAIM_TIMEOUT_SECONDS`` belongs to a dead
worker and may be taken again. A handler that raises puts the job back to
pending on the ``SCHEDULED_TASK_RETRY_SECONDS`` ladder; after
``SCHEDULED_TASK_MAX_ATTEMPTS`` claims it is marked failed.
"""
from datetime import timedelta
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import and_, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..config import settings
from ..models import ScheduledTask, utcnow
from ..utils.logging import logger

TaskHandler = Callable[[Session, Dict[str, Any]], Any]

TASK_HANDLERS: Dict[str, TaskHandler] = {}

def task_handler(kind: str):
    def register(fn: TaskHandler) -> TaskHandler:
        TASK_HANDLERS[kind] = fn
        return fn
    return register

def enqueue(task_id: int, countdown: float = 0) -> None:
    from ..celery_worker import run_scheduled_task
    try:
        run_scheduled_task.apply_async(args=[task_id], countdown=max(0, countdown))
    except Exception:
        # row stays pending; dispatch_due_tasks will pick it up
        logger.exception("Could not enqueue scheduled task %s", task_id)

def schedule_task(db: Session, kind: str, payload: Dict[str, Any],
                  delay_seconds: float = 0, dedupe_key: Optional[str] = None) -> ScheduledTask:
    """Persist then enqueue. A second job with the same ``dedupe_key`` returns the first."""
    task = ScheduledTask(
        kind=kind,
        dedupe_key=dedupe_key,
        payload=payload,
        due_at=utcnow() + timedelta(seconds=delay_seconds),
        status="pending",
    )
    db.add(task)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        existing = db.execute(
            select(ScheduledTask).where(ScheduledTask.dedupe_key == dedupe_key)
        ).scalar_one()
        logger.info("Task %s already scheduled as %s; not scheduling again", dedupe_key, existing.id)
        return existing
    logger.info("Scheduled %s task %s in %ss: %s", kind, task.id, int(delay_seconds), payload)
    enqueue(task.id, delay_seconds)
    return task

def _runnable(now):
    """Pending and due, or running under a claim older than the timeout."""
    stale_before = now - timedelta(seconds=settings.SCHEDULED_TASK_CLAIM_TIMEOUT_SECONDS)
    return and_(
        ScheduledTask.attempts < settings.SCHEDULED_TASK_MAX_ATTEMPTS,
        or_(
            and_(ScheduledTask.status == "pending", ScheduledTask.due_at <= now),
            and_(ScheduledTask.status == "running", ScheduledTask.claimed_at < stale_before),
        ),
    )

def claim_task(db: Session, task_id: int) -> Optional[ScheduledTask]:
    now = utcnow()
    res = db.execute(
        update(ScheduledTask)
        .where(ScheduledTask.id == task_id, _runnable(now))
        .values(status="running", claimed_at=now, attempts=ScheduledTask.attempts + 1)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    if not res.rowcount:
        return None
    task = db.get(ScheduledTask, task_id)
    db.refresh(task)
    return task

def _finish(db: Session, task: ScheduledTask, status: str, error: Optional[str] = None) -> None:
    task.status = status
    task.last_error = error
    task.finished_at = utcnow()
    db.commit()

def retry_delay_seconds(attempts_used: int) -> int:
    delays = settings.SCHEDULED_TASK_RETRY_SECONDS
    return delays[min(max(attempts_used, 1), len(delays)) - 1]

def _retry_or_fail(db: Session, task: ScheduledTask, error: str) -> None:
    if task.attempts >= settings.SCHEDULED_TASK_MAX_ATTEMPTS:
        logger.error("Scheduled task %s (%s) gave up after %s attempts", task.id, task.kind, task.attempts)
        _finish(db, task, "failed", error)
        return

    delay = retry_delay_seconds(task.attempts)
    task.status = "pending"
    task.claimed_at = None
    task.last_error = error
    task.due_at = utcnow() + timedelta(seconds=delay)
    db.commit()
    logger.warning("Scheduled task %s (%s) will retry in %ss (attempt %s/%s)",
                   task.id, task.kind, delay, task.attempts, settings.SCHEDULED_TASK_MAX_ATTEMPTS)
    enqueue(task.id, delay)

def run_task(db: Session, task_id: int) -> bool:
    """Execute one scheduled task if it is runnable. Returns True on success."""
    task = claim_task(db, task_id)
    if task is None:
        logger.info("Scheduled task %s not runnable (claimed, finished or not yet due)", task_id)
        return False

    handler = TASK_HANDLERS.get(task.kind)
    if handler is None:
        logger.error("No handler registered for task kind %r (task %s)", task.kind, task.id)
        _finish(db, task, "failed", f"unknown kind {task.kind}")
        return False

    try:
        handler(db, dict(task.payload or {}))
    except Exception as e:
        db.rollback()
        logger.exception("Scheduled task %s (%s) failed", task.id, task.kind)
        _retry_or_fail(db, task, str(e)[:1000])
        return False

    _finish(db, task, "done")
    return True

def due_task_ids(db: Session, limit: int = 100) -> List[int]:
    return list(db.execute(
        select(ScheduledTask.id)
        .where(_runnable(utcnow()))
        .order_by(ScheduledTask.due_at)
        .limit(limit)
    ).scalars())

def expire_abandoned_tasks(db: Session) -> int:
    """Fail running tasks whose claim timed out with no attempts left."""
    now = utcnow()
    stale_before = now - timedelta(seconds=settings.SCHEDULED_TASK_CLAIM_TIMEOUT_SECONDS)
    res = db.execute(
        update(ScheduledTask)
        .where(
            ScheduledTask.status == "running",
            ScheduledTask.claimed_at < stale_before,
            ScheduledTask.attempts >= settings.SCHEDULED_TASK_MAX_ATTEMPTS,
        )
        .values(status="failed", finished_at=now, last_error="claim expired with no attempts left")
        .execution_options(synchronize_session=False)
    )
    db.commit()
    if res.rowcount:
        logger.error("Marked %s abandoned scheduled tasks as failed", res.rowcount)
    return res.rowcount
