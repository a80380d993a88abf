# codguard/tests/test_scheduler.py
from datetime import timedelta

import pytest
from sqlalchemy import select

from codguard.config import settings
from codguard.models import ScheduledTask, utcnow
from codguard.services import scheduler
from codguard.services.scheduler import (
    claim_task, due_task_ids, expire_abandoned_tasks, retry_delay_seconds, run_task, schedule_task, task_handler,
)

@pytest.fixture
def recorder():
    seen = []

    @task_handler("test_echo")
    def echo(db, payload):
        seen.append(payload)

    @task_handler("test_boom")
    def boom(db, payload):
        raise RuntimeError("handler blew up")

    yield seen
    scheduler.TASK_HANDLERS.pop("test_echo", None)
    scheduler.TASK_HANDLERS.pop("test_boom", None)

def test_schedule_persists_then_enqueues(db, enqueued):
    task = schedule_task(db, "test_echo", {"x": 1}, delay_seconds=90)
    assert task.status == "pending"
    assert task.due_at > utcnow() + timedelta(seconds=60)
    assert enqueued == [(task.id, 90)]

def test_dedupe_key_returns_existing(db, enqueued):
    a = schedule_task(db, "test_echo", {"x": 1}, dedupe_key="k1")
    b = schedule_task(db, "test_echo", {"x": 2}, dedupe_key="k1")
    assert a.id == b.id
    assert b.payload == {"x": 1}
    assert len(enqueued) == 1

def test_task_runs_once(db, recorder):
    task = schedule_task(db, "test_echo", {"x": 1})
    assert run_task(db, task.id) is True
    assert run_task(db, task.id) is False
    assert recorder == [{"x": 1}]
    db.refresh(task)
    assert task.status == "done"
    assert task.attempts == 1
    assert task.finished_at is not None

def test_not_due_is_not_claimed(db):
    task = schedule_task(db, "test_echo", {}, delay_seconds=600)
    assert claim_task(db, task.id) is None

def _make_due(db, task):
    task.due_at = utcnow() - timedelta(seconds=1)
    db.commit()

def test_handler_failure_goes_back_to_pending(db, recorder, enqueued):
    task = schedule_task(db, "test_boom", {})
    assert run_task(db, task.id) is False
    db.refresh(task)
    assert task.status == "pending"
    assert task.attempts == 1
    assert task.claimed_at is None
    assert "handler blew up" in task.last_error
    assert task.due_at > utcnow() + timedelta(seconds=30)
    assert enqueued[-1] == (task.id, 60)

    # not due yet, so neither a redelivery nor the sweep can run it early
    assert run_task(db, task.id) is False
    assert task.id not in due_task_ids(db)

def test_handler_failure_marks_failed_after_max_attempts(db, recorder, monkeypatch):
    monkeypatch.setattr(settings, "SCHEDULED_TASK_MAX_ATTEMPTS", 2)
    task = schedule_task(db, "test_boom", {})

    assert run_task(db, task.id) is False
    _make_due(db, task)
    assert run_task(db, task.id) is False

    db.refresh(task)
    assert task.status == "failed"
    assert task.attempts == 2
    assert task.finished_at is not None
    assert due_task_ids(db) == []

def test_transient_failure_then_success(db, enqueued):
    calls = []

    @task_handler("test_flaky")
    def flaky(db, payload):
        calls.append(payload)
        if len(calls) == 1:
            raise ConnectionError("broker hiccup")

    try:
        task = schedule_task(db, "test_flaky", {"n": 1})
        assert run_task(db, task.id) is False
        _make_due(db, task)
        assert run_task(db, task.id) is True
    finally:
        scheduler.TASK_HANDLERS.pop("test_flaky", None)

    db.refresh(task)
    assert task.status == "done"
    assert task.attempts == 2
    assert len(calls) == 2

def test_fresh_claim_is_not_taken_again(db):
    task = schedule_task(db, "test_echo", {})
    assert claim_task(db, task.id) is not None
    assert claim_task(db, task.id) is None
    assert due_task_ids(db) == []

def test_abandoned_claim_is_reclaimed(db, recorder):
    task = schedule_task(db, "test_echo", {"x": 1})
    claim_task(db, task.id)
    # the worker holding the claim died
    task.claimed_at = utcnow() - timedelta(seconds=settings.SCHEDULED_TASK_CLAIM_TIMEOUT_SECONDS + 60)
    db.commit()

    assert due_task_ids(db) == [task.id]
    assert run_task(db, task.id) is True
    db.refresh(task)
    assert task.status == "done"
    assert task.attempts == 2
    assert recorder == [{"x": 1}]

def test_abandoned_claim_without_attempts_left_is_failed(db, monkeypatch):
    monkeypatch.setattr(settings, "SCHEDULED_TASK_MAX_ATTEMPTS", 1)
    task = schedule_task(db, "test_echo", {})
    claim_task(db, task.id)
    task.claimed_at = utcnow() - timedelta(seconds=settings.SCHEDULED_TASK_CLAIM_TIMEOUT_SECONDS + 60)
    db.commit()

    assert due_task_ids(db) == []
    assert expire_abandoned_tasks(db) == 1
    db.refresh(task)
    assert task.status == "failed"
    assert "claim expired" in task.last_error

def test_retry_delay_ladder(monkeypatch):
    monkeypatch.setattr(settings, "SCHEDULED_TASK_RETRY_SECONDS", [60, 300])
    assert [retry_delay_seconds(n) for n in (1, 2, 3, 7)] == [60, 300, 300, 300]

def test_failed_confirmation_retry_is_retried(db, make_order, fake_voice, monkeypatch):
    from codguard.services import confirmation

    order = make_order()
    task = confirmation.schedule_retry_call(db, order.id, "short")
    _make_due(db, task)

    real = confirmation.initiate_confirmation_call

    def lost_connection(*args, **kwargs):
        raise ConnectionError("db went away")

    monkeypatch.setattr(confirmation, "initiate_confirmation_call", lost_connection)
    assert run_task(db, task.id) is False
    monkeypatch.setattr(confirmation, "initiate_confirmation_call", real)

    _make_due(db, task)
    assert run_task(db, task.id) is True
    assert len(fake_voice.calls) == 1
    db.refresh(order)
    assert order.confirmation_stage == "CallInitiated"

def test_unknown_kind_marks_failed(db):
    task = schedule_task(db, "no_such_kind", {})
    assert run_task(db, task.id) is False
    db.refresh(task)
    assert task.status == "failed"

def test_due_task_ids(db):
    due = schedule_task(db, "test_echo", {})
    later = schedule_task(db, "test_echo", {}, delay_seconds=3600)
    assert due_task_ids(db) == [due.id]
    assert later.id not in due_task_ids(db)

def test_celery_tasks_use_shared_sessionmaker(db, recorder, monkeypatch):
    from codguard import celery_worker

    task = schedule_task(db, "test_echo", {"via": "celery"})
    sent = []
    monkeypatch.setattr(celery_worker, "enqueue", lambda task_id, countdown=0: sent.append(task_id))

    assert celery_worker.dispatch_due_tasks() == 1
    assert sent == [task.id]

    assert celery_worker.run_scheduled_task(task.id) is True
    assert recorder == [{"via": "celery"}]
    assert celery_worker.ping() == "pong"

def test_assess_order_async(db, make_order):
    from codguard import celery_worker

    order = make_order()
    res = celery_worker.assess_order_async(order.id)
    assert res["ok"] is True
    assert res["risk_level"] == "LOW"
    assert db.execute(select(ScheduledTask)).first() is None
