# codguard/tests/test_risk.py
from datetime import timedelta

import pytest
from sqlalchemy import select

from codguard.errors import NotFoundError, ValidationFailed
from codguard.models import CallLog, Order, RiskAssessment, utcnow
from codguard.services import dispatch
from codguard.services.risk import (
    assess_order, call_center_queue, get_current_assessment_for_order, review_assessment,
)

ITEMS_3_FOR_60 = (("Auriculares", 1, 30.0), ("Funda", 2, 15.0))

def test_medium_order_gets_long_call(db, make_customer, make_order, fake_voice):
    customer = make_customer(successful_deliveries=2, orders_count=3)
    order = make_order(customer, items=ITEMS_3_FOR_60)

    a = assess_order(db, order.id)

    assert a.total_score == 3
    assert a.risk_level == "MEDIUM"
    assert a.action == "voice_long"
    assert a.action_taken == "voice_long"
    assert a.call_attempts == 1
    assert len(a.call_sids) == 1

    assert len(fake_voice.calls) == 1
    assert "script_type=long" in fake_voice.calls[0]["url"]
    assert "language=es-ES" in fake_voice.calls[0]["url"]

    logs = db.execute(select(CallLog).where(CallLog.order_id == order.id)).scalars().all()
    assert [(l.attempt_number, l.script_type, l.call_status) for l in logs] == [(1, "long", "initiated")]

    db.refresh(order)
    assert order.current_assessment_id == a.id
    assert order.risk_level == "MEDIUM"
    assert order.risk_score == 3
    assert order.confirmation_stage == "CallInitiated"

def test_low_order_gets_short_call(db, make_order, fake_voice):
    order = make_order()
    a = assess_order(db, order.id)
    assert a.risk_level == "LOW"
    assert "script_type=short" in fake_voice.calls[0]["url"]

def test_blocked_customer_is_cancelled_without_call(db, make_customer, make_order, fake_voice):
    order = make_order(make_customer(status="Blocked"))
    a = assess_order(db, order.id)

    assert a.risk_level == "BLOCKED"
    assert a.is_blocked
    db.refresh(order)
    assert order.order_status == "Cancelled"
    assert "Auto-rejected" in order.internal_notes
    assert fake_voice.calls == []

def test_high_risk_goes_to_call_center(db, make_order, fake_voice, fake_queue):
    # bad postal code (+3) and three items (+2)
    order = make_order(items=(("Reloj", 3, 10.0),), shipping_postal_code="99999")
    a = assess_order(db, order.id)

    assert a.risk_level == "HIGH"
    assert a.action_taken == "call_center"
    assert a.forwarded_to_call_center
    assert a.action_result is None  # still waiting in the review queue
    assert a.call_intent_detected is None
    assert fake_voice.calls == []

    assert len(fake_queue.records) == 1
    rec = fake_queue.records[0]
    assert rec["order_number"] == order.order_number
    assert rec["priority"] == "URGENT"
    assert rec["item_count"] == 3

    db.refresh(order)
    assert order.confirmation_status == "Call Center"
    assert order.order_status == "Pending"

def test_high_risk_escalation_keeps_earlier_notes(db, make_order):
    order = make_order(items=(("Reloj", 3, 10.0),), shipping_postal_code="99999",
                       confirmation_notes="Customer asked for evening delivery")
    assess_order(db, order.id)

    db.refresh(order)
    first, second = order.confirmation_notes.splitlines()
    assert first == "Customer asked for evening delivery"
    assert second.startswith("Forwarded to call center: High risk score")

def test_missing_customer_is_validation_error(db, make_order):
    order = make_order()
    order.customer_id = None
    db.commit()
    with pytest.raises(ValidationFailed):
        assess_order(db, order.id)
    assert db.execute(select(RiskAssessment)).first() is None

def test_unknown_order(db):
    with pytest.raises(NotFoundError):
        assess_order(db, 4242)

def test_dispatch_failure_keeps_assessment(db, make_order, monkeypatch):
    def boom(db, order_id):
        raise RuntimeError("voice exploded")
    monkeypatch.setitem(dispatch.ROUTES, dispatch.RiskLevel.LOW, boom)

    order = make_order()
    a = assess_order(db, order.id)
    assert db.get(RiskAssessment, a.id) is not None
    db.refresh(order)
    assert order.current_assessment_id == a.id

def test_frequency_counts_other_recent_orders(db, make_customer, make_order):
    customer = make_customer()
    make_order(customer, order_date=utcnow() - timedelta(hours=3))
    order = make_order(customer)
    a = assess_order(db, order.id, dispatch=False)
    assert a.factors["frequency"] == 2
    assert a.recent_order_count == 1

def test_current_assessment_is_the_latest_run(db, make_order):
    order = make_order()
    first = assess_order(db, order.id, dispatch=False)
    second = assess_order(db, order.id, dispatch=False)
    assert second.id != first.id
    assert get_current_assessment_for_order(db, order.id).id == second.id

def test_current_assessment_missing(db, make_order):
    order = make_order()
    with pytest.raises(NotFoundError):
        get_current_assessment_for_order(db, order.id)

def test_review_approved_confirms_order(db, make_order):
    order = make_order(items=(("Reloj", 3, 10.0),), shipping_postal_code="99999")
    a = assess_order(db, order.id)

    reviewed = review_assessment(db, a.id, "approved", "called back, all good", "agent-7")
    assert reviewed.action_result == "approved"
    assert reviewed.reviewed_by == "agent-7"
    assert reviewed.reviewed_at is not None

    db.refresh(order)
    assert order.confirmation_status == "Confirmed"
    assert order.confirmed_at is not None

def test_review_rejected_cancels_order(db, make_order):
    order = make_order(items=(("Reloj", 3, 10.0),), shipping_postal_code="99999")
    a = assess_order(db, order.id)
    review_assessment(db, a.id, "rejected", "fake address")
    db.refresh(order)
    assert order.confirmation_status == "Declined"
    assert order.order_status == "Cancelled"

def test_review_prepayment_only_notes(db, make_order):
    order = make_order(items=(("Reloj", 3, 10.0),), shipping_postal_code="99999")
    a = assess_order(db, order.id)
    review_assessment(db, a.id, "prepayment", "asked for bank transfer")
    db.refresh(order)
    assert order.confirmation_status == "Call Center"
    assert "bank transfer" in order.notes

def test_review_unknown_assessment(db):
    with pytest.raises(NotFoundError):
        review_assessment(db, 999, "approved")

def test_call_center_queue_newest_first_and_unreviewed(db, make_order):
    risky = dict(items=(("Reloj", 3, 10.0),), shipping_postal_code="99999")
    a1 = assess_order(db, make_order(**risky).id)
    a2 = assess_order(db, make_order(**risky).id)
    assess_order(db, make_order().id)  # LOW, never queued
    review_assessment(db, a1.id, "approved")

    queue = call_center_queue(db)
    assert [a.id for a in queue] == [a2.id]
    assert queue[0].order.customer.name == "Lucia Perez"
    assert queue[0].order.items[0].product_name == "Reloj"

def test_orders_have_single_current_pointer(db, make_order):
    order = make_order()
    a = assess_order(db, order.id, dispatch=False)
    assert db.get(Order, order.id).current_assessment_id == a.id
