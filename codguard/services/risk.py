"""
Risk assessment runs: snapshot an order and its customer, score it, store
an append-only RiskAssessment row, point the order at it, then hand the
tier to the dispatcher.
"""
from datetime import timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import select, func
from sqlalchemy.orm import Session, selectinload

from ..models import Order, RiskAssessment, utcnow
from ..domain.states import ConfirmationStatus, OrderStatus, RiskLevel, TERMINAL_CONFIRMATIONS, is_allowed
from ..errors import NotFoundError, ValidationFailed
from ..utils.logging import logger
from .dispatch import dispatch_risk_action
from .orders import get_order, get_current_assessment, update_order_fields, append_note
from .scoring import compute_risk, FREQUENCY_WINDOW_DAYS, FREQUENCY_RECENT_HOURS

AUTO_REJECT_NOTE = "Auto-rejected due to BLOCKED customer/risk policy."

def _recent_orders(db: Session, order: Order, since) -> int:
    return db.execute(
        select(func.count(Order.id)).where(
            Order.customer_id == order.customer_id,
            Order.id != order.id,
            Order.order_date >= since,
        )
    ).scalar_one()

def build_snapshot(db: Session, order: Order) -> Dict[str, Any]:
    customer = order.customer
    now = utcnow()
    return {
        "customer_status": customer.status,
        "customer_is_blocked": customer.is_blocked,
        "total_items": order.total_items,
        "total_amount": order.total_amount,
        "recent_orders_7d": _recent_orders(db, order, now - timedelta(days=FREQUENCY_WINDOW_DAYS)),
        "recent_orders_12h": _recent_orders(db, order, now - timedelta(hours=FREQUENCY_RECENT_HOURS)),
        "successful_deliveries": customer.successful_deliveries or 0,
        "orders_count": customer.orders_count or 0,
        "postal_code": order.shipping_postal_code,
        "address_line": order.shipping_address_line1,
        "country": order.shipping_country,
    }

def assess_order(db: Session, order_id: int, dispatch: bool = True) -> RiskAssessment:
    order = get_order(db, order_id, with_items=True)
    if order.customer is None:
        raise ValidationFailed(f"Order {order.order_number} has no customer")

    result = compute_risk(build_snapshot(db, order))
    level: RiskLevel = result["risk_level"]

    assessment = RiskAssessment(
        order_id=order.id,
        customer_id=order.customer_id,
        total_score=result["total_score"],
        risk_level=level.value,
        action=result["action"].value,
        factors=result["factors"],
        city_zip_match=result["city_zip_match"],
        has_house_number=result["has_house_number"],
        address_verified=result["address_verified"],
        is_first_order=result["is_first_order"],
        is_blocked=result["is_blocked"],
        recent_order_count=result["recent_order_count"],
    )
    db.add(assessment)
    db.flush()

    fields: Dict[str, Any] = dict(
        risk_score=assessment.total_score,
        risk_level=assessment.risk_level,
        risk_action=assessment.action,
        risk_assessed_at=utcnow(),
        current_assessment_id=assessment.id,
    )
    if level is RiskLevel.BLOCKED:
        if is_allowed("order_status", order.order_status, OrderStatus.CANCELLED):
            fields["order_status"] = OrderStatus.CANCELLED
            fields["internal_notes"] = append_note(order.internal_notes, AUTO_REJECT_NOTE)
            assessment.action_taken = "auto_reject"
            assessment.action_result = "rejected"
        else:
            logger.warning("Order %s is %s; BLOCKED but not cancelled", order_id, order.order_status)
    update_order_fields(db, order.id, **fields)
    db.commit()

    logger.info("Order %s: risk score %s -> %s (%s) factors=%s",
                order.order_number, assessment.total_score, assessment.risk_level,
                assessment.action, assessment.factors)

    if dispatch:
        dispatch_risk_action(db, order.id, level)
        db.refresh(assessment)
    return assessment

def get_current_assessment_for_order(db: Session, order_id: int) -> RiskAssessment:
    assessment = get_current_assessment(db, get_order(db, order_id))
    if assessment is None:
        raise NotFoundError("assessment for order", order_id)
    return assessment

# review decision -> confirmation outcome
REVIEW_OUTCOMES = {
    "approved": ConfirmationStatus.CONFIRMED,
    "rejected": ConfirmationStatus.DECLINED,
}

def review_assessment(db: Session, assessment_id: int, action_result: str,
                      review_notes: Optional[str] = None, reviewer_id: Optional[str] = None) -> RiskAssessment:
    assessment = db.get(RiskAssessment, assessment_id)
    if assessment is None:
        raise NotFoundError("assessment", assessment_id)

    assessment.action_result = action_result
    assessment.review_notes = review_notes
    assessment.reviewed_by = reviewer_id
    assessment.reviewed_at = utcnow()

    order = db.get(Order, assessment.order_id)
    target = REVIEW_OUTCOMES.get(action_result)
    if order is not None and target is not None:
        if ConfirmationStatus(order.confirmation_status) in TERMINAL_CONFIRMATIONS:
            logger.warning("Order %s already %s; review %s recorded only",
                           order.id, order.confirmation_status, action_result)
        else:
            fields: Dict[str, Any] = {
                "confirmation_status": target,
                "confirmation_notes": append_note(
                    order.confirmation_notes, f"Reviewed by {reviewer_id or 'call center'}: {action_result}"),
            }
            if target is ConfirmationStatus.CONFIRMED:
                fields["confirmed_at"] = utcnow()
            elif is_allowed("order_status", order.order_status, OrderStatus.CANCELLED):
                fields["order_status"] = OrderStatus.CANCELLED
            update_order_fields(db, order.id, **fields)
    elif order is not None and review_notes:
        update_order_fields(db, order.id, notes=append_note(order.notes, review_notes))
    db.commit()
    db.refresh(assessment)
    logger.info("Assessment %s reviewed by %s: %s", assessment_id, reviewer_id, action_result)
    return assessment

def call_center_queue(db: Session) -> List[RiskAssessment]:
    return list(db.execute(
        select(RiskAssessment)
        .where(RiskAssessment.risk_level == RiskLevel.HIGH.value, RiskAssessment.action_result.is_(None))
        .options(selectinload(RiskAssessment.order).selectinload(Order.customer),
                 selectinload(RiskAssessment.order).selectinload(Order.items))
        .order_by(RiskAssessment.created_at.desc(), RiskAssessment.id.desc())
    ).scalars())
