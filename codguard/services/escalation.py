# codguard/services/escalation.py
from typing import Any, Dict, Optional
from sqlalchemy.orm import Session

from ..models import Order, utcnow
from ..domain.states import ConfirmationStatus, ConfirmationStage, TERMINAL_CONFIRMATIONS, is_allowed
from ..errors import IntegrationError
from ..integrations.call_center import get_call_center_queue
from ..rules.address import format_address
from ..utils.logging import logger
from .orders import append_note, get_order, get_current_assessment, update_order_fields

PRIORITY_URGENT = "URGENT"

def build_queue_record(order: Order, reason: str, priority: str = PRIORITY_URGENT) -> Dict[str, Any]:
    customer = order.customer
    return {
        "order_id": order.id,
        "order_number": order.order_number,
        "customer_name": customer.name if customer else None,
        "phone": customer.phone if customer else None,
        "address": format_address(order.shipping_address_line1, order.shipping_city,
                                  order.shipping_province, order.shipping_postal_code),
        "item_count": order.total_items,
        "amount": order.total_amount,
        "reason": reason,
        "priority": priority,
        "created_at": utcnow().isoformat(timespec="seconds"),
    }

def push_to_call_center(order: Order, reason: str, priority: str = PRIORITY_URGENT) -> bool:
    """Queue failures are logged, never raised: the order state is already updated."""
    try:
        return bool(get_call_center_queue().push(build_queue_record(order, reason, priority)))
    except IntegrationError:
        logger.exception("Order %s: could not push to call-center queue", order.order_number)
        return False

def escalate_to_call_center(
    db: Session,
    order_id: int,
    reason: str,
    transcription: Optional[str] = None,
    confidence: Optional[float] = None,
    record_result: bool = True,
    priority: str = PRIORITY_URGENT,
    after_call: bool = True,
) -> bool:
    """
    Hand an order to human review. The reason lands on the current assessment
    and confirmation moves to "Call Center"; fulfillment status is left alone.
    ``after_call`` is False when no call was ever placed (risk tier, bad phone),
    in which case no call intent is recorded. Returns False when the order was
    already resolved.
    """
    order = get_order(db, order_id, with_items=True)
    if ConfirmationStatus(order.confirmation_status) in TERMINAL_CONFIRMATIONS:
        logger.info("Order %s already %s; not escalating (%s)", order_id, order.confirmation_status, reason)
        return False

    logger.info("Order %s: Forwarding to call center. Reason: %s", order_id, reason)

    assessment = get_current_assessment(db, order)
    if assessment is not None:
        assessment.forwarded_to_call_center = True
        if record_result:
            assessment.action_result = "forwarded_to_call_center"
        assessment.review_notes = (
            f'Speech unclear: "{transcription}" (confidence: {confidence}). {reason}'
            if transcription else reason
        )
        if transcription:
            assessment.call_transcription = transcription
        if confidence is not None:
            assessment.call_confidence = confidence
        if after_call:
            assessment.call_intent_detected = "FORWARDED"

    fields: Dict[str, Any] = {
        "confirmation_notes": append_note(order.confirmation_notes, f"Forwarded to call center: {reason}"),
    }
    fields["confirmation_status"] = ConfirmationStatus.CALL_CENTER
    if is_allowed("confirmation_stage", order.confirmation_stage, ConfirmationStage.ESCALATED):
        fields["confirmation_stage"] = ConfirmationStage.ESCALATED
    update_order_fields(db, order_id, **fields)
    db.commit()

    push_to_call_center(order, reason, priority)
    return True
