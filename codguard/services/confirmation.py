"""
Automated order confirmation over voice calls.

One conversation per order. Unanswered calls are retried on a fixed backoff;
an unclear answer or an exhausted retry budget hands the order to the call
center.

The attempt counter is always recounted from ``call_logs``; nothing about
the conversation is cached in memory between requests.
"""
import time
from typing import Optional, Tuple
from urllib.parse import urlencode

from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..config import settings
from ..models import Order, CallLog, ScheduledTask, utcnow
from ..domain.states import (
    CallIntent, ConfirmationStage, ConfirmationStatus, OrderStatus, ScriptType,
    TERMINAL_CONFIRMATIONS, is_allowed,
)
from ..errors import IntegrationError, InvalidTransition, NotFoundError
from ..integrations.voice import get_voice_client
from ..rules.address import voice_language, format_address
from ..utils.logging import logger
from .escalation import escalate_to_call_center
from .intent import classify_intent
from .orders import get_order, get_current_assessment, update_order_fields
from .scheduler import schedule_task, task_handler

RETRYABLE_STATUSES = frozenset({"no-answer", "busy", "failed", "canceled"})
PLACEHOLDER_PHONES = frozenset({"", "0000000000"})
CALL_TASK = "confirmation_call"

# ---------- callback URLs ----------
def _base_url() -> str:
    return settings.APP_BASE_URL.rstrip("/")

def script_url(order_id: int, script_type: str, language: str) -> str:
    q = urlencode({"order_id": order_id, "script_type": script_type, "language": language})
    return f"{_base_url()}/voice/call-script?{q}"

def response_url(order_id: int, script_type: str) -> str:
    q = urlencode({"order_id": order_id, "script_type": script_type})
    return f"{_base_url()}/voice/process-response?{q}"

def status_url(order_id: int) -> str:
    return f"{_base_url()}/voice/call-status?{urlencode({'order_id': order_id})}"

# ---------- helpers ----------
def count_attempts(db: Session, order_id: int) -> int:
    return db.execute(select(func.count(CallLog.id)).where(CallLog.order_id == order_id)).scalar_one()

def retry_delay_minutes(attempts_used: int) -> int:
    delays = settings.CALL_RETRY_DELAYS_MINUTES
    return delays[min(attempts_used, len(delays) - 1)]

def _advance_stage(db: Session, order_id: int, stage: ConfirmationStage) -> bool:
    try:
        update_order_fields(db, order_id, confirmation_stage=stage)
    except InvalidTransition as e:
        logger.warning("Order %s: %s", order_id, e)
        return False
    return True

def script_context(order: Order) -> dict:
    return {
        "store_name": order.store_name or settings.DEFAULT_STORE_NAME,
        "order_number": order.order_number,
        "total_items": order.total_items,
        "total_amount": order.total_amount or 0,
        "products": ", ".join(i.product_name for i in order.items),
        "address": format_address(order.shipping_address_line1, order.shipping_city,
                                  order.shipping_province, order.shipping_postal_code),
    }

# ---------- call placement ----------
def initiate_confirmation_call(db: Session, order_id: int, script_type: str) -> Optional[str]:
    """Place the next call attempt. Returns the provider call id, or None when no call was made."""
    st = ScriptType(script_type)
    order = get_order(db, order_id, with_items=True)

    if order.customer is None:
        logger.error("Order %s has no customer. Cannot call.", order_id)
        return None

    if (ConfirmationStatus(order.confirmation_status) in TERMINAL_CONFIRMATIONS
            or order.confirmation_stage == ConfirmationStage.ESCALATED.value):
        logger.info("Order %s already %s; no call placed.", order_id, order.confirmation_status)
        return None

    phone = (order.customer.phone or "").strip()
    if phone in PLACEHOLDER_PHONES:
        logger.warning("Order %s: Customer has no valid phone number. Forwarding to call center.", order_id)
        escalate_to_call_center(db, order_id, "No valid phone number", after_call=False)
        return None

    voice = get_voice_client()
    if not voice.configured:
        logger.warning("Voice provider not configured. Skipping call for order %s.", order_id)
        return None

    language = voice_language(order.shipping_country)
    max_attempts = settings.CALL_MAX_ATTEMPTS
    attempt = count_attempts(db, order_id) + 1
    if attempt > max_attempts:
        logger.info("Order %s: Max call attempts (%s) reached. Forwarding to call center.", order_id, max_attempts)
        escalate_to_call_center(db, order_id, f"{max_attempts} failed call attempts")
        return None

    # reserve the attempt slot before dialing
    log = CallLog(
        order_id=order_id,
        attempt_number=attempt,
        call_status="queued",
        script_type=st.value,
        script_language=language,
    )
    db.add(log)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        logger.warning("Order %s: attempt %s already taken by a concurrent call", order_id, attempt)
        return None

    try:
        sid = voice.place_call(phone, script_url(order_id, st.value, language), status_url(order_id))
    except IntegrationError as e:
        logger.error("Order %s: Failed to initiate call: %s", order_id, e)
        log.call_sid = f"FAILED-{int(time.time() * 1000)}"
        log.call_status = "failed"
        log.completed_at = utcnow()
        db.commit()
        _advance_stage(db, order_id, ConfirmationStage.NO_ANSWER)
        db.commit()
        if attempt >= max_attempts:
            escalate_to_call_center(db, order_id, f"Call initiation failed: {e}")
        else:
            schedule_retry_call(db, order_id, st.value)
        return None

    log.call_sid = sid
    log.call_status = "initiated"
    _advance_stage(db, order_id, ConfirmationStage.CALL_INITIATED)

    assessment = get_current_assessment(db, order)
    if assessment is not None:
        assessment.call_attempts = attempt
        assessment.last_call_attempt_at = utcnow()
        assessment.call_sids = list(assessment.call_sids or []) + [sid]
        assessment.action_taken = f"voice_{st.value}"
    db.commit()

    logger.info("Order %s: Call initiated (attempt %s, SID: %s, lang: %s)", order_id, attempt, sid, language)
    return sid

# ---------- retries ----------
def schedule_retry_call(db: Session, order_id: int, script_type: str) -> Optional[ScheduledTask]:
    """
    Schedule the next attempt on the backoff ladder, or escalate when every
    attempt is used. The count is read here, and again when the job fires.
    """
    used = count_attempts(db, order_id)
    max_attempts = settings.CALL_MAX_ATTEMPTS
    if used >= max_attempts:
        logger.info("Order %s: No more retries. Forwarding to call center.", order_id)
        escalate_to_call_center(db, order_id, f"{max_attempts} failed call attempts")
        return None

    delay = retry_delay_minutes(used)
    next_attempt = used + 1
    _advance_stage(db, order_id, ConfirmationStage.RETRY_SCHEDULED)
    db.commit()

    logger.info("Order %s: Scheduling retry in %s minutes (attempt %s/%s).",
                order_id, delay, next_attempt, max_attempts)
    return schedule_task(
        db,
        CALL_TASK,
        {"order_id": order_id, "script_type": script_type, "attempt": next_attempt, "delay_minutes": delay},
        delay_seconds=delay * 60,
        dedupe_key=f"{CALL_TASK}:{order_id}:{next_attempt}",
    )

@task_handler(CALL_TASK)
def run_scheduled_call(db: Session, payload: dict) -> Optional[str]:
    order_id = int(payload["order_id"])
    expected = payload.get("attempt")
    if expected is not None and count_attempts(db, order_id) + 1 != int(expected):
        logger.info("Order %s: attempt slot %s already used; dropping stale retry", order_id, expected)
        return None
    return initiate_confirmation_call(db, order_id, payload.get("script_type") or ScriptType.SHORT.value)

# ---------- provider callbacks ----------
def _record_outcome(db: Session, order: Order, result: str, transcription: Optional[str],
                    confidence: Optional[float], intent: CallIntent) -> None:
    assessment = get_current_assessment(db, order)
    if assessment is None:
        return
    assessment.action_result = result
    assessment.call_transcription = transcription or None
    assessment.call_confidence = confidence
    assessment.call_intent_detected = intent.value

def handle_call_response(db: Session, order_id: int, script_type: str, speech: Optional[str],
                         digits: Optional[str], confidence: Optional[float]) -> Tuple[CallIntent, str]:
    """Apply the customer's answer. Returns (intent, language) for the spoken reply."""
    speech = (speech or "").lower()
    digits = digits or ""
    intent = classify_intent(digits, speech, confidence, settings.LOW_CONFIDENCE_THRESHOLD)
    logger.info('Order %s: Response received: speech="%s", digits="%s", confidence=%s -> %s',
                order_id, speech, digits, confidence, intent.value)

    order = db.get(Order, order_id)
    if order is None:
        raise NotFoundError("order", order_id)
    language = voice_language(order.shipping_country)

    latest = db.execute(
        select(CallLog).where(CallLog.order_id == order_id)
        .order_by(CallLog.attempt_number.desc()).limit(1)
    ).scalar_one_or_none()
    if latest is not None:
        latest.speech_result = speech or None
        latest.speech_confidence = confidence
        latest.dtmf_input = digits or None
        latest.intent_detected = intent.value
        latest.completed_at = utcnow()
    db.commit()

    if ConfirmationStatus(order.confirmation_status) in TERMINAL_CONFIRMATIONS:
        logger.warning("Order %s already %s; ignoring %s response", order_id, order.confirmation_status, intent.value)
        return intent, language

    if intent is CallIntent.CONFIRMED:
        fields = dict(
            confirmation_status=ConfirmationStatus.CONFIRMED,
            confirmed_at=utcnow(),
            confirmation_notes=(f"Auto-confirmed via voice call ({script_type}). "
                                f'Speech: "{speech or "DTMF-1"}", confidence: {confidence}'),
        )
        if is_allowed("confirmation_stage", order.confirmation_stage, ConfirmationStage.CONFIRMED):
            fields["confirmation_stage"] = ConfirmationStage.CONFIRMED
        update_order_fields(db, order_id, **fields)
        _record_outcome(db, order, "confirmed", speech, confidence, intent)
        db.commit()
        logger.info("Order %s: CONFIRMED via voice call.", order_id)

    elif intent is CallIntent.CANCELLED:
        fields = dict(
            confirmation_status=ConfirmationStatus.DECLINED,
            confirmation_notes=f'Customer declined via voice call ({script_type}). Speech: "{speech or "DTMF-2"}"',
        )
        if is_allowed("confirmation_stage", order.confirmation_stage, ConfirmationStage.DECLINED):
            fields["confirmation_stage"] = ConfirmationStage.DECLINED
        if is_allowed("order_status", order.order_status, OrderStatus.CANCELLED):
            fields["order_status"] = OrderStatus.CANCELLED
        else:
            logger.warning("Order %s is %s; declined but not cancelled", order_id, order.order_status)
        update_order_fields(db, order_id, **fields)
        _record_outcome(db, order, "cancelled", speech, confidence, intent)
        db.commit()
        logger.info("Order %s: CANCELLED via voice call.", order_id)

    else:
        _advance_stage(db, order_id, ConfirmationStage.UNCLEAR)
        db.commit()
        escalate_to_call_center(db, order_id, "Unclear speech response", speech or None, confidence)
        logger.info("Order %s: UNCLEAR response, forwarded to call center.", order_id)

    return intent, language

def handle_call_status(db: Session, order_id: int, call_sid: Optional[str], call_status: Optional[str],
                       call_duration: Optional[str] = None) -> Optional[ScheduledTask]:
    logger.info("Order %s: Call status update: %s (SID: %s, Duration: %ss)",
                order_id, call_status, call_sid, call_duration)

    log = None
    if call_sid:
        log = db.execute(
            select(CallLog).where(CallLog.order_id == order_id, CallLog.call_sid == call_sid)
        ).scalar_one_or_none()
    if log is not None:
        log.call_status = call_status or log.call_status
        log.call_duration = int(call_duration) if call_duration and str(call_duration).isdigit() else None
        log.completed_at = utcnow()
    db.commit()

    if call_status not in RETRYABLE_STATUSES:
        return None

    order = db.get(Order, order_id)
    if order is None:
        raise NotFoundError("order", order_id)
    if ConfirmationStatus(order.confirmation_status) in TERMINAL_CONFIRMATIONS:
        return None
    if not _advance_stage(db, order_id, ConfirmationStage.NO_ANSWER):
        return None
    db.commit()

    script_type = log.script_type if log is not None else ScriptType.SHORT.value
    return schedule_retry_call(db, order_id, script_type)
