"""
Carrier tracking webhooks.

Each accepted item is matched to an order by tracking number, recorded in
``tracking_history`` and then run through the first matching status rule.
Replaying a payload appends another history row and re-sends the
in-transit notification; there is no event id to dedupe on.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from ..config import settings
from ..models import Order, TrackingHistory, utcnow
from ..domain.states import OrderStatus, ShippingStatus
from ..errors import CodGuardError, IntegrationError
from ..integrations.messaging import send_templated
from ..rules.address import notification_language
from ..utils.logging import logger
from .orders import append_note, find_order_by_tracking, get_order, increment_successful_deliveries, update_order_fields
from .scheduler import schedule_task, task_handler

TRACKING_EVENT = "TRACKING_UPDATED"
IN_TRANSIT_SUBSTATUS = "InTransit_Arrival"
FOLLOWUP_TASK = "in_transit_followup"
DEFAULT_RETURN_REASON = "Returned to sender by carrier"
TRACKING_URL = "https://t.17track.net/en#nums={}"

@dataclass
class TrackingEvent:
    tracking_number: str
    status: str
    substatus: Optional[str] = None
    description: Optional[str] = None
    location: Optional[str] = None
    status_date: datetime = field(default_factory=utcnow)
    carrier_code: Optional[str] = None
    carrier_name: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)

def _parse_time(value: Optional[str]) -> datetime:
    if not value:
        return utcnow()
    try:
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        logger.warning("Unparseable carrier timestamp %r; using now", value)
        return utcnow()
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt

def parse_tracking_item(item: Dict[str, Any]) -> TrackingEvent:
    info = item.get("track_info") or {}
    latest = info.get("latest_status") or {}
    event = info.get("latest_event") or {}
    provider = ((info.get("latest_provider") or {}).get("provider")
                or (info.get("provider") or {}).get("provider")
                or {})
    key = provider.get("key")
    return TrackingEvent(
        tracking_number=str(item.get("number") or ""),
        status=latest.get("status") or "Unknown",
        substatus=latest.get("sub_status") or None,
        description=event.get("description") or None,
        location=event.get("location") or None,
        status_date=_parse_time(event.get("time_utc")),
        carrier_code=str(key) if key is not None else None,
        carrier_name=provider.get("name") or provider.get("alias") or None,
        raw=item,
    )

def handle_carrier_webhook(db: Session, payload: Dict[str, Any]) -> int:
    """Process one webhook batch. Returns how many items matched an order."""
    event = (payload or {}).get("event")
    accepted = ((payload or {}).get("data") or {}).get("accepted") or []
    if event != TRACKING_EVENT:
        logger.info("Ignoring carrier event %r", event)
        return 0

    processed = 0
    for item in accepted:
        try:
            if process_tracking_item(db, parse_tracking_item(item)):
                processed += 1
        except Exception:
            db.rollback()
            number = item.get("number") if isinstance(item, dict) else None
            logger.exception("Failed to process tracking item %s", number)
    return processed

def _notify_in_transit(db: Session, order: Order, tracking_number: str) -> None:
    customer = order.customer
    if customer is None or not customer.phone:
        logger.warning("Order %s: no customer phone; in-transit SMS skipped", order.order_number)
        return
    lang = notification_language(order.shipping_country)
    try:
        send_templated(
            db, "sms", customer.phone, f"sms_in_transit_{lang}",
            [customer.name or "Customer", order.order_number, TRACKING_URL.format(tracking_number),
             order.store_name or settings.DEFAULT_STORE_NAME],
            order_id=order.id, customer_id=customer.id,
        )
    except CodGuardError:
        logger.exception("Failed to send in-transit SMS for order %s", order.order_number)

def process_tracking_item(db: Session, ev: TrackingEvent) -> bool:
    logger.info("Processing %s, Status: %s/%s", ev.tracking_number, ev.status, ev.substatus)

    order = find_order_by_tracking(db, ev.tracking_number) if ev.tracking_number else None
    if order is None:
        logger.warning("Order not found for tracking number: %s", ev.tracking_number)
        return False

    db.add(TrackingHistory(
        order_id=order.id,
        tracking_number=ev.tracking_number,
        carrier_code=ev.carrier_code,
        carrier_name=ev.carrier_name,
        status=ev.status,
        substatus=ev.substatus,
        description=ev.description,
        location=ev.location,
        status_date=ev.status_date,
        raw_data=ev.raw,
    ))
    if not order.courier and ev.carrier_name:
        update_order_fields(db, order.id, courier=ev.carrier_name)
    db.commit()

    sub = ev.substatus or ""
    if sub == IN_TRANSIT_SUBSTATUS:
        update_order_fields(db, order.id, shipping_status=ShippingStatus.IN_TRANSIT,
                            order_status=OrderStatus.IN_TRANSIT)
        db.commit()
        logger.info("Updated Order %s shipping status to 'In Transit'", order.order_number)
        _notify_in_transit(db, order, ev.tracking_number)
        schedule_task(db, FOLLOWUP_TASK, {"order_id": order.id},
                      delay_seconds=settings.IN_TRANSIT_FOLLOWUP_DELAY_SECONDS)

    elif sub.lower().startswith("delivered"):
        was_delivered = order.shipping_status == ShippingStatus.DELIVERED.value
        update_order_fields(db, order.id, shipping_status=ShippingStatus.DELIVERED,
                            order_status=OrderStatus.DELIVERED, delivered_date=ev.status_date)
        if not was_delivered and order.customer_id:
            increment_successful_deliveries(db, order.customer_id)
        db.commit()
        logger.info("Updated Order %s to 'Delivered' (sub_status: %s)", order.order_number, sub)

    elif ev.status == "Returned":
        update_order_fields(db, order.id, shipping_status=ShippingStatus.RETURNED,
                            order_status=OrderStatus.RETURNED, return_initiated_date=ev.status_date,
                            return_reason=ev.description or DEFAULT_RETURN_REASON)
        db.commit()
        logger.info("Updated Order %s to 'Returned'", order.order_number)

    elif ev.status in ("Undelivered", "DeliveryFailure"):
        update_order_fields(db, order.id, shipping_status=ShippingStatus.UNDELIVERED,
                            order_status=OrderStatus.EXCEPTION,
                            notes=append_note(order.notes, f"[Tracking] Undelivered: {ev.description}"))
        db.commit()
        logger.info("Updated Order %s to 'Undelivered'", order.order_number)

    elif ev.status == "Exception":
        update_order_fields(db, order.id, shipping_status=ShippingStatus.EXCEPTION,
                            order_status=OrderStatus.EXCEPTION,
                            notes=append_note(order.notes, f"[Tracking] Exception: {ev.description}"))
        db.commit()
        logger.info("Updated Order %s to 'Exception'", order.order_number)

    return True

@task_handler(FOLLOWUP_TASK)
def send_in_transit_followup(db: Session, payload: dict) -> Optional[int]:
    """Delayed chat message with the order details and the amount to pay on delivery."""
    order = get_order(db, int(payload["order_id"]), with_items=True)
    if order.shipping_status != ShippingStatus.IN_TRANSIT.value:
        logger.info("Order %s is %s now; in-transit follow-up skipped", order.order_number, order.shipping_status)
        return None
    customer = order.customer
    if customer is None or not customer.phone:
        logger.warning("Order %s: no customer phone; follow-up skipped", order.order_number)
        return None

    lang = notification_language(order.shipping_country)
    items = "\n".join(f"- {i.quantity}x {i.product_name}" for i in order.items)
    amount = f"{order.total_amount:.2f} {order.currency}"
    try:
        log = send_templated(
            db, "chat", customer.phone, f"chat_in_transit_{lang}",
            [customer.name or "Customer", order.order_number, items,
             order.store_name or settings.DEFAULT_STORE_NAME, amount],
            order_id=order.id, customer_id=customer.id,
        )
    except IntegrationError:
        logger.exception("Failed to send delayed chat notification for order %s", order.order_number)
        return None
    logger.info("Delayed chat notification sent for order %s", order.order_number)
    return log.id
