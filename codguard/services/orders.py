# codguard/services/orders.py
from typing import Optional, Dict, Any
from sqlalchemy import select, update
from sqlalchemy.orm import Session, selectinload

from ..models import Order, Customer, RiskAssessment
from ..errors import NotFoundError, CodGuardError
from ..domain.states import TABLES, ensure_transition

MAX_CAS_ATTEMPTS = 3

class StaleOrderState(CodGuardError):
    """Another writer kept changing the same status fields."""

def get_order(db: Session, order_id: int, with_items: bool = False) -> Order:
    stmt = select(Order).where(Order.id == order_id)
    if with_items:
        stmt = stmt.options(selectinload(Order.items), selectinload(Order.customer))
    order = db.execute(stmt).scalar_one_or_none()
    if order is None:
        raise NotFoundError("order", order_id)
    return order

def find_order_by_tracking(db: Session, tracking_number: str) -> Optional[Order]:
    return db.execute(
        select(Order).where(Order.tracking_number == tracking_number).order_by(Order.id).limit(1)
    ).scalar_one_or_none()

def append_note(existing: Optional[str], line: str) -> str:
    return f"{existing}\n{line}" if existing else line

def update_order_fields(db: Session, order_id: int, **fields: Any) -> Dict[str, Any]:
    """
    Field-scoped write to one order. Status fields are validated against the
    transition tables and written compare-and-set, so two components updating
    different fields of the same order never clobber each other.
    """
    status_fields = [f for f in fields if f in TABLES]
    values = dict(fields)

    for _ in range(MAX_CAS_ATTEMPTS):
        current: Dict[str, Any] = {}
        if status_fields:
            row = db.execute(
                select(*(getattr(Order, f) for f in status_fields)).where(Order.id == order_id)
            ).one_or_none()
            if row is None:
                raise NotFoundError("order", order_id)
            current = dict(zip(status_fields, row))
            for f in status_fields:
                values[f] = ensure_transition(f, current[f], fields[f]).value

        stmt = update(Order).where(Order.id == order_id)
        for f, v in current.items():
            stmt = stmt.where(getattr(Order, f) == v)
        result = db.execute(stmt.values(**values).execution_options(synchronize_session="evaluate"))
        if result.rowcount:
            return values
        if not status_fields:
            raise NotFoundError("order", order_id)
    raise StaleOrderState(f"order {order_id}: status changed concurrently, gave up")

def increment_successful_deliveries(db: Session, customer_id: int) -> None:
    db.execute(
        update(Customer)
        .where(Customer.id == customer_id)
        .values(successful_deliveries=Customer.successful_deliveries + 1)
        .execution_options(synchronize_session=False)
    )

def get_current_assessment(db: Session, order: Order):
    """The assessment the order points at; falls back to newest-by-time for legacy rows."""
    if order.current_assessment_id is not None:
        return db.get(RiskAssessment, order.current_assessment_id)
    return db.execute(
        select(RiskAssessment)
        .where(RiskAssessment.order_id == order.id)
        .order_by(RiskAssessment.created_at.desc(), RiskAssessment.id.desc())
        .limit(1)
    ).scalar_one_or_none()
