from __future__ import annotations
from datetime import datetime, timezone
from typing import Optional, List, Any
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import (
    String, Integer, DateTime, JSON, UniqueConstraint, Float, Boolean, Text, ForeignKey, Index
)
from .database import Base
from .domain.states import (
    OrderStatus, ShippingStatus, ConfirmationStatus, ConfirmationStage,
)

def utcnow() -> datetime:
    # naive UTC everywhere so Postgres and SQLite compare the same way
    return datetime.now(timezone.utc).replace(tzinfo=None)

# ----------------------------
# Customers (owned by the CRM side, read here)
# ----------------------------
class Customer(Base):
    __tablename__ = "customers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[Optional[str]] = mapped_column(String(256))
    phone: Mapped[Optional[str]] = mapped_column(String(32), index=True)
    email: Mapped[Optional[str]] = mapped_column(String(256))
    country: Mapped[Optional[str]] = mapped_column(String(64))
    status: Mapped[str] = mapped_column(String(32), default="Active")   # Active|Blocked
    is_blocked: Mapped[bool] = mapped_column(Boolean, default=False)
    orders_count: Mapped[int] = mapped_column(Integer, default=0)
    successful_deliveries: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    orders: Mapped[List["Order"]] = relationship(back_populates="customer")

# ----------------------------
# Orders + line items
# ----------------------------
class Order(Base):
    __tablename__ = "orders"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    order_number: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    customer_id: Mapped[Optional[int]] = mapped_column(ForeignKey("customers.id"), index=True)
    store_name: Mapped[Optional[str]] = mapped_column(String(128))
    order_date: Mapped[datetime] = mapped_column(DateTime, default=utcnow, index=True)
    total_amount: Mapped[float] = mapped_column(Float, default=0.0)
    currency: Mapped[str] = mapped_column(String(8), default="EUR")
    payment_type: Mapped[str] = mapped_column(String(32), default="COD")

    shipping_address_line1: Mapped[Optional[str]] = mapped_column(String(256))
    shipping_city: Mapped[Optional[str]] = mapped_column(String(128))
    shipping_province: Mapped[Optional[str]] = mapped_column(String(128))
    shipping_postal_code: Mapped[Optional[str]] = mapped_column(String(16))
    shipping_country: Mapped[Optional[str]] = mapped_column(String(64))

    order_status: Mapped[str] = mapped_column(String(32), default=OrderStatus.PENDING.value)
    shipping_status: Mapped[str] = mapped_column(String(32), default=ShippingStatus.NOT_SHIPPED.value)
    confirmation_status: Mapped[str] = mapped_column(String(32), default=ConfirmationStatus.PENDING.value)
    confirmation_stage: Mapped[str] = mapped_column(String(32), default=ConfirmationStage.NOT_STARTED.value)
    confirmation_notes: Mapped[Optional[str]] = mapped_column(Text)
    confirmed_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    risk_score: Mapped[Optional[int]] = mapped_column(Integer)
    risk_level: Mapped[Optional[str]] = mapped_column(String(16))
    risk_action: Mapped[Optional[str]] = mapped_column(String(32))
    risk_assessed_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    current_assessment_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("risk_assessments.id", use_alter=True, name="fk_orders_current_assessment")
    )

    tracking_number: Mapped[Optional[str]] = mapped_column(String(64), index=True)
    courier: Mapped[Optional[str]] = mapped_column(String(128))
    delivered_date: Mapped[Optional[datetime]] = mapped_column(DateTime)
    return_initiated_date: Mapped[Optional[datetime]] = mapped_column(DateTime)
    return_reason: Mapped[Optional[str]] = mapped_column(Text)
    notes: Mapped[Optional[str]] = mapped_column(Text)
    internal_notes: Mapped[Optional[str]] = mapped_column(Text)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)

    customer: Mapped[Optional[Customer]] = relationship(back_populates="orders")
    items: Mapped[List["OrderItem"]] = relationship(back_populates="order", cascade="all, delete-orphan")

    @property
    def total_items(self) -> int:
        return sum(i.quantity or 0 for i in self.items)

class OrderItem(Base):
    __tablename__ = "order_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    order_id: Mapped[int] = mapped_column(ForeignKey("orders.id"), index=True)
    product_id: Mapped[Optional[str]] = mapped_column(String(64))
    product_name: Mapped[str] = mapped_column(String(256))
    sku: Mapped[Optional[str]] = mapped_column(String(64))
    quantity: Mapped[int] = mapped_column(Integer, default=1)
    unit_price: Mapped[float] = mapped_column(Float, default=0.0)

    order: Mapped[Order] = relationship(back_populates="items")

# ----------------------------
# Risk assessments (append-only, one row per run)
# ----------------------------
class RiskAssessment(Base):
    __tablename__ = "risk_assessments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    order_id: Mapped[int] = mapped_column(ForeignKey("orders.id"), index=True)
    customer_id: Mapped[int] = mapped_column(ForeignKey("customers.id"))
    total_score: Mapped[int] = mapped_column(Integer)
    risk_level: Mapped[str] = mapped_column(String(16), index=True)  # LOW|MEDIUM|HIGH|BLOCKED
    action: Mapped[str] = mapped_column(String(32))
    factors: Mapped[dict] = mapped_column(JSON)                       # factor name -> points
    city_zip_match: Mapped[bool] = mapped_column(Boolean, default=True)
    has_house_number: Mapped[bool] = mapped_column(Boolean, default=False)
    address_verified: Mapped[bool] = mapped_column(Boolean, default=False)
    is_first_order: Mapped[bool] = mapped_column(Boolean, default=False)
    is_blocked: Mapped[bool] = mapped_column(Boolean, default=False)
    recent_order_count: Mapped[int] = mapped_column(Integer, default=0)

    # review / outcome
    action_taken: Mapped[Optional[str]] = mapped_column(String(32))
    action_result: Mapped[Optional[str]] = mapped_column(String(64))
    review_notes: Mapped[Optional[str]] = mapped_column(Text)
    reviewed_by: Mapped[Optional[str]] = mapped_column(String(128))
    reviewed_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    forwarded_to_call_center: Mapped[bool] = mapped_column(Boolean, default=False)

    # voice bookkeeping
    call_attempts: Mapped[int] = mapped_column(Integer, default=0)
    last_call_attempt_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    call_sids: Mapped[Optional[List[str]]] = mapped_column(JSON)
    call_transcription: Mapped[Optional[str]] = mapped_column(Text)
    call_confidence: Mapped[Optional[float]] = mapped_column(Float)
    call_intent_detected: Mapped[Optional[str]] = mapped_column(String(16))

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, index=True)

    order: Mapped[Order] = relationship(foreign_keys=[order_id])

# ----------------------------
# Voice call attempts
# ----------------------------
class CallLog(Base):
    __tablename__ = "call_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    order_id: Mapped[int] = mapped_column(ForeignKey("orders.id"), index=True)
    call_sid: Mapped[Optional[str]] = mapped_column(String(64), index=True)
    attempt_number: Mapped[int] = mapped_column(Integer, nullable=False)
    call_status: Mapped[str] = mapped_column(String(32))   # queued|initiated|completed|no-answer|...
    script_type: Mapped[str] = mapped_column(String(8))    # short|long
    script_language: Mapped[str] = mapped_column(String(8))
    speech_result: Mapped[Optional[str]] = mapped_column(Text)
    speech_confidence: Mapped[Optional[float]] = mapped_column(Float)
    dtmf_input: Mapped[Optional[str]] = mapped_column(String(8))
    intent_detected: Mapped[Optional[str]] = mapped_column(String(16))
    call_duration: Mapped[Optional[int]] = mapped_column(Integer)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    __table_args__ = (
        # one row per attempt slot; a racing second writer fails here
        UniqueConstraint("order_id", "attempt_number", name="uq_call_logs_order_attempt"),
    )

# ----------------------------
# Carrier tracking history (append-only)
# ----------------------------
class TrackingHistory(Base):
    __tablename__ = "tracking_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    order_id: Mapped[int] = mapped_column(ForeignKey("orders.id"), index=True)
    tracking_number: Mapped[str] = mapped_column(String(64), index=True)
    carrier_code: Mapped[Optional[str]] = mapped_column(String(32))
    carrier_name: Mapped[Optional[str]] = mapped_column(String(128))
    status: Mapped[str] = mapped_column(String(32))
    substatus: Mapped[Optional[str]] = mapped_column(String(64))
    description: Mapped[Optional[str]] = mapped_column(Text)
    location: Mapped[Optional[str]] = mapped_column(String(256))
    status_date: Mapped[datetime] = mapped_column(DateTime)
    raw_data: Mapped[Any] = mapped_column(JSON)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

# ----------------------------
# Notification templates + send log
# ----------------------------
class NotificationTemplate(Base):
    __tablename__ = "notification_templates"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    template_name: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    channel: Mapped[str] = mapped_column(String(16))        # sms|chat
    language: Mapped[str] = mapped_column(String(8))
    subject: Mapped[Optional[str]] = mapped_column(String(128))
    body_template: Mapped[str] = mapped_column(Text)        # {{1}}, {{2}} placeholders
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    last_used_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

class NotificationLog(Base):
    __tablename__ = "notification_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    order_id: Mapped[Optional[int]] = mapped_column(ForeignKey("orders.id"), index=True)
    customer_id: Mapped[Optional[int]] = mapped_column(ForeignKey("customers.id"))
    channel: Mapped[str] = mapped_column(String(16))
    template_name: Mapped[Optional[str]] = mapped_column(String(64))
    message_content: Mapped[str] = mapped_column(Text)
    external_message_id: Mapped[Optional[str]] = mapped_column(String(128), index=True)
    external_status: Mapped[Optional[str]] = mapped_column(String(32))
    status: Mapped[str] = mapped_column(String(32))          # sent|failed|delivered|read
    error: Mapped[Optional[str]] = mapped_column(Text)
    sent_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    delivered_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    read_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

# ----------------------------
# Durable deferred work (retries, delayed notifications)
# ----------------------------
class ScheduledTask(Base):
    __tablename__ = "scheduled_tasks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    kind: Mapped[str] = mapped_column(String(64), nullable=False)
    dedupe_key: Mapped[Optional[str]] = mapped_column(String(128), unique=True)  # one job per slot
    payload: Mapped[dict] = mapped_column(JSON)
    due_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    status: Mapped[str] = mapped_column(String(16), default="pending")  # pending|running|done|failed
    attempts: Mapped[int] = mapped_column(Integer, default=0)
    claimed_at: Mapped[Optional[datetime]] = mapped_column(DateTime)  # set while running
    last_error: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    finished_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

Index("ix_scheduled_tasks_status_due", ScheduledTask.status, ScheduledTask.due_at)
