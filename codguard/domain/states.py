"""
Closed status vocabularies for the Order aggregate and the transition
tables that guard every write to them.

Order, shipping and confirmation status used to be free-form strings; each
family is now an enum and every change goes through ``ensure_transition``
so an unknown value or an edge missing from the table is refused instead
of silently stored.
"""
from enum import Enum
from typing import Dict, FrozenSet

from ..errors import InvalidTransition


class OrderStatus(str, Enum):
    PENDING = "Pending"
    PROCESSING = "Processing"
    SHIPPED = "Shipped"
    IN_TRANSIT = "In Transit"
    DELIVERED = "Delivered"
    RETURNED = "Returned"
    CANCELLED = "Cancelled"
    EXCEPTION = "Exception"


class ShippingStatus(str, Enum):
    NOT_SHIPPED = "Not Shipped"
    SHIPPED = "Shipped"
    IN_TRANSIT = "In Transit"
    DELIVERED = "Delivered"
    RETURNED = "Returned"
    UNDELIVERED = "Undelivered"
    EXCEPTION = "Exception"


class ConfirmationStatus(str, Enum):
    PENDING = "Pending"
    CONFIRMED = "Confirmed"
    DECLINED = "Declined"
    CALL_CENTER = "Call Center"


class ConfirmationStage(str, Enum):
    """Where the automated confirmation conversation for an order stands."""
    NOT_STARTED = "NotStarted"
    CALL_INITIATED = "CallInitiated"
    CONFIRMED = "Confirmed"
    DECLINED = "Declined"
    UNCLEAR = "Unclear"
    NO_ANSWER = "NoAnswer"
    RETRY_SCHEDULED = "RetryScheduled"
    ESCALATED = "Escalated"


class RiskLevel(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    BLOCKED = "BLOCKED"


class RiskAction(str, Enum):
    VOICE_SHORT = "voice_short"
    VOICE_LONG = "voice_long"
    CALL_CENTER = "call_center"
    AUTO_REJECT = "auto_reject"


class ScriptType(str, Enum):
    SHORT = "short"
    LONG = "long"


class CallIntent(str, Enum):
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"
    UNCLEAR = "UNCLEAR"


_OS = OrderStatus
_SS = ShippingStatus
_CS = ConfirmationStatus
_ST = ConfirmationStage

ORDER_TRANSITIONS: Dict[OrderStatus, FrozenSet[OrderStatus]] = {
    _OS.PENDING: frozenset({_OS.PROCESSING, _OS.SHIPPED, _OS.IN_TRANSIT, _OS.DELIVERED,
                            _OS.RETURNED, _OS.CANCELLED, _OS.EXCEPTION}),
    _OS.PROCESSING: frozenset({_OS.SHIPPED, _OS.IN_TRANSIT, _OS.DELIVERED, _OS.RETURNED,
                               _OS.CANCELLED, _OS.EXCEPTION}),
    _OS.SHIPPED: frozenset({_OS.IN_TRANSIT, _OS.DELIVERED, _OS.RETURNED, _OS.EXCEPTION}),
    _OS.IN_TRANSIT: frozenset({_OS.DELIVERED, _OS.RETURNED, _OS.EXCEPTION}),
    _OS.EXCEPTION: frozenset({_OS.IN_TRANSIT, _OS.DELIVERED, _OS.RETURNED, _OS.CANCELLED}),
    _OS.DELIVERED: frozenset({_OS.RETURNED}),
    _OS.RETURNED: frozenset(),
    _OS.CANCELLED: frozenset(),
}

SHIPPING_TRANSITIONS: Dict[ShippingStatus, FrozenSet[ShippingStatus]] = {
    _SS.NOT_SHIPPED: frozenset({_SS.SHIPPED, _SS.IN_TRANSIT, _SS.DELIVERED, _SS.RETURNED,
                                _SS.UNDELIVERED, _SS.EXCEPTION}),
    _SS.SHIPPED: frozenset({_SS.IN_TRANSIT, _SS.DELIVERED, _SS.RETURNED,
                            _SS.UNDELIVERED, _SS.EXCEPTION}),
    _SS.IN_TRANSIT: frozenset({_SS.DELIVERED, _SS.RETURNED, _SS.UNDELIVERED, _SS.EXCEPTION}),
    _SS.UNDELIVERED: frozenset({_SS.IN_TRANSIT, _SS.DELIVERED, _SS.RETURNED, _SS.EXCEPTION}),
    _SS.EXCEPTION: frozenset({_SS.IN_TRANSIT, _SS.DELIVERED, _SS.RETURNED, _SS.UNDELIVERED}),
    _SS.DELIVERED: frozenset({_SS.RETURNED}),
    _SS.RETURNED: frozenset(),
}

CONFIRMATION_TRANSITIONS: Dict[ConfirmationStatus, FrozenSet[ConfirmationStatus]] = {
    _CS.PENDING: frozenset({_CS.CONFIRMED, _CS.DECLINED, _CS.CALL_CENTER}),
    _CS.CALL_CENTER: frozenset({_CS.CONFIRMED, _CS.DECLINED}),
    _CS.CONFIRMED: frozenset(),
    _CS.DECLINED: frozenset(),
}

STAGE_TRANSITIONS: Dict[ConfirmationStage, FrozenSet[ConfirmationStage]] = {
    _ST.NOT_STARTED: frozenset({_ST.CALL_INITIATED, _ST.NO_ANSWER, _ST.ESCALATED}),
    _ST.CALL_INITIATED: frozenset({_ST.CONFIRMED, _ST.DECLINED, _ST.UNCLEAR,
                                   _ST.NO_ANSWER, _ST.ESCALATED}),
    _ST.NO_ANSWER: frozenset({_ST.RETRY_SCHEDULED, _ST.ESCALATED}),
    _ST.RETRY_SCHEDULED: frozenset({_ST.CALL_INITIATED, _ST.NO_ANSWER, _ST.ESCALATED,
                                    _ST.CONFIRMED, _ST.DECLINED}),
    _ST.UNCLEAR: frozenset({_ST.ESCALATED}),
    _ST.ESCALATED: frozenset({_ST.CONFIRMED, _ST.DECLINED}),
    _ST.CONFIRMED: frozenset(),
    _ST.DECLINED: frozenset(),
}

TABLES = {
    "order_status": (OrderStatus, ORDER_TRANSITIONS),
    "shipping_status": (ShippingStatus, SHIPPING_TRANSITIONS),
    "confirmation_status": (ConfirmationStatus, CONFIRMATION_TRANSITIONS),
    "confirmation_stage": (ConfirmationStage, STAGE_TRANSITIONS),
}

TERMINAL_CONFIRMATIONS = frozenset({_CS.CONFIRMED, _CS.DECLINED})


def is_allowed(family: str, current, target) -> bool:
    enum_cls, table = TABLES[family]
    try:
        cur = enum_cls(current)
        nxt = enum_cls(target)
    except ValueError:
        return False
    # replays of the same event re-apply the same status
    return cur == nxt or nxt in table[cur]


def ensure_transition(family: str, current, target):
    """Return ``target`` as its enum member or raise ``InvalidTransition``."""
    if family not in TABLES:
        raise KeyError(family)
    if not is_allowed(family, current, target):
        raise InvalidTransition(family, current, target)
    return TABLES[family][0](target)
