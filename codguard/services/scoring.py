# scoring.py
from __future__ import annotations
from typing import Dict, Tuple, Any

from ..domain.states import RiskLevel, RiskAction
from ..rules.address import validate_address

# -----------------------------
# Tunables
# -----------------------------
THRESHOLDS = {
    "blocked": 10,   # >= 10 → BLOCKED
    "high": 4,       # >= 4  → HIGH
    "medium": 2,     # >= 2  → MEDIUM, else LOW
}

WEIGHTS = {
    "blocked": 10,
    "items_two": 1,
    "items_many": 2,
    "order_value": 2,
    "frequency": 2,
    "history": -1,
    "address": 3,
}

HIGH_VALUE_AMOUNT = 50.0
FREQUENCY_WINDOW_DAYS = 7
FREQUENCY_RECENT_HOURS = 12

TIER_ACTIONS = {
    RiskLevel.BLOCKED: RiskAction.AUTO_REJECT,
    RiskLevel.HIGH: RiskAction.CALL_CENTER,
    RiskLevel.MEDIUM: RiskAction.VOICE_LONG,
    RiskLevel.LOW: RiskAction.VOICE_SHORT,
}

# -----------------------------
# Helpers
# -----------------------------
def clamp(v: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, v))

def determine_risk_level(score: int, is_blocked: bool = False) -> Tuple[RiskLevel, RiskAction]:
    """First match wins: blocked, high, medium, low."""
    if is_blocked or score >= THRESHOLDS["blocked"]:
        level = RiskLevel.BLOCKED
    elif score >= THRESHOLDS["high"]:
        level = RiskLevel.HIGH
    elif score >= THRESHOLDS["medium"]:
        level = RiskLevel.MEDIUM
    else:
        level = RiskLevel.LOW
    return level, TIER_ACTIONS[level]

# -----------------------------
# Factors
# -----------------------------
def blocked_factor(snapshot: Dict[str, Any]) -> Tuple[int, bool]:
    blocked = snapshot.get("customer_status") == "Blocked" or bool(snapshot.get("customer_is_blocked"))
    return (WEIGHTS["blocked"] if blocked else 0), blocked

def items_factor(total_items: int) -> int:
    if total_items == 2:
        return WEIGHTS["items_two"]
    if total_items >= 3:
        return WEIGHTS["items_many"]
    return 0

def value_factor(total_amount: float) -> int:
    return WEIGHTS["order_value"] if total_amount > HIGH_VALUE_AMOUNT else 0

def frequency_factor(recent_7d: int, recent_12h: int) -> int:
    """recent_* count the customer's other orders inside each trailing window."""
    if recent_7d >= 2:
        return WEIGHTS["frequency"]
    if recent_7d == 1 and recent_12h >= 1:
        return WEIGHTS["frequency"]
    return 0

def history_factor(successful_deliveries: int) -> int:
    return WEIGHTS["history"] if successful_deliveries > 0 else 0

# -----------------------------
# Main entry
# -----------------------------
def compute_risk(snapshot: Dict[str, Any]) -> Dict[str, Any]:
    """
    Score an order snapshot with the additive point system.

    ``snapshot`` keys: customer_status, customer_is_blocked, total_items,
    total_amount, recent_orders_7d, recent_orders_12h, successful_deliveries,
    orders_count, postal_code, address_line, country.

    Returns:
      {
        "total_score": int (>= 0),
        "risk_level": RiskLevel,
        "action": RiskAction,
        "factors": {name: points},
        "city_zip_match", "has_house_number", "address_verified",
        "is_first_order", "is_blocked": bool,
        "recent_order_count": int,
      }
    """
    factors: Dict[str, int] = {}

    factors["blocked"], is_blocked = blocked_factor(snapshot)
    factors["items"] = items_factor(int(snapshot.get("total_items") or 0))
    factors["orderValue"] = value_factor(float(snapshot.get("total_amount") or 0.0))

    recent_7d = int(snapshot.get("recent_orders_7d") or 0)
    recent_12h = int(snapshot.get("recent_orders_12h") or 0)
    factors["frequency"] = frequency_factor(recent_7d, recent_12h)
    factors["history"] = history_factor(int(snapshot.get("successful_deliveries") or 0))

    address = validate_address(
        snapshot.get("postal_code"), snapshot.get("address_line"), snapshot.get("country"),
    )
    factors["address"] = 0 if address["is_valid"] else WEIGHTS["address"]

    total = int(clamp(sum(factors.values()), 0, float("inf")))
    level, action = determine_risk_level(total, is_blocked)

    return {
        "total_score": total,
        "risk_level": level,
        "action": action,
        "factors": factors,
        "city_zip_match": address["is_valid"],
        "has_house_number": address["has_house_number"],
        "address_verified": address["address_verified"],
        "is_first_order": int(snapshot.get("orders_count") or 0) <= 1 and recent_7d == 0,
        "is_blocked": is_blocked,
        "recent_order_count": recent_7d,
    }
