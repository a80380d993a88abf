# codguard/tests/test_scoring.py
import pytest
from codguard.domain.states import RiskLevel, RiskAction
from codguard.services.scoring import compute_risk, determine_risk_level, frequency_factor

def snapshot(**kw):
    base = {
        "customer_status": "Active",
        "customer_is_blocked": False,
        "total_items": 1,
        "total_amount": 20.0,
        "recent_orders_7d": 0,
        "recent_orders_12h": 0,
        "successful_deliveries": 0,
        "orders_count": 1,
        "postal_code": "28013",
        "address_line": "Calle Mayor 5",
        "country": "Spain",
    }
    base.update(kw)
    return base

@pytest.mark.parametrize("score,level", [
    (0, RiskLevel.LOW), (1, RiskLevel.LOW), (2, RiskLevel.MEDIUM), (3, RiskLevel.MEDIUM),
    (4, RiskLevel.HIGH), (9, RiskLevel.HIGH), (10, RiskLevel.BLOCKED),
])
def test_tier_boundaries(score, level):
    assert determine_risk_level(score)[0] is level

def test_blocked_flag_wins_over_score():
    assert determine_risk_level(0, is_blocked=True) == (RiskLevel.BLOCKED, RiskAction.AUTO_REJECT)

def test_clean_first_order_is_low():
    r = compute_risk(snapshot())
    assert r["total_score"] == 0
    assert r["risk_level"] is RiskLevel.LOW
    assert r["action"] is RiskAction.VOICE_SHORT
    assert r["is_first_order"]

def test_worked_example_is_medium():
    r = compute_risk(snapshot(total_items=3, total_amount=60, successful_deliveries=2, orders_count=3))
    assert r["factors"] == {"blocked": 0, "items": 2, "orderValue": 2, "frequency": 0, "history": -1, "address": 0}
    assert r["total_score"] == 3
    assert r["risk_level"] is RiskLevel.MEDIUM
    assert r["action"] is RiskAction.VOICE_LONG

def test_score_never_negative():
    r = compute_risk(snapshot(successful_deliveries=5))
    assert r["factors"]["history"] == -1
    assert r["total_score"] == 0

def test_blocked_customer_always_blocked():
    r = compute_risk(snapshot(customer_status="Blocked"))
    assert r["risk_level"] is RiskLevel.BLOCKED
    assert r["is_blocked"]
    r = compute_risk(snapshot(customer_is_blocked=True, successful_deliveries=9))
    assert r["risk_level"] is RiskLevel.BLOCKED

def test_bad_postal_code_adds_three():
    r = compute_risk(snapshot(postal_code="53001"))
    assert r["factors"]["address"] == 3
    assert not r["city_zip_match"]
    assert r["risk_level"] is RiskLevel.MEDIUM

def test_items_and_value_factors():
    assert compute_risk(snapshot(total_items=2))["factors"]["items"] == 1
    assert compute_risk(snapshot(total_amount=50))["factors"]["orderValue"] == 0
    assert compute_risk(snapshot(total_amount=50.01))["factors"]["orderValue"] == 2

def test_frequency_factor():
    assert frequency_factor(0, 0) == 0
    assert frequency_factor(1, 0) == 0
    assert frequency_factor(1, 1) == 2
    assert frequency_factor(2, 0) == 2
