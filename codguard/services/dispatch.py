# codguard/services/dispatch.py
from typing import Callable, Dict
from sqlalchemy.orm import Session

from ..domain.states import RiskLevel, ScriptType
from ..utils.logging import logger
from .confirmation import initiate_confirmation_call
from .escalation import escalate_to_call_center
from .orders import get_order, get_current_assessment

def _auto_rejected(db: Session, order_id: int) -> None:
    logger.info("Order %s: BLOCKED, auto-rejected during assessment", order_id)

def _short_call(db: Session, order_id: int) -> None:
    initiate_confirmation_call(db, order_id, ScriptType.SHORT.value)

def _long_call(db: Session, order_id: int) -> None:
    initiate_confirmation_call(db, order_id, ScriptType.LONG.value)

def _call_center(db: Session, order_id: int) -> None:
    order = get_order(db, order_id)
    assessment = get_current_assessment(db, order)
    if assessment is not None:
        assessment.action_taken = "call_center"
        db.commit()
    escalate_to_call_center(db, order_id, f"High risk score ({order.risk_score})",
                            record_result=False, after_call=False)

ROUTES: Dict[RiskLevel, Callable[[Session, int], None]] = {
    RiskLevel.BLOCKED: _auto_rejected,
    RiskLevel.LOW: _short_call,
    RiskLevel.MEDIUM: _long_call,
    RiskLevel.HIGH: _call_center,
}

def dispatch_risk_action(db: Session, order_id: int, level) -> bool:
    """
    Run the follow-up for a risk tier. Failures are logged and swallowed:
    the assessment is already committed and must stay.
    """
    try:
        ROUTES[RiskLevel(level)](db, order_id)
    except Exception:
        db.rollback()
        logger.exception("Order %s: error executing %s risk action", order_id, level)
        return False
    return True
