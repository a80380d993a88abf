from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..database import get_db
from ..errors import IntegrationError
from ..integrations.carrier import register_tracking
from ..schemas import CarrierWebhook, RegisterTrackingInput
from ..services.shipments import handle_carrier_webhook
from ..utils.logging import logger

router = APIRouter(prefix="/tracking", tags=["tracking"])

@router.post("/webhook")
def webhook(payload: CarrierWebhook, db: Session = Depends(get_db)):
    # always 200, the carrier retries anything else
    try:
        handle_carrier_webhook(db, payload.model_dump())
    except Exception:
        db.rollback()
        logger.exception("Carrier webhook processing failed")
    return {"status": "success"}

@router.post("/register")
def register(payload: RegisterTrackingInput):
    try:
        data = register_tracking(payload.tracking_number, payload.carrier_code)
    except IntegrationError as e:
        raise HTTPException(status_code=502, detail=str(e))
    return {"ok": True, "data": data.get("data")}
