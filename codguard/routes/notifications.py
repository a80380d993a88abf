from typing import Optional
from fastapi import APIRouter, Depends, Form
from sqlalchemy.orm import Session

from ..database import get_db
from ..integrations.messaging import handle_status_callback
from ..utils.signatures import require_twilio_signature

router = APIRouter(prefix="/notifications", tags=["notifications"])

@router.post("/callbacks/twilio", dependencies=[Depends(require_twilio_signature)])
def twilio_callback(
    MessageSid: Optional[str] = Form(None),
    MessageStatus: Optional[str] = Form(None),
    db: Session = Depends(get_db),
):
    handle_status_callback(db, MessageSid, MessageStatus)
    return {"status": "ok"}
