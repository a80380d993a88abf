# codguard/routes/voice.py
# Called by Twilio, not by users. Bodies are form-encoded, answers are TwiML.
from typing import Optional
from fastapi import APIRouter, Depends, Form, Query, Response
from sqlalchemy.orm import Session

from ..database import get_db
from ..domain.states import ScriptType
from ..errors import NotFoundError
from ..rules.address import DEFAULT_VOICE_LANGUAGE
from ..services.confirmation import handle_call_response, handle_call_status, response_url, script_context
from ..services.orders import get_order
from ..services.scripts import build_call_script, build_not_found, build_reply
from ..utils.logging import logger
from ..utils.signatures import require_twilio_signature

router = APIRouter(prefix="/voice", tags=["voice"], dependencies=[Depends(require_twilio_signature)])

def _twiml(xml: str) -> Response:
    return Response(content=xml, media_type="text/xml")

@router.post("/call-script")
def call_script(
    order_id: int = Query(...),
    script_type: ScriptType = Query(ScriptType.SHORT),
    language: str = Query(DEFAULT_VOICE_LANGUAGE),
    db: Session = Depends(get_db),
):
    try:
        order = get_order(db, order_id, with_items=True)
    except NotFoundError:
        logger.warning("Call script requested for unknown order %s", order_id)
        return _twiml(build_not_found(language))
    return _twiml(build_call_script(script_context(order), script_type.value, language,
                                    response_url(order_id, script_type.value)))

@router.post("/process-response")
def process_response(
    order_id: int = Query(...),
    script_type: ScriptType = Query(ScriptType.SHORT),
    SpeechResult: Optional[str] = Form(None),
    Digits: Optional[str] = Form(None),
    Confidence: Optional[float] = Form(None),
    db: Session = Depends(get_db),
):
    try:
        intent, language = handle_call_response(db, order_id, script_type.value, SpeechResult, Digits, Confidence)
    except NotFoundError:
        logger.warning("Call response for unknown order %s", order_id)
        return _twiml(build_not_found())
    return _twiml(build_reply(intent, language))

@router.post("/call-status")
def call_status(
    order_id: int = Query(...),
    CallSid: Optional[str] = Form(None),
    CallStatus: Optional[str] = Form(None),
    CallDuration: Optional[str] = Form(None),
    db: Session = Depends(get_db),
):
    try:
        handle_call_status(db, order_id, CallSid, CallStatus, CallDuration)
    except Exception:
        db.rollback()
        logger.exception("Order %s: call-status callback failed", order_id)
    return {"status": "ok"}
