from fastapi import HTTPException, Request
from twilio.request_validator import RequestValidator

from ..config import settings

def verify_twilio_signature(url: str, params: dict, header_sig: str, auth_token: str) -> bool:
    if not header_sig or not auth_token:
        return False
    return RequestValidator(auth_token).validate(url, params, header_sig)

async def require_twilio_signature(request: Request) -> None:
    """Route dependency; a no-op unless TWILIO_VALIDATE_SIGNATURES is on."""
    if not settings.TWILIO_VALIDATE_SIGNATURES:
        return
    token = settings.TWILIO_AUTH_TOKEN.get_secret_value() if settings.TWILIO_AUTH_TOKEN else ""
    form = await request.form()
    if not verify_twilio_signature(str(request.url), dict(form),
                                   request.headers.get("X-Twilio-Signature", ""), token):
        raise HTTPException(status_code=403, detail="Invalid Twilio signature")
