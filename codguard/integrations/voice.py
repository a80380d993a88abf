# codguard/integrations/voice.py
from typing import Optional

from twilio.rest import Client
from twilio.base.exceptions import TwilioException

from ..config import settings
from ..errors import IntegrationError
from ..utils.logging import logger

STATUS_CALLBACK_EVENTS = ["completed", "no-answer", "busy", "failed"]

class TwilioVoiceClient:
    """Places outbound IVR calls; Twilio fetches the script from ``twiml_url``."""

    def __init__(self, account_sid: Optional[str] = None, auth_token: Optional[str] = None,
                 from_number: Optional[str] = None):
        self.from_number = from_number
        self._client = Client(account_sid, auth_token) if account_sid and auth_token else None

    @property
    def configured(self) -> bool:
        return self._client is not None and bool(self.from_number)

    def place_call(self, to: str, twiml_url: str, status_callback: str) -> str:
        if not self.configured:
            raise IntegrationError("voice provider not configured")
        try:
            call = self._client.calls.create(
                to=to,
                from_=self.from_number,
                url=twiml_url,
                method="POST",
                status_callback=status_callback,
                status_callback_event=STATUS_CALLBACK_EVENTS,
                status_callback_method="POST",
            )
        except TwilioException as e:
            raise IntegrationError(f"call to {to} failed: {e}") from e
        return call.sid

_voice_client = None

def get_voice_client():
    global _voice_client
    if _voice_client is None:
        token = settings.TWILIO_AUTH_TOKEN.get_secret_value() if settings.TWILIO_AUTH_TOKEN else None
        _voice_client = TwilioVoiceClient(settings.TWILIO_ACCOUNT_SID, token, settings.TWILIO_PHONE_NUMBER)
        if not _voice_client.configured:
            logger.warning("Twilio voice credentials not configured. Voice calls will be skipped.")
    return _voice_client

def set_voice_client(client) -> None:
    global _voice_client
    _voice_client = client
