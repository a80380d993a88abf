"""
Outbound customer messaging.

Every channel exposes the same narrow surface, ``send(destination, body)``
returning a ``SendResult``; connection and session handling of the chat
bridge stay on the gateway side.
"""
import re
import time
from dataclasses import dataclass
from typing import Dict, List, Optional
from urllib.parse import urljoin

import requests
from sqlalchemy import select, update
from sqlalchemy.orm import Session
from twilio.rest import Client
from twilio.base.exceptions import TwilioException

from ..config import settings
from ..errors import IntegrationError, NotFoundError
from ..models import NotificationTemplate, NotificationLog, utcnow
from ..utils.logging import logger

@dataclass
class SendResult:
    delivery_id: str
    status: str

class TwilioSmsChannel:
    name = "sms"

    def __init__(self, account_sid: Optional[str], auth_token: Optional[str],
                 from_number: Optional[str], status_callback: Optional[str] = None):
        self.from_number = from_number
        self.status_callback = status_callback
        self._client = Client(account_sid, auth_token) if account_sid and auth_token else None

    def send(self, destination: str, body: str) -> SendResult:
        if self._client is None or not self.from_number:
            raise IntegrationError("SMS channel not configured")
        try:
            msg = self._client.messages.create(
                body=body,
                from_=self.from_number,
                to=destination,
                status_callback=self.status_callback,
            )
        except TwilioException as e:
            raise IntegrationError(f"SMS to {destination} failed: {e}") from e
        return SendResult(delivery_id=msg.sid, status=msg.status or "queued")

class ChatGatewayChannel:
    """Posts to the internal chat bridge, which owns the WhatsApp session."""
    name = "chat"

    def __init__(self, base_url: Optional[str], shared_secret: Optional[str], timeout: float = 12):
        self.base_url = (base_url or "").strip().rstrip("/")
        self.shared_secret = shared_secret or ""
        self.timeout = timeout

    def _post_once(self, url: str, payload: dict) -> dict:
        r = requests.post(
            url,
            json=payload,
            headers={
                "Accept": "application/json",
                "Content-Type": "application/json",
                "x-internal-auth": self.shared_secret,
                "User-Agent": "codguard-backend/1.0 (+requests)",
            },
            timeout=self.timeout,
            allow_redirects=False,
        )
        if r.status_code == 429 or r.status_code >= 500:
            raise IntegrationError(f"HTTP {r.status_code} from chat gateway")
        try:
            r.raise_for_status()
            return r.json()
        except (requests.HTTPError, ValueError) as e:
            snippet = (r.text or "")[:500]
            raise IntegrationError(f"chat gateway rejected message ({r.status_code}): {snippet}") from e

    def send(self, destination: str, body: str) -> SendResult:
        if not self.base_url:
            raise IntegrationError("chat gateway not configured")
        url = urljoin(self.base_url + "/", "api/messages")
        payload = {"to": re.sub(r"[^\d]", "", destination), "body": body}

        for attempt in range(3):
            try:
                data = self._post_once(url, payload)
            except requests.RequestException as e:
                raise IntegrationError(f"chat gateway unreachable: {e}") from e
            except IntegrationError as e:
                if re.search(r"\bHTTP (429|5\d{2})\b", str(e)) and attempt < 2:
                    sleep = 1.5 * (attempt + 1)
                    logger.warning("Retrying chat send in %.1fs due to: %s", sleep, e)
                    time.sleep(sleep)
                    continue
                raise
            if not data.get("ok"):
                raise IntegrationError(f"chat gateway refused message: {data}")
            return SendResult(delivery_id=str(data.get("id") or ""), status="sent")
        raise IntegrationError("chat gateway retries exhausted")

# ---------- channel registry ----------
_channels: Dict[str, object] = {}

def get_channel(name: str):
    if name not in _channels:
        if name == "sms":
            token = settings.TWILIO_AUTH_TOKEN.get_secret_value() if settings.TWILIO_AUTH_TOKEN else None
            _channels[name] = TwilioSmsChannel(
                settings.TWILIO_ACCOUNT_SID, token,
                settings.TWILIO_SMS_FROM or settings.TWILIO_PHONE_NUMBER,
                status_callback=f"{settings.APP_BASE_URL.rstrip('/')}/notifications/callbacks/twilio",
            )
        elif name == "chat":
            secret = settings.CHAT_GATEWAY_SECRET.get_secret_value() if settings.CHAT_GATEWAY_SECRET else None
            _channels[name] = ChatGatewayChannel(settings.CHAT_GATEWAY_URL, secret)
        else:
            raise KeyError(name)
    return _channels[name]

def set_channel(name: str, channel) -> None:
    _channels[name] = channel

def reset_channels() -> None:
    _channels.clear()

# ---------- templates ----------
def render_body(body_template: str, variables: List[str]) -> str:
    body = body_template
    for i, val in enumerate(variables, start=1):
        body = body.replace("{{%d}}" % i, str(val))
    return body

def render_template(db: Session, template_name: str, variables: List[str]) -> str:
    tpl = db.execute(
        select(NotificationTemplate).where(NotificationTemplate.template_name == template_name)
    ).scalar_one_or_none()
    if tpl is None or not tpl.is_active:
        raise NotFoundError("template", template_name)
    tpl.last_used_at = utcnow()
    return render_body(tpl.body_template, variables)

def send_templated(db: Session, channel_name: str, destination: str, template_name: str,
                   variables: List[str], order_id: Optional[int] = None,
                   customer_id: Optional[int] = None) -> NotificationLog:
    """Render, send and record one notification. Send failures are recorded, then re-raised."""
    body = render_template(db, template_name, variables)
    log = NotificationLog(
        order_id=order_id,
        customer_id=customer_id,
        channel=channel_name,
        template_name=template_name,
        message_content=body,
        status="pending",
    )
    db.add(log)
    try:
        result = get_channel(channel_name).send(destination, body)
    except IntegrationError as e:
        log.status = "failed"
        log.error = str(e)[:1000]
        db.commit()
        raise
    log.external_message_id = result.delivery_id
    log.external_status = result.status
    log.status = "sent"
    db.commit()
    logger.info("%s message sent to %s: %s", channel_name, destination, result.delivery_id)
    return log

def handle_status_callback(db: Session, message_sid: Optional[str], message_status: Optional[str]) -> int:
    if not message_sid or not message_status:
        return 0
    logger.info("Update status for %s: %s", message_sid, message_status)
    values = {"external_status": message_status, "status": message_status}
    if message_status == "delivered":
        values["delivered_at"] = utcnow()
    elif message_status == "read":
        values["read_at"] = utcnow()
    res = db.execute(
        update(NotificationLog)
        .where(NotificationLog.external_message_id == message_sid)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return res.rowcount or 0
