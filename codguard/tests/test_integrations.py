# codguard/tests/test_integrations.py
import pytest
import requests
from pydantic import SecretStr

from codguard.config import settings
from codguard.errors import IntegrationError
from codguard.integrations import carrier
from codguard.integrations.call_center import SheetsCallCenterQueue, record_to_row
from codguard.integrations.messaging import ChatGatewayChannel
from codguard.integrations.voice import TwilioVoiceClient

class FakeResponse:
    def __init__(self, status_code, data=None, text=""):
        self.status_code = status_code
        self._data = data or {}
        self.text = text

    def json(self):
        return self._data

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"HTTP {self.status_code}")

def test_register_tracking_posts_number(monkeypatch):
    monkeypatch.setattr(settings, "TRACKING_API_KEY", SecretStr("k-123"))
    seen = {}

    def fake_post(url, headers, json, timeout):
        seen.update(url=url, headers=headers, json=json)
        return FakeResponse(200, {"code": 0, "data": {"accepted": [{"number": "LX1"}], "rejected": []}})
    monkeypatch.setattr(carrier.requests, "post", fake_post)

    data = carrier.register_tracking("LX1", 190271)
    assert seen["url"].endswith("/register")
    assert seen["headers"]["17token"] == "k-123"
    assert seen["json"] == [{"number": "LX1", "carrier": 190271}]
    assert data["data"]["accepted"][0]["number"] == "LX1"

def test_register_tracking_rejected(monkeypatch):
    monkeypatch.setattr(settings, "TRACKING_API_KEY", SecretStr("k"))
    monkeypatch.setattr(carrier.requests, "post", lambda *a, **kw: FakeResponse(
        200, {"data": {"accepted": [], "rejected": [{"number": "LX1", "error": {"code": -18019901}}]}}))
    with pytest.raises(IntegrationError):
        carrier.register_tracking("LX1")

def test_register_tracking_needs_key(monkeypatch):
    monkeypatch.setattr(settings, "TRACKING_API_KEY", None)
    with pytest.raises(IntegrationError):
        carrier.register_tracking("LX1")

def test_record_to_row_orders_columns():
    row = record_to_row({"order_number": "COD-1", "priority": "URGENT", "amount": 60.0, "phone": None})
    assert row[1] == "COD-1"
    assert row[3] == ""
    assert row[6] == "60.0"
    assert row[8] == "URGENT"

def test_unconfigured_sheet_raises():
    with pytest.raises(IntegrationError):
        SheetsCallCenterQueue(None, "Call Center", None).push({"order_number": "COD-1"})

def test_unconfigured_voice_client():
    client = TwilioVoiceClient()
    assert not client.configured
    with pytest.raises(IntegrationError):
        client.place_call("+34600", "https://x/script", "https://x/status")

def test_chat_gateway_strips_phone_and_authenticates(monkeypatch):
    import codguard.integrations.messaging as messaging
    seen = {}

    def fake_post(url, json, headers, timeout, allow_redirects):
        seen.update(url=url, json=json, headers=headers)
        return FakeResponse(200, {"ok": True, "id": "wa-77"})
    monkeypatch.setattr(messaging.requests, "post", fake_post)

    res = ChatGatewayChannel("https://bridge.local/", "s3cret").send("+34 600-111-222", "hola")
    assert res.delivery_id == "wa-77"
    assert seen["url"] == "https://bridge.local/api/messages"
    assert seen["json"] == {"to": "34600111222", "body": "hola"}
    assert seen["headers"]["x-internal-auth"] == "s3cret"

def test_chat_gateway_not_configured():
    with pytest.raises(IntegrationError):
        ChatGatewayChannel(None, None).send("+34600", "hola")
