# codguard/tests/test_messaging.py
import pytest
from sqlalchemy import select

from codguard.errors import IntegrationError, NotFoundError
from codguard.models import NotificationLog, NotificationTemplate
from codguard.integrations.messaging import handle_status_callback, render_body, render_template, send_templated

def test_render_body_positional():
    assert render_body("Hi {{1}}, order {{2}} ({{1}})", ["Ana", "COD-1"]) == "Hi Ana, order COD-1 (Ana)"

def test_missing_template(db):
    with pytest.raises(NotFoundError):
        render_template(db, "does_not_exist", [])

def test_inactive_template(db):
    tpl = db.execute(select(NotificationTemplate).where(
        NotificationTemplate.template_name == "sms_in_transit_en")).scalar_one()
    tpl.is_active = False
    db.commit()
    with pytest.raises(NotFoundError):
        render_template(db, "sms_in_transit_en", ["a", "b", "c", "d"])

def test_send_records_log(db, fake_channels):
    log = send_templated(db, "sms", "+39333000111", "sms_in_transit_it", ["Marco", "COD-9", "url", "Negozio"])
    assert log.status == "sent"
    assert log.external_message_id == "sms-1"
    assert log.message_content == "Ciao Marco, ordine COD-9 in viaggio: url (Negozio)"
    assert fake_channels["sms"].sent == [("+39333000111", log.message_content)]

def test_send_failure_recorded_and_raised(db, fake_channels):
    fake_channels["chat"].fail = True
    with pytest.raises(IntegrationError):
        send_templated(db, "chat", "+34600", "chat_in_transit_es", ["a", "b", "c", "d", "e"])
    log = db.execute(select(NotificationLog)).scalar_one()
    assert log.status == "failed"
    assert "chat down" in log.error

def test_status_callback_updates_log(db):
    log = send_templated(db, "sms", "+34600", "sms_in_transit_es", ["a", "b", "c", "d"])
    assert handle_status_callback(db, log.external_message_id, "delivered") == 1
    db.refresh(log)
    assert log.status == "delivered"
    assert log.delivered_at is not None
    assert handle_status_callback(db, "SM-unknown", "read") == 0
    assert handle_status_callback(db, None, None) == 0
