# codguard/tests/conftest.py
import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ["APP_BASE_URL"] = "https://cod.example.test"
os.environ["TWILIO_VALIDATE_SIGNATURES"] = "false"

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from codguard.database import Base, set_sessionmaker
from codguard import models  # noqa: F401
from codguard.models import Customer, Order, OrderItem, NotificationTemplate
from codguard.errors import IntegrationError
from codguard.integrations import voice, messaging, call_center
from codguard.integrations.messaging import SendResult
from codguard.services import scheduler

TEMPLATES = [
    ("sms_in_transit_es", "sms", "es", "Hola {{1}}, pedido {{2}} en camino: {{3}} ({{4}})"),
    ("sms_in_transit_it", "sms", "it", "Ciao {{1}}, ordine {{2}} in viaggio: {{3}} ({{4}})"),
    ("sms_in_transit_en", "sms", "en", "Hi {{1}}, order {{2}} on its way: {{3}} ({{4}})"),
    ("chat_in_transit_es", "chat", "es", "Hola {{1}}, pedido {{2}} de {{4}}:\n{{3}}\nPaga {{5}}"),
    ("chat_in_transit_it", "chat", "it", "Ciao {{1}}, ordine {{2}} di {{4}}:\n{{3}}\nPaga {{5}}"),
    ("chat_in_transit_en", "chat", "en", "Hi {{1}}, order {{2}} from {{4}}:\n{{3}}\nPay {{5}}"),
]

class FakeVoice:
    configured = True

    def __init__(self):
        self.calls = []
        self.fail = False

    def place_call(self, to, twiml_url, status_callback):
        if self.fail:
            raise IntegrationError("provider unreachable")
        self.calls.append({"to": to, "url": twiml_url, "status_callback": status_callback})
        return "CA%030d" % len(self.calls)

class FakeChannel:
    def __init__(self, name):
        self.name = name
        self.sent = []
        self.fail = False

    def send(self, destination, body):
        if self.fail:
            raise IntegrationError(f"{self.name} down")
        self.sent.append((destination, body))
        return SendResult(delivery_id=f"{self.name}-{len(self.sent)}", status="queued")

class FakeQueue:
    def __init__(self):
        self.records = []

    def push(self, record):
        self.records.append(record)
        return True

@pytest.fixture
def db():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    Base.metadata.create_all(engine)
    factory = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    set_sessionmaker(factory)
    session = factory()
    for name, channel, lang, body in TEMPLATES:
        session.add(NotificationTemplate(template_name=name, channel=channel, language=lang, body_template=body))
    session.commit()
    try:
        yield session
    finally:
        session.close()
        set_sessionmaker(None)
        Base.metadata.drop_all(engine)
        engine.dispose()

@pytest.fixture(autouse=True)
def fake_voice():
    fake = FakeVoice()
    voice.set_voice_client(fake)
    yield fake
    voice.set_voice_client(None)

@pytest.fixture(autouse=True)
def fake_channels():
    chans = {"sms": FakeChannel("sms"), "chat": FakeChannel("chat")}
    for name, ch in chans.items():
        messaging.set_channel(name, ch)
    yield chans
    messaging.reset_channels()

@pytest.fixture(autouse=True)
def fake_queue():
    q = FakeQueue()
    call_center.set_call_center_queue(q)
    yield q
    call_center.set_call_center_queue(None)

@pytest.fixture(autouse=True)
def enqueued(monkeypatch):
    """Celery is never started; record what would have been enqueued."""
    calls = []
    monkeypatch.setattr(scheduler, "enqueue", lambda task_id, countdown=0: calls.append((task_id, countdown)))
    return calls

@pytest.fixture
def make_customer(db):
    def _make(**kw):
        data = dict(name="Lucia Perez", phone="+34600111222", country="Spain",
                    status="Active", orders_count=1, successful_deliveries=0)
        data.update(kw)
        c = Customer(**data)
        db.add(c)
        db.commit()
        return c
    return _make

@pytest.fixture
def make_order(db, make_customer):
    counter = {"n": 0}

    def _make(customer=None, items=(("Phone case", 1, 20.0),), **kw):
        counter["n"] += 1
        if customer is None:
            customer = make_customer()
        data = dict(
            order_number=f"COD-{1000 + counter['n']}",
            customer_id=customer.id,
            store_name="Tienda Sol",
            total_amount=sum(q * p for _, q, p in items),
            shipping_address_line1="Calle Mayor 5",
            shipping_city="Madrid",
            shipping_province="Madrid",
            shipping_postal_code="28013",
            shipping_country="Spain",
        )
        data.update(kw)
        order = Order(**data)
        order.items = [OrderItem(product_name=n, quantity=q, unit_price=p) for n, q, p in items]
        db.add(order)
        db.commit()
        return order
    return _make
