# codguard/tests/test_database.py
import pytest
from sqlalchemy import select

from codguard.database import _normalize_db_url, engine_options, get_db, session_scope
from codguard.models import Customer

def test_postgres_urls_use_psycopg():
    assert _normalize_db_url("postgres://u:p@h/db") == "postgresql+psycopg://u:p@h/db"
    assert _normalize_db_url("postgresql://u:p@h/db") == "postgresql+psycopg://u:p@h/db"
    assert _normalize_db_url("sqlite://") == "sqlite://"

def test_engine_options_per_backend():
    assert engine_options("sqlite://")["connect_args"] == {"check_same_thread": False}
    pg = engine_options("postgresql+psycopg://h/db")
    assert pg["pool_pre_ping"] is True
    assert "connect_args" not in pg

def test_session_scope_rolls_back_uncommitted_work(db):
    with pytest.raises(RuntimeError):
        with session_scope() as s:
            s.add(Customer(name="Half written", phone="+34600000001"))
            s.flush()
            raise RuntimeError("worker crashed")
    assert db.execute(select(Customer)).first() is None

def test_session_scope_keeps_committed_work(db):
    with session_scope() as s:
        s.add(Customer(name="Kept", phone="+34600000002"))
        s.commit()
    assert db.execute(select(Customer.name)).scalar_one() == "Kept"

def test_get_db_yields_a_session(db):
    gen = get_db()
    s = next(gen)
    assert s.execute(select(Customer)).first() is None
    gen.close()
