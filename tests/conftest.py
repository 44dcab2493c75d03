from datetime import date
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from contabil.advisor.service import reset_cooldowns
from contabil.core.authorization import CAPABILITY_FLAGS
from contabil.core.security import create_access_token
from contabil.db import models
from contabil.db.session import get_db
from contabil.main import app


@pytest.fixture()
def db_session():
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    models.Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    db = SessionLocal()
    yield db
    db.close()
    engine.dispose()


@pytest.fixture()
def api(db_session):
    def _override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = _override_get_db
    reset_cooldowns()
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()
    reset_cooldowns()


def make_client(db, company="Padaria Sol", **fields):
    client = models.Client(
        name=fields.pop("name", "Maria Souza"),
        company=company,
        tax_regime=fields.pop("tax_regime", "SimplesNacional"),
        status=fields.pop("status", models.CLIENT_ACTIVE),
        cnaes=fields.pop("cnaes", []),
        keywords=fields.pop("keywords", []),
        **fields,
    )
    db.add(client)
    db.commit()
    db.refresh(client)
    return client


def make_user(db, username, role=models.ROLE_ADMIN, clients=None, capabilities=(), status="active"):
    user = models.User(
        username=username,
        password_hash="x",
        name=username.title(),
        role=role,
        status=status,
    )
    for capability in capabilities:
        setattr(user, CAPABILITY_FLAGS[capability], True)
    user.clients = list(clients or [])
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def make_invoice(db, client, description="Honorarios", amount=Decimal("850.00"), due_date=None, status=models.INVOICE_PENDING):
    invoice = models.Invoice(
        client_id=client.id,
        description=description,
        amount=amount,
        due_date=due_date or date(2026, 10, 30),
        status=status,
        payment_methods=["boleto"],
    )
    db.add(invoice)
    db.commit()
    db.refresh(invoice)
    return invoice


def auth_headers(user):
    token = create_access_token({"sub": user.id, "role": user.role})
    return {"Authorization": f"Bearer {token}"}
