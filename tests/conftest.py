import uuid
from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest
from sqlalchemy.orm import sessionmaker

import app.models  # noqa: F401
from app.db import Base, get_engine
from app.models.billing import Invoice, InvoiceStatus
from app.models.catalog import Subscription, SubscriptionStatus
from app.models.customer import Customer
from app.models.notification import EmailTemplate
from app.models.sales import Sale
from app.services.subscription_reminders import DEFAULT_REMINDER_TEMPLATES


@pytest.fixture()
def engine():
    """Fresh in-memory SQLite database per test.

    Services commit and roll back per entity, so tests cannot share an
    outer transaction.
    """
    engine = get_engine("sqlite+pysqlite://")
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)


@pytest.fixture()
def db_session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(autouse=True)
def provider_env(monkeypatch):
    """Start every test without provider secrets or credentials."""
    for name in (
        "MOBILEPAY_WEBHOOK_SECRET",
        "REVOLUT_WEBHOOK_SECRET",
        "MOBILEPAY_CLIENT_ID",
        "MOBILEPAY_CLIENT_SECRET",
        "MOBILEPAY_SUBSCRIPTION_KEY",
        "MOBILEPAY_RECURRING_SUBSCRIPTION_KEY",
        "MOBILEPAY_MERCHANT_SERIAL_NUMBER",
    ):
        monkeypatch.delenv(name, raising=False)


def _unique_email() -> str:
    return f"test-{uuid.uuid4().hex}@example.com"


@pytest.fixture()
def customer(db_session):
    customer = Customer(name="Test Customer", email=_unique_email())
    db_session.add(customer)
    db_session.commit()
    db_session.refresh(customer)
    return customer


@pytest.fixture()
def make_subscription(db_session, customer):
    def _make(**overrides):
        values = {
            "customer_id": customer.id,
            "product_name": "Premium Streaming",
            "status": SubscriptionStatus.active,
            "price": Decimal("99.50"),
            "currency": "DKK",
            "start_date": datetime.now(UTC) - timedelta(days=30),
            "end_date": datetime.now(UTC) + timedelta(days=30),
        }
        values.update(overrides)
        subscription = Subscription(**values)
        db_session.add(subscription)
        db_session.commit()
        db_session.refresh(subscription)
        return subscription

    return _make


@pytest.fixture()
def subscription(make_subscription):
    """Active MobilePay subscription with a recurring agreement."""
    return make_subscription(
        provider_agreement_id="agr-1",
        payment_method="mobilepay",
    )


@pytest.fixture()
def make_invoice(db_session, customer):
    def _make(**overrides):
        values = {
            "customer_id": customer.id,
            "invoice_number": f"INV-{uuid.uuid4().hex[:6]}",
            "status": InvoiceStatus.pending,
            "amount": Decimal("100.00"),
            "currency": "DKK",
        }
        values.update(overrides)
        invoice = Invoice(**values)
        db_session.add(invoice)
        db_session.commit()
        db_session.refresh(invoice)
        return invoice

    return _make


@pytest.fixture()
def invoice(make_invoice):
    return make_invoice(external_payment_id="p1")


@pytest.fixture()
def sale(db_session, customer):
    sale = Sale(reference="order-1001", customer_id=customer.id, amount=Decimal("100.00"))
    db_session.add(sale)
    db_session.commit()
    db_session.refresh(sale)
    return sale


@pytest.fixture()
def reminder_templates(db_session):
    templates = [EmailTemplate(is_active=True, **data) for data in DEFAULT_REMINDER_TEMPLATES]
    db_session.add_all(templates)
    db_session.commit()
    return templates
