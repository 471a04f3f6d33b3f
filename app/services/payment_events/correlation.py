"""Locate the local records a provider notification concerns."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass

from sqlalchemy.orm import Session

from app.models.billing import Invoice, SyncEntity
from app.models.catalog import Subscription
from app.models.sales import Sale
from app.schemas.billing import NormalizedNotification

logger = logging.getLogger(__name__)


@dataclass
class Correlation:
    invoice: Invoice | None = None
    subscription: Subscription | None = None
    sale: Sale | None = None
    customer_id: uuid.UUID | None = None

    @property
    def matched(self) -> bool:
        return any((self.invoice, self.subscription, self.sale))

    def targets(self) -> list[tuple[SyncEntity, Invoice | Subscription | Sale]]:
        """Matched records paired with the entity type they synchronize as."""
        pairs = (
            (SyncEntity.invoice, self.invoice),
            (SyncEntity.subscription, self.subscription),
            (SyncEntity.sale, self.sale),
        )
        return [(entity, record) for entity, record in pairs if record is not None]


class CorrelationResolver:
    @staticmethod
    def find_invoice(db: Session, refs: list[str]) -> Invoice | None:
        if not refs:
            return None
        return (
            db.query(Invoice)
            .filter(Invoice.external_payment_id.in_(refs))
            .order_by(Invoice.created_at.desc())
            .first()
        )

    @staticmethod
    def find_subscription(db: Session, agreement_id: str | None) -> Subscription | None:
        if not agreement_id:
            return None
        return (
            db.query(Subscription)
            .filter(Subscription.provider_agreement_id == agreement_id)
            .order_by(Subscription.created_at.desc())
            .first()
        )

    @staticmethod
    def find_sale(db: Session, refs: list[str]) -> Sale | None:
        if not refs:
            return None
        return db.query(Sale).filter(Sale.reference.in_(refs)).first()

    @staticmethod
    def resolve(db: Session, notification: NormalizedNotification) -> Correlation:
        invoice = CorrelationResolver.find_invoice(db, notification.invoice_refs)
        if not invoice:
            logger.warning(
                "No invoice found for %s payment %s",
                notification.provider.value,
                ", ".join(notification.invoice_refs) or "-",
            )
        subscription = None
        if invoice and invoice.subscription_id:
            subscription = db.get(Subscription, invoice.subscription_id)
        if subscription is None:
            subscription = CorrelationResolver.find_subscription(
                db, notification.agreement_id
            )
        sale = CorrelationResolver.find_sale(db, notification.sale_refs)

        customer_id = None
        for source in (invoice, subscription, sale):
            if source is not None and source.customer_id:
                customer_id = source.customer_id
                break
        return Correlation(
            invoice=invoice,
            subscription=subscription,
            sale=sale,
            customer_id=customer_id,
        )
