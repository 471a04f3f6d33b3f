from __future__ import annotations

import hashlib
import json
from decimal import Decimal
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

from app.models.billing import PaymentProviderType

# Events that occur at most once per agreement; every other event needs its
# own key even when it only carries the agreement id.
AGREEMENT_LIFECYCLE_EVENTS = {"Agreement.Created", "Agreement.Cancelled"}


def payload_digest(raw: dict[str, Any]) -> str:
    canonical = json.dumps(raw, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def minor_to_major(amount: int | None) -> Decimal:
    """Convert provider minor units (øre/cents) to a two-decimal amount."""
    if amount is None:
        return Decimal("0.00")
    return (Decimal(amount) / 100).quantize(Decimal("0.01"))


class NormalizedNotification(BaseModel):
    """Provider-independent view of one webhook delivery."""

    provider: PaymentProviderType
    event_type: str
    transaction_id: str | None = None
    agreement_id: str | None = None
    invoice_refs: list[str] = Field(default_factory=list)
    sale_refs: list[str] = Field(default_factory=list)
    amount: Decimal = Decimal("0.00")
    currency: str = "DKK"
    payment_method: str
    raw: dict[str, Any] = Field(default_factory=dict)

    @property
    def idempotency_key(self) -> str:
        """``{provider}:{event}:{ref}`` identifying one provider notification.

        ``ref`` is the provider transaction id; the agreement id for agreement
        lifecycle events; otherwise a digest of the payload so recurring
        captures on one agreement never share a key.
        """
        if self.transaction_id:
            ref = self.transaction_id
        elif self.agreement_id and self.event_type in AGREEMENT_LIFECYCLE_EVENTS:
            ref = self.agreement_id
        else:
            ref = f"sha256:{payload_digest(self.raw)}"
        return f"{self.provider.value}:{self.event_type}:{ref}"


class MobilePayWebhookPayload(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    provider: Literal["mobilepay"] = "mobilepay"
    event_type: str = Field(alias="eventType", min_length=1, max_length=120)
    payment_id: str | None = Field(default=None, alias="paymentId", max_length=160)
    agreement_id: str | None = Field(default=None, alias="agreementId", max_length=160)
    order_id: str | None = Field(default=None, alias="orderId", max_length=160)
    reference: str | None = Field(default=None, max_length=160)
    amount: int | None = Field(default=None, ge=0)
    currency: str = Field(default="DKK", min_length=3, max_length=3)

    @model_validator(mode="after")
    def _require_correlation_id(self) -> "MobilePayWebhookPayload":
        if not self.payment_id and not self.agreement_id:
            raise ValueError("paymentId or agreementId is required")
        return self

    def normalize(self, raw: dict[str, Any]) -> NormalizedNotification:
        invoice_refs = [ref for ref in (self.payment_id, self.agreement_id) if ref]
        sale_refs = [ref for ref in (self.order_id, self.reference) if ref]
        return NormalizedNotification(
            provider=PaymentProviderType.mobilepay,
            event_type=self.event_type,
            transaction_id=self.payment_id,
            agreement_id=self.agreement_id,
            invoice_refs=invoice_refs,
            sale_refs=sale_refs,
            amount=minor_to_major(self.amount),
            currency=self.currency.upper(),
            payment_method="mobilepay",
            raw=raw,
        )


class RevolutOrderAmount(BaseModel):
    model_config = ConfigDict(extra="allow")

    value: int = Field(ge=0)
    currency: str = Field(min_length=3, max_length=3)


class RevolutOrderData(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str = Field(min_length=1, max_length=160)
    merchant_order_ext_ref: str = Field(min_length=1, max_length=160)
    order_amount: RevolutOrderAmount | None = None


class RevolutWebhookPayload(BaseModel):
    model_config = ConfigDict(extra="allow")

    provider: Literal["revolut"] = "revolut"
    event: str = Field(min_length=1, max_length=120)
    data: RevolutOrderData

    def normalize(self, raw: dict[str, Any]) -> NormalizedNotification:
        order_amount = self.data.order_amount
        return NormalizedNotification(
            provider=PaymentProviderType.revolut,
            event_type=self.event,
            transaction_id=self.data.id,
            invoice_refs=[self.data.merchant_order_ext_ref, self.data.id],
            sale_refs=[self.data.merchant_order_ext_ref],
            amount=minor_to_major(order_amount.value if order_amount else None),
            currency=(order_amount.currency if order_amount else "DKK").upper(),
            payment_method="revolut",
            raw=raw,
        )


WebhookPayload = Annotated[
    Union[MobilePayWebhookPayload, RevolutWebhookPayload],
    Field(discriminator="provider"),
]


class ChargeRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    agreement_id: str = Field(alias="agreementId", min_length=1)
    amount: int = Field(gt=0)
    currency: str = Field(default="DKK", min_length=3, max_length=3)
    description: str
    external_id: str = Field(alias="externalId", min_length=1, max_length=64)


class ChargeResult(BaseModel):
    success: bool
    data: dict[str, Any] | None = None
    error: str | None = None

    @property
    def charge_id(self) -> str | None:
        if not self.data:
            return None
        charge_id = self.data.get("id") or self.data.get("chargeId")
        return str(charge_id) if charge_id else None
