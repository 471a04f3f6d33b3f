import enum
import uuid
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import DateTime, Enum, ForeignKey, Numeric, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db import Base


class SaleStatus(enum.Enum):
    pending = "pending"
    completed = "completed"
    cancelled = "cancelled"


class SalePaymentStatus(enum.Enum):
    pending = "pending"
    received = "received"


class Sale(Base):
    __tablename__ = "sales"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    # Merchant order reference sent to the provider (orderId / reference)
    reference: Mapped[str] = mapped_column(String(160), unique=True, nullable=False)
    customer_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, ForeignKey("customers.id"))
    status: Mapped[SaleStatus] = mapped_column(Enum(SaleStatus), default=SaleStatus.pending)
    payment_status: Mapped[SalePaymentStatus] = mapped_column(
        Enum(SalePaymentStatus), default=SalePaymentStatus.pending
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0.00"))
    currency: Mapped[str] = mapped_column(String(3), default="DKK")

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc)
    )

    customer = relationship("Customer")
