from app.models.audit import ActivityLog, ErrorLevel, ErrorLog  # noqa: F401
from app.models.billing import (  # noqa: F401
    Invoice,
    InvoiceStatus,
    PaymentProviderType,
    PaymentSyncStep,
    PaymentTransaction,
    SyncEntity,
    SyncStepStatus,
    TransactionStatus,
)
from app.models.catalog import Subscription, SubscriptionStatus  # noqa: F401
from app.models.customer import Customer  # noqa: F401
from app.models.notification import EmailTemplate  # noqa: F401
from app.models.sales import Sale, SalePaymentStatus, SaleStatus  # noqa: F401
