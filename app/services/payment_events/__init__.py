"""Payment event reconciliation services.

    from app.services import payment_events
    outcome = payment_events.event_classifier.classify(provider, event_type)
    correlation = payment_events.correlation_resolver.resolve(db, notification)
    result = payment_events.ledger_writer.record(db, entry)
    payment_events.state_synchronizer.apply_outcome(db, outcome, correlation, ...)
"""

from app.services.payment_events.classifier import CanonicalOutcome, EventClassifier
from app.services.payment_events.correlation import Correlation, CorrelationResolver
from app.services.payment_events.ledger import LedgerEntry, LedgerResult, LedgerWriter
from app.services.payment_events.replay import replay_failed_steps
from app.services.payment_events.sync import StateSynchronizer, SyncStepResult

# Singleton instances for service access
event_classifier = EventClassifier()
correlation_resolver = CorrelationResolver()
ledger_writer = LedgerWriter()
state_synchronizer = StateSynchronizer()

__all__ = [
    "CanonicalOutcome",
    "Correlation",
    "CorrelationResolver",
    "EventClassifier",
    "LedgerEntry",
    "LedgerResult",
    "LedgerWriter",
    "StateSynchronizer",
    "SyncStepResult",
    "correlation_resolver",
    "event_classifier",
    "ledger_writer",
    "replay_failed_steps",
    "state_synchronizer",
]
