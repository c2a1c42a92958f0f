"""
Core services for the application.

This package contains the emergency pipeline and its collaborators:
normalization, rule evaluation, contact resolution, notification and audit.
"""

from .audit import AuditLogger
from .contacts import ContactResolver, InMemorySubjectStore, SqliteSubjectStore, SubjectStore
from .normalizer import normalize
from .notifications import (
    DeliveryStatus,
    LiveChannel,
    NotificationChannel,
    NotificationDispatcher,
    StubChannel,
    build_channel,
)
from .pipeline import EmergencyPipeline, build_pipeline
from .result import Result
from .rules import RuleEngine

__all__ = [
    "AuditLogger",
    "ContactResolver",
    "DeliveryStatus",
    "EmergencyPipeline",
    "InMemorySubjectStore",
    "LiveChannel",
    "NotificationChannel",
    "NotificationDispatcher",
    "Result",
    "RuleEngine",
    "SqliteSubjectStore",
    "StubChannel",
    "SubjectStore",
    "build_channel",
    "build_pipeline",
    "normalize",
]
