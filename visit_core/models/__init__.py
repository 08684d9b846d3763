from .core import (
    TimeStampedModel,
    TestTemplate,
    Antibiotic,
    Visit,
    VisitTest,
    UserRole,
)
from .rejection import RejectionRecord
from .audit import AuditLog

__all__ = [
    "TimeStampedModel",
    "TestTemplate",
    "Antibiotic",
    "Visit",
    "VisitTest",
    "UserRole",
    "RejectionRecord",
    "AuditLog",
]
