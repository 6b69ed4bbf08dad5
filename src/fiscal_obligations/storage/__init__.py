"""Collaborator implementations shipped with the engine."""

from fiscal_obligations.storage.backend_api import BackendAPIClient
from fiscal_obligations.storage.memory import (
    InMemoryActorDirectory,
    InMemoryAuditLog,
    InMemoryBusinessDirectory,
    InMemoryObligationStore,
    InMemoryTemplateCatalog,
    RecordedAuditEntry,
)

__all__ = [
    "BackendAPIClient",
    "InMemoryActorDirectory",
    "InMemoryAuditLog",
    "InMemoryBusinessDirectory",
    "InMemoryObligationStore",
    "InMemoryTemplateCatalog",
    "RecordedAuditEntry",
]
