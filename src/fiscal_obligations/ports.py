"""Collaborator interfaces the engine reads from and writes to.

The host application provides implementations; ``storage.memory`` and
``storage.backend_api`` ship with the engine.
"""

from abc import ABC, abstractmethod
from collections.abc import Sequence
from datetime import date
from typing import Any

from fiscal_obligations.models import (
    Actor,
    BusinessProfile,
    GenerationWindow,
    Obligation,
    ObligationDraft,
    RecurrenceTemplate,
    TagDuplicateStats,
)


class BusinessDirectory(ABC):
    """Read access to business profiles."""

    @abstractmethod
    async def get_business_profile(self, business_id: str) -> BusinessProfile:
        """Return the profile or raise ``BusinessNotFound``."""

    @abstractmethod
    async def list_active_businesses(self) -> Sequence[BusinessProfile]:
        """Return every business whose status is active."""


class TemplateCatalog(ABC):
    """Read access to the recurrence template catalog."""

    @abstractmethod
    async def list_templates(self, category: str | None = None) -> Sequence[RecurrenceTemplate]:
        """Return the templates for one category, or the full catalog."""


class ObligationStore(ABC):
    """Persistence for generated obligations."""

    @abstractmethod
    async def count_existing_generated(
        self,
        business_id: str,
        tag: str,
        due_date: date,
        period: str | None = None,
    ) -> int:
        """Count generated obligations matching business, tag, due day and period."""

    @abstractmethod
    async def insert_obligations(
        self, business_id: str, drafts: Sequence[ObligationDraft]
    ) -> list[Obligation]:
        """Atomically insert one business's drafts.

        Generated drafts that collide with an existing generated record on
        (business, template, due date, period) are skipped; only inserted
        records are returned.
        """

    @abstractmethod
    async def delete_generated_obligations(self) -> int:
        """Delete every generated obligation and return how many were removed."""

    @abstractmethod
    async def summarize(self, business_id: str) -> dict[str, Any]:
        """Return obligation counts by status and the due date range."""

    @abstractmethod
    async def has_obligations(self, business_id: str) -> bool:
        """Whether any obligation, generated or not, exists for the business."""

    @abstractmethod
    async def duplicate_stats(
        self, business_id: str, window: GenerationWindow
    ) -> list[TagDuplicateStats]:
        """Report tags with more than one obligation due inside the window.

        Args:
            business_id: Business to inspect.
            window: Inclusive due date range.

        Returns:
            Total and generated counts per repeated tag, ordered by tag.
        """


class AuditLog(ABC):
    """Append-only audit trail."""

    @abstractmethod
    async def append_audit_entry(
        self, kind: str, actor: Actor | None, payload: dict[str, Any]
    ) -> None:
        """Record one audit entry."""


class ActorDirectory(ABC):
    """Resolution of trigger actors to accounts."""

    @abstractmethod
    async def resolve(self, identity: str) -> Actor | None:
        """Look up an account by id or email."""

    @abstractmethod
    async def default_system_actor(self) -> Actor | None:
        """Return the account periodic runs execute as (the oldest admin)."""
