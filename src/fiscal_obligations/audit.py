"""Audit entries recorded for every generation run outcome."""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any
from uuid import UUID, uuid4

from fiscal_obligations.models import Actor, TriggerKind

AUDIT_ACTION_PREFIX = "AUTOMATED_OBLIGATION_GENERATION"
AUDIT_TABLE = "fiscal_obligations"


@dataclass
class AuditEntry:
    """One audit record describing a trigger outcome."""

    trigger: TriggerKind
    success: bool
    actor: Actor | None = None
    summary: dict[str, Any] | None = None
    error: str | None = None
    error_code: str | None = None
    context: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    entry_id: UUID = field(default_factory=uuid4)

    @property
    def kind(self) -> str:
        action = f"{AUDIT_ACTION_PREFIX}_{self.trigger.value.upper()}"
        return action if self.success else f"{action}_ERROR"

    def payload(self) -> dict[str, Any]:
        """Serialize the entry body for the audit collaborator."""
        body: dict[str, Any] = {
            "id": str(self.entry_id),
            "triggerType": self.trigger.value,
            "timestamp": self.timestamp.isoformat(),
            "success": self.success,
        }
        if self.summary is not None:
            body["summary"] = self.summary
        if self.error is not None:
            body["error"] = self.error
            body["errorCode"] = self.error_code
        if self.context:
            body["context"] = self.context
        return body


def run_succeeded(
    trigger: TriggerKind, actor: Actor | None, summary: dict[str, Any]
) -> AuditEntry:
    """Create an audit entry for a completed run."""
    return AuditEntry(trigger=trigger, success=True, actor=actor, summary=summary)


def run_failed(
    trigger: TriggerKind,
    error: Exception,
    actor: Actor | None = None,
    context: dict[str, Any] | None = None,
) -> AuditEntry:
    """Create an audit entry for a run that raised."""
    return AuditEntry(
        trigger=trigger,
        success=False,
        actor=actor,
        error=str(error),
        error_code=getattr(error, "error_code", type(error).__name__),
        context=context or {},
    )
