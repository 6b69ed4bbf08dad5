"""Regeneration triggers: react to host events by running the orchestrator.

Three events start a run:
- a new business: generate for that business only
- a catalog change: purge every generated obligation, then regenerate for all
  active businesses
- a periodic tick (monthly, host-scheduled): regenerate for all active
  businesses without purging; the duplicate guard keeps existing ones

Every outcome is written to the audit log.
"""

import threading
from collections.abc import Callable
from datetime import UTC, date, datetime
from typing import Any

import structlog

from fiscal_obligations.audit import AuditEntry, run_failed, run_succeeded
from fiscal_obligations.config import get_settings, run_context
from fiscal_obligations.models import (
    Actor,
    BusinessSelector,
    GenerationWindow,
    TriggerKind,
)
from fiscal_obligations.orchestrator import GenerationOrchestrator, GenerationRun
from fiscal_obligations.ports import AuditLog, ObligationStore
from fiscal_obligations.recurrence import local_today, rolling_window, year_window

logger = structlog.get_logger(__name__)


class RunGuard:
    """Process-wide "a run is executing" token.

    ``try_acquire`` is an atomic test-and-set: it succeeds for exactly one
    caller until ``release`` is called.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()

    @property
    def is_running(self) -> bool:
        return self._lock.locked()

    def try_acquire(self) -> bool:
        """Claim the token without waiting.

        Returns:
            True if the caller now holds the token, False if a run is
            already executing.
        """
        return self._lock.acquire(blocking=False)

    def release(self) -> None:
        """Give the token back. Only the holder may call this."""
        self._lock.release()


class RegenerationTrigger:
    """Entry points the host calls when generation should happen."""

    def __init__(
        self,
        orchestrator: GenerationOrchestrator,
        store: ObligationStore,
        audit: AuditLog,
        clock: Callable[[], date] | None = None,
        forward_months: int | None = None,
    ):
        self._orchestrator = orchestrator
        self._store = store
        self._audit = audit
        self._clock = clock or local_today
        self._forward_months = forward_months or get_settings().forward_months

        self._periodic_guard = RunGuard()
        self._last_run: datetime | None = None
        self._last_summary: GenerationRun | None = None

        self._logger = logger.bind(component="regeneration_trigger")

    @property
    def is_running(self) -> bool:
        return self._periodic_guard.is_running

    @property
    def last_run(self) -> datetime | None:
        return self._last_run

    def current_window(self) -> GenerationWindow:
        return rolling_window(self._clock(), self._forward_months)

    async def _record(self, entry: AuditEntry) -> None:
        try:
            await self._audit.append_audit_entry(entry.kind, entry.actor, entry.payload())
        except Exception as e:
            self._logger.error("audit_write_failed", kind=entry.kind, error=str(e))

    async def _succeeded(
        self, trigger: TriggerKind, actor: Actor, summary: GenerationRun
    ) -> None:
        self._last_run = datetime.now(UTC)
        self._last_summary = summary
        await self._record(run_succeeded(trigger, actor, summary.to_dict()))

    async def _failed(
        self,
        trigger: TriggerKind,
        error: Exception,
        actor: Actor | None,
        context: dict[str, Any],
    ) -> None:
        self._logger.error(
            "generation_trigger_failed", trigger=trigger.value, error=str(error)
        )
        await self._record(run_failed(trigger, error, actor=actor, context=context))

    async def on_new_business(
        self, business_id: str, actor_id: str
    ) -> GenerationRun | None:
        """Generate obligations for a newly created business.

        Args:
            business_id: The business that was just created.
            actor_id: Account that created it; any resolvable account may.

        Returns:
            The run summary, or None if the run failed. Failures are audited,
            never raised.
        """
        trigger = TriggerKind.NEW_BUSINESS
        actor: Actor | None = None
        with run_context(trigger.value):
            self._logger.info("new_business_generation", business_id=business_id)
            try:
                actor = await self._orchestrator.authorize(actor_id, require_admin=False)
                summary = await self._orchestrator.run(
                    BusinessSelector.single(business_id),
                    self.current_window(),
                    actor,
                    trigger,
                )
            except Exception as e:
                await self._failed(
                    trigger, e, actor, {"companyId": business_id, "userId": actor_id}
                )
                return None

            await self._succeeded(trigger, actor, summary)
        return summary

    async def on_template_catalog_changed(
        self, actor_identity: str
    ) -> GenerationRun | None:
        """Purge generated obligations and regenerate for every active business.

        Manual obligations survive the purge. Nothing is purged unless the
        actor resolves to an admin.

        Returns:
            The run summary with ``purged`` set, or None if the run failed.
        """
        trigger = TriggerKind.CATALOG_UPDATE
        actor: Actor | None = None
        with run_context(trigger.value):
            self._logger.info("catalog_regeneration", actor=actor_identity)
            try:
                actor = await self._orchestrator.authorize(actor_identity)
                purged = await self._store.delete_generated_obligations()
                self._logger.info("generated_obligations_purged", purged=purged)
                summary = await self._orchestrator.run(
                    BusinessSelector.all_active(), self.current_window(), actor, trigger
                )
                summary.purged = purged
            except Exception as e:
                await self._failed(trigger, e, actor, {"managerEmail": actor_identity})
                return None

            await self._succeeded(trigger, actor, summary)
        return summary

    async def on_schedule_tick(self) -> GenerationRun | None:
        """Monthly regeneration for every active business.

        Returns None without running if a periodic run is already executing.
        """
        trigger = TriggerKind.PERIODIC
        if not self._periodic_guard.try_acquire():
            self._logger.warning("periodic_run_skipped", reason="already_running")
            return None

        actor: Actor | None = None
        with run_context(trigger.value):
            try:
                actor = await self._orchestrator.authorize(None)
                summary = await self._orchestrator.run(
                    BusinessSelector.all_active(), self.current_window(), actor, trigger
                )
            except Exception as e:
                await self._failed(trigger, e, actor, {})
                return None
            finally:
                self._periodic_guard.release()

            await self._succeeded(trigger, actor, summary)
        return summary

    async def run_manual_generation(
        self, actor_identity: str, year: int | None = None
    ) -> GenerationRun:
        """Synchronous on-demand generation for every active business.

        Args:
            actor_identity: Admin account id or email.
            year: Generate for this calendar year instead of the rolling
                window.

        Returns:
            The run summary.

        Raises:
            NoAuthorizedActor: If the actor is not an admin.
            PersistenceUnavailable: If the catalog or directory cannot be read.
        """
        trigger = TriggerKind.MANUAL
        window = year_window(year) if year else self.current_window()
        actor: Actor | None = None
        with run_context(trigger.value):
            try:
                actor = await self._orchestrator.authorize(actor_identity)
                summary = await self._orchestrator.run(
                    BusinessSelector.all_active(), window, actor, trigger
                )
            except Exception as e:
                await self._failed(trigger, e, actor, {"managerEmail": actor_identity})
                raise

            await self._succeeded(trigger, actor, summary)
        return summary

    def status(self) -> dict[str, Any]:
        """Get current trigger status."""
        last = self._last_summary
        return {
            "is_running": self.is_running,
            "last_run": self._last_run.isoformat() if self._last_run else None,
            "last_trigger": last.trigger.value if last else None,
            "last_total_obligations": last.total_obligations if last else None,
            "last_error_count": len(last.errors) if last else None,
        }
