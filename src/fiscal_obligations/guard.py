"""Duplicate detection for generated obligations."""

from datetime import date, datetime

import structlog

from fiscal_obligations.errors import PersistenceUnavailable
from fiscal_obligations.ports import ObligationStore

logger = structlog.get_logger(__name__)


class DuplicateGuard:
    """Checks whether an equivalent generated obligation already exists.

    Lookup failures fail open: the candidate is reported as new and the
    condition is logged, so a degraded store slows nothing down but may let
    a duplicate through. The store's own uniqueness check on insert is the
    backstop.
    """

    def __init__(self, store: ObligationStore):
        self._store = store
        self._lookup_failures = 0
        self._logger = logger.bind(component="duplicate_guard")

    @property
    def lookup_failures(self) -> int:
        return self._lookup_failures

    async def exists(
        self,
        business_id: str,
        tag: str,
        due_date: date,
        period: str | None = None,
    ) -> bool:
        """Check for a generated obligation matching the candidate.

        Args:
            business_id: Owning business.
            tag: Obligation tag, e.g. ``TVA``.
            due_date: Candidate due day. Datetimes are truncated to the day.
            period: Declared period label. Empty or None matches any period.

        Returns:
            True if a match exists. False when none does, or when the store
            lookup failed.
        """
        if isinstance(due_date, datetime):
            due_date = due_date.date()

        try:
            count = await self._store.count_existing_generated(
                business_id, tag, due_date, period or None
            )
        except PersistenceUnavailable as e:
            self._lookup_failures += 1
            self._logger.warning(
                "duplicate_check_failed",
                business_id=business_id,
                tag=tag,
                due_date=due_date.isoformat(),
                error=str(e),
            )
            return False

        return count > 0
