"""Turn one matched template into obligation drafts for one business."""

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, date, datetime

import structlog

from fiscal_obligations.config import get_settings
from fiscal_obligations.guard import DuplicateGuard
from fiscal_obligations.models import (
    GENERATED_MARKER,
    BusinessProfile,
    Frequency,
    GenerationWindow,
    ObligationDraft,
    Priority,
    RecurrenceTemplate,
    TriggerKind,
)
from fiscal_obligations.recurrence import evaluate, local_today, quarter_of

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class PeriodLabels:
    """Locale-specific wording for period labels and titles."""

    months: tuple[str, ...]
    quarter_prefix: str
    default_detail: str


PERIOD_LABELS: dict[str, PeriodLabels] = {
    "en": PeriodLabels(
        months=(
            "January", "February", "March", "April", "May", "June",
            "July", "August", "September", "October", "November", "December",
        ),
        quarter_prefix="Q",
        default_detail="Declaration",
    ),
    "fr": PeriodLabels(
        months=(
            "janvier", "février", "mars", "avril", "mai", "juin",
            "juillet", "août", "septembre", "octobre", "novembre", "décembre",
        ),
        quarter_prefix="T",
        default_detail="Déclaration",
    ),
}


def period_label(frequency: Frequency, due_date: date, locale: str = "en") -> str:
    """Declared-period label: "March 2024", "Q1 2024" or "2024"."""
    labels = PERIOD_LABELS[locale]
    if frequency is Frequency.MONTHLY:
        return f"{labels.months[due_date.month - 1]} {due_date.year}"
    if frequency is Frequency.QUARTERLY:
        return f"{labels.quarter_prefix}{quarter_of(due_date)} {due_date.year}"
    return str(due_date.year)


def compute_priority(
    due_date: date,
    today: date,
    high_days: int = 7,
    medium_days: int = 30,
) -> Priority:
    """Rank an obligation by how soon it is due.

    Args:
        due_date: When the obligation is due.
        today: Reference day, in the engine timezone.
        high_days: Due within this many days is high priority.
        medium_days: Due within this many days is medium priority.

    Returns:
        URGENT when overdue, then HIGH, MEDIUM or LOW by days until due.
    """
    days_until_due = (due_date - today).days
    if days_until_due < 0:
        return Priority.URGENT
    if days_until_due <= high_days:
        return Priority.HIGH
    if days_until_due <= medium_days:
        return Priority.MEDIUM
    return Priority.LOW


@dataclass(frozen=True)
class SynthesisContext:
    """Who and what started the generation, stamped into each draft."""

    trigger: TriggerKind
    generated_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    created_by: str | None = None


@dataclass
class SynthesisResult:
    drafts: list[ObligationDraft] = field(default_factory=list)
    duplicates_skipped: int = 0


class ObligationSynthesizer:
    """Builds obligation drafts from a template's due dates.

    Each candidate is checked against the duplicate guard right before it is
    emitted; existing ones are skipped and counted.
    """

    def __init__(
        self,
        guard: DuplicateGuard,
        clock: Callable[[], date] | None = None,
        locale: str | None = None,
        high_days: int | None = None,
        medium_days: int | None = None,
    ):
        settings = get_settings()
        self._guard = guard
        self._clock = clock or local_today
        self._locale = locale or settings.period_locale
        self._high_days = settings.priority_high_days if high_days is None else high_days
        self._medium_days = (
            settings.priority_medium_days if medium_days is None else medium_days
        )
        self._logger = logger.bind(component="obligation_synthesizer")

    def title_for(self, template: RecurrenceTemplate, period: str) -> str:
        detail = template.detail or PERIOD_LABELS[self._locale].default_detail
        return f"{template.tag} - {detail} {period}"

    def _build_metadata(
        self,
        template: RecurrenceTemplate,
        period: str,
        context: SynthesisContext,
    ) -> dict[str, object]:
        return {
            GENERATED_MARKER: True,
            "calendar_entry_id": template.id,
            "categorie_personnes": template.category,
            "type": template.type,
            "frequence_declaration": template.frequency.value,
            "periode_declaration": period,
            "formulaire": template.form,
            "lien": template.link,
            "commentaire": template.comment,
            "generation_date": context.generated_at.isoformat(),
            "generation_trigger": context.trigger.value,
        }

    async def synthesize(
        self,
        business: BusinessProfile,
        template: RecurrenceTemplate,
        window: GenerationWindow,
        context: SynthesisContext,
    ) -> SynthesisResult:
        """Return drafts for every non-duplicate due date in the window."""
        result = SynthesisResult()
        today = self._clock()

        for due_date in evaluate(template, window):
            period = period_label(template.frequency, due_date, self._locale)

            if await self._guard.exists(business.id, template.tag, due_date, period):
                result.duplicates_skipped += 1
                self._logger.debug(
                    "duplicate_skipped",
                    business_id=business.id,
                    tag=template.tag,
                    due_date=due_date.isoformat(),
                )
                continue

            result.drafts.append(
                ObligationDraft(
                    business_id=business.id,
                    title=self.title_for(template, period),
                    description=template.detail or template.comment or "",
                    tag=template.tag,
                    due_date=due_date,
                    priority=compute_priority(
                        due_date, today, self._high_days, self._medium_days
                    ),
                    period=period,
                    link=template.link,
                    created_by=context.created_by,
                    metadata=self._build_metadata(template, period, context),
                )
            )

        if result.duplicates_skipped:
            self._logger.info(
                "duplicates_skipped",
                business_id=business.id,
                template_id=template.id,
                tag=template.tag,
                skipped=result.duplicates_skipped,
            )
        return result
