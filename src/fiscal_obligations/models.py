"""Data model shared by the generation engine and its collaborators.

Business profiles and recurrence templates are owned by other parts of the
host application and are read-only here. Records coming from the host may use
either English field names or the original column names of the fiscal
calendar tables (``categorie_personnes``, ``frequence_declaration``, ...).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any

from fiscal_obligations.errors import InvalidBusinessProfile, TemplateMalformed

GENERATED_MARKER = "generated_from_calendar"


class Frequency(str, Enum):
    """How often an obligation recurs."""

    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    ANNUAL = "annual"

    @classmethod
    def parse(cls, value: Any) -> Frequency:
        """Parse a frequency from an English or French catalog label."""
        if isinstance(value, Frequency):
            return value
        if not isinstance(value, str):
            raise ValueError(f"Invalid frequency: {value!r}")
        normalized = value.strip().lower()
        try:
            return FREQUENCY_ALIASES[normalized]
        except KeyError:
            raise ValueError(f"Invalid frequency: {value!r}") from None


FREQUENCY_ALIASES: dict[str, Frequency] = {
    "monthly": Frequency.MONTHLY,
    "mensuel": Frequency.MONTHLY,
    "mensuelle": Frequency.MONTHLY,
    "quarterly": Frequency.QUARTERLY,
    "trimestriel": Frequency.QUARTERLY,
    "trimestrielle": Frequency.QUARTERLY,
    "annual": Frequency.ANNUAL,
    "yearly": Frequency.ANNUAL,
    "annuel": Frequency.ANNUAL,
    "annuelle": Frequency.ANNUAL,
}


class ObligationStatus(str, Enum):
    """Lifecycle status of an obligation."""

    PENDING = "pending"
    COMPLETED = "completed"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"


class Priority(str, Enum):
    """Urgency derived from the days left until the due date."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class TriggerKind(str, Enum):
    """Events that start a generation run."""

    NEW_BUSINESS = "new_company"
    CATALOG_UPDATE = "calendar_update"
    PERIODIC = "monthly"
    MANUAL = "manual"


def _pick(record: dict[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        value = record.get(key)
        if value is not None:
            return value
    return default


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes", "oui")
    return bool(value)


def _as_int(value: Any) -> int | None:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _as_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


@dataclass(frozen=True)
class BusinessProfile:
    """Classification attributes of a business used for template matching."""

    id: str
    name: str
    category: str | None
    subcategory: str | None = None
    subject_to_levy: bool = False
    levy_regime: Frequency | None = None
    prorated_deduction: bool = False
    status: str = "active"

    def require_category(self) -> str:
        """Return the category or raise if the profile cannot be matched."""
        if not self.category:
            raise InvalidBusinessProfile(
                f"Business {self.id} has no category", business_id=self.id
            )
        return self.category

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> BusinessProfile:
        """Build a profile from an API or YAML record."""
        regime_raw = _pick(record, "levy_regime", "regime_tva")
        try:
            regime = Frequency.parse(regime_raw) if regime_raw else None
        except ValueError as exc:
            raise InvalidBusinessProfile(
                f"Unknown levy regime {regime_raw!r}",
                business_id=str(record.get("id")),
            ) from exc

        return cls(
            id=str(record["id"]),
            name=str(record.get("name", "")),
            category=_pick(record, "category", "categorie_personnes"),
            subcategory=_pick(record, "subcategory", "sous_categorie"),
            subject_to_levy=_as_bool(
                _pick(record, "subject_to_levy", "is_tva_assujetti", default=False)
            ),
            levy_regime=regime,
            prorated_deduction=_as_bool(
                _pick(record, "prorated_deduction", "prorata_deduction", default=False)
            ),
            status=str(record.get("status", "active")),
        )


@dataclass(frozen=True)
class RecurrenceTemplate:
    """A fiscal calendar entry describing one recurring obligation kind."""

    id: str
    category: str
    tag: str
    frequency: Frequency
    day: int | None
    month: int | None = None
    subcategory: str | None = None
    type: str | None = None
    detail: str | None = None
    comment: str | None = None
    form: str | None = None
    link: str | None = None

    @property
    def sort_key(self) -> tuple[str, str, int, int]:
        return (self.tag, self.frequency.value, self.month or 0, self.day or 0)

    @property
    def is_well_formed(self) -> bool:
        """Whether the anchor fields allow due dates to be computed."""
        if self.day is None or not 1 <= self.day <= 31:
            return False
        if self.frequency is Frequency.ANNUAL:
            return self.month is not None and 1 <= self.month <= 12
        return True

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> RecurrenceTemplate:
        """Build a template from an API or YAML record."""
        template_id = str(record.get("id", ""))
        tag = _pick(record, "tag")
        category = _pick(record, "category", "categorie_personnes")
        if not tag or not category:
            raise TemplateMalformed(
                "Template requires a tag and a category", template_id=template_id
            )
        try:
            frequency = Frequency.parse(
                _pick(record, "frequency", "frequence_declaration")
            )
        except ValueError as exc:
            raise TemplateMalformed(str(exc), template_id=template_id) from exc

        return cls(
            id=template_id,
            category=str(category),
            tag=str(tag),
            frequency=frequency,
            day=_as_int(_pick(record, "day", "jours")),
            month=_as_int(_pick(record, "month", "mois")),
            subcategory=_pick(record, "subcategory", "sous_categorie"),
            type=_pick(record, "type"),
            detail=_pick(record, "detail", "detail_declaration"),
            comment=_pick(record, "comment", "commentaire"),
            form=_pick(record, "form", "formulaire"),
            link=_pick(record, "link", "lien"),
        )


@dataclass(frozen=True)
class GenerationWindow:
    """Inclusive date range in which due dates are generated."""

    start: date
    end: date

    def __post_init__(self) -> None:
        if self.start > self.end:
            raise ValueError(
                f"Window start {self.start} is after window end {self.end}"
            )

    def __contains__(self, day: object) -> bool:
        return isinstance(day, date) and self.start <= day <= self.end

    def to_dict(self) -> dict[str, str]:
        return {"start": self.start.isoformat(), "end": self.end.isoformat()}


@dataclass(frozen=True)
class BusinessSelector:
    """Either one business or every active business."""

    business_id: str | None = None

    @classmethod
    def single(cls, business_id: str) -> BusinessSelector:
        return cls(business_id=business_id)

    @classmethod
    def all_active(cls) -> BusinessSelector:
        return cls()

    @property
    def is_all(self) -> bool:
        return self.business_id is None


@dataclass(frozen=True)
class Actor:
    """Account on whose behalf a run executes."""

    id: str
    email: str
    name: str = ""
    is_admin: bool = False

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> Actor:
        name = record.get("name") or " ".join(
            part for part in (record.get("first_name"), record.get("last_name")) if part
        )
        return cls(
            id=str(record["id"]),
            email=str(record.get("email", "")),
            name=name,
            is_admin=record.get("is_admin", record.get("role") == "admin"),
        )

    def to_dict(self) -> dict[str, str]:
        return {"id": self.id, "name": self.name, "email": self.email}


@dataclass(frozen=True)
class ObligationDraft:
    """An obligation ready to be persisted. Write-once."""

    business_id: str
    title: str
    description: str
    tag: str
    due_date: date
    priority: Priority
    period: str
    link: str | None = None
    status: ObligationStatus = ObligationStatus.PENDING
    created_by: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def template_id(self) -> str | None:
        return self.metadata.get("calendar_entry_id")

    @property
    def is_generated(self) -> bool:
        return self.metadata.get(GENERATED_MARKER) is True

    def to_record(self) -> dict[str, Any]:
        """Serialize in the shape the host's obligation table expects."""
        return {
            "company_id": self.business_id,
            "title": self.title,
            "description": self.description,
            "obligation_type": self.tag,
            "due_date": self.due_date.isoformat(),
            "status": self.status.value,
            "priority": self.priority.value,
            "created_by": self.created_by,
            "periode_declaration": self.period,
            "lien": self.link,
            "obligation_details": self.metadata,
        }


@dataclass(frozen=True)
class Obligation(ObligationDraft):
    """A persisted obligation record."""

    id: str = ""
    created_at: datetime | None = None

    @classmethod
    def from_draft(
        cls, draft: ObligationDraft, obligation_id: str, created_at: datetime
    ) -> Obligation:
        return cls(
            business_id=draft.business_id,
            title=draft.title,
            description=draft.description,
            tag=draft.tag,
            due_date=draft.due_date,
            priority=draft.priority,
            period=draft.period,
            link=draft.link,
            status=draft.status,
            created_by=draft.created_by,
            metadata=dict(draft.metadata),
            id=obligation_id,
            created_at=created_at,
        )

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> Obligation:
        created_raw = record.get("created_at")
        return cls(
            business_id=str(_pick(record, "business_id", "company_id")),
            title=str(record.get("title", "")),
            description=str(record.get("description") or ""),
            tag=str(_pick(record, "tag", "obligation_type")),
            due_date=_as_date(record["due_date"]),
            priority=Priority(record.get("priority", Priority.LOW.value)),
            period=str(_pick(record, "period", "periode_declaration", default="")),
            link=_pick(record, "link", "lien"),
            status=ObligationStatus(record.get("status", ObligationStatus.PENDING.value)),
            created_by=record.get("created_by"),
            metadata=dict(_pick(record, "metadata", "obligation_details", default={})),
            id=str(record.get("id", "")),
            created_at=datetime.fromisoformat(created_raw) if created_raw else None,
        )


@dataclass(frozen=True)
class TagDuplicateStats:
    """Obligation counts for one tag that occurs more than once in a range."""

    tag: str
    total_count: int
    generated_count: int

    @property
    def manual_count(self) -> int:
        return self.total_count - self.generated_count

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> TagDuplicateStats:
        return cls(
            tag=str(_pick(record, "tag", "obligation_type")),
            total_count=int(record.get("total_count", 0)),
            generated_count=int(record.get("generated_count", 0)),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "obligation_type": self.tag,
            "total_count": self.total_count,
            "generated_count": self.generated_count,
        }
