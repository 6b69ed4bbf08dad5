"""Generation orchestrator - drives obligation generation across businesses.

The orchestrator:
1. Loads the template catalog once per run (a failure here aborts the run)
2. Resolves the selected businesses (one, or every active business)
3. For each business: fetches the profile, matches templates, synthesizes
   drafts and persists them in one batch
4. Isolates per-business failures so one bad business cannot blank out the run
5. Returns a GenerationRun summary

Usage:
    orchestrator = GenerationOrchestrator(directory, catalog, store, actors)
    actor = await orchestrator.authorize("admin@example.com")
    summary = await orchestrator.run(
        BusinessSelector.all_active(), rolling_window(date.today()), actor
    )
"""

import asyncio
import json
from collections import Counter
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from typing import Any

import structlog

from fiscal_obligations.errors import NoAuthorizedActor
from fiscal_obligations.guard import DuplicateGuard
from fiscal_obligations.matcher import TemplateMatcher
from fiscal_obligations.models import (
    Actor,
    BusinessProfile,
    BusinessSelector,
    GenerationWindow,
    Obligation,
    ObligationDraft,
    RecurrenceTemplate,
    TriggerKind,
)
from fiscal_obligations.ports import (
    ActorDirectory,
    BusinessDirectory,
    ObligationStore,
    TemplateCatalog,
)
from fiscal_obligations.recurrence import local_today
from fiscal_obligations.synthesizer import ObligationSynthesizer, SynthesisContext

logger = structlog.get_logger(__name__)


@dataclass
class BusinessRunDetail:
    """Outcome for one successfully processed business."""

    business_id: str
    business_name: str
    category: str | None
    subcategory: str | None
    obligations_generated: int
    duplicates_skipped: int = 0
    obligations_by_tag: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "companyId": self.business_id,
            "companyName": self.business_name,
            "categorie_personnes": self.category,
            "sous_categorie": self.subcategory,
            "obligationsGenerated": self.obligations_generated,
            "duplicatesSkipped": self.duplicates_skipped,
            "obligationsByType": dict(self.obligations_by_tag),
        }


@dataclass
class BusinessRunError:
    """A business whose generation failed."""

    business_id: str
    business_name: str
    error: str
    error_code: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "companyId": self.business_id,
            "companyName": self.business_name,
            "error": self.error,
            "errorCode": self.error_code,
        }


@dataclass
class GenerationRun:
    """Summary of one generation run.

    Totals are sums over successfully processed businesses only.
    """

    trigger: TriggerKind
    window: GenerationWindow
    actor: Actor | None = None
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    finished_at: datetime | None = None
    total_businesses: int = 0
    businesses_processed: int = 0
    businesses_with_obligations: int = 0
    total_obligations: int = 0
    duplicates_skipped: int = 0
    purged: int = 0
    details: list[BusinessRunDetail] = field(default_factory=list)
    errors: list[BusinessRunError] = field(default_factory=list)

    @property
    def obligations_per_business(self) -> dict[str, int]:
        return {d.business_id: d.obligations_generated for d in self.details}

    @property
    def errors_per_business(self) -> dict[str, str]:
        return {e.business_id: e.error for e in self.errors}

    def record_success(self, detail: BusinessRunDetail) -> None:
        self.details.append(detail)
        self.businesses_processed += 1
        self.total_obligations += detail.obligations_generated
        self.duplicates_skipped += detail.duplicates_skipped
        if detail.obligations_generated > 0:
            self.businesses_with_obligations += 1

    def record_error(self, error: BusinessRunError) -> None:
        self.errors.append(error)

    def to_dict(self) -> dict[str, Any]:
        return {
            "trigger": self.trigger.value,
            "manager": self.actor.to_dict() if self.actor else None,
            "window": self.window.to_dict(),
            "startedAt": self.started_at.isoformat(),
            "finishedAt": self.finished_at.isoformat() if self.finished_at else None,
            "totalCompanies": self.total_businesses,
            "companiesProcessed": self.businesses_processed,
            "companiesWithObligations": self.businesses_with_obligations,
            "totalObligations": self.total_obligations,
            "totalDuplicatesSkipped": self.duplicates_skipped,
            "purged": self.purged,
            "errors": [e.to_dict() for e in self.errors],
            "companyDetails": [d.to_dict() for d in self.details],
        }


class GenerationOrchestrator:
    """Runs obligation generation for a selection of businesses."""

    def __init__(
        self,
        directory: BusinessDirectory,
        catalog: TemplateCatalog,
        store: ObligationStore,
        actors: ActorDirectory,
        matcher: TemplateMatcher | None = None,
        synthesizer: ObligationSynthesizer | None = None,
        clock: Callable[[], date] | None = None,
    ):
        self._directory = directory
        self._catalog = catalog
        self._store = store
        self._actors = actors
        self._matcher = matcher or TemplateMatcher()
        self._synthesizer = synthesizer or ObligationSynthesizer(
            DuplicateGuard(store), clock=clock or local_today
        )
        self._logger = logger.bind(component="generation_orchestrator")

    @property
    def store(self) -> ObligationStore:
        return self._store

    async def authorize(self, identity: str | None, require_admin: bool = True) -> Actor:
        """Resolve the account a run executes as.

        Args:
            identity: Account id or email. ``None`` selects the system actor
                (oldest admin) used by periodic runs.
            require_admin: Reject accounts without the admin role.

        Returns:
            The resolved actor.

        Raises:
            NoAuthorizedActor: If the identity is empty, unknown or not
                allowed, or no system actor exists.
        """
        if identity is None:
            actor = await self._actors.default_system_actor()
            if actor is None:
                raise NoAuthorizedActor("No admin user found for automated generation")
            return actor

        actor = await self._actors.resolve(identity) if identity.strip() else None
        if actor is None or (require_admin and not actor.is_admin):
            raise NoAuthorizedActor("Manager not found or not authorized", actor=identity)
        return actor

    async def _select(self, selector: BusinessSelector) -> list[tuple[str, str]]:
        if not selector.is_all:
            assert selector.business_id is not None
            return [(selector.business_id, "")]
        businesses = await self._directory.list_active_businesses()
        return [(b.id, b.name) for b in sorted(businesses, key=lambda b: b.name)]

    async def _generate_for_business(
        self,
        business_id: str,
        catalog: Sequence[RecurrenceTemplate],
        window: GenerationWindow,
        context: SynthesisContext,
    ) -> tuple[BusinessProfile, BusinessRunDetail]:
        profile = await self._directory.get_business_profile(business_id)
        templates = self._matcher.match(profile, catalog)

        drafts: list[ObligationDraft] = []
        skipped = 0
        for template in templates:
            result = await self._synthesizer.synthesize(profile, template, window, context)
            drafts.extend(result.drafts)
            skipped += result.duplicates_skipped

        persisted: list[Obligation] = []
        if drafts:
            persisted = await self._store.insert_obligations(profile.id, drafts)
            if len(persisted) < len(drafts):
                self._logger.warning(
                    "insert_conflicts_dropped",
                    business_id=profile.id,
                    dropped=len(drafts) - len(persisted),
                )
            skipped += len(drafts) - len(persisted)

        detail = BusinessRunDetail(
            business_id=profile.id,
            business_name=profile.name,
            category=profile.category,
            subcategory=profile.subcategory,
            obligations_generated=len(persisted),
            duplicates_skipped=skipped,
            obligations_by_tag=dict(Counter(o.tag for o in persisted)),
        )
        return profile, detail

    async def run(
        self,
        selector: BusinessSelector,
        window: GenerationWindow,
        actor: Actor,
        trigger: TriggerKind = TriggerKind.MANUAL,
    ) -> GenerationRun:
        """Generate and persist obligations for the selected businesses.

        Args:
            selector: One business or every active business.
            window: Inclusive due date range to generate for.
            actor: Account stamped as creator of every obligation.
            trigger: What started the run.

        Returns:
            The run summary, with per-business counts and errors.

        Raises:
            PersistenceUnavailable: If the catalog or the business list cannot
                be read. Per-business failures are recorded in the summary.
        """
        summary = GenerationRun(trigger=trigger, window=window, actor=actor)
        context = SynthesisContext(
            trigger=trigger, generated_at=summary.started_at, created_by=actor.id
        )

        catalog = list(await self._catalog.list_templates())
        targets = await self._select(selector)
        summary.total_businesses = len(targets)

        self._logger.info(
            "generation_starting",
            trigger=trigger.value,
            businesses=len(targets),
            templates=len(catalog),
            window_start=window.start.isoformat(),
            window_end=window.end.isoformat(),
        )

        for business_id, business_name in targets:
            try:
                profile, detail = await self._generate_for_business(
                    business_id, catalog, window, context
                )
            except Exception as e:
                self._logger.error(
                    "business_generation_failed",
                    business_id=business_id,
                    error=str(e),
                )
                summary.record_error(
                    BusinessRunError(
                        business_id=business_id,
                        business_name=business_name,
                        error=str(e),
                        error_code=getattr(e, "error_code", type(e).__name__),
                    )
                )
                continue

            summary.record_success(detail)
            self._logger.info(
                "business_generation_completed",
                business_id=profile.id,
                generated=detail.obligations_generated,
                skipped=detail.duplicates_skipped,
            )

        summary.finished_at = datetime.now(UTC)
        self._logger.info(
            "generation_completed",
            trigger=trigger.value,
            total_obligations=summary.total_obligations,
            businesses_with_obligations=summary.businesses_with_obligations,
            errors=len(summary.errors),
        )
        return summary


async def main() -> None:
    """Run manual generation from the command line.

    Examples:
        # Against the host application's API
        python -m fiscal_obligations.orchestrator --actor admin@example.com

        # Dry run against YAML fixtures, fixed year
        python -m fiscal_obligations.orchestrator --actor admin@example.com \\
            --businesses businesses.yaml --year 2025
    """
    import argparse
    import sys

    from fiscal_obligations.config import configure_logging, get_settings
    from fiscal_obligations.config.catalog_loader import (
        default_catalog_path,
        load_businesses,
        load_catalog,
    )
    from fiscal_obligations.storage import (
        BackendAPIClient,
        InMemoryActorDirectory,
        InMemoryAuditLog,
        InMemoryBusinessDirectory,
        InMemoryObligationStore,
        InMemoryTemplateCatalog,
    )
    from fiscal_obligations.triggers import RegenerationTrigger

    configure_logging()

    parser = argparse.ArgumentParser(description="Generate fiscal obligations")
    parser.add_argument("--actor", required=True, help="Admin email or id")
    parser.add_argument("--year", type=int, default=None, help="Fixed calendar year")
    parser.add_argument(
        "--businesses",
        type=str,
        default=None,
        help="YAML business fixtures (dry run against in-memory storage)",
    )
    parser.add_argument(
        "--catalog", type=str, default=None, help="YAML catalog for dry runs"
    )
    args = parser.parse_args()

    settings = get_settings()
    client: BackendAPIClient | None = None

    if args.businesses:
        catalog_path = args.catalog or settings.catalog_path or default_catalog_path()
        store = InMemoryObligationStore()
        trigger = RegenerationTrigger(
            GenerationOrchestrator(
                InMemoryBusinessDirectory(load_businesses(args.businesses)),
                InMemoryTemplateCatalog(load_catalog(catalog_path)),
                store,
                InMemoryActorDirectory(
                    [Actor(id=args.actor, email=args.actor, is_admin=True)]
                ),
            ),
            store,
            InMemoryAuditLog(),
        )
    else:
        client = BackendAPIClient()
        trigger = RegenerationTrigger(
            GenerationOrchestrator(client, client, client, client), client, client
        )

    try:
        summary = await trigger.run_manual_generation(args.actor, year=args.year)
        print(json.dumps(summary.to_dict(), indent=2, ensure_ascii=False))
    except Exception as e:
        logger.exception("manual_generation_error", error=str(e))
        sys.exit(1)
    finally:
        if client is not None:
            await client.close()


if __name__ == "__main__":
    asyncio.run(main())
