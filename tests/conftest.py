"""Pytest configuration and fixtures."""

import os
from datetime import date

import pytest

# Pin settings that affect generated text before importing the package
os.environ.setdefault("LEVY_TAG", "TVA")
os.environ.setdefault("PERIOD_LOCALE", "en")

from fiscal_obligations.guard import DuplicateGuard  # noqa: E402
from fiscal_obligations.matcher import TemplateMatcher  # noqa: E402
from fiscal_obligations.models import (  # noqa: E402
    Actor,
    BusinessProfile,
    Frequency,
    RecurrenceTemplate,
)
from fiscal_obligations.orchestrator import GenerationOrchestrator  # noqa: E402
from fiscal_obligations.storage import (  # noqa: E402
    InMemoryActorDirectory,
    InMemoryAuditLog,
    InMemoryBusinessDirectory,
    InMemoryObligationStore,
    InMemoryTemplateCatalog,
)
from fiscal_obligations.synthesizer import ObligationSynthesizer  # noqa: E402
from fiscal_obligations.triggers import RegenerationTrigger  # noqa: E402

TODAY = date(2024, 6, 15)


def make_template(
    template_id: str,
    tag: str = "CNSS",
    frequency: Frequency = Frequency.MONTHLY,
    day: int | None = 15,
    month: int | None = None,
    category: str = "Personne Morale",
    detail: str | None = None,
) -> RecurrenceTemplate:
    return RecurrenceTemplate(
        id=template_id,
        category=category,
        tag=tag,
        frequency=frequency,
        day=day,
        month=month,
        detail=detail,
    )


def make_business(
    business_id: str,
    name: str | None = None,
    category: str | None = "Personne Morale",
    subject_to_levy: bool = False,
    levy_regime: Frequency | None = None,
    prorated_deduction: bool = False,
) -> BusinessProfile:
    return BusinessProfile(
        id=business_id,
        name=name or f"Company {business_id}",
        category=category,
        subject_to_levy=subject_to_levy,
        levy_regime=levy_regime,
        prorated_deduction=prorated_deduction,
    )


@pytest.fixture
def today():
    return TODAY


@pytest.fixture
def clock():
    return lambda: TODAY


@pytest.fixture
def admin():
    return Actor(id="u-admin", email="admin@example.com", name="Ada Admin", is_admin=True)


@pytest.fixture
def accountant():
    return Actor(id="u-acct", email="acct@example.com", name="Sam Accountant")


@pytest.fixture
def catalog_templates():
    return [
        make_template("cnss", tag="CNSS", day=10, detail="Salary declaration"),
        make_template("tva-m", tag="TVA", day=20, detail="Monthly VAT"),
        make_template(
            "tva-q", tag="TVA", frequency=Frequency.QUARTERLY, day=20, detail="Quarterly VAT"
        ),
        make_template(
            "is", tag="IS", frequency=Frequency.ANNUAL, day=31, month=3, detail="Tax return"
        ),
        make_template("ir-pp", tag="IR", day=30, category="Personne Physique"),
    ]


@pytest.fixture
def businesses():
    return [
        make_business("b1", name="Alpha"),
        make_business(
            "b2", name="Beta", subject_to_levy=True, levy_regime=Frequency.MONTHLY
        ),
        make_business("b3", name="Gamma", category="Personne Physique"),
    ]


@pytest.fixture
def store():
    return InMemoryObligationStore()


@pytest.fixture
def directory(businesses):
    return InMemoryBusinessDirectory(businesses)


@pytest.fixture
def catalog(catalog_templates):
    return InMemoryTemplateCatalog(catalog_templates)


@pytest.fixture
def actors(admin, accountant):
    return InMemoryActorDirectory([admin, accountant])


@pytest.fixture
def audit_log():
    return InMemoryAuditLog()


@pytest.fixture
def synthesizer(store, clock):
    return ObligationSynthesizer(
        DuplicateGuard(store), clock=clock, locale="en", high_days=7, medium_days=30
    )


@pytest.fixture
def orchestrator(directory, catalog, store, actors, synthesizer):
    return GenerationOrchestrator(
        directory,
        catalog,
        store,
        actors,
        matcher=TemplateMatcher(levy_tag="TVA"),
        synthesizer=synthesizer,
    )


@pytest.fixture
def trigger(orchestrator, store, audit_log, clock):
    return RegenerationTrigger(orchestrator, store, audit_log, clock=clock, forward_months=12)
