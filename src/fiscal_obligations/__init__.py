"""Fiscal obligations - generates dated obligations from a recurrence catalog."""

__version__ = "0.1.0"

from fiscal_obligations.config import configure_logging, get_settings
from fiscal_obligations.errors import (
    BusinessNotFound,
    InvalidBusinessProfile,
    NoAuthorizedActor,
    NotFound,
    ObligationEngineError,
    PersistenceUnavailable,
    TemplateMalformed,
)
from fiscal_obligations.guard import DuplicateGuard
from fiscal_obligations.matcher import TemplateMatcher
from fiscal_obligations.models import (
    Actor,
    BusinessProfile,
    BusinessSelector,
    Frequency,
    GenerationWindow,
    Obligation,
    ObligationDraft,
    ObligationStatus,
    Priority,
    RecurrenceTemplate,
    TagDuplicateStats,
    TriggerKind,
)
from fiscal_obligations.orchestrator import GenerationOrchestrator, GenerationRun
from fiscal_obligations.recurrence import evaluate, rolling_window, year_window
from fiscal_obligations.synthesizer import ObligationSynthesizer, SynthesisContext
from fiscal_obligations.triggers import RegenerationTrigger, RunGuard

__all__ = [
    # Version
    "__version__",
    # Models
    "Actor",
    "BusinessProfile",
    "BusinessSelector",
    "Frequency",
    "GenerationWindow",
    "Obligation",
    "ObligationDraft",
    "ObligationStatus",
    "Priority",
    "RecurrenceTemplate",
    "TagDuplicateStats",
    "TriggerKind",
    # Engine
    "evaluate",
    "rolling_window",
    "year_window",
    "TemplateMatcher",
    "DuplicateGuard",
    "ObligationSynthesizer",
    "SynthesisContext",
    "GenerationOrchestrator",
    "GenerationRun",
    "RegenerationTrigger",
    "RunGuard",
    # Errors
    "ObligationEngineError",
    "InvalidBusinessProfile",
    "TemplateMalformed",
    "PersistenceUnavailable",
    "NotFound",
    "BusinessNotFound",
    "NoAuthorizedActor",
    # Config
    "get_settings",
    "configure_logging",
]
