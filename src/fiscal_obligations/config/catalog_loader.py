"""Load recurrence templates and business fixtures from YAML files."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml  # type: ignore[import-untyped]

from fiscal_obligations.errors import InvalidBusinessProfile, TemplateMalformed
from fiscal_obligations.models import BusinessProfile, RecurrenceTemplate


def default_catalog_path() -> Path:
    """Path of the catalog bundled with the package."""
    return Path(__file__).resolve().parent / "catalog" / "default.yaml"


def _load_entries(path: Path, key: str) -> list[dict[str, Any]]:
    raw = path.read_text(encoding="utf-8")
    data = yaml.safe_load(raw) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path.name}: top level must be a mapping")

    entries = data.get(key, [])
    if not isinstance(entries, list):
        raise ValueError(f"{path.name}: {key} must be a list")
    for index, entry in enumerate(entries):
        if not isinstance(entry, dict):
            raise ValueError(f"{path.name}: {key}[{index}] must be a mapping")
    return entries


def load_catalog(path: str | Path) -> list[RecurrenceTemplate]:
    """Load a template catalog.

    Each entry under ``templates`` accepts English keys (``category``,
    ``frequency``, ``day``, ``month``, ...) or the fiscal calendar column
    names (``categorie_personnes``, ``frequence_declaration``, ``jours``,
    ``mois``, ...). Entries without an id get ``<file stem>-<index>``.

    Raises:
        ValueError: On malformed entries or duplicate ids.
    """
    path = Path(path)
    templates: list[RecurrenceTemplate] = []
    seen: set[str] = set()

    for index, entry in enumerate(_load_entries(path, "templates")):
        record = {"id": f"{path.stem}-{index + 1}", **entry}
        try:
            template = RecurrenceTemplate.from_record(record)
        except TemplateMalformed as exc:
            raise ValueError(f"{path.name}: templates[{index}]: {exc.message}") from exc

        if template.id in seen:
            raise ValueError(f"{path.name}: duplicate template id {template.id!r}")
        if not template.is_well_formed:
            raise ValueError(
                f"{path.name}: template {template.id!r} has an invalid anchor day/month"
            )
        seen.add(template.id)
        templates.append(template)

    return templates


def load_businesses(path: str | Path) -> list[BusinessProfile]:
    """Load business profiles listed under ``businesses``."""
    path = Path(path)
    businesses: list[BusinessProfile] = []

    for index, entry in enumerate(_load_entries(path, "businesses")):
        if "id" not in entry:
            raise ValueError(f"{path.name}: businesses[{index}] has no id")
        try:
            businesses.append(BusinessProfile.from_record(entry))
        except InvalidBusinessProfile as exc:
            raise ValueError(f"{path.name}: businesses[{index}]: {exc.message}") from exc

    return businesses


@lru_cache
def load_default_catalog() -> tuple[RecurrenceTemplate, ...]:
    """Load the bundled catalog (cached)."""
    return tuple(load_catalog(default_catalog_path()))
