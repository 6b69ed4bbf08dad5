"""Select the catalog templates that apply to a business."""

from collections.abc import Iterable

import structlog

from fiscal_obligations.config import get_settings
from fiscal_obligations.models import BusinessProfile, Frequency, RecurrenceTemplate

logger = structlog.get_logger(__name__)


class TemplateMatcher:
    """Filters the template catalog down to one business's obligations.

    Rules:
    1. Template category must equal the business category.
    2. Levy-family templates are dropped for businesses not subject to the levy.
    3. For levy-subject businesses, a levy template is kept when its frequency
       equals the business's reporting regime, or when it is annual and the
       business uses prorated deduction.

    The result is ordered by tag, frequency, anchor month and anchor day.
    """

    def __init__(self, levy_tag: str | None = None):
        self._levy_tag = levy_tag or get_settings().levy_tag
        self._logger = logger.bind(component="template_matcher")

    @property
    def levy_tag(self) -> str:
        return self._levy_tag

    def is_levy(self, template: RecurrenceTemplate) -> bool:
        return template.tag == self._levy_tag

    def _levy_applies(
        self, business: BusinessProfile, template: RecurrenceTemplate
    ) -> bool:
        if not business.subject_to_levy:
            return False
        if business.levy_regime is not None and template.frequency == business.levy_regime:
            return True
        return template.frequency is Frequency.ANNUAL and business.prorated_deduction

    def match(
        self, business: BusinessProfile, catalog: Iterable[RecurrenceTemplate]
    ) -> list[RecurrenceTemplate]:
        """Return the ordered subset of the catalog applicable to the business.

        Returns:
            Templates of the business's category, minus levy templates the
            business is not subject to, sorted by tag, frequency and anchor.

        Raises:
            InvalidBusinessProfile: If the business has no category.
        """
        category = business.require_category()

        matched = [
            template
            for template in catalog
            if template.category == category
            and (not self.is_levy(template) or self._levy_applies(business, template))
        ]
        matched.sort(key=lambda t: t.sort_key)

        self._logger.debug(
            "templates_matched",
            business_id=business.id,
            category=category,
            matched=len(matched),
        )
        return matched
