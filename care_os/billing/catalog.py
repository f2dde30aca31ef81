"""Billing package template catalog.

Platform-standard templates (no owning organization) are visible to every
organization; organization-specific templates only to their owner.
"""
from __future__ import annotations

import logging
import uuid
from typing import Optional

from pydantic import ValidationError as SchemaValidationError

from care_os.core.models import BillingPackageTemplate
from care_os.core.repository import PackageTemplateRepository
from care_os.billing.errors import NotFoundError
from care_os.billing.schemas import DiagnosisCriteria, SuggestedPresets

logger = logging.getLogger(__name__)


def is_visible_to(template: BillingPackageTemplate, organization_id: uuid.UUID) -> bool:
    return template.organization_id is None or template.organization_id == organization_id


def template_criteria(template: BillingPackageTemplate) -> Optional[DiagnosisCriteria]:
    """Parse a template's diagnosis criteria, or None if it cannot be matched on."""
    try:
        criteria = DiagnosisCriteria.model_validate(template.diagnosis_criteria or {})
    except SchemaValidationError as e:
        logger.warning("Template %s has malformed diagnosis criteria: %s", template.code, e)
        return None
    if criteria.total_criteria == 0:
        logger.warning("Template %s has no diagnosis criteria", template.code)
        return None
    return criteria


def template_presets(template: BillingPackageTemplate) -> SuggestedPresets:
    try:
        return SuggestedPresets.model_validate(template.suggested_presets or {})
    except SchemaValidationError as e:
        logger.warning("Template %s has malformed suggested presets: %s", template.code, e)
        return SuggestedPresets()


class PackageCatalog:
    def __init__(self, templates: PackageTemplateRepository):
        self.templates = templates

    async def list_templates(
        self,
        organization_id: uuid.UUID,
        category: Optional[str] = None,
        is_standardized: Optional[bool] = None,
        is_active: Optional[bool] = None,
    ) -> list[BillingPackageTemplate]:
        return list(
            await self.templates.list_visible(
                organization_id,
                category=category,
                is_standardized=is_standardized,
                is_active=is_active,
            )
        )

    async def active_templates(self, organization_id: uuid.UUID) -> list[BillingPackageTemplate]:
        return await self.list_templates(organization_id, is_active=True)

    async def get_by_code(self, code: str, organization_id: uuid.UUID) -> BillingPackageTemplate:
        template = await self.templates.get_by_code(code)
        if template is None or not is_visible_to(template, organization_id):
            raise NotFoundError("Package template", code)
        return template
