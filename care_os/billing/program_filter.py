"""Restrict suggested programs to what an organization is allowed to bill."""
from __future__ import annotations

import logging
from typing import Sequence

from pydantic import ValidationError as SchemaValidationError

from care_os.core.models import BillingPackageTemplate
from care_os.billing.schemas import ProgramCombinations, ProgramOption

logger = logging.getLogger(__name__)


def template_program_combinations(template: BillingPackageTemplate) -> ProgramCombinations:
    """Parse a template's program combinations; unreadable data yields no programs."""
    try:
        return ProgramCombinations.model_validate(template.program_combinations or {})
    except SchemaValidationError as e:
        logger.warning("Template %s has malformed program combinations: %s", template.code, e)
        return ProgramCombinations()


def filter_programs(options: Sequence[ProgramOption], supported: Sequence[str]) -> list[ProgramOption]:
    """Keep only options whose program type is supported. Empty ``supported`` keeps all."""
    if not supported:
        return list(options)
    allowed = set(supported)
    return [option for option in options if option.program_type in allowed]


def filter_templates(
    templates: Sequence[BillingPackageTemplate], supported: Sequence[str]
) -> list[BillingPackageTemplate]:
    """Keep templates offering at least one supported program type."""
    if not supported:
        return list(templates)
    kept = []
    for template in templates:
        programs = template_program_combinations(template).programs
        if filter_programs(programs, supported):
            kept.append(template)
        else:
            logger.info(
                "Filtered out %s: no matching programs (has %s, org supports %s)",
                template.name,
                ", ".join(p.program_type for p in programs) or "none",
                ", ".join(supported),
            )
    return kept
