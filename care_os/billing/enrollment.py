"""Turn an approved package suggestion into program enrollments.

Creation is best effort per program: a billing program that cannot be
resolved is skipped and reported, and never undoes enrollments already
created for other programs of the same approval.
"""
from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Optional

from care_os.core.models import ConditionPreset, EnrollmentStatus, EnrollmentSuggestion
from care_os.core.repository import (
    BillingProgramRepository,
    CareProgramRepository,
    ConditionPresetRepository,
    EnrollmentRepository,
)
from care_os.billing.schemas import MaterializationResult, PartialFailure, ProgramOption

logger = logging.getLogger(__name__)


class EnrollmentMaterializer:
    def __init__(
        self,
        enrollments: EnrollmentRepository,
        care_programs: CareProgramRepository,
        billing_programs: BillingProgramRepository,
        presets: ConditionPresetRepository,
    ):
        self.enrollments = enrollments
        self.care_programs = care_programs
        self.billing_programs = billing_programs
        self.presets = presets

    async def resolve_preset(self, organization_id: uuid.UUID, names: list[str]) -> Optional[ConditionPreset]:
        """Organization-owned preset by name, cloning the standardized one if the org has none."""
        if not names:
            return None
        preset = await self.presets.find_for_organization(organization_id, names)
        if preset is not None:
            return preset
        standard = await self.presets.find_standardized(names)
        if standard is None:
            return None
        cloned = await self.presets.clone_for_organization(standard, organization_id)
        logger.info("Cloned condition preset '%s' for organization %s", standard.name, organization_id)
        return cloned

    async def materialize(
        self,
        suggestion: EnrollmentSuggestion,
        programs: list[ProgramOption],
        clinician_id: uuid.UUID,
        start_date: datetime,
    ) -> MaterializationResult:
        result = MaterializationResult()
        meta = suggestion.meta or {}
        package_name = meta.get("package_name", str(suggestion.package_template_id))

        care_program = await self.care_programs.get_first_active(suggestion.organization_id)
        if care_program is None:
            return self._give_up(
                result,
                "no_care_program",
                f"No active care program in organization {suggestion.organization_id}",
            )

        preset_names = list((meta.get("suggested_presets") or {}).get("condition_presets") or [])
        if not preset_names:
            return self._give_up(
                result,
                "no_condition_preset",
                f"No condition presets suggested for billing package {package_name}",
            )

        preset = await self.resolve_preset(suggestion.organization_id, preset_names)
        if preset is None:
            return self._give_up(
                result,
                "no_condition_preset",
                f"No standardized condition preset matching {', '.join(preset_names)}",
            )

        for program in programs:
            billing_program = await self.billing_programs.get_active_by_code(program.billing_program_code)
            if billing_program is None:
                failure = PartialFailure(
                    reason="billing_program_not_found",
                    detail=f"No billing program found with code {program.billing_program_code}",
                    billing_program_code=program.billing_program_code,
                )
                logger.warning(failure.detail)
                result.failures.append(failure)
                continue

            existing = await self.enrollments.find_on_day(suggestion.patient_id, care_program.id, start_date)
            if existing is not None:
                logger.info(
                    "Enrollment already exists for patient %s in care program on %s",
                    suggestion.patient_id,
                    start_date.date().isoformat(),
                )
                if existing.billing_program_id is None:
                    await self.enrollments.link_billing_program(existing, billing_program.id)
                    logger.info("Linked existing enrollment %s to billing program %s", existing.id, billing_program.code)
                elif existing.billing_program_id != billing_program.id:
                    failure = PartialFailure(
                        reason="same_day_enrollment_exists",
                        detail=(
                            f"Enrollment {existing.id} starting {start_date.date().isoformat()} is already "
                            f"linked to another billing program; {program.billing_program_code} not linked"
                        ),
                        billing_program_code=program.billing_program_code,
                    )
                    logger.warning(failure.detail)
                    result.failures.append(failure)
                if existing.id not in result.enrollment_ids:
                    result.enrollment_ids.append(existing.id)
                continue

            enrollment = await self.enrollments.create(
                organization_id=suggestion.organization_id,
                patient_id=suggestion.patient_id,
                clinician_id=clinician_id,
                care_program_id=care_program.id,
                billing_program_id=billing_program.id,
                condition_preset_id=preset.id,
                status=EnrollmentStatus.ACTIVE.value,
                start_date=start_date,
                notes=(
                    f"Created from billing package suggestion: {package_name} "
                    f"({program.program_type}: {program.billing_program_code}). "
                    f"Auto-selected condition preset: {preset.name}"
                ),
            )
            result.enrollment_ids.append(enrollment.id)

        return result

    @staticmethod
    def _give_up(result: MaterializationResult, reason: str, detail: str) -> MaterializationResult:
        logger.warning("%s. Skipping enrollment creation.", detail)
        result.failures.append(PartialFailure(reason=reason, detail=detail))
        return result
