"""Collect the diagnosis codes a patient can be matched on."""
from __future__ import annotations

import logging
import uuid

from pydantic import ValidationError as SchemaValidationError

from care_os.core.repository import EnrollmentRepository, PatientRepository
from care_os.billing.errors import NotFoundError
from care_os.billing.schemas import PATIENT_RECORD_ORIGIN, DiagnosisCode

logger = logging.getLogger(__name__)

PRESET_CODING_SYSTEM = "ICD-10"


class DiagnosisCollector:
    """Gathers diagnoses from the patient record and from active enrollment presets.

    Codes reachable through both origins appear twice; each entry is matched
    on its own.
    """

    def __init__(self, patients: PatientRepository, enrollments: EnrollmentRepository):
        self.patients = patients
        self.enrollments = enrollments

    async def collect(self, patient_id: uuid.UUID) -> list[DiagnosisCode]:
        patient = await self.patients.get_by_id(patient_id)
        if patient is None:
            raise NotFoundError("Patient", patient_id)

        diagnoses: list[DiagnosisCode] = []

        for entry in patient.diagnosis_codes or []:
            try:
                diagnoses.append(
                    DiagnosisCode(
                        code=entry["code"],
                        coding_system=entry["coding_system"],
                        display=entry.get("display") or "",
                        origin_label=PATIENT_RECORD_ORIGIN,
                    )
                )
            except (KeyError, TypeError, SchemaValidationError):
                logger.warning("Skipping malformed diagnosis on patient %s: %r", patient_id, entry)

        for enrollment in await self.enrollments.list_active_with_presets(patient_id):
            preset = enrollment.condition_preset
            if preset is None:
                continue
            for dx in preset.diagnoses:
                diagnoses.append(
                    DiagnosisCode(
                        code=dx.icd10,
                        coding_system=PRESET_CODING_SYSTEM,
                        display=dx.label,
                        origin_enrollment_id=enrollment.id,
                        origin_label=preset.name,
                    )
                )

        return diagnoses
