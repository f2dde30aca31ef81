"""Tests for diagnosis collection from the patient record and active enrollments."""

import uuid
from datetime import datetime, timezone

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from care_os.billing.diagnoses import DiagnosisCollector
from care_os.billing.errors import NotFoundError
from care_os.billing.schemas import PATIENT_RECORD_ORIGIN
from care_os.core.repository import EnrollmentRepository, PatientRepository


@pytest.fixture
def collector(session: AsyncSession):
    return DiagnosisCollector(PatientRepository(session), EnrollmentRepository(session))


async def _enroll(session, patient, care_program, preset, status="ACTIVE"):
    return await EnrollmentRepository(session).create(
        organization_id=patient.organization_id,
        patient_id=patient.id,
        care_program_id=care_program.id,
        condition_preset_id=preset.id,
        status=status,
        start_date=datetime.now(timezone.utc),
    )


async def test_patient_record_codes(collector, make_patient):
    patient = await make_patient("J44.9", "I10")
    diagnoses = await collector.collect(patient.id)
    assert [d.code for d in diagnoses] == ["J44.9", "I10"]
    assert all(d.origin_label == PATIENT_RECORD_ORIGIN for d in diagnoses)
    assert all(d.origin_enrollment_id is None for d in diagnoses)


async def test_active_enrollment_preset_codes(session, collector, make_patient, care_program, standard_preset):
    patient = await make_patient()
    enrollment = await _enroll(session, patient, care_program, standard_preset)

    diagnoses = await collector.collect(patient.id)
    assert {d.code for d in diagnoses} == {"J44.9", "J44.1"}
    assert all(d.origin_enrollment_id == enrollment.id for d in diagnoses)
    assert all(d.origin_label == "COPD Monitoring" for d in diagnoses)
    assert all(d.coding_system == "ICD-10" for d in diagnoses)


async def test_inactive_enrollments_ignored(session, collector, make_patient, care_program, standard_preset):
    patient = await make_patient()
    await _enroll(session, patient, care_program, standard_preset, status="COMPLETED")
    assert await collector.collect(patient.id) == []


async def test_same_code_from_both_origins_kept_twice(session, collector, make_patient, care_program, standard_preset):
    patient = await make_patient("J44.9")
    await _enroll(session, patient, care_program, standard_preset)

    diagnoses = await collector.collect(patient.id)
    assert [d.code for d in diagnoses].count("J44.9") == 2


async def test_empty_is_not_an_error(collector, make_patient):
    patient = await make_patient()
    assert await collector.collect(patient.id) == []


async def test_malformed_record_entry_skipped(session, collector, organization):
    patient = await PatientRepository(session).create(
        organization_id=organization.id,
        first_name="Bo",
        last_name="Lee",
        diagnosis_codes=[{"display": "no code"}, {"code": "E11.9", "coding_system": "ICD-10"}],
    )
    diagnoses = await collector.collect(patient.id)
    assert [d.code for d in diagnoses] == ["E11.9"]


async def test_unknown_patient(collector):
    with pytest.raises(NotFoundError):
        await collector.collect(uuid.uuid4())
