"""CRUD repositories for the CareOS models."""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional, Sequence

from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from care_os.core.models import (
    AuditLog,
    BillingPackageTemplate,
    BillingProgram,
    CareProgram,
    ConditionPreset,
    ConditionPresetDiagnosis,
    Enrollment,
    EnrollmentStatus,
    EnrollmentSuggestion,
    Organization,
    Patient,
    SuggestionStatus,
)


def _pick_by_name(presets: Sequence[ConditionPreset], names: list[str]) -> Optional[ConditionPreset]:
    by_name = {}
    for preset in presets:
        by_name.setdefault(preset.name, preset)
    for name in names:
        if name in by_name:
            return by_name[name]
    return None


class PatientRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, **kwargs) -> Patient:
        patient = Patient(**kwargs)
        self.session.add(patient)
        await self.session.flush()
        return patient

    async def get_by_id(self, patient_id: uuid.UUID) -> Optional[Patient]:
        return await self.session.get(Patient, patient_id)

    async def get_in_organization(self, patient_id: uuid.UUID, organization_id: uuid.UUID) -> Optional[Patient]:
        stmt = select(Patient).where(Patient.id == patient_id, Patient.organization_id == organization_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()


class OrganizationRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, **kwargs) -> Organization:
        org = Organization(**kwargs)
        self.session.add(org)
        await self.session.flush()
        return org

    async def get_by_id(self, organization_id: uuid.UUID) -> Optional[Organization]:
        return await self.session.get(Organization, organization_id)

    async def get_supported_programs(self, organization_id: uuid.UUID) -> list[str]:
        """Program types the organization may bill; empty means unrestricted."""
        org = await self.get_by_id(organization_id)
        if not org or not org.settings:
            return []
        return list(org.settings.get("supported_billing_programs") or [])


class CareProgramRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, **kwargs) -> CareProgram:
        program = CareProgram(**kwargs)
        self.session.add(program)
        await self.session.flush()
        return program

    async def get_first_active(self, organization_id: uuid.UUID) -> Optional[CareProgram]:
        stmt = (
            select(CareProgram)
            .where(CareProgram.organization_id == organization_id, CareProgram.is_active.is_(True))
            .order_by(CareProgram.created_at)
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()


class BillingProgramRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, **kwargs) -> BillingProgram:
        program = BillingProgram(**kwargs)
        self.session.add(program)
        await self.session.flush()
        return program

    async def get_by_code(self, code: str) -> Optional[BillingProgram]:
        stmt = select(BillingProgram).where(BillingProgram.code == code)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_active_by_code(self, code: str) -> Optional[BillingProgram]:
        stmt = select(BillingProgram).where(
            BillingProgram.code == code, BillingProgram.is_active.is_(True)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()


class ConditionPresetRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, diagnoses: Optional[list[dict]] = None, **kwargs) -> ConditionPreset:
        preset = ConditionPreset(**kwargs)
        preset.diagnoses = [ConditionPresetDiagnosis(**dx) for dx in diagnoses or []]
        self.session.add(preset)
        await self.session.flush()
        return preset

    async def find_for_organization(self, organization_id: uuid.UUID, names: list[str]) -> Optional[ConditionPreset]:
        """Active organization-owned preset, preferring the earliest name in ``names``."""
        stmt = select(ConditionPreset).where(
            ConditionPreset.organization_id == organization_id,
            ConditionPreset.name.in_(names),
            ConditionPreset.is_active.is_(True),
        )
        result = await self.session.execute(stmt)
        return _pick_by_name(result.scalars().all(), names)

    async def find_standardized(self, names: list[str]) -> Optional[ConditionPreset]:
        stmt = (
            select(ConditionPreset)
            .where(
                ConditionPreset.name.in_(names),
                ConditionPreset.is_standardized.is_(True),
                ConditionPreset.is_active.is_(True),
            )
            .options(selectinload(ConditionPreset.diagnoses))
        )
        result = await self.session.execute(stmt)
        return _pick_by_name(result.scalars().all(), names)

    async def clone_for_organization(self, source: ConditionPreset, organization_id: uuid.UUID) -> ConditionPreset:
        """Copy a standardized preset, diagnoses included, into an organization-owned preset."""
        description = f"{source.description or source.name} (Cloned from standard library for billing package)"
        return await self.create(
            organization_id=organization_id,
            source_preset_id=source.id,
            name=source.name,
            description=description,
            category=source.category,
            is_standardized=False,
            is_active=True,
            clinical_guidelines=source.clinical_guidelines,
            diagnoses=[
                {
                    "icd10": dx.icd10,
                    "snomed": dx.snomed,
                    "label": dx.label,
                    "is_primary": dx.is_primary,
                }
                for dx in source.diagnoses
            ],
        )


class EnrollmentRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, **kwargs) -> Enrollment:
        enrollment = Enrollment(**kwargs)
        self.session.add(enrollment)
        await self.session.flush()
        return enrollment

    async def get_by_id(self, enrollment_id: uuid.UUID) -> Optional[Enrollment]:
        return await self.session.get(Enrollment, enrollment_id)

    async def list_active_with_presets(self, patient_id: uuid.UUID) -> Sequence[Enrollment]:
        stmt = (
            select(Enrollment)
            .where(
                Enrollment.patient_id == patient_id,
                Enrollment.status == EnrollmentStatus.ACTIVE.value,
            )
            .options(selectinload(Enrollment.condition_preset).selectinload(ConditionPreset.diagnoses))
            .order_by(Enrollment.created_at)
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def find_on_day(
        self, patient_id: uuid.UUID, care_program_id: uuid.UUID, day: datetime
    ) -> Optional[Enrollment]:
        """Enrollment for the patient in the care program starting on the same calendar day."""
        day_start = day.replace(hour=0, minute=0, second=0, microsecond=0)
        stmt = (
            select(Enrollment)
            .where(
                Enrollment.patient_id == patient_id,
                Enrollment.care_program_id == care_program_id,
                Enrollment.start_date >= day_start,
                Enrollment.start_date < day_start + timedelta(days=1),
            )
            .order_by(Enrollment.created_at)
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def link_billing_program(self, enrollment: Enrollment, billing_program_id: uuid.UUID) -> Enrollment:
        enrollment.billing_program_id = billing_program_id
        await self.session.flush()
        return enrollment


class PackageTemplateRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, **kwargs) -> BillingPackageTemplate:
        template = BillingPackageTemplate(**kwargs)
        self.session.add(template)
        await self.session.flush()
        return template

    async def get_by_id(self, template_id: uuid.UUID) -> Optional[BillingPackageTemplate]:
        return await self.session.get(BillingPackageTemplate, template_id)

    async def get_by_code(self, code: str) -> Optional[BillingPackageTemplate]:
        stmt = select(BillingPackageTemplate).where(BillingPackageTemplate.code == code)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_visible(
        self,
        organization_id: uuid.UUID,
        category: Optional[str] = None,
        is_standardized: Optional[bool] = None,
        is_active: Optional[bool] = None,
    ) -> Sequence[BillingPackageTemplate]:
        """Platform-wide plus organization-owned templates, in catalog order."""
        stmt = select(BillingPackageTemplate).where(
            or_(
                BillingPackageTemplate.organization_id.is_(None),
                BillingPackageTemplate.organization_id == organization_id,
            )
        )
        if category is not None:
            stmt = stmt.where(BillingPackageTemplate.category == category)
        if is_standardized is not None:
            stmt = stmt.where(BillingPackageTemplate.is_standardized.is_(is_standardized))
        if is_active is not None:
            stmt = stmt.where(BillingPackageTemplate.is_active.is_(is_active))
        stmt = stmt.order_by(
            BillingPackageTemplate.is_standardized.desc(),
            BillingPackageTemplate.display_order.asc(),
            BillingPackageTemplate.name.asc(),
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def record_usage(self, template_id: uuid.UUID) -> None:
        stmt = (
            update(BillingPackageTemplate)
            .where(BillingPackageTemplate.id == template_id)
            .values(
                usage_count=BillingPackageTemplate.usage_count + 1,
                last_used_at=datetime.now(timezone.utc),
            )
            .execution_options(synchronize_session=False)
        )
        await self.session.execute(stmt)


class SuggestionRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, suggestion_id: uuid.UUID) -> Optional[EnrollmentSuggestion]:
        return await self.session.get(EnrollmentSuggestion, suggestion_id)

    async def find_pending(self, patient_id: uuid.UUID, template_id: uuid.UUID) -> Optional[EnrollmentSuggestion]:
        stmt = select(EnrollmentSuggestion).where(
            EnrollmentSuggestion.patient_id == patient_id,
            EnrollmentSuggestion.package_template_id == template_id,
            EnrollmentSuggestion.status == SuggestionStatus.PENDING.value,
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def create_pending(self, **kwargs) -> tuple[EnrollmentSuggestion, bool]:
        """Insert a PENDING suggestion unless one already exists for the patient/template pair.

        Returns the suggestion and whether it was newly created. The insert runs
        in a savepoint so a lost race against the pending unique index only
        rolls back this row.
        """
        suggestion = EnrollmentSuggestion(status=SuggestionStatus.PENDING.value, **kwargs)
        try:
            async with self.session.begin_nested():
                self.session.add(suggestion)
        except IntegrityError:
            existing = await self.find_pending(kwargs["patient_id"], kwargs["package_template_id"])
            if existing is None:
                raise
            return existing, False
        return suggestion, True

    async def save(self, suggestion: EnrollmentSuggestion) -> EnrollmentSuggestion:
        await self.session.flush()
        return suggestion

    async def list_pending(self, patient_id: uuid.UUID, organization_id: uuid.UUID) -> Sequence[EnrollmentSuggestion]:
        stmt = (
            select(EnrollmentSuggestion)
            .where(
                EnrollmentSuggestion.patient_id == patient_id,
                EnrollmentSuggestion.organization_id == organization_id,
                EnrollmentSuggestion.status == SuggestionStatus.PENDING.value,
            )
            .order_by(EnrollmentSuggestion.match_score.desc(), EnrollmentSuggestion.created_at)
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def list_for_organization(
        self,
        organization_id: uuid.UUID,
        status: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[Sequence[EnrollmentSuggestion], int]:
        """One page of the organization's suggestions, newest first, plus the unpaged total."""
        conditions = [EnrollmentSuggestion.organization_id == organization_id]
        if status is not None:
            conditions.append(EnrollmentSuggestion.status == status)

        stmt = (
            select(EnrollmentSuggestion)
            .where(*conditions)
            .order_by(EnrollmentSuggestion.created_at.desc())
            .limit(limit)
            .offset(offset)
        )
        result = await self.session.execute(stmt)
        total = await self.session.scalar(
            select(func.count()).select_from(EnrollmentSuggestion).where(*conditions)
        )
        return result.scalars().all(), total or 0

    async def transition(
        self,
        suggestion: EnrollmentSuggestion,
        new_status: SuggestionStatus,
        **values,
    ) -> bool:
        """Move a PENDING suggestion to ``new_status`` with a conditional update.

        Returns False when the row was no longer PENDING, in which case nothing
        is written.
        """
        stmt = (
            update(EnrollmentSuggestion)
            .where(
                EnrollmentSuggestion.id == suggestion.id,
                EnrollmentSuggestion.status == SuggestionStatus.PENDING.value,
            )
            .values(status=new_status.value, updated_at=datetime.now(timezone.utc), **values)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        await self.session.refresh(suggestion)
        return result.rowcount == 1


class AuditRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def log_action(
        self,
        action: str,
        resource_type: str,
        resource_id: str,
        user_id: Optional[str] = None,
        details: Optional[dict] = None,
    ) -> AuditLog:
        entry = AuditLog(
            user_id=user_id,
            action=action,
            resource_type=resource_type,
            resource_id=str(resource_id),
            details=details,
        )
        self.session.add(entry)
        await self.session.flush()
        return entry

    async def get_by_resource(self, resource_type: str, resource_id: str, limit: int = 50) -> Sequence[AuditLog]:
        stmt = (
            select(AuditLog)
            .where(AuditLog.resource_type == resource_type, AuditLog.resource_id == resource_id)
            .order_by(AuditLog.timestamp.desc())
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()
