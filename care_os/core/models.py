"""SQLAlchemy 2.0 async models for the CareOS relational schema."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    text,
)
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.types import JSON
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

import enum


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_uuid() -> uuid.UUID:
    return uuid.uuid4()


class SuggestionStatus(str, enum.Enum):
    """Lifecycle state of an enrollment suggestion."""
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class EnrollmentStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    PAUSED = "PAUSED"
    COMPLETED = "COMPLETED"
    WITHDRAWN = "WITHDRAWN"


class Base(DeclarativeBase):
    pass


class Organization(Base):
    __tablename__ = "organizations"

    id: Mapped[uuid.UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=_new_uuid)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    settings: Mapped[dict | None] = mapped_column(JSON)  # {"supported_billing_programs": ["RPM", "CCM"]}
    active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    patients: Mapped[list[Patient]] = relationship(back_populates="organization", lazy="selectin")


class Patient(Base):
    __tablename__ = "patients"

    id: Mapped[uuid.UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=_new_uuid)
    organization_id: Mapped[uuid.UUID | None] = mapped_column(PG_UUID(as_uuid=True), ForeignKey("organizations.id", ondelete="SET NULL"))
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    # [{"code": "J44.9", "display": "COPD", "coding_system": "ICD-10"}]
    diagnosis_codes: Mapped[list | None] = mapped_column(JSON)
    active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    organization: Mapped[Organization | None] = relationship(back_populates="patients")
    enrollments: Mapped[list[Enrollment]] = relationship(back_populates="patient", lazy="selectin")

    __table_args__ = (
        Index("ix_patients_organization_id", "organization_id"),
        Index("ix_patients_last_name", "last_name"),
    )


class CareProgram(Base):
    __tablename__ = "care_programs"

    id: Mapped[uuid.UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=_new_uuid)
    organization_id: Mapped[uuid.UUID] = mapped_column(PG_UUID(as_uuid=True), ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    __table_args__ = (
        Index("ix_care_programs_organization_id", "organization_id"),
    )


class BillingProgram(Base):
    __tablename__ = "billing_programs"

    id: Mapped[uuid.UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=_new_uuid)
    code: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    program_type: Mapped[str] = mapped_column(String(20), nullable=False)  # RPM, RTM, CCM, PCM
    payer: Mapped[str | None] = mapped_column(String(100))
    cpt_codes: Mapped[list | None] = mapped_column(JSON)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    __table_args__ = (
        Index("ix_billing_programs_program_type", "program_type"),
    )


class ConditionPreset(Base):
    __tablename__ = "condition_presets"

    id: Mapped[uuid.UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=_new_uuid)
    organization_id: Mapped[uuid.UUID | None] = mapped_column(PG_UUID(as_uuid=True), ForeignKey("organizations.id", ondelete="CASCADE"))
    source_preset_id: Mapped[uuid.UUID | None] = mapped_column(PG_UUID(as_uuid=True), ForeignKey("condition_presets.id", ondelete="SET NULL"))
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    category: Mapped[str | None] = mapped_column(String(50))
    is_standardized: Mapped[bool] = mapped_column(Boolean, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    clinical_guidelines: Mapped[dict | None] = mapped_column(JSON)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    diagnoses: Mapped[list[ConditionPresetDiagnosis]] = relationship(
        back_populates="preset", lazy="selectin", cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index("ix_condition_presets_organization_id", "organization_id"),
        Index("ix_condition_presets_name", "name"),
    )


class ConditionPresetDiagnosis(Base):
    __tablename__ = "condition_preset_diagnoses"

    id: Mapped[uuid.UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=_new_uuid)
    preset_id: Mapped[uuid.UUID] = mapped_column(PG_UUID(as_uuid=True), ForeignKey("condition_presets.id", ondelete="CASCADE"), nullable=False)
    icd10: Mapped[str] = mapped_column(String(20), nullable=False)
    snomed: Mapped[str | None] = mapped_column(String(30))
    label: Mapped[str] = mapped_column(String(255), nullable=False)
    is_primary: Mapped[bool] = mapped_column(Boolean, default=False)

    preset: Mapped[ConditionPreset] = relationship(back_populates="diagnoses")

    __table_args__ = (
        Index("ix_condition_preset_diagnoses_preset_id", "preset_id"),
    )


class Enrollment(Base):
    __tablename__ = "enrollments"

    id: Mapped[uuid.UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=_new_uuid)
    organization_id: Mapped[uuid.UUID] = mapped_column(PG_UUID(as_uuid=True), ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False)
    patient_id: Mapped[uuid.UUID] = mapped_column(PG_UUID(as_uuid=True), ForeignKey("patients.id", ondelete="CASCADE"), nullable=False)
    clinician_id: Mapped[uuid.UUID | None] = mapped_column(PG_UUID(as_uuid=True))
    care_program_id: Mapped[uuid.UUID] = mapped_column(PG_UUID(as_uuid=True), ForeignKey("care_programs.id", ondelete="CASCADE"), nullable=False)
    billing_program_id: Mapped[uuid.UUID | None] = mapped_column(PG_UUID(as_uuid=True), ForeignKey("billing_programs.id", ondelete="SET NULL"))
    condition_preset_id: Mapped[uuid.UUID | None] = mapped_column(PG_UUID(as_uuid=True), ForeignKey("condition_presets.id", ondelete="SET NULL"))
    status: Mapped[str] = mapped_column(String(20), default=EnrollmentStatus.ACTIVE.value)
    start_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    notes: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    patient: Mapped[Patient] = relationship(back_populates="enrollments")
    condition_preset: Mapped[ConditionPreset | None] = relationship(lazy="selectin")

    __table_args__ = (
        Index("ix_enrollments_patient_id", "patient_id"),
        Index("ix_enrollments_status", "status"),
        Index("ix_enrollments_patient_program_start", "patient_id", "care_program_id", "start_date"),
    )


class BillingPackageTemplate(Base):
    __tablename__ = "billing_package_templates"

    id: Mapped[uuid.UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=_new_uuid)
    organization_id: Mapped[uuid.UUID | None] = mapped_column(PG_UUID(as_uuid=True), ForeignKey("organizations.id", ondelete="CASCADE"))
    code: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    category: Mapped[str] = mapped_column(String(50), nullable=False)  # RESPIRATORY, WOUND_CARE, ...
    is_standardized: Mapped[bool] = mapped_column(Boolean, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    diagnosis_criteria: Mapped[dict] = mapped_column(JSON, nullable=False)
    program_combinations: Mapped[dict] = mapped_column(JSON, nullable=False)
    suggested_presets: Mapped[dict | None] = mapped_column(JSON)
    clinical_rationale: Mapped[str | None] = mapped_column(Text)
    evidence_source: Mapped[str | None] = mapped_column(Text)
    display_order: Mapped[int] = mapped_column(Integer, default=0)
    usage_count: Mapped[int] = mapped_column(Integer, default=0)
    last_used_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        Index("ix_billing_package_templates_organization_id", "organization_id"),
        Index("ix_billing_package_templates_category", "category"),
        Index("ix_billing_package_templates_is_active", "is_active"),
    )


class EnrollmentSuggestion(Base):
    __tablename__ = "enrollment_suggestions"

    id: Mapped[uuid.UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=_new_uuid)
    organization_id: Mapped[uuid.UUID] = mapped_column(PG_UUID(as_uuid=True), ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False)
    patient_id: Mapped[uuid.UUID] = mapped_column(PG_UUID(as_uuid=True), ForeignKey("patients.id", ondelete="CASCADE"), nullable=False)
    package_template_id: Mapped[uuid.UUID] = mapped_column(PG_UUID(as_uuid=True), ForeignKey("billing_package_templates.id", ondelete="CASCADE"), nullable=False)
    match_score: Mapped[int] = mapped_column(Integer, nullable=False)
    matched_diagnoses: Mapped[dict] = mapped_column(JSON, nullable=False)
    suggested_programs: Mapped[dict] = mapped_column(JSON, nullable=False)
    status: Mapped[str] = mapped_column(String(20), default=SuggestionStatus.PENDING.value, nullable=False)
    source_type: Mapped[str] = mapped_column(String(50), nullable=False)  # MANUAL, PATIENT_CREATED, ENCOUNTER_NOTE
    source_id: Mapped[str | None] = mapped_column(String(255))
    # "metadata" is reserved on declarative classes
    meta: Mapped[dict | None] = mapped_column("metadata", JSON)
    created_enrollment_ids: Mapped[list] = mapped_column(JSON, default=list)
    reviewed_by_id: Mapped[uuid.UUID | None] = mapped_column(PG_UUID(as_uuid=True))
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    rejection_reason: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    package_template: Mapped[BillingPackageTemplate] = relationship(lazy="selectin")

    __table_args__ = (
        Index("ix_enrollment_suggestions_organization_id", "organization_id"),
        Index("ix_enrollment_suggestions_patient_id", "patient_id"),
        Index("ix_enrollment_suggestions_status", "status"),
        Index("ix_enrollment_suggestions_source", "source_type", "source_id"),
        # At most one PENDING suggestion per patient/template pair
        Index(
            "uq_enrollment_suggestions_pending",
            "patient_id",
            "package_template_id",
            unique=True,
            postgresql_where=text("status = 'PENDING'"),
            sqlite_where=text("status = 'PENDING'"),
        ),
    )


class AuditLog(Base):
    __tablename__ = "audit_log"

    id: Mapped[uuid.UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=_new_uuid)
    user_id: Mapped[str | None] = mapped_column(String(255))
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    resource_type: Mapped[str] = mapped_column(String(50), nullable=False)
    resource_id: Mapped[str] = mapped_column(String(255), nullable=False)
    details: Mapped[dict | None] = mapped_column(JSON)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    __table_args__ = (
        Index("ix_audit_resource", "resource_type", "resource_id"),
        Index("ix_audit_timestamp", "timestamp"),
    )
