"""Typed structures for package matching and suggestion payloads.

Templates store their criteria and program combinations as JSON; these models
give those shapes names so matching and filtering can be tested without a
database.
"""
from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


PATIENT_RECORD_ORIGIN = "Patient Record"


class DiagnosisCode(BaseModel):
    """A patient diagnosis as seen by the matcher. Never persisted on its own."""

    code: str
    coding_system: str  # "ICD-10" | "SNOMED"
    display: str = ""
    origin_enrollment_id: uuid.UUID | None = None
    origin_label: str = PATIENT_RECORD_ORIGIN


class CriteriaCode(BaseModel):
    """A diagnosis criterion; ``code`` may end in a ``*`` wildcard segment."""

    code: str
    coding_system: str
    display: str = ""


class DiagnosisCriteria(BaseModel):
    primary: list[CriteriaCode] = Field(default_factory=list)
    secondary: list[CriteriaCode] = Field(default_factory=list)
    min_primary_matches: int = Field(default=1, ge=0)
    prefer_multi_morbidity: bool = False

    @property
    def total_criteria(self) -> int:
        return len(self.primary) + len(self.secondary)


class ProgramOption(BaseModel):
    program_type: str  # RPM, RTM, CCM, PCM
    billing_program_code: str
    priority: int = 1
    rationale: str = ""
    cpt_codes: list[str] = Field(default_factory=list)


class ProgramCombinations(BaseModel):
    programs: list[ProgramOption] = Field(default_factory=list)
    required_devices: list[str] = Field(default_factory=list)
    recommended_metrics: list[str] = Field(default_factory=list)


class SuggestedPresets(BaseModel):
    condition_presets: list[str] = Field(default_factory=list)
    assessments: list[str] = Field(default_factory=list)
    alert_rules: list[str] = Field(default_factory=list)


class MatchedDiagnosis(BaseModel):
    """Which patient diagnosis satisfied which criterion."""

    criteria_code: str
    criteria_display: str = ""
    patient_code: str
    patient_display: str = ""
    origin_enrollment_id: uuid.UUID | None = None
    origin_label: str = PATIENT_RECORD_ORIGIN


class MatchResult(BaseModel):
    score: int = Field(ge=0, le=100)
    matched_primary: list[MatchedDiagnosis] = Field(default_factory=list)
    matched_secondary: list[MatchedDiagnosis] = Field(default_factory=list)
    total_matched: int = 0
    meets_minimum: bool = False

    def to_matched_diagnoses(self) -> dict:
        """Shape persisted on the suggestion's ``matched_diagnoses`` column."""
        return {
            "primary": [m.model_dump(mode="json") for m in self.matched_primary],
            "secondary": [m.model_dump(mode="json") for m in self.matched_secondary],
            "total_matched": self.total_matched,
            "meets_minimum": self.meets_minimum,
        }


class SuggestedPrograms(BaseModel):
    programs: list[ProgramOption] = Field(default_factory=list)
    required_devices: list[str] = Field(default_factory=list)
    recommended_metrics: list[str] = Field(default_factory=list)


class SuggestOptions(BaseModel):
    """Options for a matching run. ``None`` fields fall back to settings."""

    min_match_score: int | None = Field(default=None, ge=0, le=100)
    max_suggestions: int | None = Field(default=None, ge=0)
    source_type: str | None = None
    source_id: str | None = None


class ApproveOptions(BaseModel):
    clinician_id: uuid.UUID | None = None
    start_date: datetime | None = None
    selected_program_type: str | None = None


class PartialFailure(BaseModel):
    """A non-fatal problem met while materializing an approval."""

    model_config = ConfigDict(frozen=True)

    reason: str  # no_care_program, no_condition_preset, billing_program_not_found, same_day_enrollment_exists
    detail: str
    billing_program_code: str | None = None


class MaterializationResult(BaseModel):
    enrollment_ids: list[uuid.UUID] = Field(default_factory=list)
    failures: list[PartialFailure] = Field(default_factory=list)
