"""Billing package suggestion engine.

Entry point for collaborators: runs a matching pass for a patient, lists
pending suggestions, and approves or rejects them. Repositories are injected
so the engine can run against any session; ``from_session`` wires the
default SQLAlchemy ones.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from care_os.config import get_settings
from care_os.core.models import BillingPackageTemplate, EnrollmentSuggestion
from care_os.core.repository import (
    AuditRepository,
    BillingProgramRepository,
    CareProgramRepository,
    ConditionPresetRepository,
    EnrollmentRepository,
    OrganizationRepository,
    PackageTemplateRepository,
    PatientRepository,
    SuggestionRepository,
)
from care_os.billing.catalog import PackageCatalog, template_criteria
from care_os.billing.diagnoses import DiagnosisCollector
from care_os.billing.enrollment import EnrollmentMaterializer
from care_os.billing.errors import NotFoundError
from care_os.billing.ledger import SuggestionLedger
from care_os.billing.matching import match_diagnosis_criteria
from care_os.billing.program_filter import filter_programs, filter_templates, template_program_combinations
from care_os.billing.schemas import (
    ApproveOptions,
    DiagnosisCode,
    MatchResult,
    SuggestedPrograms,
    SuggestOptions,
)

logger = logging.getLogger(__name__)


@dataclass
class RankedPackage:
    """A template that passed filtering and scoring, with its retained programs."""

    template: BillingPackageTemplate
    match: MatchResult
    suggested: SuggestedPrograms


@dataclass
class SuggestionHistory:
    """A page of an organization's suggestions and the total across all pages."""

    suggestions: list[EnrollmentSuggestion]
    total: int
    limit: int
    offset: int


def rank_packages(
    diagnoses: list[DiagnosisCode],
    templates: Sequence[BillingPackageTemplate],
    supported_programs: Sequence[str],
    min_match_score: int,
) -> list[RankedPackage]:
    """Score eligible templates and order them best first.

    Templates offering no supported program, or with unusable criteria, are
    dropped before scoring. The sort is stable, so equal scores keep catalog
    order.
    """
    ranked: list[RankedPackage] = []
    for template in filter_templates(templates, supported_programs):
        criteria = template_criteria(template)
        if criteria is None:
            continue
        match = match_diagnosis_criteria(diagnoses, criteria)
        if match.score < min_match_score:
            continue
        combinations = template_program_combinations(template)
        programs = filter_programs(combinations.programs, supported_programs)
        if not programs:
            continue
        ranked.append(
            RankedPackage(
                template=template,
                match=match,
                suggested=SuggestedPrograms(
                    programs=programs,
                    required_devices=combinations.required_devices,
                    recommended_metrics=combinations.recommended_metrics,
                ),
            )
        )
    ranked.sort(key=lambda r: r.match.score, reverse=True)
    return ranked


class PackageSuggestionEngine:
    def __init__(
        self,
        patients: PatientRepository,
        organizations: OrganizationRepository,
        collector: DiagnosisCollector,
        catalog: PackageCatalog,
        ledger: SuggestionLedger,
    ):
        self.patients = patients
        self.organizations = organizations
        self.collector = collector
        self.catalog = catalog
        self.ledger = ledger

    @classmethod
    def from_session(cls, session: AsyncSession) -> "PackageSuggestionEngine":
        templates = PackageTemplateRepository(session)
        enrollments = EnrollmentRepository(session)
        patients = PatientRepository(session)
        materializer = EnrollmentMaterializer(
            enrollments=enrollments,
            care_programs=CareProgramRepository(session),
            billing_programs=BillingProgramRepository(session),
            presets=ConditionPresetRepository(session),
        )
        return cls(
            patients=patients,
            organizations=OrganizationRepository(session),
            collector=DiagnosisCollector(patients, enrollments),
            catalog=PackageCatalog(templates),
            ledger=SuggestionLedger(
                suggestions=SuggestionRepository(session),
                templates=templates,
                audit=AuditRepository(session),
                materializer=materializer,
            ),
        )

    async def _require_patient(self, patient_id: uuid.UUID, organization_id: uuid.UUID) -> None:
        if await self.patients.get_in_organization(patient_id, organization_id) is None:
            raise NotFoundError("Patient", patient_id)

    async def suggest_billing_packages(
        self,
        patient_id: uuid.UUID,
        organization_id: uuid.UUID,
        options: Optional[SuggestOptions] = None,
    ) -> list[EnrollmentSuggestion]:
        """Match the patient against the catalog and record the top suggestions.

        Args:
            patient_id: Patient to match.
            organization_id: Organization the patient belongs to.
            options: Score threshold, result cap and source tagging; unset
                fields use the configured defaults.

        Returns:
            Suggestions best first. Templates that already have a PENDING
            suggestion for this patient return that suggestion unchanged.
        """
        settings = get_settings()
        options = options or SuggestOptions()
        min_match_score = (
            options.min_match_score if options.min_match_score is not None else settings.suggestion_min_match_score
        )
        max_suggestions = (
            options.max_suggestions if options.max_suggestions is not None else settings.suggestion_max_suggestions
        )
        source_type = options.source_type or settings.suggestion_default_source_type

        await self._require_patient(patient_id, organization_id)

        diagnoses = await self.collector.collect(patient_id)
        if not diagnoses:
            logger.info("No diagnosis codes found for patient %s", patient_id)
            return []

        supported = await self.organizations.get_supported_programs(organization_id)
        logger.info("Organization supported programs: %s", ", ".join(supported) or "ALL (no filter)")

        templates = await self.catalog.active_templates(organization_id)
        if not templates:
            logger.info("No active billing package templates found")
            return []

        ranked = rank_packages(diagnoses, templates, supported, min_match_score)[:max_suggestions]

        suggestions = []
        for candidate in ranked:
            suggestions.append(
                await self.ledger.record(
                    patient_id,
                    organization_id,
                    candidate.template,
                    candidate.match,
                    candidate.suggested,
                    source_type=source_type,
                    source_id=options.source_id,
                )
            )
        return suggestions

    async def get_pending_suggestions(
        self, patient_id: uuid.UUID, organization_id: uuid.UUID
    ) -> list[EnrollmentSuggestion]:
        await self._require_patient(patient_id, organization_id)
        return list(await self.ledger.list_pending(patient_id, organization_id))

    async def get_suggestion_history(
        self,
        organization_id: uuid.UUID,
        status: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> SuggestionHistory:
        """All of an organization's suggestions in any state, newest first.

        Args:
            organization_id: Organization whose suggestions to list.
            status: Only suggestions in this state (PENDING, APPROVED, REJECTED).
            limit: Page size.
            offset: Rows to skip.
        """
        suggestions, total = await self.ledger.history(organization_id, status, limit, offset)
        return SuggestionHistory(suggestions=list(suggestions), total=total, limit=limit, offset=offset)

    async def approve_suggestion(
        self,
        suggestion_id: uuid.UUID,
        reviewer_id: uuid.UUID,
        options: Optional[ApproveOptions] = None,
        organization_id: Optional[uuid.UUID] = None,
    ) -> EnrollmentSuggestion:
        return await self.ledger.approve(suggestion_id, reviewer_id, options, organization_id)

    async def reject_suggestion(
        self,
        suggestion_id: uuid.UUID,
        reviewer_id: uuid.UUID,
        reason: str,
        organization_id: Optional[uuid.UUID] = None,
    ) -> EnrollmentSuggestion:
        return await self.ledger.reject(suggestion_id, reviewer_id, reason, organization_id)
