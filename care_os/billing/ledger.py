"""Suggestion ledger: creation, deduplication, approval and rejection.

Suggestions are never deleted. A suggestion moves PENDING -> APPROVED or
PENDING -> REJECTED exactly once; both moves are conditional updates on the
PENDING status so concurrent reviewers cannot both win.
"""
from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Optional, Sequence

from care_os.core.models import BillingPackageTemplate, EnrollmentSuggestion, SuggestionStatus
from care_os.core.repository import AuditRepository, PackageTemplateRepository, SuggestionRepository
from care_os.billing.catalog import template_presets
from care_os.billing.enrollment import EnrollmentMaterializer
from care_os.billing.errors import InvalidStateError, NotFoundError, ValidationError
from care_os.billing.schemas import (
    ApproveOptions,
    MatchResult,
    ProgramOption,
    SuggestedPrograms,
)

logger = logging.getLogger(__name__)

AUDIT_RESOURCE = "enrollment_suggestion"


def select_programs(suggested: SuggestedPrograms, selected_program_type: Optional[str]) -> list[ProgramOption]:
    """Programs an approval should enroll in: one type if selected, else all of them."""
    if not selected_program_type:
        return list(suggested.programs)
    programs = [p for p in suggested.programs if p.program_type == selected_program_type]
    if not programs:
        raise ValidationError(
            f'Selected program type "{selected_program_type}" not found in suggested programs'
        )
    return programs


class SuggestionLedger:
    def __init__(
        self,
        suggestions: SuggestionRepository,
        templates: PackageTemplateRepository,
        audit: AuditRepository,
        materializer: EnrollmentMaterializer,
    ):
        self.suggestions = suggestions
        self.templates = templates
        self.audit = audit
        self.materializer = materializer

    async def record(
        self,
        patient_id: uuid.UUID,
        organization_id: uuid.UUID,
        template: BillingPackageTemplate,
        match: MatchResult,
        suggested: SuggestedPrograms,
        source_type: str,
        source_id: Optional[str] = None,
    ) -> EnrollmentSuggestion:
        """Persist a PENDING suggestion, or return the one already pending for this template."""
        existing = await self.suggestions.find_pending(patient_id, template.id)
        if existing is not None:
            logger.info("Suggestion already exists for patient %s and template %s", patient_id, template.code)
            return existing

        suggestion, created = await self.suggestions.create_pending(
            organization_id=organization_id,
            patient_id=patient_id,
            package_template_id=template.id,
            match_score=match.score,
            matched_diagnoses=match.to_matched_diagnoses(),
            suggested_programs=suggested.model_dump(mode="json"),
            source_type=source_type,
            source_id=source_id,
            meta={
                "package_name": template.name,
                "package_code": template.code,
                "category": template.category,
                "clinical_rationale": template.clinical_rationale,
                "evidence_source": template.evidence_source,
                "suggested_presets": template_presets(template).model_dump(mode="json"),
            },
            created_enrollment_ids=[],
        )
        if not created:
            logger.info("Concurrent suggestion won for patient %s and template %s", patient_id, template.code)
            return suggestion

        await self.templates.record_usage(template.id)
        await self.audit.log_action(
            action="suggestion_created",
            resource_type=AUDIT_RESOURCE,
            resource_id=str(suggestion.id),
            details={
                "patient_id": str(patient_id),
                "package_code": template.code,
                "match_score": match.score,
                "source_type": source_type,
            },
        )
        logger.info(
            "Suggested %s for patient %s (score %d, programs: %s)",
            template.code,
            patient_id,
            match.score,
            ", ".join(p.program_type for p in suggested.programs),
        )
        return suggestion

    async def get(self, suggestion_id: uuid.UUID, organization_id: Optional[uuid.UUID] = None) -> EnrollmentSuggestion:
        suggestion = await self.suggestions.get_by_id(suggestion_id)
        if suggestion is None or (organization_id is not None and suggestion.organization_id != organization_id):
            raise NotFoundError("Suggestion", suggestion_id)
        return suggestion

    async def list_pending(self, patient_id: uuid.UUID, organization_id: uuid.UUID) -> Sequence[EnrollmentSuggestion]:
        return await self.suggestions.list_pending(patient_id, organization_id)

    async def history(
        self,
        organization_id: uuid.UUID,
        status: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[Sequence[EnrollmentSuggestion], int]:
        if status is not None and status not in {s.value for s in SuggestionStatus}:
            raise ValidationError(f'Unknown suggestion status "{status}"')
        if limit < 1 or offset < 0:
            raise ValidationError("limit must be positive and offset non-negative")
        return await self.suggestions.list_for_organization(organization_id, status, limit, offset)

    async def approve(
        self,
        suggestion_id: uuid.UUID,
        reviewer_id: uuid.UUID,
        options: Optional[ApproveOptions] = None,
        organization_id: Optional[uuid.UUID] = None,
    ) -> EnrollmentSuggestion:
        """Approve a pending suggestion and create its enrollments.

        Enrollment creation is best effort; callers should inspect
        ``created_enrollment_ids`` (and ``meta["approval_warnings"]``) rather
        than assume approval implies full enrollment.
        """
        options = options or ApproveOptions()
        suggestion = await self.get(suggestion_id, organization_id)
        if suggestion.status != SuggestionStatus.PENDING.value:
            raise InvalidStateError(suggestion_id, suggestion.status)

        suggested = SuggestedPrograms.model_validate(suggestion.suggested_programs or {})
        programs = select_programs(suggested, options.selected_program_type)
        if options.selected_program_type:
            logger.info("Creating enrollment only for selected program: %s", options.selected_program_type)
        else:
            logger.info("No program selected - creating enrollments for all %d suggested programs", len(programs))

        reviewed_at = datetime.now(timezone.utc)
        claimed = await self.suggestions.transition(
            suggestion,
            SuggestionStatus.APPROVED,
            reviewed_by_id=reviewer_id,
            reviewed_at=reviewed_at,
        )
        if not claimed:
            raise InvalidStateError(suggestion_id, suggestion.status)

        outcome = await self.materializer.materialize(
            suggestion,
            programs,
            clinician_id=options.clinician_id or reviewer_id,
            start_date=options.start_date or reviewed_at,
        )

        suggestion.created_enrollment_ids = [str(eid) for eid in outcome.enrollment_ids]
        if outcome.failures:
            meta = dict(suggestion.meta or {})
            meta["approval_warnings"] = [f.model_dump(mode="json") for f in outcome.failures]
            suggestion.meta = meta
        await self.suggestions.save(suggestion)

        await self.audit.log_action(
            action="suggestion_approved",
            resource_type=AUDIT_RESOURCE,
            resource_id=str(suggestion.id),
            user_id=str(reviewer_id),
            details={
                "selected_program_type": options.selected_program_type,
                "created_enrollment_ids": suggestion.created_enrollment_ids,
                "failures": [f.reason for f in outcome.failures],
            },
        )
        return suggestion

    async def reject(
        self,
        suggestion_id: uuid.UUID,
        reviewer_id: uuid.UUID,
        reason: str,
        organization_id: Optional[uuid.UUID] = None,
    ) -> EnrollmentSuggestion:
        if not reason or not reason.strip():
            raise ValidationError("rejection reason is required")

        suggestion = await self.get(suggestion_id, organization_id)
        if suggestion.status != SuggestionStatus.PENDING.value:
            raise InvalidStateError(suggestion_id, suggestion.status)

        claimed = await self.suggestions.transition(
            suggestion,
            SuggestionStatus.REJECTED,
            reviewed_by_id=reviewer_id,
            reviewed_at=datetime.now(timezone.utc),
            rejection_reason=reason.strip(),
        )
        if not claimed:
            raise InvalidStateError(suggestion_id, suggestion.status)

        await self.audit.log_action(
            action="suggestion_rejected",
            resource_type=AUDIT_RESOURCE,
            resource_id=str(suggestion.id),
            user_id=str(reviewer_id),
            details={"reason": suggestion.rejection_reason},
        )
        return suggestion
