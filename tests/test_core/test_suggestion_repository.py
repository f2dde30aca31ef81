"""Tests for the suggestion and catalog repositories."""

from datetime import datetime, timezone

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from care_os.billing.seed import PACKAGE_TEMPLATES, seed_standard_catalog
from care_os.core.models import EnrollmentSuggestion, SuggestionStatus
from care_os.core.repository import (
    BillingProgramRepository,
    ConditionPresetRepository,
    EnrollmentRepository,
    OrganizationRepository,
    PackageTemplateRepository,
    SuggestionRepository,
)


def _suggestion_fields(patient, template) -> dict:
    return {
        "organization_id": patient.organization_id,
        "patient_id": patient.id,
        "package_template_id": template.id,
        "match_score": 77,
        "matched_diagnoses": {"primary": [], "secondary": []},
        "suggested_programs": {"programs": []},
        "source_type": "MANUAL",
        "created_enrollment_ids": [],
    }


class TestSuggestionRepository:
    async def test_create_pending_once_per_pair(self, session, make_template, make_patient):
        repo = SuggestionRepository(session)
        template = await make_template()
        patient = await make_patient("J44.9")

        first, created = await repo.create_pending(**_suggestion_fields(patient, template))
        first_id = first.id
        assert created is True

        second, created_again = await repo.create_pending(**_suggestion_fields(patient, template))
        assert created_again is False
        assert second.id == first_id

        count = await session.scalar(select(func.count()).select_from(EnrollmentSuggestion))
        assert count == 1

    async def test_pending_index_blocks_duplicates(self, session, make_template, make_patient):
        template = await make_template()
        patient = await make_patient("J44.9")
        session.add(EnrollmentSuggestion(status="PENDING", **_suggestion_fields(patient, template)))
        await session.flush()

        with pytest.raises(IntegrityError):
            async with session.begin_nested():
                session.add(EnrollmentSuggestion(status="PENDING", **_suggestion_fields(patient, template)))

    async def test_terminal_suggestions_do_not_block(self, session, make_template, make_patient):
        template = await make_template()
        patient = await make_patient("J44.9")
        session.add(EnrollmentSuggestion(status="REJECTED", **_suggestion_fields(patient, template)))
        session.add(EnrollmentSuggestion(status="APPROVED", **_suggestion_fields(patient, template)))
        await session.flush()

        _, created = await SuggestionRepository(session).create_pending(**_suggestion_fields(patient, template))
        assert created is True

    async def test_transition_only_from_pending(self, session, make_template, make_patient):
        repo = SuggestionRepository(session)
        template = await make_template()
        patient = await make_patient("J44.9")
        suggestion, _ = await repo.create_pending(**_suggestion_fields(patient, template))

        assert await repo.transition(suggestion, SuggestionStatus.REJECTED, rejection_reason="No") is True
        assert suggestion.status == "REJECTED"

        assert await repo.transition(suggestion, SuggestionStatus.APPROVED) is False
        assert suggestion.status == "REJECTED"
        assert suggestion.rejection_reason == "No"

    async def test_list_pending_excludes_reviewed(self, session, make_template, make_patient, organization):
        repo = SuggestionRepository(session)
        patient = await make_patient("J44.9")
        low = await make_template("LOW")
        high = await make_template("HIGH")
        done = await make_template("DONE")

        await repo.create_pending(**{**_suggestion_fields(patient, low), "match_score": 55})
        await repo.create_pending(**{**_suggestion_fields(patient, high), "match_score": 90})
        reviewed, _ = await repo.create_pending(**_suggestion_fields(patient, done))
        await repo.transition(reviewed, SuggestionStatus.APPROVED)

        pending = await repo.list_pending(patient.id, organization.id)
        assert [s.match_score for s in pending] == [90, 55]


class TestPackageTemplateRepository:
    async def test_record_usage(self, session, make_template):
        repo = PackageTemplateRepository(session)
        template = await make_template()

        await repo.record_usage(template.id)
        await repo.record_usage(template.id)
        await session.refresh(template)

        assert template.usage_count == 2
        assert template.last_used_at is not None


class TestSupportingRepositories:
    async def test_supported_programs(self, session):
        repo = OrganizationRepository(session)
        unrestricted = await repo.create(name="Open", settings=None)
        restricted = await repo.create(name="Narrow", settings={"supported_billing_programs": ["RPM"]})

        assert await repo.get_supported_programs(unrestricted.id) == []
        assert await repo.get_supported_programs(restricted.id) == ["RPM"]

    async def test_inactive_billing_program_not_resolved(self, session):
        repo = BillingProgramRepository(session)
        await repo.create(code="CMS_PCM_2025", name="PCM", program_type="PCM", is_active=False)

        assert await repo.get_by_code("CMS_PCM_2025") is not None
        assert await repo.get_active_by_code("CMS_PCM_2025") is None

    async def test_preset_lookup_prefers_first_name(self, session, organization):
        repo = ConditionPresetRepository(session)
        await repo.create(organization_id=organization.id, name="Asthma Management")
        copd = await repo.create(organization_id=organization.id, name="COPD Monitoring")

        found = await repo.find_for_organization(organization.id, ["COPD Monitoring", "Asthma Management"])
        assert found.id == copd.id

    async def test_find_on_day(self, session, make_patient, care_program, standard_preset):
        repo = EnrollmentRepository(session)
        patient = await make_patient()
        enrollment = await repo.create(
            organization_id=patient.organization_id,
            patient_id=patient.id,
            care_program_id=care_program.id,
            condition_preset_id=standard_preset.id,
            status="ACTIVE",
            start_date=datetime(2026, 5, 4, 23, 30, tzinfo=timezone.utc),
        )

        same_day = await repo.find_on_day(patient.id, care_program.id, datetime(2026, 5, 4, 1, 0, tzinfo=timezone.utc))
        next_day = await repo.find_on_day(patient.id, care_program.id, datetime(2026, 5, 5, 0, 0, tzinfo=timezone.utc))

        assert same_day.id == enrollment.id
        assert next_day is None


class TestSeed:
    async def test_seed_is_idempotent(self, session):
        first = await seed_standard_catalog(session)
        second = await seed_standard_catalog(session)

        assert first["billing_programs"] == 3
        assert first["package_templates"] == len(PACKAGE_TEMPLATES)
        assert first["condition_presets"] > 0
        assert second == {"billing_programs": 0, "condition_presets": 0, "package_templates": 0}

    async def test_seeded_templates_reference_seeded_programs(self, session):
        await seed_standard_catalog(session)
        programs = BillingProgramRepository(session)
        presets = ConditionPresetRepository(session)

        for data in PACKAGE_TEMPLATES:
            for option in data["program_combinations"]["programs"]:
                assert await programs.get_active_by_code(option["billing_program_code"]) is not None
            names = data["suggested_presets"]["condition_presets"]
            assert await presets.find_standardized(names) is not None


class TestSuggestionHistory:
    async def _seed(self, session, make_template, make_patient):
        repo = SuggestionRepository(session)
        patient = await make_patient("J44.9")
        rows = []
        for day, code in enumerate(["FIRST", "SECOND", "THIRD", "FOURTH"], start=1):
            template = await make_template(code)
            suggestion, _ = await repo.create_pending(
                **_suggestion_fields(patient, template),
                created_at=datetime(2026, 1, day, tzinfo=timezone.utc),
            )
            rows.append(suggestion)
        await repo.transition(rows[1], SuggestionStatus.REJECTED, rejection_reason="No")
        return repo, rows

    async def test_newest_first_with_total(self, session, make_template, make_patient, organization):
        repo, rows = await self._seed(session, make_template, make_patient)

        page, total = await repo.list_for_organization(organization.id)

        assert [s.id for s in page] == [s.id for s in reversed(rows)]
        assert total == 4

    async def test_status_filter(self, session, make_template, make_patient, organization):
        repo, rows = await self._seed(session, make_template, make_patient)

        rejected, total = await repo.list_for_organization(organization.id, status="REJECTED")
        assert [s.id for s in rejected] == [rows[1].id]
        assert total == 1

        pending, total = await repo.list_for_organization(organization.id, status="PENDING")
        assert total == 3
        assert all(s.status == "PENDING" for s in pending)

    async def test_paging_keeps_full_total(self, session, make_template, make_patient, organization):
        repo, rows = await self._seed(session, make_template, make_patient)

        page, total = await repo.list_for_organization(organization.id, limit=2, offset=1)

        assert [s.id for s in page] == [rows[2].id, rows[1].id]
        assert total == 4

    async def test_other_organizations_excluded(self, session, make_template, make_patient):
        await self._seed(session, make_template, make_patient)
        other = await OrganizationRepository(session).create(name="Other", settings={})

        page, total = await SuggestionRepository(session).list_for_organization(other.id)
        assert list(page) == []
        assert total == 0
