"""Pytest configuration and fixtures."""

import uuid

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from care_os.core.models import Base
from care_os.core.repository import (
    BillingProgramRepository,
    CareProgramRepository,
    ConditionPresetRepository,
    OrganizationRepository,
    PackageTemplateRepository,
    PatientRepository,
)


def icd(code: str, display: str = "") -> dict:
    return {"code": code, "display": display, "coding_system": "ICD-10"}


def program(program_type: str, code: str | None = None, priority: int = 1) -> dict:
    return {
        "program_type": program_type,
        "billing_program_code": code or f"CMS_{program_type}_2025",
        "priority": priority,
        "rationale": f"{program_type} rationale",
    }


COPD_CRITERIA = {
    "primary": [icd("J44.*", "COPD"), icd("J45.*", "Asthma")],
    "secondary": [icd("I10", "Hypertension"), icd("E11.*", "Diabetes"), icd("I50.*", "Heart failure")],
    "min_primary_matches": 1,
    "prefer_multi_morbidity": True,
}


@pytest.fixture
async def session():
    engine = create_async_engine("sqlite+aiosqlite://", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with factory() as sess:
        yield sess
        await sess.rollback()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
async def organization(session: AsyncSession):
    return await OrganizationRepository(session).create(name="Lakeside Clinic", settings={})


@pytest.fixture
async def billing_programs(session: AsyncSession):
    repo = BillingProgramRepository(session)
    return {
        program_type: await repo.create(
            code=f"CMS_{program_type}_2025",
            name=f"CMS {program_type} 2025",
            program_type=program_type,
        )
        for program_type in ("RPM", "RTM", "CCM")
    }


@pytest.fixture
async def care_program(session: AsyncSession, organization):
    return await CareProgramRepository(session).create(
        organization_id=organization.id, name="Remote Monitoring"
    )


@pytest.fixture
async def standard_preset(session: AsyncSession):
    return await ConditionPresetRepository(session).create(
        name="COPD Monitoring",
        description="Remote monitoring for COPD",
        category="RESPIRATORY",
        is_standardized=True,
        diagnoses=[
            {"icd10": "J44.9", "snomed": "13645005", "label": "COPD, unspecified", "is_primary": True},
            {"icd10": "J44.1", "snomed": None, "label": "COPD with exacerbation", "is_primary": False},
        ],
    )


@pytest.fixture
def make_template(session: AsyncSession):
    repo = PackageTemplateRepository(session)

    async def _make(
        code: str = "COPD_ASTHMA_MULTI",
        criteria: dict | None = None,
        programs: list[dict] | None = None,
        organization_id: uuid.UUID | None = None,
        display_order: int = 0,
        is_active: bool = True,
        presets: list[str] | None = None,
    ):
        return await repo.create(
            code=code,
            name=code.replace("_", " ").title(),
            category="RESPIRATORY",
            organization_id=organization_id,
            is_standardized=organization_id is None,
            is_active=is_active,
            diagnosis_criteria=criteria if criteria is not None else COPD_CRITERIA,
            program_combinations={
                "programs": programs if programs is not None else [program("RPM"), program("CCM", priority=2)],
                "required_devices": ["Pulse Oximeter"],
                "recommended_metrics": ["oxygen_saturation"],
            },
            suggested_presets={"condition_presets": presets if presets is not None else ["COPD Monitoring"]},
            display_order=display_order,
        )

    return _make


@pytest.fixture
def make_patient(session: AsyncSession, organization):
    repo = PatientRepository(session)

    async def _make(*codes: str, organization_id: uuid.UUID | None = None):
        return await repo.create(
            organization_id=organization_id or organization.id,
            first_name="Ada",
            last_name="Moss",
            diagnosis_codes=[icd(c) for c in codes],
        )

    return _make
