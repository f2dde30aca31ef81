"""Standard catalog: CMS billing programs, condition presets and package templates.

Seeding is insert-if-missing by code (programs, templates) or by name
(standardized presets), so running it repeatedly leaves existing rows alone.
"""
from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from care_os.core.repository import (
    BillingProgramRepository,
    ConditionPresetRepository,
    PackageTemplateRepository,
)

logger = logging.getLogger(__name__)

RPM_CPT = ["99453", "99454", "99457", "99458"]
RTM_CPT = ["98975", "98976", "98977", "98980", "98981"]
CCM_CPT = ["99490", "99439", "99491"]

BILLING_PROGRAMS: list[dict] = [
    {
        "code": "CMS_RPM_2025",
        "name": "CMS Remote Patient Monitoring 2025",
        "program_type": "RPM",
        "payer": "CMS",
        "cpt_codes": RPM_CPT,
    },
    {
        "code": "CMS_RTM_2025",
        "name": "CMS Remote Therapeutic Monitoring 2025",
        "program_type": "RTM",
        "payer": "CMS",
        "cpt_codes": RTM_CPT,
    },
    {
        "code": "CMS_CCM_2025",
        "name": "CMS Chronic Care Management 2025",
        "program_type": "CCM",
        "payer": "CMS",
        "cpt_codes": CCM_CPT,
    },
]

STANDARD_PRESETS: list[dict] = [
    {
        "name": "COPD Monitoring",
        "category": "RESPIRATORY",
        "description": "Remote monitoring for chronic obstructive pulmonary disease",
        "diagnoses": [
            {"icd10": "J44.9", "snomed": "13645005", "label": "Chronic obstructive pulmonary disease, unspecified", "is_primary": True},
            {"icd10": "J44.1", "snomed": "195951007", "label": "COPD with acute exacerbation", "is_primary": False},
        ],
    },
    {
        "name": "Asthma Management",
        "category": "RESPIRATORY",
        "description": "Symptom and peak-flow tracking for asthma",
        "diagnoses": [
            {"icd10": "J45.909", "snomed": "195967001", "label": "Unspecified asthma, uncomplicated", "is_primary": True},
        ],
    },
    {
        "name": "Wound Care Management",
        "category": "WOUND_CARE",
        "description": "Photo-based wound assessment and dressing adherence",
        "diagnoses": [
            {"icd10": "L89.90", "snomed": "399912005", "label": "Pressure ulcer of unspecified site", "is_primary": True},
            {"icd10": "L97.909", "snomed": None, "label": "Non-pressure chronic ulcer of lower leg", "is_primary": False},
        ],
    },
    {
        "name": "IBS Management",
        "category": "GASTROINTESTINAL",
        "description": "Symptom diary and trigger tracking for irritable bowel syndrome",
        "diagnoses": [
            {"icd10": "K58.9", "snomed": "10743008", "label": "Irritable bowel syndrome without diarrhea", "is_primary": True},
        ],
    },
    {
        "name": "GERD Management",
        "category": "GASTROINTESTINAL",
        "description": "Reflux symptom tracking and medication adherence",
        "diagnoses": [
            {"icd10": "K21.9", "snomed": "235595009", "label": "Gastro-esophageal reflux disease without esophagitis", "is_primary": True},
        ],
    },
]


def _program(code: str, program_type: str, cpt_codes: list[str], priority: int, rationale: str) -> dict:
    return {
        "billing_program_code": code,
        "program_type": program_type,
        "cpt_codes": cpt_codes,
        "priority": priority,
        "rationale": rationale,
    }


def _icd(code: str, display: str) -> dict:
    return {"code": code, "display": display, "coding_system": "ICD-10"}


PACKAGE_TEMPLATES: list[dict] = [
    {
        "code": "COPD_ASTHMA_MULTI",
        "name": "COPD/Asthma Multi-Program Package",
        "description": (
            "Comprehensive remote monitoring package for patients with COPD or Asthma requiring "
            "device monitoring, therapeutic tracking, and care coordination"
        ),
        "category": "RESPIRATORY",
        "diagnosis_criteria": {
            "primary": [
                _icd("J44.*", "Chronic obstructive pulmonary disease"),
                _icd("J45.*", "Asthma"),
            ],
            "secondary": [
                _icd("I10", "Essential hypertension"),
                _icd("E11.*", "Type 2 diabetes mellitus"),
                _icd("I50.*", "Heart failure"),
            ],
            "min_primary_matches": 1,
            "prefer_multi_morbidity": True,
        },
        "program_combinations": {
            "programs": [
                _program("CMS_RPM_2025", "RPM", RPM_CPT, 1, "Device-based monitoring of SpO2, respiratory rate, heart rate"),
                _program("CMS_RTM_2025", "RTM", ["98975", "98976", "98977", "98980"], 2,
                         "Therapeutic monitoring of breathing exercises, medication adherence, symptom tracking"),
                _program("CMS_CCM_2025", "CCM", ["99490", "99491"], 3,
                         "Chronic care management for multi-morbid patients (COPD + diabetes/hypertension/heart failure)"),
            ],
            "required_devices": [
                "Pulse Oximeter",
                "Bluetooth-enabled peak flow meter (for asthma)",
                "Blood pressure monitor (if hypertension present)",
            ],
            "recommended_metrics": [
                "oxygen_saturation",
                "respiratory_rate",
                "heart_rate",
                "peak_flow",
                "symptom_scores",
                "medication_adherence",
            ],
        },
        "suggested_presets": {
            "condition_presets": ["COPD Monitoring", "Asthma Management"],
            "assessments": ["COPD Assessment Test (CAT)", "Asthma Control Test", "Daily Symptom Tracker"],
            "alert_rules": ["Hypoxia (O2 sat <90%)", "Tachypnea (RR >30)", "Severe Dyspnea"],
        },
        "clinical_rationale": (
            "COPD and asthma patients benefit from multi-modal remote monitoring combining device readings (RPM), "
            "therapeutic compliance tracking (RTM), and care coordination (CCM for multi-morbid patients)."
        ),
        "evidence_source": "GOLD Guidelines 2024, GINA Guidelines 2024, CMS RPM/RTM final rules",
        "display_order": 1,
    },
    {
        "code": "WOUND_CARE_RTM",
        "name": "Wound Care Therapeutic Monitoring Package",
        "description": (
            "Remote therapeutic monitoring package for patients with chronic wounds requiring photo "
            "documentation, assessment tracking, and care coordination"
        ),
        "category": "WOUND_CARE",
        "diagnosis_criteria": {
            "primary": [
                _icd("L89.*", "Pressure ulcer"),
                _icd("L97.*", "Non-pressure chronic ulcer of lower limb"),
                _icd("L98.4*", "Chronic ulcer of skin"),
                _icd("T81.3*", "Disruption of wound"),
            ],
            "secondary": [
                _icd("E11.*", "Type 2 diabetes mellitus"),
                _icd("I73.*", "Peripheral vascular disease"),
                _icd("R60.*", "Edema"),
            ],
            "min_primary_matches": 1,
            "prefer_multi_morbidity": False,
        },
        "program_combinations": {
            "programs": [
                _program("CMS_RTM_2025", "RTM", ["98975", "98976", "98977", "98980"], 1,
                         "Photo-based wound assessments, PUSH score tracking, dressing adherence monitoring"),
                _program("CMS_CCM_2025", "CCM", ["99490", "99491"], 2,
                         "Care coordination for complex wounds or patients with diabetes/PVD"),
                _program("CMS_RPM_2025", "RPM", ["99454", "99457"], 3,
                         "Optional device monitoring for edema (weight) or infection surveillance (temperature)"),
            ],
            "required_devices": [
                "Smartphone camera for wound photos",
                "Weight scale (if edema present)",
                "Thermometer (for infection surveillance)",
            ],
            "recommended_metrics": ["wound_area", "push_score", "pain_level", "weight", "temperature"],
        },
        "suggested_presets": {
            "condition_presets": ["Wound Care Management"],
            "assessments": ["PUSH Tool", "Wound Photo Assessment"],
            "alert_rules": ["Wound deterioration", "Fever (>38C)"],
        },
        "clinical_rationale": (
            "Chronic wounds heal faster with frequent documented assessment; RTM covers photo-based tracking "
            "and CCM covers coordination for multi-morbid patients."
        ),
        "evidence_source": "WOCN Guidelines, CMS RTM final rule",
        "display_order": 2,
    },
    {
        "code": "GI_IBS_GERD_RTM",
        "name": "GI Symptom Tracking Package (IBS/GERD)",
        "description": "Therapeutic symptom monitoring for chronic gastrointestinal conditions",
        "category": "GASTROINTESTINAL",
        "diagnosis_criteria": {
            "primary": [
                _icd("K58.*", "Irritable bowel syndrome"),
                _icd("K21.*", "Gastro-esophageal reflux disease"),
                _icd("K50.*", "Crohn's disease"),
                _icd("K51.*", "Ulcerative colitis"),
            ],
            "secondary": [
                _icd("R19.7", "Diarrhea"),
                _icd("K59.0*", "Constipation"),
                _icd("R10.*", "Abdominal pain"),
                _icd("F41.*", "Anxiety disorder"),
            ],
            "min_primary_matches": 1,
            "prefer_multi_morbidity": False,
        },
        "program_combinations": {
            "programs": [
                _program("CMS_RTM_2025", "RTM", ["98975", "98976", "98977", "98980"], 1,
                         "Daily symptom diary, trigger tracking, diet and medication adherence"),
                _program("CMS_CCM_2025", "CCM", ["99490", "99491"], 2,
                         "Care coordination for IBD or patients with comorbid anxiety"),
                _program("CMS_RPM_2025", "RPM", ["99454", "99457"], 3,
                         "Weight monitoring for IBD patients at risk of malnutrition"),
            ],
            "required_devices": ["Smartphone app for symptom diary", "Weight scale (for IBD)"],
            "recommended_metrics": ["symptom_scores", "bowel_frequency", "pain_level", "weight", "medication_adherence"],
        },
        "suggested_presets": {
            "condition_presets": ["IBS Management", "GERD Management"],
            "assessments": ["IBS Symptom Severity Score", "GERD-Q"],
            "alert_rules": ["Severe abdominal pain", "GI bleeding symptoms"],
        },
        "clinical_rationale": (
            "Structured symptom tracking improves management of functional and inflammatory GI disorders."
        ),
        "evidence_source": "ACG Clinical Guidelines (IBS 2021, GERD 2022)",
        "display_order": 3,
    },
]


async def seed_standard_catalog(session: AsyncSession) -> dict[str, int]:
    """Insert missing standard billing programs, presets and templates.

    Returns:
        Count of rows created per kind.
    """
    counts = {"billing_programs": 0, "condition_presets": 0, "package_templates": 0}

    programs = BillingProgramRepository(session)
    for data in BILLING_PROGRAMS:
        if await programs.get_by_code(data["code"]) is None:
            await programs.create(**data, is_active=True)
            counts["billing_programs"] += 1

    presets = ConditionPresetRepository(session)
    for data in STANDARD_PRESETS:
        if await presets.find_standardized([data["name"]]) is None:
            await presets.create(is_standardized=True, is_active=True, **data)
            counts["condition_presets"] += 1

    templates = PackageTemplateRepository(session)
    for data in PACKAGE_TEMPLATES:
        if await templates.get_by_code(data["code"]) is None:
            await templates.create(organization_id=None, is_standardized=True, is_active=True, **data)
            counts["package_templates"] += 1
        else:
            logger.debug("Package template %s already present", data["code"])

    return counts
