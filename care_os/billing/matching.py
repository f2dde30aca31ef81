"""Diagnosis criteria matching and fit scoring.

A criteria code matches a patient diagnosis when both use the same coding
system and either the codes are equal or the criteria code is a wildcard
pattern (``J44.*``) that the patient code satisfies, case-insensitively.

Scoring:
    base   = matched criteria / total criteria * 100
    +10    when the primary minimum is met
    +15    when multi-morbidity is preferred and >= 2 secondary criteria matched
    result = min(100, round-half-up(score))
"""
from __future__ import annotations

import math
import re
from functools import lru_cache

from care_os.billing.schemas import (
    CriteriaCode,
    DiagnosisCode,
    DiagnosisCriteria,
    MatchedDiagnosis,
    MatchResult,
)

MINIMUM_MET_BONUS = 10
MULTI_MORBIDITY_BONUS = 15
MULTI_MORBIDITY_SECONDARY_COUNT = 2


@lru_cache(maxsize=512)
def _compile_wildcard(pattern: str) -> re.Pattern[str]:
    body = ".*".join(re.escape(part) for part in pattern.split("*"))
    return re.compile(f"^{body}$", re.IGNORECASE)


def matches_pattern(patient_code: str, criteria_code: str) -> bool:
    """Check whether a patient code satisfies a criteria code or wildcard pattern."""
    if patient_code == criteria_code:
        return True
    if "*" in criteria_code:
        return _compile_wildcard(criteria_code).match(patient_code) is not None
    return False


def _match_list(criteria: list[CriteriaCode], diagnoses: list[DiagnosisCode]) -> list[MatchedDiagnosis]:
    matched: list[MatchedDiagnosis] = []
    for criterion in criteria:
        for dx in diagnoses:
            if dx.coding_system != criterion.coding_system:
                continue
            if matches_pattern(dx.code, criterion.code):
                matched.append(
                    MatchedDiagnosis(
                        criteria_code=criterion.code,
                        criteria_display=criterion.display,
                        patient_code=dx.code,
                        patient_display=dx.display,
                        origin_enrollment_id=dx.origin_enrollment_id,
                        origin_label=dx.origin_label,
                    )
                )
                # Each criterion counts once
                break
    return matched


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def match_diagnosis_criteria(diagnoses: list[DiagnosisCode], criteria: DiagnosisCriteria) -> MatchResult:
    """Score how well a patient's diagnoses fit one package's criteria.

    Args:
        diagnoses: Collected patient diagnoses.
        criteria: The package template's diagnosis criteria.

    Returns:
        MatchResult with a 0-100 score and the diagnoses that satisfied each
        primary and secondary criterion. Criteria with no entries at all
        score 0.
    """
    matched_primary = _match_list(criteria.primary, diagnoses)
    matched_secondary = _match_list(criteria.secondary, diagnoses)
    total_matched = len(matched_primary) + len(matched_secondary)
    meets_minimum = len(matched_primary) >= criteria.min_primary_matches

    if criteria.total_criteria == 0:
        return MatchResult(score=0, meets_minimum=False)

    score = total_matched / criteria.total_criteria * 100
    if meets_minimum:
        score += MINIMUM_MET_BONUS
    if criteria.prefer_multi_morbidity and len(matched_secondary) >= MULTI_MORBIDITY_SECONDARY_COUNT:
        score += MULTI_MORBIDITY_BONUS

    return MatchResult(
        score=min(100, _round_half_up(score)),
        matched_primary=matched_primary,
        matched_secondary=matched_secondary,
        total_matched=total_matched,
        meets_minimum=meets_minimum,
    )
