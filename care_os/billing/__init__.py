"""Billing package suggestions: matching, program filtering and the suggestion lifecycle."""

from care_os.billing.engine import PackageSuggestionEngine, SuggestionHistory, rank_packages
from care_os.billing.errors import InvalidStateError, NotFoundError, SuggestionError, ValidationError
from care_os.billing.matching import match_diagnosis_criteria, matches_pattern
from care_os.billing.program_filter import filter_programs, filter_templates
from care_os.billing.schemas import (
    ApproveOptions,
    CriteriaCode,
    DiagnosisCode,
    DiagnosisCriteria,
    MatchResult,
    PartialFailure,
    ProgramOption,
    SuggestOptions,
)

__all__ = [
    "PackageSuggestionEngine",
    "rank_packages",
    "SuggestionHistory",
    "InvalidStateError",
    "NotFoundError",
    "SuggestionError",
    "ValidationError",
    "match_diagnosis_criteria",
    "matches_pattern",
    "filter_programs",
    "filter_templates",
    "ApproveOptions",
    "CriteriaCode",
    "DiagnosisCode",
    "DiagnosisCriteria",
    "MatchResult",
    "PartialFailure",
    "ProgramOption",
    "SuggestOptions",
]
