"""Tests for organization program filtering."""

from care_os.billing.program_filter import (
    filter_programs,
    filter_templates,
    template_program_combinations,
)
from care_os.billing.schemas import ProgramOption
from care_os.core.models import BillingPackageTemplate

from tests.conftest import program


def _template(code: str, *program_types: str) -> BillingPackageTemplate:
    return BillingPackageTemplate(
        code=code,
        name=code,
        category="TEST",
        diagnosis_criteria={},
        program_combinations={"programs": [program(t) for t in program_types]},
    )


def _options(*program_types: str) -> list[ProgramOption]:
    return [ProgramOption(program_type=t, billing_program_code=f"CMS_{t}_2025") for t in program_types]


class TestFilterPrograms:
    def test_empty_supported_keeps_everything(self):
        options = _options("RPM", "RTM", "CCM")
        assert filter_programs(options, []) == options

    def test_drops_unsupported(self):
        kept = filter_programs(_options("RPM", "RTM", "CCM"), ["RPM", "CCM"])
        assert [o.program_type for o in kept] == ["RPM", "CCM"]

    def test_nothing_supported(self):
        assert filter_programs(_options("RTM"), ["RPM"]) == []


class TestFilterTemplates:
    def test_empty_supported_keeps_all_templates(self):
        templates = [_template("A", "RTM"), _template("B", "RPM")]
        assert filter_templates(templates, []) == templates

    def test_rtm_only_template_excluded(self):
        rtm_only = _template("WOUND", "RTM")
        mixed = _template("COPD", "RPM", "RTM", "CCM")
        kept = filter_templates([rtm_only, mixed], ["RPM", "CCM"])
        assert kept == [mixed]

    def test_template_without_programs_excluded(self):
        empty = _template("EMPTY")
        assert filter_templates([empty], ["RPM"]) == []


class TestProgramCombinations:
    def test_malformed_combinations_yield_no_programs(self):
        broken = BillingPackageTemplate(
            code="BROKEN",
            name="Broken",
            category="TEST",
            diagnosis_criteria={},
            program_combinations={"programs": [{"priority": "high"}]},
        )
        assert template_program_combinations(broken).programs == []
        assert filter_templates([broken], ["RPM"]) == []
