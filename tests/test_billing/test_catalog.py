"""Tests for the package template catalog."""

import pytest

from care_os.billing.catalog import PackageCatalog, template_criteria, template_presets
from care_os.billing.errors import NotFoundError
from care_os.core.models import BillingPackageTemplate
from care_os.core.repository import OrganizationRepository, PackageTemplateRepository


@pytest.fixture
def catalog(session):
    return PackageCatalog(PackageTemplateRepository(session))


@pytest.fixture
async def other_org(session):
    return await OrganizationRepository(session).create(name="Hillside Clinic", settings={})


class TestVisibility:
    async def test_platform_and_own_templates_visible(self, catalog, make_template, organization, other_org):
        await make_template("PLATFORM")
        await make_template("OURS", organization_id=organization.id)
        await make_template("THEIRS", organization_id=other_org.id)

        codes = [t.code for t in await catalog.list_templates(organization.id)]
        assert codes == ["PLATFORM", "OURS"]

    async def test_catalog_order(self, catalog, make_template, organization):
        await make_template("ORG_FIRST", organization_id=organization.id, display_order=0)
        await make_template("PLATFORM_B", display_order=2)
        await make_template("PLATFORM_A", display_order=1)

        codes = [t.code for t in await catalog.list_templates(organization.id)]
        assert codes == ["PLATFORM_A", "PLATFORM_B", "ORG_FIRST"]

    async def test_active_templates_skip_inactive(self, catalog, make_template, organization):
        await make_template("ACTIVE")
        await make_template("RETIRED", is_active=False)

        assert [t.code for t in await catalog.active_templates(organization.id)] == ["ACTIVE"]
        assert len(await catalog.list_templates(organization.id)) == 2

    async def test_filter_by_standardized(self, catalog, make_template, organization):
        await make_template("PLATFORM")
        await make_template("OURS", organization_id=organization.id)

        custom = await catalog.list_templates(organization.id, is_standardized=False)
        assert [t.code for t in custom] == ["OURS"]

    async def test_filter_by_category(self, catalog, make_template, organization):
        await make_template("COPD")
        assert await catalog.list_templates(organization.id, category="WOUND_CARE") == []
        assert len(await catalog.list_templates(organization.id, category="RESPIRATORY")) == 1


class TestGetByCode:
    async def test_found(self, catalog, make_template, organization):
        created = await make_template("COPD_ASTHMA_MULTI")
        assert (await catalog.get_by_code("COPD_ASTHMA_MULTI", organization.id)).id == created.id

    async def test_missing(self, catalog, organization):
        with pytest.raises(NotFoundError):
            await catalog.get_by_code("NOPE", organization.id)

    async def test_other_organizations_template_hidden(self, catalog, make_template, organization, other_org):
        await make_template("THEIRS", organization_id=other_org.id)
        with pytest.raises(NotFoundError):
            await catalog.get_by_code("THEIRS", organization.id)


class TestTemplateParsing:
    def test_malformed_criteria(self):
        template = BillingPackageTemplate(code="BAD", diagnosis_criteria={"primary": "J44.*"})
        assert template_criteria(template) is None

    def test_empty_criteria(self):
        template = BillingPackageTemplate(code="EMPTY", diagnosis_criteria={})
        assert template_criteria(template) is None

    def test_missing_presets_default_empty(self):
        template = BillingPackageTemplate(code="NONE", suggested_presets=None)
        assert template_presets(template).condition_presets == []
