"""Tests for plan templates."""

import uuid

import pytest

from unbuilt.core.errors import ConflictError, NotFoundError, ValidationFailed
from unbuilt.services import PlanService, TemplateService


@pytest.fixture
def service(db_session):
    return TemplateService(db_session)


@pytest.fixture
def seeded(service):
    service.seed_default_templates()
    return {t.name: t for t in service.list_templates()}


class TestTemplateCatalog:
    """Tests for seeding and listing templates."""

    def test_seed_is_idempotent(self, service, seeded):
        """Seeding twice adds nothing the second time."""
        assert {"Software Startup", "Physical Product", "Service Business"} <= set(seeded)
        assert service.seed_default_templates() == 0

    def test_filter_by_category(self, service, seeded):
        names = [t.name for t in service.list_templates(category="software")]

        assert "Software Startup" in names
        assert "Physical Product" not in names

    def test_default_template(self, service, seeded):
        default = service.get_default_template()

        assert default.is_default is True

    def test_create_requires_name_and_category(self, service):
        with pytest.raises(ValidationFailed):
            service.create_template({"name": "No category"})

    def test_duplicate_name(self, service):
        name = f"Custom {uuid.uuid4().hex[:8]}"
        service.create_template({"name": name, "category": "other"})

        with pytest.raises(ConflictError):
            service.create_template({"name": name, "category": "other"})

    def test_soft_delete(self, service):
        """Deleted templates disappear from listings but can still be fetched."""
        template = service.create_template({"name": f"Temp {uuid.uuid4().hex[:8]}", "category": "other"})

        service.delete_template(template.id)

        assert template.id not in {t.id for t in service.list_templates()}
        assert service.get_template(template.id).is_active is False

    def test_unknown_template(self, service):
        with pytest.raises(NotFoundError):
            service.get_template(uuid.uuid4())


class TestApplyTemplate:
    """Tests for applying templates to plans."""

    def test_apply_replaces_structure(self, service, seeded, plan, user):
        template = seeded["Software Startup"]

        updated = service.apply_template(plan.id, template.id, user.id)

        assert updated.template_id == template.id
        assert [p.name for p in updated.phases] == [
            "Research & Validation", "MVP Development", "Beta Testing & Iteration", "Launch & Growth",
        ]
        assert updated.phases[0].tasks[0].title == "Conduct user interviews"
        assert [t.order for t in updated.phases[0].tasks] == [0, 1, 2, 3]

    def test_create_plan_from_template(self, db_session, service, seeded, user, search):
        template = seeded["Physical Product"]

        plan = PlanService(db_session).create_plan(user.id, search.id, "Hardware", template_id=template.id)

        assert plan.template_id == template.id
        assert len(plan.phases) == len(template.phases)
        assert service.get_usage_stats(template.id)["active_plans"] >= 1

    def test_apply_to_foreign_plan(self, service, seeded, plan, make_user):
        with pytest.raises(NotFoundError):
            service.apply_template(plan.id, seeded["Software Startup"].id, make_user().id)
