"""
Tests for ApprovalTemplateService -- template administration and resolution.

Covers:
- create_template(): validation, JSON step storage, default handling
- update_template(): changed fields, validation, forbidden fields
- deactivate_template(): soft delete, drops the default flag
- set_default(): single default invariant, inactive target refused
- resolve_template(): delegates to the engine over active templates
"""

from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import func, select

from tests.conftest import make_steps
from treasury_kernel.domain.approval import ApprovalLevel
from treasury_kernel.exceptions import (
    InvalidTemplateError,
    NoTemplateConfiguredError,
    TemplateNotFoundError,
)
from treasury_kernel.models.approval import ApprovalTemplateModel

TREASURER = ApprovalLevel.DEPARTMENT_TREASURER
HOD = ApprovalLevel.HEAD_OF_DEPARTMENT
ELDER = ApprovalLevel.FINANCE_ELDER


def _default_count(session) -> int:
    return session.scalar(
        select(func.count())
        .select_from(ApprovalTemplateModel)
        .where(ApprovalTemplateModel.is_default.is_(True))
    )


class TestCreateTemplate:

    def test_happy_path(self, template_service, session):
        template = template_service.create_template(
            "Elevated",
            make_steps(TREASURER, HOD, ELDER),
            min_amount=Decimal("1000.01"),
            max_amount=Decimal("5000.00"),
            description="Mid-sized requests",
        )

        assert template.name == "Elevated"
        assert template.levels == (TREASURER, HOD, ELDER)
        assert template.min_amount == Decimal("1000.01")
        assert template.is_active
        assert not template.is_default

        row = session.get(ApprovalTemplateModel, template.template_id)
        assert row.approval_steps[0] == {
            "role": "department_treasurer",
            "step_order": 1,
            "required": True,
            "timeout_hours": 48,
        }

    def test_invalid_definition_not_persisted(self, template_service, session):
        with pytest.raises(InvalidTemplateError):
            template_service.create_template("Empty", ())

        assert session.scalar(select(func.count()).select_from(ApprovalTemplateModel)) == 0

    def test_new_default_replaces_previous(self, template_service, session):
        first = template_service.create_template("First", make_steps(TREASURER), is_default=True)
        second = template_service.create_template("Second", make_steps(HOD), is_default=True)

        assert _default_count(session) == 1
        assert template_service.get_template(second.template_id).is_default
        assert not template_service.get_template(first.template_id).is_default

    def test_logs_creation(self, template_service, captured_logs):
        template_service.create_template("Logged", make_steps(TREASURER))

        assert any(r["message"] == "approval_template_created" for r in captured_logs())


class TestUpdateTemplate:

    def test_update_steps_and_bounds(self, template_service):
        template = template_service.create_template("Tier", make_steps(TREASURER))

        updated = template_service.update_template(
            template.template_id,
            steps=make_steps(TREASURER, HOD),
            min_amount=Decimal("100"),
        )

        assert updated.levels == (TREASURER, HOD)
        assert updated.min_amount == Decimal("100")
        assert updated.name == "Tier"

    def test_update_validates_result(self, template_service):
        template = template_service.create_template(
            "Tier", make_steps(TREASURER), max_amount=Decimal("100"),
        )

        with pytest.raises(InvalidTemplateError, match="exceeds"):
            template_service.update_template(template.template_id, min_amount=Decimal("500"))

    def test_flags_cannot_be_updated_directly(self, template_service):
        template = template_service.create_template("Tier", make_steps(TREASURER))

        with pytest.raises(InvalidTemplateError, match="cannot be updated"):
            template_service.update_template(template.template_id, is_default=True)

    def test_unknown_template(self, template_service):
        with pytest.raises(TemplateNotFoundError):
            template_service.update_template(uuid4(), name="x")


class TestDeactivateTemplate:

    def test_deactivated_template_leaves_active_list(self, template_service):
        keep = template_service.create_template("Keep", make_steps(TREASURER))
        drop = template_service.create_template("Drop", make_steps(HOD))

        result = template_service.deactivate_template(drop.template_id)

        assert not result.is_active
        assert [t.template_id for t in template_service.list_active_templates()] == [keep.template_id]

    def test_deactivating_default_clears_flag(self, template_service, session):
        default = template_service.create_template("Default", make_steps(TREASURER), is_default=True)

        result = template_service.deactivate_template(default.template_id)

        assert not result.is_default
        assert _default_count(session) == 0


class TestSetDefault:

    def test_moves_default(self, template_service, session):
        a = template_service.create_template("A", make_steps(TREASURER), is_default=True)
        b = template_service.create_template("B", make_steps(HOD))

        result = template_service.set_default(b.template_id)

        assert result.is_default
        assert not template_service.get_template(a.template_id).is_default
        assert _default_count(session) == 1

    def test_idempotent_on_current_default(self, template_service, session):
        a = template_service.create_template("A", make_steps(TREASURER), is_default=True)

        assert template_service.set_default(a.template_id).is_default
        assert _default_count(session) == 1

    def test_inactive_template_refused(self, template_service, session):
        a = template_service.create_template("A", make_steps(TREASURER), is_default=True)
        b = template_service.create_template("B", make_steps(HOD))
        template_service.deactivate_template(b.template_id)

        with pytest.raises(InvalidTemplateError, match="inactive"):
            template_service.set_default(b.template_id)

        assert template_service.get_template(a.template_id).is_default

    def test_unknown_template(self, template_service):
        with pytest.raises(TemplateNotFoundError):
            template_service.set_default(uuid4())


class TestResolveTemplate:

    def test_department_specific_template_preferred(self, template_service, department_id):
        template_service.create_template(
            "Global", make_steps(TREASURER), min_amount=Decimal("0"), is_default=True,
        )
        dept = template_service.create_template(
            "Youth large", make_steps(TREASURER, HOD, ELDER),
            department_id=department_id, min_amount=Decimal("1000"),
        )

        resolved = template_service.resolve_template(department_id, Decimal("5000"))

        assert resolved.template_id == dept.template_id

    def test_deactivated_templates_not_resolved(self, template_service, department_id):
        only = template_service.create_template("Only", make_steps(TREASURER), is_default=True)
        template_service.deactivate_template(only.template_id)

        with pytest.raises(NoTemplateConfiguredError):
            template_service.resolve_template(department_id, Decimal("10"))
