"""
treasury_services.template_seeding -- Load configured templates into the database.

Idempotent: a configured template whose name already exists among the
active templates is skipped, so re-running the seed never duplicates or
overwrites templates edited by administrators.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from treasury_config.bridges import build_step_definitions, template_bounds
from treasury_config.schema import TreasuryConfigurationSet
from treasury_kernel.domain.approval import ApprovalTemplate
from treasury_kernel.domain.clock import Clock
from treasury_kernel.exceptions import InvalidTemplateError
from treasury_kernel.logging_config import get_logger
from treasury_kernel.models.directory import DepartmentModel
from treasury_services.template_service import ApprovalTemplateService

logger = get_logger("services.template_seeding")


def seed_templates(
    session: Session,
    config: TreasuryConfigurationSet,
    clock: Clock | None = None,
    created_by: UUID | None = None,
) -> list[ApprovalTemplate]:
    """Create every configured template not already present.

    Returns the templates created by this call.

    Raises:
        InvalidTemplateError: a template names an unknown department or
            role, or fails validation.
    """
    service = ApprovalTemplateService(session, clock)
    existing = {t.name for t in service.list_active_templates()}
    departments = dict(session.execute(select(DepartmentModel.name, DepartmentModel.id)).all())

    created: list[ApprovalTemplate] = []
    for definition in config.templates:
        if definition.name in existing:
            logger.info("template_seed_skipped", extra={"template_name": definition.name})
            continue

        department_id = None
        if definition.department is not None:
            department_id = departments.get(definition.department)
            if department_id is None:
                raise InvalidTemplateError(
                    definition.name, f"Unknown department {definition.department!r}",
                )

        try:
            steps = build_step_definitions(definition)
        except ValueError as exc:
            raise InvalidTemplateError(definition.name, str(exc)) from exc
        min_amount, max_amount = template_bounds(definition)

        created.append(
            service.create_template(
                definition.name,
                steps,
                department_id=department_id,
                min_amount=min_amount,
                max_amount=max_amount,
                is_default=definition.is_default,
                description=definition.description,
                created_by=created_by,
            )
        )

    logger.info(
        "templates_seeded",
        extra={"config_id": config.config_id, "templates_created": len(created)},
    )
    return created
