"""
treasury_services.template_service -- Approval template management and resolution.

Responsibility:
    CRUD for approval templates (create, update, soft-deactivate, set the
    default) and resolution of the template governing a request.  Rule
    evaluation is delegated to the pure engine in ``treasury_engines``.

Architecture position:
    Services layer.  Flush-only; the caller owns the transaction.

Invariants enforced:
    - Templates are validated before every write (engine
      ``validate_template_definition``).
    - At most one default template.  ``set_default`` locks the target,
      clears the old default and flags the new one inside the caller's
      transaction; the partial unique index rejects a concurrent second
      default.
    - Templates are never deleted, only deactivated.

Failure modes:
    - TemplateNotFoundError for an unknown template id.
    - InvalidTemplateError for malformed definitions or an attempt to make
      an inactive template the default.
    - NoTemplateConfiguredError / AmbiguousTemplateMatchError from
      resolution.
"""

from __future__ import annotations

from collections.abc import Sequence
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from treasury_engines.approval import select_template, validate_template_definition
from treasury_kernel.domain.approval import ApprovalStepDefinition, ApprovalTemplate
from treasury_kernel.domain.clock import Clock, SystemClock
from treasury_kernel.exceptions import InvalidTemplateError, TemplateNotFoundError
from treasury_kernel.logging_config import get_logger
from treasury_kernel.models.approval import ApprovalTemplateModel
from treasury_kernel.services.base import BaseService

logger = get_logger("services.template")

_UPDATABLE_FIELDS = frozenset({
    "name", "description", "steps", "department_id", "min_amount", "max_amount",
})


def _serialize_steps(steps: Sequence[ApprovalStepDefinition]) -> list[dict]:
    return [s.to_dict() for s in sorted(steps, key=lambda s: s.step_order)]


class ApprovalTemplateService(BaseService):
    """Writes and resolves approval templates."""

    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session)
        self._clock = clock or SystemClock()

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def create_template(
        self,
        name: str,
        steps: Sequence[ApprovalStepDefinition],
        *,
        department_id: UUID | None = None,
        min_amount: Decimal | None = None,
        max_amount: Decimal | None = None,
        is_default: bool = False,
        description: str | None = None,
        created_by: UUID | None = None,
    ) -> ApprovalTemplate:
        validate_template_definition(name, steps, min_amount, max_amount)
        now = self._clock.now()

        if is_default:
            self._clear_default(exclude=None)

        model = ApprovalTemplateModel(
            name=name.strip(),
            description=description,
            department_id=department_id,
            min_amount=min_amount,
            max_amount=max_amount,
            approval_steps=_serialize_steps(steps),
            is_default=is_default,
            is_active=True,
            created_by=created_by,
            created_at=now,
            updated_at=now,
        )
        self.session.add(model)
        self.session.flush()

        logger.info(
            "approval_template_created",
            extra={
                "template_id": str(model.id),
                "template_name": model.name,
                "step_count": len(steps),
                "is_default": is_default,
            },
        )
        return model.to_dto()

    def update_template(self, template_id: UUID, **changes: Any) -> ApprovalTemplate:
        """Change name, description, steps, department scope or bounds.

        Default and active flags are changed through ``set_default`` and
        ``deactivate_template`` only.
        """
        unknown = set(changes) - _UPDATABLE_FIELDS
        model = self._load(template_id)
        if unknown:
            raise InvalidTemplateError(
                model.name, f"Fields cannot be updated: {sorted(unknown)}",
            )

        current = model.to_dto()
        name = changes.get("name", current.name)
        steps = tuple(changes.get("steps", current.steps))
        min_amount = changes.get("min_amount", current.min_amount)
        max_amount = changes.get("max_amount", current.max_amount)
        validate_template_definition(name, steps, min_amount, max_amount)

        model.name = name.strip()
        model.approval_steps = _serialize_steps(steps)
        model.min_amount = min_amount
        model.max_amount = max_amount
        if "description" in changes:
            model.description = changes["description"]
        if "department_id" in changes:
            model.department_id = changes["department_id"]
        model.updated_at = self._clock.now()
        self.session.flush()

        logger.info(
            "approval_template_updated",
            extra={"template_id": str(template_id), "fields": sorted(changes)},
        )
        return model.to_dto()

    def deactivate_template(self, template_id: UUID) -> ApprovalTemplate:
        """Soft delete.  A deactivated template also stops being the default."""
        model = self._load(template_id)
        was_default = model.is_default
        model.is_active = False
        model.is_default = False
        model.updated_at = self._clock.now()
        self.session.flush()

        logger.info(
            "approval_template_deactivated",
            extra={"template_id": str(template_id), "was_default": was_default},
        )
        return model.to_dto()

    def set_default(self, template_id: UUID) -> ApprovalTemplate:
        model = self._load(template_id, for_update=True)
        if not model.is_active:
            raise InvalidTemplateError(
                model.name, "An inactive template cannot be the default",
            )
        if model.is_default:
            return model.to_dto()

        self._clear_default(exclude=template_id)
        model.is_default = True
        model.updated_at = self._clock.now()
        self.session.flush()

        logger.info("approval_template_default_set", extra={"template_id": str(template_id)})
        return model.to_dto()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_template(self, template_id: UUID) -> ApprovalTemplate:
        return self._load(template_id).to_dto()

    def list_active_templates(self) -> list[ApprovalTemplate]:
        rows = self.session.scalars(
            select(ApprovalTemplateModel)
            .where(ApprovalTemplateModel.is_active.is_(True))
            .order_by(ApprovalTemplateModel.name, ApprovalTemplateModel.id)
        ).all()
        return [r.to_dto() for r in rows]

    def resolve_template(self, department_id: UUID, amount: Decimal) -> ApprovalTemplate:
        """The template governing a request; pure read."""
        template = select_template(
            self.list_active_templates(),
            department_id=department_id,
            amount=amount,
        )
        logger.info(
            "approval_template_resolved",
            extra={
                "template_id": str(template.template_id),
                "department_id": str(department_id),
                "amount": str(amount),
            },
        )
        return template

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _load(self, template_id: UUID, for_update: bool = False) -> ApprovalTemplateModel:
        stmt = select(ApprovalTemplateModel).where(ApprovalTemplateModel.id == template_id)
        if for_update:
            stmt = stmt.with_for_update()
        model = self.session.scalars(stmt).one_or_none()
        if model is None:
            raise TemplateNotFoundError(str(template_id))
        return model

    def _clear_default(self, exclude: UUID | None) -> None:
        stmt = (
            update(ApprovalTemplateModel)
            .where(ApprovalTemplateModel.is_default.is_(True))
            .values(is_default=False, updated_at=self._clock.now())
        )
        if exclude is not None:
            stmt = stmt.where(ApprovalTemplateModel.id != exclude)
        self.session.execute(stmt)
        self.session.flush()
