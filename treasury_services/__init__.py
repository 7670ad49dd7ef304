"""
treasury_services -- orchestration over the treasury kernel.

Stateful services that combine the pure engines with persistence
(template, chain, status projection, request lifecycle), capability
resolution, and the transactional ``MoneyRequestWorkflow`` facade.
"""

from treasury_services.approval_chain_service import ApprovalChainService
from treasury_services.money_request_service import MoneyRequestService
from treasury_services.money_request_workflow import MoneyRequestWorkflow
from treasury_services.permission_resolver import (
    PermissionResolver,
    SqlRoleDirectory,
    StaticRoleDirectory,
)
from treasury_services.status_projection import RequestStatusProjector
from treasury_services.template_service import ApprovalTemplateService
from treasury_services.template_seeding import seed_templates

__all__ = [
    "ApprovalChainService",
    "ApprovalTemplateService",
    "MoneyRequestService",
    "MoneyRequestWorkflow",
    "PermissionResolver",
    "RequestStatusProjector",
    "SqlRoleDirectory",
    "StaticRoleDirectory",
    "seed_templates",
]
