"""ORM models for the treasury kernel."""

from treasury_kernel.models.approval import ApprovalTemplateModel, RequestApprovalModel
from treasury_kernel.models.directory import (
    DepartmentModel,
    DepartmentPersonnelModel,
    ProfileModel,
    UserRoleModel,
)
from treasury_kernel.models.money_request import MoneyRequestModel
from treasury_kernel.models.notification import NotificationModel
from treasury_kernel.models.status_history import StatusHistoryModel

__all__ = [
    "ApprovalTemplateModel",
    "RequestApprovalModel",
    "DepartmentModel",
    "DepartmentPersonnelModel",
    "ProfileModel",
    "UserRoleModel",
    "MoneyRequestModel",
    "NotificationModel",
    "StatusHistoryModel",
]
