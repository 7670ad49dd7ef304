"""Read-only query selectors."""

from treasury_kernel.selectors.approval_selector import ApprovalSelector, InboxCandidate
from treasury_kernel.selectors.money_request_selector import MoneyRequestSelector

__all__ = ["ApprovalSelector", "InboxCandidate", "MoneyRequestSelector"]
