"""Read-only selectors."""

from approval_kernel.selectors.approval_selector import ApprovalSelector, StepFilter
from approval_kernel.selectors.base import BaseSelector, Page

__all__ = ["ApprovalSelector", "BaseSelector", "Page", "StepFilter"]
