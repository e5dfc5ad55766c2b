"""ORM models for the approval kernel."""

from approval_kernel.models.approval_rule import ApprovalRuleModel
from approval_kernel.models.approval_step import ApprovalStepModel
from approval_kernel.models.authority_limit import AuthorityLimitModel

__all__ = [
    "ApprovalRuleModel",
    "ApprovalStepModel",
    "AuthorityLimitModel",
]
