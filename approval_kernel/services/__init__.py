"""Kernel services: the imperative shell over the approval stores."""

from approval_kernel.services.approval_chain_service import ApprovalChainService
from approval_kernel.services.approval_processor import ApprovalProcessor
from approval_kernel.services.approval_rule_service import ApprovalRuleService
from approval_kernel.services.authority_limit_service import AuthorityLimitService

__all__ = [
    "ApprovalChainService",
    "ApprovalProcessor",
    "ApprovalRuleService",
    "AuthorityLimitService",
]
