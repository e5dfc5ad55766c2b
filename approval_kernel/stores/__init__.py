"""Store implementations: SQLAlchemy-backed and in-memory."""

from approval_kernel.stores.memory import (
    InMemoryApprovalRuleStore,
    InMemoryApprovalStepStore,
    InMemoryAuthorityLimitStore,
    InMemoryGovernedActions,
)
from approval_kernel.stores.sql import (
    SqlApprovalRuleStore,
    SqlApprovalStepStore,
    SqlAuthorityLimitStore,
)

__all__ = [
    "InMemoryApprovalRuleStore",
    "InMemoryApprovalStepStore",
    "InMemoryAuthorityLimitStore",
    "InMemoryGovernedActions",
    "SqlApprovalRuleStore",
    "SqlApprovalStepStore",
    "SqlAuthorityLimitStore",
]
