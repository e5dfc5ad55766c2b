"""
Typed Exception Hierarchy for the Approval Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the approval engine (an HTTP layer, a batch job, the work-order
owner) must react differently to "you may not approve this", "somebody else
approved it a millisecond before you" and "that rule name is taken".  Parsing
message strings for that is fragile, so:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (not just a message string)

Example:
    try:
        processor.approve(step_id, caller)
    except StaleApprovalError as e:
        # Lost the compare-and-swap; re-read the step and show the winner
        refresh(e.step_id)
    except PermissionDeniedError as e:
        api_response(code=e.code, required=e.required_capability)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    ApprovalKernelError (base)
    |
    +-- NotFoundError
    |   +-- AuthorityLimitNotFoundError
    |   +-- ApprovalRuleNotFoundError
    |   +-- ApprovalStepNotFoundError
    |   +-- GovernedActionNotFoundError
    |
    +-- DuplicateError
    |   +-- DuplicateRuleNameError
    |   +-- DuplicateAuthorityLimitError
    |   +-- ChainAlreadyExistsError
    |
    +-- AuthorizationError
    |   +-- PermissionDeniedError
    |   +-- AccessDeniedError
    |   +-- MissingCompanyContextError
    |
    +-- InvalidStateError
    |   +-- InvalidStepStateError
    |   +-- ChainAlreadyResolvedError
    |   +-- OutOfOrderApprovalError
    |   +-- InvalidLifecycleTransitionError
    |
    +-- ApprovalValidationError
    |   +-- InvalidApprovalLevelsError
    |   +-- InvalidCostRangeError
    |   +-- InvalidCostError
    |   +-- CommentsRequiredError
    |
    +-- ConcurrencyError
    |   +-- StaleApprovalError
    |
    +-- IntegrityError
        +-- ChainIntegrityError
        +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category      | Code                          | When Raised
--------------|-------------------------------|---------------------------------------
Not found     | AUTHORITY_LIMIT_NOT_FOUND     | Limit ID doesn't exist
              | APPROVAL_RULE_NOT_FOUND       | Rule ID doesn't exist
              | APPROVAL_STEP_NOT_FOUND       | Step ID doesn't exist
              | GOVERNED_ACTION_NOT_FOUND     | Provider has no such action
--------------|-------------------------------|---------------------------------------
Duplicate     | DUPLICATE_RULE_NAME           | Active rule with same name in company
              | DUPLICATE_AUTHORITY_LIMIT     | Active limit for same role in company
              | CHAIN_ALREADY_EXISTS          | Action already has approval steps
--------------|-------------------------------|---------------------------------------
Authorization | PERMISSION_DENIED             | Missing capability / not the approver
              | ACCESS_DENIED                 | Record belongs to another company
              | MISSING_COMPANY_CONTEXT       | Caller has no company
--------------|-------------------------------|---------------------------------------
State         | INVALID_STEP_STATE            | Resolving an already-resolved step
              | CHAIN_ALREADY_RESOLVED        | Chain halted by an earlier rejection
              | OUT_OF_ORDER_APPROVAL         | Strict ordering, lower level pending
              | INVALID_LIFECYCLE_TRANSITION  | Deleting a deleted record, etc.
--------------|-------------------------------|---------------------------------------
Validation    | INVALID_APPROVAL_LEVELS       | approval_levels < 1 (or chain < 0)
              | INVALID_COST_RANGE            | min_cost > max_cost
              | INVALID_COST                  | Negative or non-numeric amount
              | COMMENTS_REQUIRED             | Rejection without comments
--------------|-------------------------------|---------------------------------------
Concurrency   | STALE_APPROVAL                | Lost the compare-and-swap on a step
--------------|-------------------------------|---------------------------------------
Integrity     | CHAIN_INTEGRITY               | Levels not contiguous from 1
              | IMMUTABILITY_VIOLATION        | Deleting a step / editing a resolved one

===============================================================================
HANDLING PATTERNS
===============================================================================

1. The engine performs NO internal retries.  ``StaleApprovalError`` means the
   step was resolved by someone else; a retry with the same ``step_id`` will
   raise ``InvalidStepStateError``, which is the idempotent outcome.

2. Catch categories at the API edge:
   - NotFoundError        -> 404
   - AuthorizationError   -> 403
   - DuplicateError       -> 409
   - InvalidStateError    -> 409
   - ConcurrencyError     -> 409 (re-read)
   - ApprovalValidationError -> 422
"""


class ApprovalKernelError(Exception):
    """
    Base exception for all approval kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "APPROVAL_KERNEL_ERROR"


# Not-found exceptions


class NotFoundError(ApprovalKernelError):
    """Base exception for missing records."""

    code: str = "NOT_FOUND"


class AuthorityLimitNotFoundError(NotFoundError):
    """Authority limit with given ID was not found."""

    code: str = "AUTHORITY_LIMIT_NOT_FOUND"

    def __init__(self, limit_id: str):
        self.limit_id = limit_id
        super().__init__(f"Authority limit not found: {limit_id}")


class ApprovalRuleNotFoundError(NotFoundError):
    """Approval rule with given ID was not found."""

    code: str = "APPROVAL_RULE_NOT_FOUND"

    def __init__(self, rule_id: str):
        self.rule_id = rule_id
        super().__init__(f"Approval rule not found: {rule_id}")


class ApprovalStepNotFoundError(NotFoundError):
    """Approval step with given ID was not found."""

    code: str = "APPROVAL_STEP_NOT_FOUND"

    def __init__(self, step_id: str):
        self.step_id = step_id
        super().__init__(f"Approval step not found: {step_id}")


class GovernedActionNotFoundError(NotFoundError):
    """The governed-action provider does not know this action."""

    code: str = "GOVERNED_ACTION_NOT_FOUND"

    def __init__(self, action_id: str):
        self.action_id = action_id
        super().__init__(f"Governed action not found: {action_id}")


# Duplicate exceptions


class DuplicateError(ApprovalKernelError):
    """Base exception for uniqueness violations."""

    code: str = "DUPLICATE"


class DuplicateRuleNameError(DuplicateError):
    """An active rule with this name already exists in the company."""

    code: str = "DUPLICATE_RULE_NAME"

    def __init__(self, name: str, company_id: str):
        self.name = name
        self.company_id = company_id
        super().__init__(
            f"An active approval rule named '{name}' already exists "
            f"in company {company_id}"
        )


class DuplicateAuthorityLimitError(DuplicateError):
    """An active authority limit for this role already exists in the company."""

    code: str = "DUPLICATE_AUTHORITY_LIMIT"

    def __init__(self, role_key: str, company_id: str):
        self.role_key = role_key
        self.company_id = company_id
        super().__init__(
            f"An active authority limit for role '{role_key}' already exists "
            f"in company {company_id}"
        )


class ChainAlreadyExistsError(DuplicateError):
    """The governed action already has approval steps."""

    code: str = "CHAIN_ALREADY_EXISTS"

    def __init__(self, action_id: str, existing_levels: int):
        self.action_id = action_id
        self.existing_levels = existing_levels
        super().__init__(
            f"Action {action_id} already has an approval chain "
            f"with {existing_levels} level(s)"
        )


# Authorization exceptions


class AuthorizationError(ApprovalKernelError):
    """Base exception for authorization and tenancy failures."""

    code: str = "AUTHORIZATION_ERROR"


class PermissionDeniedError(AuthorizationError):
    """Caller lacks the capability, and is not the assigned approver."""

    code: str = "PERMISSION_DENIED"

    def __init__(self, user_id: str, required_capability: str, reason: str = ""):
        self.user_id = user_id
        self.required_capability = required_capability
        self.reason = reason
        message = f"User {user_id} lacks capability '{required_capability}'"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class AccessDeniedError(AuthorizationError):
    """Cross-tenant access to another company's record."""

    code: str = "ACCESS_DENIED"

    def __init__(self, entity_type: str, entity_id: str, company_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.company_id = company_id
        super().__init__(
            f"{entity_type} {entity_id} is not accessible from company {company_id}"
        )


class MissingCompanyContextError(AuthorizationError):
    """The caller session carries no company, so nothing can be scoped."""

    code: str = "MISSING_COMPANY_CONTEXT"

    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__(f"Could not determine the company for user {user_id}")


# State exceptions


class InvalidStateError(ApprovalKernelError):
    """Base exception for illegal state transitions."""

    code: str = "INVALID_STATE"


class InvalidStepStateError(InvalidStateError):
    """Attempted to resolve a step that is no longer pending."""

    code: str = "INVALID_STEP_STATE"

    def __init__(self, step_id: str, current_status: str, attempted_status: str):
        self.step_id = step_id
        self.current_status = current_status
        self.attempted_status = attempted_status
        super().__init__(
            f"Approval step {step_id} is '{current_status}', "
            f"cannot transition to '{attempted_status}'"
        )


class ChainAlreadyResolvedError(InvalidStateError):
    """The chain was halted by a rejection; no further decisions are taken."""

    code: str = "CHAIN_ALREADY_RESOLVED"

    def __init__(self, action_id: str, resolution: str):
        self.action_id = action_id
        self.resolution = resolution
        super().__init__(
            f"Approval chain for action {action_id} is already {resolution}"
        )


class OutOfOrderApprovalError(InvalidStateError):
    """Strict ordering: a lower level is still awaiting approval."""

    code: str = "OUT_OF_ORDER_APPROVAL"

    def __init__(self, step_id: str, level: int, blocking_level: int):
        self.step_id = step_id
        self.level = level
        self.blocking_level = blocking_level
        super().__init__(
            f"Approval step {step_id} (level {level}) cannot be approved "
            f"before level {blocking_level}"
        )


class InvalidLifecycleTransitionError(InvalidStateError):
    """Configuration record lifecycle transition is not allowed."""

    code: str = "INVALID_LIFECYCLE_TRANSITION"

    def __init__(self, entity_type: str, from_state: str, to_state: str):
        self.entity_type = entity_type
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(
            f"Cannot transition {entity_type} from '{from_state}' to '{to_state}'"
        )


# Validation exceptions


class ApprovalValidationError(ApprovalKernelError):
    """Base exception for rejected input."""

    code: str = "VALIDATION_ERROR"


class InvalidApprovalLevelsError(ApprovalValidationError):
    """approval_levels must be a positive integer (chains: non-negative)."""

    code: str = "INVALID_APPROVAL_LEVELS"

    def __init__(self, levels: object, minimum: int = 1):
        self.levels = levels
        self.minimum = minimum
        super().__init__(
            f"Approval levels must be an integer >= {minimum}, got {levels!r}"
        )


class InvalidCostRangeError(ApprovalValidationError):
    """min_cost is greater than max_cost."""

    code: str = "INVALID_COST_RANGE"

    def __init__(self, min_cost: str, max_cost: str):
        self.min_cost = min_cost
        self.max_cost = max_cost
        super().__init__(
            f"Invalid cost range: min_cost {min_cost} exceeds max_cost {max_cost}"
        )


class InvalidCostError(ApprovalValidationError):
    """Amount is negative or not a number."""

    code: str = "INVALID_COST"

    def __init__(self, field_name: str, value: object):
        self.field_name = field_name
        self.value = value
        super().__init__(f"Invalid amount for {field_name}: {value!r}")


class CommentsRequiredError(ApprovalValidationError):
    """A rejection must say why."""

    code: str = "COMMENTS_REQUIRED"

    def __init__(self, step_id: str):
        self.step_id = step_id
        super().__init__(f"Rejecting approval step {step_id} requires comments")


# Concurrency exceptions


class ConcurrencyError(ApprovalKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class StaleApprovalError(ConcurrencyError):
    """The conditional update matched zero rows: another resolver won."""

    code: str = "STALE_APPROVAL"

    def __init__(self, step_id: str, attempted_status: str):
        self.step_id = step_id
        self.attempted_status = attempted_status
        super().__init__(
            f"Approval step {step_id} was resolved concurrently; "
            f"'{attempted_status}' not applied"
        )


# Integrity exceptions


class IntegrityError(ApprovalKernelError):
    """Base exception for stored-data integrity failures."""

    code: str = "INTEGRITY_ERROR"


class ChainIntegrityError(IntegrityError):
    """Stored levels for an action are not contiguous from 1."""

    code: str = "CHAIN_INTEGRITY"

    def __init__(self, action_id: str, levels: list[int]):
        self.action_id = action_id
        self.levels = levels
        super().__init__(
            f"Approval chain for action {action_id} has non-contiguous "
            f"levels {levels}"
        )


class ImmutabilityViolationError(IntegrityError):
    """Attempted to delete a step or modify an already-resolved step."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
