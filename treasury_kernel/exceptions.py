"""
Typed Exception Hierarchy for the Treasury Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Approval decisions move money. Callers (the UI layer, reports, scripts) must
be able to tell "nothing to act on" apart from "you may not act on this"
without parsing message strings.

Every exception here:
  1. Has a TYPED class (catch by type, not message)
  2. Has a CODE class attribute (machine-readable, API-safe)
  3. Has a USER_MESSAGE class attribute (distinct, human-readable)
  4. Carries its context as attributes (not just a message string)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    TreasuryError (base)
    |
    +-- TemplateError
    |   +-- NoTemplateConfiguredError
    |   +-- AmbiguousTemplateMatchError
    |   +-- InvalidTemplateError
    |   +-- TemplateNotFoundError
    |
    +-- ApprovalChainError
    |   +-- ChainAlreadyExistsError
    |   +-- NoPendingStepError
    |   +-- StepAlreadyDecidedError
    |   +-- ReasonRequiredError
    |   +-- InvalidDecisionError
    |
    +-- AuthorizationError
    |   +-- UnauthorizedError
    |   +-- UnauthorizedApproverError
    |
    +-- MoneyRequestError
    |   +-- MoneyRequestNotFoundError
    |   +-- InvalidMoneyRequestError
    |   +-- InvalidTransitionError
    |
    +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Template        | NO_TEMPLATE_CONFIGURED      | No match and no default template
                | AMBIGUOUS_TEMPLATE_MATCH    | Two templates equally specific
                | INVALID_TEMPLATE            | Step list or bounds malformed
                | TEMPLATE_NOT_FOUND          | Template ID doesn't exist
----------------|-----------------------------|-----------------------------------------
Chain           | CHAIN_ALREADY_EXISTS        | Chain initialized twice
                | NO_PENDING_STEP             | Chain terminal or not started
                | STEP_ALREADY_DECIDED        | Concurrent advance lost the race
                | REASON_REQUIRED             | Rejection without comments
                | INVALID_DECISION            | Decision neither approved nor rejected
----------------|-----------------------------|-----------------------------------------
Authorization   | UNAUTHORIZED                | Actor lacks capability for action
                | UNAUTHORIZED_APPROVER       | Actor cannot act on current step
----------------|-----------------------------|-----------------------------------------
Money request   | MONEY_REQUEST_NOT_FOUND     | Request ID doesn't exist
                | INVALID_MONEY_REQUEST       | Amount <= 0, empty purpose
                | INVALID_TRANSITION          | e.g. submitting a non-draft request
----------------|-----------------------------|-----------------------------------------
Immutability    | IMMUTABILITY_VIOLATION      | Modifying append-only history

===============================================================================
HANDLING PATTERNS
===============================================================================

    try:
        workflow.advance_chain(request_id, approver_id, "rejected", comments)
    except ReasonRequiredError as e:
        form.show_error(e.user_message)
    except (NoPendingStepError, StepAlreadyDecidedError) as e:
        refresh_inbox()
    except TreasuryError as e:
        log.error("advance_failed", extra={"code": e.code})

None of these errors is transient. They are never retried automatically.
"""


class TreasuryError(Exception):
    """
    Base exception for all treasury kernel errors.

    All subclasses must have ``code`` and ``user_message`` class attributes.
    """

    code: str = "TREASURY_ERROR"
    user_message: str = "The operation could not be completed."


# Template-related exceptions


class TemplateError(TreasuryError):
    """Base exception for approval template errors."""

    code: str = "TEMPLATE_ERROR"


class NoTemplateConfiguredError(TemplateError):
    """No active template matched and no default template is configured."""

    code: str = "NO_TEMPLATE_CONFIGURED"
    user_message: str = (
        "No approval workflow is configured for this department and amount. "
        "Ask an administrator to set up a default approval template."
    )

    def __init__(self, department_id: str, amount: str):
        self.department_id = department_id
        self.amount = amount
        super().__init__(
            f"No approval template matches department {department_id} "
            f"amount {amount} and no default template is configured"
        )


class AmbiguousTemplateMatchError(TemplateError):
    """
    Two or more non-default templates match with identical specificity.

    Picking one silently would make the approval route depend on row order.
    """

    code: str = "AMBIGUOUS_TEMPLATE_MATCH"
    user_message: str = (
        "More than one approval workflow applies to this request. "
        "Ask an administrator to narrow the template configuration."
    )

    def __init__(self, department_id: str, amount: str, template_ids: list[str]):
        self.department_id = department_id
        self.amount = amount
        self.template_ids = template_ids
        super().__init__(
            f"Ambiguous template match for department {department_id} "
            f"amount {amount}: {', '.join(template_ids)}"
        )


class InvalidTemplateError(TemplateError):
    """Template definition is malformed (steps, orders, bounds)."""

    code: str = "INVALID_TEMPLATE"
    user_message: str = "The approval template definition is invalid."

    def __init__(self, template_name: str, reason: str):
        self.template_name = template_name
        self.reason = reason
        super().__init__(f"Invalid approval template '{template_name}': {reason}")


class TemplateNotFoundError(TemplateError):
    """Template with given ID was not found."""

    code: str = "TEMPLATE_NOT_FOUND"
    user_message: str = "The approval template no longer exists."

    def __init__(self, template_id: str):
        self.template_id = template_id
        super().__init__(f"Approval template not found: {template_id}")


# Approval chain exceptions


class ApprovalChainError(TreasuryError):
    """Base exception for approval chain errors."""

    code: str = "APPROVAL_CHAIN_ERROR"


class ChainAlreadyExistsError(ApprovalChainError):
    """
    Approval steps already exist for this request.

    Safe to treat as a no-op: the existing chain is left untouched.
    """

    code: str = "CHAIN_ALREADY_EXISTS"
    user_message: str = "This request has already been routed for approval."

    def __init__(self, request_id: str, existing_steps: int):
        self.request_id = request_id
        self.existing_steps = existing_steps
        super().__init__(
            f"Approval chain already exists for request {request_id} "
            f"({existing_steps} step(s))"
        )


class NoPendingStepError(ApprovalChainError):
    """The chain is terminal (or was never started): nothing to act on."""

    code: str = "NO_PENDING_STEP"
    user_message: str = "There is nothing left to approve on this request."

    def __init__(self, request_id: str, status: str):
        self.request_id = request_id
        self.status = status
        super().__init__(
            f"No pending approval step for request {request_id} (status={status})"
        )


class StepAlreadyDecidedError(ApprovalChainError):
    """Another approver decided the current step first."""

    code: str = "STEP_ALREADY_DECIDED"
    user_message: str = (
        "Someone else has just acted on this approval step. "
        "Refresh to see the latest state."
    )

    def __init__(self, request_id: str, approval_id: str):
        self.request_id = request_id
        self.approval_id = approval_id
        super().__init__(
            f"Approval step {approval_id} of request {request_id} "
            f"was decided concurrently"
        )


class ReasonRequiredError(ApprovalChainError):
    """Rejection attempted with empty or whitespace-only comments."""

    code: str = "REASON_REQUIRED"
    user_message: str = "Please give a reason for rejecting this request."

    def __init__(self, request_id: str):
        self.request_id = request_id
        super().__init__(f"Rejection of request {request_id} requires a reason")


class InvalidDecisionError(ApprovalChainError):
    """Decision value other than approved or rejected."""

    code: str = "INVALID_DECISION"
    user_message: str = "Please choose to approve or reject this request."

    def __init__(self, request_id: str, decision: str):
        self.request_id = request_id
        self.decision = decision
        super().__init__(f"Unknown decision {decision!r} for request {request_id}")


# Authorization exceptions


class AuthorizationError(TreasuryError):
    """Base exception for authorization errors."""

    code: str = "AUTHORIZATION_ERROR"


class UnauthorizedError(AuthorizationError):
    """Actor lacks the capability for a non-approval action."""

    code: str = "UNAUTHORIZED"
    user_message: str = "You do not have permission to perform this action."

    def __init__(self, actor_id: str, action: str, reason: str = ""):
        self.actor_id = actor_id
        self.action = action
        self.reason = reason
        detail = f": {reason}" if reason else ""
        super().__init__(f"Actor {actor_id} may not {action}{detail}")


class UnauthorizedApproverError(AuthorizationError):
    """Actor's role or department scope does not cover the current step."""

    code: str = "UNAUTHORIZED_APPROVER"
    user_message: str = "You are not the approver for the current step of this request."

    def __init__(self, actor_id: str, request_id: str, approval_level: str):
        self.actor_id = actor_id
        self.request_id = request_id
        self.approval_level = approval_level
        super().__init__(
            f"Actor {actor_id} cannot act on request {request_id} "
            f"at level {approval_level}"
        )


# Money request exceptions


class MoneyRequestError(TreasuryError):
    """Base exception for money request errors."""

    code: str = "MONEY_REQUEST_ERROR"


class MoneyRequestNotFoundError(MoneyRequestError):
    """Money request with given ID was not found (or was withdrawn)."""

    code: str = "MONEY_REQUEST_NOT_FOUND"
    user_message: str = "The money request could not be found."

    def __init__(self, request_id: str):
        self.request_id = request_id
        super().__init__(f"Money request not found: {request_id}")


class InvalidMoneyRequestError(MoneyRequestError):
    """Request fields violate an invariant (amount > 0, purpose non-empty)."""

    code: str = "INVALID_MONEY_REQUEST"
    user_message: str = "The money request is missing required information."

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid money request field '{field}': {reason}")


class InvalidTransitionError(MoneyRequestError):
    """Lifecycle operation not valid from the request's current status."""

    code: str = "INVALID_TRANSITION"
    user_message: str = "This action is not allowed at the request's current stage."

    def __init__(self, request_id: str, current_status: str, action: str):
        self.request_id = request_id
        self.current_status = current_status
        self.action = action
        super().__init__(
            f"Cannot {action} request {request_id} in status {current_status}"
        )


# Immutability exceptions


class ImmutabilityViolationError(TreasuryError):
    """Attempted to modify or delete an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"
    user_message: str = "History records cannot be changed."

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Cannot modify {entity_type} {entity_id}: {reason}"
        )
