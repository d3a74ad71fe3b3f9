"""Approval engine error taxonomy.

Every error is a deterministic validation failure raised before any row is
mutated, except ConcurrentModificationError which signals a lost race and is
the one category a caller may retry. ``status_code`` is what the HTTP layer
answers with.
"""


class ApprovalError(Exception):
    """Base error for the approval engine."""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(ApprovalError):
    """Expense, approval request or rule does not exist."""

    status_code = 404


class AlreadyProcessedError(ApprovalError):
    """Approval request was already decided; decisions are final."""

    status_code = 409


class AlreadyInitiatedError(ApprovalError):
    """Approval flow was already started for the expense."""

    status_code = 409


class ExpenseAlreadyFinalizedError(ApprovalError):
    """Decision arrived after the expense reached APPROVED or REJECTED."""

    status_code = 409


class InvalidRuleConfigurationError(ApprovalError):
    """Rule can never be satisfied or carries out-of-range values."""

    status_code = 422


class InvalidActionError(ApprovalError, ValueError):
    """Action is neither APPROVE nor REJECT."""

    status_code = 400


class ConcurrentModificationError(ApprovalError):
    """Row changed underneath us (optimistic version check failed)."""

    status_code = 409
