"""Domain errors raised by the CRUD and workflow helpers.

Each error carries the HTTP status the API layer should answer with so the
handlers registered in :mod:`budget_app.main` can turn them into JSON
responses without every route repeating the mapping.
"""


class BudgetAppError(Exception):
    """Base class for errors a caller is expected to surface to the user."""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(BudgetAppError):
    status_code = 404


class InvalidRequestStateError(BudgetAppError):
    """Raised when a reviewed item is missing or no longer pending."""

    status_code = 409


class InsufficientFundsError(BudgetAppError):
    pass


class SpendingLimitError(BudgetAppError):
    """The spending guard refused the amount; ``message`` holds the reason."""


class ChoreAssignmentError(BudgetAppError):
    status_code = 403
