"""Exception hierarchy for the fund loan engine.

Every validation error is raised before any loan state is touched, so
callers can surface the message and keep the previous state.
"""


class LoanEngineError(Exception):
    """Base exception for all loan engine errors."""


class InvalidPrincipal(LoanEngineError):
    """Raised when the principal is missing, zero or negative."""


class InvalidRate(LoanEngineError):
    """Raised when the annual interest rate is negative."""


class InvalidTenure(LoanEngineError):
    """Raised when an EMI loan has no positive tenure."""


class InvalidFixedPayment(LoanEngineError):
    """Raised when a fixed payment is missing or cannot repay the loan."""


class NonConvergentAmortization(InvalidFixedPayment):
    """Raised when a fixed payment never clears the balance within the cap."""


class InvalidPaymentAmount(LoanEngineError):
    """Raised when an installment amount is not a positive number."""


class LoanNotFoundError(LoanEngineError):
    """Raised when a loan id does not exist."""
