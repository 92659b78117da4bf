"""
Error Kinds

Every error is recoverable: the rejected operation leaves the loan in its
prior valid state and the caller may resubmit.
"""


class LoanError(ValueError):
    """Base class for rejected loan operations"""


class ValidationError(LoanError):
    """Invalid loan terms or payment input"""


class SequenceError(LoanError):
    """Sequence number outside the current schedule, or a duplicate payment without edit intent"""


class NotFoundError(LoanError):
    """No payment (or loan) exists under the given key"""


class StateError(LoanError):
    """Query or mutation against a loan that was never fully initialized"""
