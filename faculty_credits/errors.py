from typing import Optional


class CreditLedgerError(Exception):
    user_message = "The request could not be completed."
    retryable = False

    def __init__(self, message: str, user_message: Optional[str] = None):
        super().__init__(message)
        if user_message:
            self.user_message = user_message


class ValidationError(CreditLedgerError):
    user_message = "Some of the submitted information is missing or invalid."


class NotFoundError(CreditLedgerError):
    user_message = "The requested record does not exist."


class AuthorizationError(CreditLedgerError):
    user_message = "You are not allowed to perform this action."


class InvalidStateError(CreditLedgerError):
    user_message = "This action is not available for the record in its current state."


class ConflictError(CreditLedgerError):
    user_message = "This entry was just updated by someone else; please refresh."
    retryable = True
