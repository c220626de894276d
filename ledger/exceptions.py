# ==========================================================
#                  LEDGER EXCEPTIONS
# ==========================================================


class LedgerError(Exception):
    """Base ledger exception, rendered as {"message": ...} with status_code"""
    status_code = 400

    def __init__(self, message: str = None, status_code: int = None):
        super().__init__(message or self.__class__.__doc__)
        self.message = message or self.__class__.__doc__
        if status_code is not None:
            self.status_code = status_code


class ValidationError(LedgerError):
    """Invalid request data"""
    status_code = 400


class NotFoundError(LedgerError):
    """Resource not found"""
    status_code = 404


class InsufficientBalanceError(LedgerError):
    """Insufficient balance"""
    status_code = 400


class AlreadyProcessedError(LedgerError):
    """Request already processed"""
    status_code = 400


class DuplicateError(LedgerError):
    """Duplicate entry"""
    status_code = 400


class PermissionDeniedError(LedgerError):
    """Operation not permitted"""
    status_code = 403


class GenerationExhaustedError(LedgerError):
    """Unable to generate a unique value, please retry"""
    status_code = 500
